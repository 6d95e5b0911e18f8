from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    github_token: str
    github_api_url: str = "https://api.github.com"
    github_http_timeout_seconds: float = 20.0
    bot_login: str = "haus-rules-bot[bot]"

    vote_repositories: str = ""
    vote_config_path: str = ".github/cf-haus-rules.yml"
    rescan_interval_hours: float = 3.0
    worker_count: int = 4

    single_flight_idle_hours: float = 6.0
    alternates_cache_hours: float = 24.0
    manual_result_cache_hours: float = 3.0
    manual_result_requeue_seconds: float = 20.0
    manual_result_max_requeues: int = 5

    resend_api_key: str | None = None
    email_from: str = "votebot@resend.dev"
    email_http_timeout_seconds: float = 10.0

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @field_validator("github_token")
    @classmethod
    def validate_github_token(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("GITHUB_TOKEN must be provided")
        return value

    @field_validator("worker_count")
    @classmethod
    def validate_worker_count(cls, value: int) -> int:
        if value < 1:
            raise ValueError("WORKER_COUNT must be at least 1")
        return value

    def vote_repository_list(self) -> list[str]:
        return [item.strip() for item in self.vote_repositories.split(",") if item.strip()]

    def github_graphql_url(self) -> str:
        return f"{self.github_api_url.rstrip('/')}/graphql"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
