from __future__ import annotations

import hashlib
import json
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from votebot.models.threshold import Threshold


class TeamMapping(BaseModel):
    data: str | None = None
    team: str | None = None

    def valid(self) -> bool:
        return bool(self.data) and bool(self.team)


class AlternateDefinition(BaseModel):
    field: str | None = None
    primary: TeamMapping | None = None
    secondary: TeamMapping | None = None

    def valid(self) -> bool:
        return (
            bool(self.field)
            and self.primary is not None
            and self.primary.valid()
            and self.secondary is not None
            and self.secondary.valid()
        )


class AlternateConfig(BaseModel):
    """Where to find primary/secondary rosters for alternate representatives."""

    source: str | None = None
    repo: str | None = None
    mapping: list[AlternateDefinition] = Field(default_factory=list)

    def valid(self) -> bool:
        return (
            bool(self.source)
            and bool(self.repo)
            and bool(self.mapping)
            and all(definition.valid() for definition in self.mapping)
        )


class StatusLinks(BaseModel):
    badge: str | None = None
    page: str | None = None


class VoteConfig(BaseModel):
    """The ``voting`` section of a repository's bot configuration file."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    disabled: bool = False
    managers: list[str] | None = None
    exclude_login: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("exclude_login", "excludeLogin")
    )
    error_email_address: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("error_email_address", "errorEmailAddress")
    )
    vote_threshold: dict[str, Threshold] = Field(
        default_factory=dict, validation_alias=AliasChoices("vote_threshold", "voteThreshold")
    )
    alternates: list[AlternateConfig] | None = None
    status: StatusLinks | None = None

    @field_validator("vote_threshold", mode="before")
    @classmethod
    def parse_thresholds(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {group: Threshold.from_string(str(tier)) for group, tier in value.items()}
        return value

    @field_validator("error_email_address", "exclude_login", mode="before")
    @classmethod
    def parse_string_list(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value or []

    def threshold_for(self, group: str | None) -> Threshold:
        if group is None:
            return Threshold.ALL
        return self.vote_threshold.get(group, Threshold.ALL)

    def is_member_excluded(self, login: str) -> bool:
        return login in self.exclude_login

    def sends_error_email(self) -> bool:
        return bool(self.error_email_address)

    def alternates_hash(self) -> str:
        """Stable digest of the alternates section, used as a cache key."""
        if self.alternates is None:
            return "none"
        payload = json.dumps(
            [alt.model_dump(mode="json") for alt in self.alternates],
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


DISABLED = VoteConfig(disabled=True)
