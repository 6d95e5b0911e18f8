from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _default_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_test_token_value")
    monkeypatch.delenv("RESEND_API_KEY", raising=False)
    monkeypatch.delenv("VOTE_REPOSITORIES", raising=False)
    from votebot.config import get_settings

    get_settings.cache_clear()
