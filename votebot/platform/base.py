from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from votebot.models.item import (
    Actor,
    CommentRef,
    PlatformComment,
    PlatformReaction,
    PullRequestReview,
    ReactionContent,
    VoteItem,
)


class PlatformError(RuntimeError):
    """A platform call failed (network, HTTP status or API-level error)."""


class MembershipProvider(ABC):
    @abstractmethod
    async def list_team_members(self, group: str) -> list[Actor] | None:
        """Members of ``org/team``. Returns None when the team does not exist."""
        ...

    @abstractmethod
    async def list_pull_request_reviews(self, item: VoteItem) -> list[PullRequestReview]:
        ...


class SourceFileProvider(ABC):
    @abstractmethod
    async def read_structured_file(self, repo: str, path: str) -> Any | None:
        """Parsed YAML/JSON content of ``path`` in ``repo``, or None if not found."""
        ...


class PlatformQuery(ABC):
    @abstractmethod
    async def get_item(self, item: VoteItem) -> VoteItem | None:
        """Current state of ``item`` (body, labels, closed). None when it no longer exists."""
        ...

    @abstractmethod
    async def list_reactions(self, item: VoteItem) -> list[PlatformReaction]:
        ...

    @abstractmethod
    async def list_comments(self, item: VoteItem) -> list[PlatformComment]:
        ...

    @abstractmethod
    async def find_existing_bot_comment(self, item: VoteItem, comment_id: str) -> CommentRef | None:
        """Look up the bot's status comment referenced from the item body."""
        ...

    @abstractmethod
    async def list_repository_labels(self, repo: str, names: list[str]) -> set[str]:
        """Which of ``names`` are defined as labels in ``repo``."""
        ...

    @abstractmethod
    async def list_open_vote_items(self, repo: str, label: str) -> list[VoteItem]:
        """Issues, pull requests and discussions in ``repo`` carrying ``label``."""
        ...


class PlatformMutation(ABC):
    @abstractmethod
    async def upsert_comment(self, item: VoteItem, ref: CommentRef | None, body: str) -> CommentRef:
        ...

    @abstractmethod
    async def set_item_body(self, item: VoteItem, body: str) -> None:
        ...

    @abstractmethod
    async def add_label(self, item: VoteItem, name: str) -> None:
        ...

    @abstractmethod
    async def remove_labels(self, item: VoteItem, names: list[str]) -> None:
        ...

    @abstractmethod
    async def add_bot_reaction(self, item: VoteItem, content: ReactionContent) -> None:
        ...

    @abstractmethod
    async def remove_bot_reaction(self, item: VoteItem, content: ReactionContent) -> None:
        ...


class ErrorReporter(ABC):
    @abstractmethod
    async def report(self, subject: str, body: str, *, recipients: list[str]) -> bool:
        """Deliver an error report. Best effort: implementations do not raise."""
        ...


class Platform(MembershipProvider, SourceFileProvider, PlatformQuery, PlatformMutation, ABC):
    """All platform collaborators behind a single client."""


def is_own_login(login: str, bot_login: str | None) -> bool:
    """GraphQL reports an app login without its ``[bot]`` suffix."""
    if bot_login is None:
        return False
    return login in (bot_login, bot_login.removesuffix("[bot]"))


def is_bot_login(login: str, bot_login: str | None = None) -> bool:
    return login.endswith("[bot]") or is_own_login(login, bot_login)
