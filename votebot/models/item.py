from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Actor(BaseModel):
    """A platform user, unique by login."""

    model_config = ConfigDict(frozen=True)

    login: str
    url: str = ""

    def __hash__(self) -> int:
        return hash(self.login)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Actor) and other.login == self.login


class ItemKind(str, Enum):
    ISSUE = "issue"
    PULL_REQUEST = "pull_request"
    DISCUSSION = "discussion"


class ReactionContent(str, Enum):
    PLUS_ONE = "+1"
    MINUS_ONE = "-1"
    LAUGH = "laugh"
    CONFUSED = "confused"
    HEART = "heart"
    HOORAY = "hooray"
    ROCKET = "rocket"
    EYES = "eyes"

    @property
    def emoji(self) -> str:
        return _EMOJI[self]

    @property
    def sort_order(self) -> int:
        """Tie-break rank for reactions cast at the same moment (lower wins)."""
        return _PRIORITY.index(self)

    @property
    def graphql_name(self) -> str:
        return _GRAPHQL_NAMES[self]

    @classmethod
    def from_string(cls, value: str | None) -> ReactionContent | None:
        if not value:
            return None
        needle = value.strip().lower()
        if needle in _ALIASES:
            return _ALIASES[needle]
        for content in cls:
            if needle == content.value or needle == content.name.lower():
                return content
        return None


_EMOJI: dict[ReactionContent, str] = {
    ReactionContent.ROCKET: "🚀",
    ReactionContent.HEART: "❤️",
    ReactionContent.HOORAY: "🎉",
    ReactionContent.LAUGH: "😄",
    ReactionContent.PLUS_ONE: "👍",
    ReactionContent.EYES: "👀",
    ReactionContent.CONFUSED: "😕",
    ReactionContent.MINUS_ONE: "👎",
}

_PRIORITY: list[ReactionContent] = [
    ReactionContent.ROCKET,
    ReactionContent.HEART,
    ReactionContent.HOORAY,
    ReactionContent.LAUGH,
    ReactionContent.PLUS_ONE,
    ReactionContent.EYES,
    ReactionContent.CONFUSED,
    ReactionContent.MINUS_ONE,
]

_GRAPHQL_NAMES: dict[ReactionContent, str] = {
    ReactionContent.PLUS_ONE: "THUMBS_UP",
    ReactionContent.MINUS_ONE: "THUMBS_DOWN",
    ReactionContent.LAUGH: "LAUGH",
    ReactionContent.CONFUSED: "CONFUSED",
    ReactionContent.HEART: "HEART",
    ReactionContent.HOORAY: "HOORAY",
    ReactionContent.ROCKET: "ROCKET",
    ReactionContent.EYES: "EYES",
}

_ALIASES: dict[str, ReactionContent] = {
    "thumbs_up": ReactionContent.PLUS_ONE,
    "thumbsup": ReactionContent.PLUS_ONE,
    "plus_one": ReactionContent.PLUS_ONE,
    "thumbs_down": ReactionContent.MINUS_ONE,
    "thumbsdown": ReactionContent.MINUS_ONE,
    "minus_one": ReactionContent.MINUS_ONE,
    "tada": ReactionContent.HOORAY,
}


class VoteItem(BaseModel):
    """An issue, pull request or discussion under vote."""

    id: str
    repository: str
    number: int
    url: str
    body: str = ""
    title: str = ""
    closed: bool = False
    labels: frozenset[str] = Field(default_factory=frozenset)
    kind: ItemKind = ItemKind.ISSUE

    @property
    def is_pull_request(self) -> bool:
        return self.kind == ItemKind.PULL_REQUEST

    @property
    def log_id(self) -> str:
        return f"{self.repository}#{self.number}"


class PlatformReaction(BaseModel):
    user: Actor
    content: str
    created_at: datetime


class PlatformComment(BaseModel):
    id: str
    author: Actor
    body: str
    created_at: datetime
    url: str = ""


class PullRequestReview(BaseModel):
    author: Actor
    state: Literal["APPROVED", "CHANGES_REQUESTED", "COMMENTED", "DISMISSED", "PENDING"]
    submitted_at: datetime
    body: str = ""
    url: str = ""


class CommentRef(BaseModel):
    """Reference to a comment the bot owns on an item."""

    id: str
    url: str
    body: str = ""
