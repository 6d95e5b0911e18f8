from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from votebot.models.item import Actor, ReactionContent


class ReactionSignal(BaseModel):
    """A reaction-like vote input (emoji reaction or translated review)."""

    model_config = ConfigDict(frozen=True)

    actor: Actor
    content: ReactionContent
    created_at: datetime

    @property
    def emoji(self) -> str:
        return self.content.emoji


class CommentSignal(BaseModel):
    """A comment-like vote input."""

    model_config = ConfigDict(frozen=True)

    actor: Actor
    created_at: datetime
    body: str = ""
    url: str = ""
    id: str | None = None


Signal = ReactionSignal | CommentSignal
