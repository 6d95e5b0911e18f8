from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from votebot.models.directive import CountingMethod
from votebot.models.item import Actor
from votebot.models.threshold import Threshold

IGNORED = "ignored"
COMMENT = "comment"


class VoteRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    login: str
    url: str = ""
    created_at: datetime
    reaction: str | None = None
    alternate: bool = False
    on_behalf_of: str | None = None


class CategoryTally(BaseModel):
    """One bucket of a tally. ``team`` holds voting-group records, ``others`` everyone else."""

    model_config = ConfigDict(frozen=True)

    name: str
    reactions: tuple[str, ...] = ()
    team: tuple[VoteRecord, ...] = ()
    others: tuple[VoteRecord, ...] = ()

    @property
    def total(self) -> int:
        return len(self.team) + len(self.others)

    @property
    def team_total(self) -> int:
        return len(self.team)


class ManualResult(BaseModel):
    """The authoritative closing record of a vote."""

    model_config = ConfigDict(frozen=True)

    author: Actor
    created_at: datetime
    body: str
    url: str = ""


class VoteTally(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: CountingMethod
    group: str | None
    threshold: Threshold
    group_size: int
    group_votes: int
    counted_votes: int
    dropped_votes: int
    categories: tuple[CategoryTally, ...] = ()
    duplicates: tuple[VoteRecord, ...] = ()
    other_votes: tuple[VoteRecord, ...] = ()
    missing_group_actors: tuple[Actor, ...] = ()
    has_quorum: bool = False
    is_done: bool = False
    manual_result: ManualResult | None = None
    is_pull_request: bool = False

    def category(self, name: str) -> CategoryTally | None:
        for category in self.categories:
            if category.name == name:
                return category
        return None

    @property
    def counted_categories(self) -> tuple[CategoryTally, ...]:
        return tuple(c for c in self.categories if c.name != IGNORED)

    @property
    def ignored_votes(self) -> int:
        ignored = self.category(IGNORED)
        return ignored.total if ignored is not None else 0

    def snapshot(self) -> dict[str, Any]:
        """Structured form embedded in the status comment."""
        return {
            "voteType": self.method.value,
            "group": self.group,
            "votingThreshold": self.threshold.value,
            "groupSize": self.group_size,
            "groupVotes": self.group_votes,
            "countedVotes": self.counted_votes,
            "droppedVotes": self.dropped_votes,
            "hasQuorum": self.has_quorum,
            "isDone": self.is_done,
            "categories": {
                category.name: {
                    "reactions": list(category.reactions),
                    "team": [_record_data(record) for record in category.team],
                    "otherVotes": [_record_data(record) for record in category.others],
                }
                for category in self.categories
            },
            "duplicates": [_record_data(record) for record in self.duplicates],
            "missingGroupActors": [
                {"login": actor.login, "url": actor.url} for actor in self.missing_group_actors
            ],
            "manualCloseComments": (
                {
                    "author": {"login": self.manual_result.author.login, "url": self.manual_result.author.url},
                    "createdAt": self.manual_result.created_at.isoformat(),
                    "body": self.manual_result.body,
                    "url": self.manual_result.url,
                }
                if self.manual_result is not None
                else None
            ),
        }


def _record_data(record: VoteRecord) -> dict[str, Any]:
    data: dict[str, Any] = {
        "login": record.login,
        "url": record.url,
        "createdAt": record.created_at.isoformat(),
    }
    if record.reaction is not None:
        data["reaction"] = record.reaction
    if record.alternate:
        data["alternate"] = True
        data["onBehalfOf"] = record.on_behalf_of
    return data
