from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from votebot.models.item import ReactionContent
from votebot.models.membership import Membership
from votebot.models.threshold import Threshold


class CountingMethod(str, Enum):
    MARTHAS = "marthas"
    MANUAL_REACTIONS = "manualReactions"
    MANUAL_COMMENTS = "manualComments"
    UNDEFINED = "undefined"


class VoteDirective(BaseModel):
    """How votes on one item are counted, as read from its body."""

    model_config = ConfigDict(frozen=True)

    group: str | None = None
    method: CountingMethod = CountingMethod.UNDEFINED
    approve: tuple[ReactionContent, ...] = ()
    ok: tuple[ReactionContent, ...] = ()
    revise: tuple[ReactionContent, ...] = ()
    unknown_reactions: tuple[str, ...] = ()
    threshold: Threshold = Threshold.ALL
    is_pull_request: bool = False

    @property
    def counts_comments(self) -> bool:
        return self.method == CountingMethod.MANUAL_COMMENTS

    @property
    def invalid_reactions(self) -> bool:
        if self.method == CountingMethod.UNDEFINED:
            return True
        if self.method != CountingMethod.MARTHAS:
            # humans decide what reactions mean
            return False
        if self.unknown_reactions:
            return True
        if not (self.approve and self.ok and self.revise):
            return True
        approve, ok, revise = set(self.approve), set(self.ok), set(self.revise)
        return bool(approve & ok or approve & revise or ok & revise)

    def invalid_group(self, membership: Membership | None) -> bool:
        return membership is None or membership.size == 0

    def is_valid(self, membership: Membership | None) -> bool:
        return not (self.invalid_group(membership) or self.invalid_reactions)
