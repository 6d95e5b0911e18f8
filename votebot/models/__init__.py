from votebot.models.directive import CountingMethod, VoteDirective
from votebot.models.item import (
    Actor,
    CommentRef,
    ItemKind,
    PlatformComment,
    PlatformReaction,
    PullRequestReview,
    ReactionContent,
    VoteItem,
)
from votebot.models.membership import AlternateMap, Membership
from votebot.models.signal import CommentSignal, ReactionSignal, Signal
from votebot.models.tally import CategoryTally, ManualResult, VoteRecord, VoteTally
from votebot.models.threshold import Threshold, has_quorum, required_votes
from votebot.models.vote_config import (
    AlternateConfig,
    AlternateDefinition,
    StatusLinks,
    TeamMapping,
    VoteConfig,
)

__all__ = [
    "Actor",
    "AlternateConfig",
    "AlternateDefinition",
    "AlternateMap",
    "CategoryTally",
    "CommentRef",
    "CommentSignal",
    "CountingMethod",
    "ItemKind",
    "ManualResult",
    "Membership",
    "PlatformComment",
    "PlatformReaction",
    "PullRequestReview",
    "ReactionContent",
    "ReactionSignal",
    "Signal",
    "StatusLinks",
    "TeamMapping",
    "Threshold",
    "VoteConfig",
    "VoteDirective",
    "VoteItem",
    "VoteRecord",
    "VoteTally",
    "has_quorum",
    "required_votes",
]
