from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable, Sequence

from votebot.models.directive import CountingMethod, VoteDirective
from votebot.models.item import PlatformComment, PullRequestReview, ReactionContent, VoteItem
from votebot.models.signal import CommentSignal, ReactionSignal, Signal
from votebot.models.tally import ManualResult
from votebot.platform.base import MembershipProvider, PlatformMutation, PlatformQuery, is_bot_login, is_own_login

logger = logging.getLogger(__name__)

RESULT_MARKER = "vote::result"
_RESULT_MARKER_RE = re.compile(r"\s*vote::result\s*")
_HTML_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)

_SKIPPED_REVIEW_STATES = {"DISMISSED", "PENDING"}

LoginFilter = Callable[[str, list[str] | None], Awaitable[bool]]


class SignalCollector:
    """Turns platform reactions, comments and reviews into vote signals."""

    def __init__(
        self,
        *,
        query: PlatformQuery,
        mutation: PlatformMutation,
        members: MembershipProvider,
        bot_login: str | None = None,
    ) -> None:
        self._query = query
        self._mutation = mutation
        self._members = members
        self._bot_login = bot_login

    async def collect_reactions(self, item: VoteItem) -> list[ReactionSignal]:
        signals: list[ReactionSignal] = []
        for reaction in await self._query.list_reactions(item):
            content = ReactionContent.from_string(reaction.content)
            if is_bot_login(reaction.user.login, self._bot_login):
                if is_own_login(reaction.user.login, self._bot_login) and content == ReactionContent.CONFUSED:
                    await self._mutation.remove_bot_reaction(item, ReactionContent.CONFUSED)
                continue
            if content is None:
                logger.debug("[%s] Ignoring unknown reaction %s", item.log_id, reaction.content)
                continue
            signals.append(ReactionSignal(actor=reaction.user, content=content, created_at=reaction.created_at))
        return signals

    async def list_human_comments(self, item: VoteItem) -> list[PlatformComment]:
        return [
            comment
            for comment in await self._query.list_comments(item)
            if not is_bot_login(comment.author.login, self._bot_login)
        ]

    async def collect_comments(self, item: VoteItem) -> list[CommentSignal]:
        return comment_signals(await self.list_human_comments(item))

    async def collect_reviews(self, item: VoteItem, directive: VoteDirective) -> list[Signal]:
        if not item.is_pull_request:
            return []
        reviews = await self._members.list_pull_request_reviews(item)
        return translate_reviews(reviews, directive, bot_login=self._bot_login)

    async def collect_signals(self, item: VoteItem, directive: VoteDirective) -> list[Signal]:
        """All vote inputs for ``item`` in the shape the directive counts."""
        reviews = await self.collect_reviews(item, directive)
        if directive.counts_comments:
            return [*reviews, *await self.collect_comments(item)]
        return [*reviews, *await self.collect_reactions(item)]


def comment_signals(comments: Sequence[PlatformComment]) -> list[CommentSignal]:
    # result comments close a vote, they are not votes themselves
    return [
        CommentSignal(
            actor=comment.author,
            created_at=comment.created_at,
            body=comment.body,
            url=comment.url,
            id=comment.id,
        )
        for comment in comments
        if RESULT_MARKER not in comment.body
    ]


def translate_reviews(
    reviews: Sequence[PullRequestReview],
    directive: VoteDirective,
    *,
    bot_login: str | None = None,
) -> list[Signal]:
    """Latest review per reviewer, as reaction or comment signals."""
    latest: dict[str, PullRequestReview] = {}
    for review in reviews:
        if review.state in _SKIPPED_REVIEW_STATES or is_bot_login(review.author.login, bot_login):
            continue
        current = latest.get(review.author.login)
        if current is None or review.submitted_at > current.submitted_at:
            latest[review.author.login] = review

    signals: list[Signal] = []
    for login in sorted(latest):
        review = latest[login]
        if directive.counts_comments:
            signals.append(
                CommentSignal(actor=review.author, created_at=review.submitted_at, body=review.body, url=review.url)
            )
            continue
        content = _review_reaction(review, directive)
        if content is not None:
            signals.append(ReactionSignal(actor=review.author, content=content, created_at=review.submitted_at))
    return signals


def _review_reaction(review: PullRequestReview, directive: VoteDirective) -> ReactionContent | None:
    if directive.method == CountingMethod.MARTHAS:
        choices = {
            "APPROVED": directive.approve,
            "CHANGES_REQUESTED": directive.revise,
            "COMMENTED": directive.ok,
        }.get(review.state, ())
        return choices[0] if choices else None
    return {
        "APPROVED": ReactionContent.PLUS_ONE,
        "CHANGES_REQUESTED": ReactionContent.MINUS_ONE,
        "COMMENTED": ReactionContent.EYES,
    }.get(review.state)


def is_result_comment(comment: PlatformComment) -> bool:
    return RESULT_MARKER in comment.body


def to_manual_result(comment: PlatformComment) -> ManualResult:
    body = _RESULT_MARKER_RE.sub("", comment.body)
    body = _HTML_COMMENT_RE.sub("", body)
    return ManualResult(author=comment.author, created_at=comment.created_at, body=body.strip(), url=comment.url)


async def collect_manual_results(
    comments: Sequence[PlatformComment],
    managers: list[str] | None,
    is_included: LoginFilter,
) -> list[ManualResult]:
    """Result comments posted by someone allowed to close the vote."""
    results: list[ManualResult] = []
    for comment in comments:
        if not is_result_comment(comment):
            continue
        if not await is_included(comment.author.login, managers):
            logger.info(
                "Ignoring vote result from %s (not a vote manager)",
                comment.author.login,
                extra={"event_type": "voting.result.ignored"},
            )
            continue
        results.append(to_manual_result(comment))
    return results
