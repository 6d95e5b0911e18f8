from __future__ import annotations

import logging
import re
import traceback
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from votebot.cache import Clock, ExpiringMap
from votebot.config import Settings
from votebot.handlers.single_flight import SingleFlightRegistry
from votebot.models.directive import VoteDirective
from votebot.models.item import CommentRef, PlatformComment, ReactionContent, VoteItem
from votebot.models.membership import Membership
from votebot.models.tally import ManualResult, VoteTally
from votebot.models.vote_config import VoteConfig
from votebot.ops.log_context import correlation_scope
from votebot.pipeline.directive import error_content, find_group, parse_directive
from votebot.pipeline.membership import GroupResolver
from votebot.pipeline.signals import SignalCollector, collect_manual_results
from votebot.pipeline.tally import render_status_comment, tally_votes
from votebot.platform.base import ErrorReporter, Platform

logger = logging.getLogger(__name__)

VOTE_OPEN = "vote/open"
VOTE_DONE = "vote/done"
VOTE_PROCEED = "vote/proceed"
VOTE_REVISE = "vote/revise"
VOTE_QUORUM = "vote/quorum"
REQUIRED_LABELS = (VOTE_DONE, VOTE_PROCEED, VOTE_REVISE, VOTE_QUORUM)

STATUS_LINK_PATTERN = re.compile(
    r"(?:\*\*Vote progress\*\* tracked in \[this comment]|\[!\[.*?]\(.*?\)]|\[.*?Vote progress])"
    r"\(([^ )]+) ?(?:\"([^\"]+)\")?\)\.?",
    re.IGNORECASE,
)

# schedule_later(delay_seconds, job)
Scheduler = Callable[[float, Callable[[], Awaitable[Any]]], None]


class VoteInvariantError(RuntimeError):
    """An evaluation was asked to do something that cannot be valid."""


class TriggerKind(str, Enum):
    WEBHOOK = "webhook"
    SCAN = "scan"
    MANUAL_RESULT = "manual_result"


class EvaluationState(str, Enum):
    IDLE = "idle"
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"
    REQUEUED = "requeued"


@dataclass(slots=True)
class EvaluationResult:
    state: EvaluationState = EvaluationState.IDLE
    tally: VoteTally | None = None
    errors: list[str] = field(default_factory=list)


def status_link(item: VoteItem, ref: CommentRef, config: VoteConfig) -> str:
    """Markdown link from the item body to its status comment."""
    badge = config.status.badge if config.status is not None else None
    if badge:
        badge_url = badge.replace("{{repoName}}", item.repository).replace("{{number}}", str(item.number))
        text = f"![🗳️ Vote progress]({badge_url})"
    else:
        text = "🗳️ Vote progress"
    return f'[{text}]({ref.url} "{ref.id}")'


def with_status_link(body: str, link: str) -> str:
    if STATUS_LINK_PATTERN.search(body):
        return STATUS_LINK_PATTERN.sub(lambda _: link, body, count=1)
    return f"{link}\r\n\r\n{body}"


def linked_comment_id(body: str) -> str | None:
    match = STATUS_LINK_PATTERN.search(body or "")
    return match.group(2) if match else None


class VoteOrchestrator:
    """Evaluates one vote item per event and applies the outcome to the platform."""

    def __init__(
        self,
        *,
        platform: Platform,
        resolver: GroupResolver,
        collector: SignalCollector,
        guards: SingleFlightRegistry | None = None,
        reporter: ErrorReporter | None = None,
        schedule_later: Scheduler | None = None,
        requeue_delay_seconds: float = 20.0,
        max_requeues: int = 5,
        manual_result_ttl_seconds: float = 3 * 3600,
        clock: Clock | None = None,
    ) -> None:
        self._platform = platform
        self._resolver = resolver
        self._collector = collector
        self._guards = guards or SingleFlightRegistry(clock=clock)
        self._reporter = reporter
        self._schedule_later = schedule_later
        self._requeue_delay = requeue_delay_seconds
        self._max_requeues = max_requeues
        if clock is None:
            self._manual_items: ExpiringMap[bool] = ExpiringMap(ttl_seconds=manual_result_ttl_seconds)
        else:
            self._manual_items = ExpiringMap(ttl_seconds=manual_result_ttl_seconds, clock=clock)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        platform: Platform,
        reporter: ErrorReporter | None = None,
        schedule_later: Scheduler | None = None,
    ) -> VoteOrchestrator:
        resolver = GroupResolver(
            members=platform,
            source_files=platform,
            bot_login=settings.bot_login,
            alternates_ttl_seconds=settings.alternates_cache_hours * 3600,
        )
        collector = SignalCollector(
            query=platform, mutation=platform, members=platform, bot_login=settings.bot_login
        )
        return cls(
            platform=platform,
            resolver=resolver,
            collector=collector,
            guards=SingleFlightRegistry(idle_seconds=settings.single_flight_idle_hours * 3600),
            reporter=reporter,
            schedule_later=schedule_later,
            requeue_delay_seconds=settings.manual_result_requeue_seconds,
            max_requeues=settings.manual_result_max_requeues,
            manual_result_ttl_seconds=settings.manual_result_cache_hours * 3600,
        )

    @property
    def guards(self) -> SingleFlightRegistry:
        return self._guards

    async def handle_vote_event(self, trigger: TriggerKind, item: VoteItem, config: VoteConfig) -> EvaluationResult:
        if config.disabled:
            return EvaluationResult(state=EvaluationState.SKIPPED, errors=["voting disabled"])
        if not self._guards.try_acquire(item.id):
            logger.info(
                "[%s] Evaluation already in progress, skipping %s event",
                item.log_id,
                trigger.value,
                extra={"event_type": "voting.evaluation.skipped", "ops_payload": {"trigger": trigger.value}},
            )
            return EvaluationResult(state=EvaluationState.SKIPPED, errors=["evaluation in progress"])
        try:
            with correlation_scope(trigger.value):
                return await self._run(trigger, item, config, None)
        finally:
            self._guards.release(item.id)

    async def handle_manual_result_event(
        self,
        item: VoteItem,
        closing_comment: PlatformComment | None,
        config: VoteConfig,
        *,
        attempt: int = 0,
    ) -> EvaluationResult:
        if config.disabled:
            return EvaluationResult(state=EvaluationState.SKIPPED, errors=["voting disabled"])
        self._manual_items.put(item.id, True)
        if not self._guards.try_acquire(item.id):
            return self._requeue_manual_result(item, closing_comment, config, attempt)
        try:
            with correlation_scope(TriggerKind.MANUAL_RESULT.value):
                return await self._run(TriggerKind.MANUAL_RESULT, item, config, closing_comment)
        finally:
            self._guards.release(item.id)

    def _requeue_manual_result(
        self,
        item: VoteItem,
        closing_comment: PlatformComment | None,
        config: VoteConfig,
        attempt: int,
    ) -> EvaluationResult:
        if self._schedule_later is None or attempt >= self._max_requeues:
            logger.error(
                "[%s] Dropping manual result after %d attempts",
                item.log_id,
                attempt,
                extra={"event_type": "voting.result.dropped", "ops_payload": {"attempts": attempt}},
            )
            return EvaluationResult(state=EvaluationState.FAILED, errors=["manual result could not be processed"])

        def retry() -> Awaitable[EvaluationResult]:
            return self.handle_manual_result_event(item, closing_comment, config, attempt=attempt + 1)

        self._schedule_later(self._requeue_delay, retry)
        logger.info(
            "[%s] Evaluation in progress, manual result re-queued in %.0fs",
            item.log_id,
            self._requeue_delay,
            extra={"event_type": "voting.result.requeued", "ops_payload": {"attempt": attempt + 1}},
        )
        return EvaluationResult(state=EvaluationState.REQUEUED)

    async def _run(
        self,
        trigger: TriggerKind,
        item: VoteItem,
        config: VoteConfig,
        closing_comment: PlatformComment | None,
    ) -> EvaluationResult:
        result = EvaluationResult()
        try:
            return await self._evaluate(trigger, item, config, closing_comment, result)
        except Exception as exc:
            logger.exception(
                "[%s] Vote evaluation failed: %s",
                item.log_id,
                exc,
                extra={
                    "event_type": "voting.evaluation.error",
                    "ops_payload": {
                        "trigger": trigger.value,
                        "exception_type": type(exc).__name__,
                        "exception_message": str(exc),
                    },
                },
            )
            result.state = EvaluationState.FAILED
            result.errors.append(str(exc))
            await self._report_error(item, config, exc)
            return result

    async def _evaluate(
        self,
        trigger: TriggerKind,
        item: VoteItem,
        config: VoteConfig,
        closing_comment: PlatformComment | None,
        result: EvaluationResult,
    ) -> EvaluationResult:
        manual = trigger == TriggerKind.MANUAL_RESULT
        if manual and closing_comment is None:
            raise VoteInvariantError(f"manual result event for {item.log_id} has no closing comment")

        # events may carry a stale snapshot (requeued results, scan listings)
        current = await self._platform.get_item(item)
        if current is None:
            logger.info("[%s] Item no longer exists", item.log_id)
            result.state = EvaluationState.SKIPPED
            result.errors.append("item not found")
            return result
        item = current

        if not manual and VOTE_OPEN not in item.labels:
            logger.debug("[%s] Item is not open for voting", item.log_id)
            result.state = EvaluationState.SKIPPED
            return result

        if not await self._has_required_labels(item, config):
            result.state = EvaluationState.FAILED
            result.errors.append("missing required labels")
            return result

        directive = parse_directive(
            item.body,
            item_kind=item.kind,
            default_threshold=config.threshold_for(find_group(item.body)),
        )
        membership = await self._resolver.resolve_group(directive.group, config)
        valid = directive.is_valid(membership)
        if not valid and not manual:
            await self._post_invalid_directive(item, config, directive, membership)
            result.state = EvaluationState.FAILED
            result.errors.append("invalid vote directive")
            return result

        alternates = await self._resolver.resolve_alternates(item.repository, directive.group, config)
        signals = await self._collector.collect_signals(item, directive) if valid else []

        manual_results: list[ManualResult] = []
        if manual or item.closed or item.id in self._manual_items:
            comments = await self._collector.list_human_comments(item)
            if closing_comment is not None and all(c.id != closing_comment.id for c in comments):
                comments.append(closing_comment)
            manual_results = await collect_manual_results(comments, config.managers, self._resolver.is_login_included)

        tally = tally_votes(directive, membership, signals, alternates=alternates, manual_results=manual_results)
        await self._update_status_comment(item, config, render_status_comment(tally, is_closed=item.closed))
        await self._apply_labels(item, tally)

        logger.info(
            "[%s] Vote counted: %d of %d (quorum=%s, done=%s)",
            item.log_id,
            tally.group_votes,
            tally.group_size,
            tally.has_quorum,
            tally.is_done,
            extra={
                "event_type": "voting.evaluation.applied",
                "ops_payload": {
                    "trigger": trigger.value,
                    "method": tally.method.value,
                    "group": tally.group,
                    "group_votes": tally.group_votes,
                    "counted_votes": tally.counted_votes,
                    "dropped_votes": tally.dropped_votes,
                    "has_quorum": tally.has_quorum,
                    "is_done": tally.is_done,
                },
            },
        )
        result.state = EvaluationState.APPLIED
        result.tally = tally
        return result

    async def _has_required_labels(self, item: VoteItem, config: VoteConfig) -> bool:
        defined = await self._platform.list_repository_labels(item.repository, list(REQUIRED_LABELS))
        if all(label in defined for label in REQUIRED_LABELS):
            return True
        logger.warning(
            "[%s] Repository is missing vote labels",
            item.log_id,
            extra={"event_type": "voting.labels.missing", "ops_payload": {"defined": sorted(defined)}},
        )
        await self._platform.add_bot_reaction(item, ReactionContent.CONFUSED)
        await self._update_status_comment(
            item,
            config,
            "The following labels must be defined in this repository:\r\n"
            + ", ".join(REQUIRED_LABELS)
            + "\r\n\r\nPlease ensure all labels have been defined.",
        )
        return False

    async def _post_invalid_directive(
        self,
        item: VoteItem,
        config: VoteConfig,
        directive: VoteDirective,
        membership: Membership | None,
    ) -> None:
        logger.info(
            "[%s] Invalid vote directive",
            item.log_id,
            extra={
                "event_type": "voting.directive.invalid",
                "ops_payload": {"group": directive.group, "method": directive.method.value},
            },
        )
        await self._platform.add_bot_reaction(item, ReactionContent.CONFUSED)
        await self._update_status_comment(item, config, error_content(directive, membership))
        if VOTE_QUORUM in item.labels:
            await self._platform.remove_labels(item, [VOTE_QUORUM])

    async def _update_status_comment(self, item: VoteItem, config: VoteConfig, body: str) -> CommentRef:
        comment_id = linked_comment_id(item.body)
        existing = await self._platform.find_existing_bot_comment(item, comment_id) if comment_id else None
        if existing is not None and existing.body == body:
            ref = existing
        else:
            ref = await self._platform.upsert_comment(item, existing, body)

        new_body = with_status_link(item.body, status_link(item, ref, config))
        if new_body != item.body:
            await self._platform.set_item_body(item, new_body)
        return ref

    async def _apply_labels(self, item: VoteItem, tally: VoteTally) -> None:
        if tally.has_quorum and VOTE_QUORUM not in item.labels:
            await self._platform.add_label(item, VOTE_QUORUM)
        if tally.is_done:
            # open goes first so a concurrent scan never picks the item up again
            if VOTE_OPEN in item.labels:
                await self._platform.remove_labels(item, [VOTE_OPEN])
            if VOTE_DONE not in item.labels:
                await self._platform.add_label(item, VOTE_DONE)

    async def _report_error(self, item: VoteItem, config: VoteConfig, exc: BaseException) -> None:
        if self._reporter is None or not config.sends_error_email():
            return
        detail = "".join(traceback.format_exception(exc))
        body = f"{item.title}\n{item.url}\n\n{detail}"
        await self._reporter.report(
            f"Voting error occurred with {item.repository} #{item.number}",
            body,
            recipients=config.error_email_address,
        )
