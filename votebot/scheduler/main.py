from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from pydantic import ValidationError

from votebot.handlers.voting import VOTE_OPEN, TriggerKind, VoteOrchestrator
from votebot.models.vote_config import DISABLED, VoteConfig
from votebot.platform.base import Platform, PlatformError
from votebot.scheduler.queue import VoteWorkQueue

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RescanResult:
    repositories: int = 0
    queued_items: int = 0
    errors: list[str] = field(default_factory=list)


async def load_vote_config(platform: Platform, repo: str, path: str) -> VoteConfig:
    """The ``voting`` section of the repository's bot configuration; disabled when absent or invalid."""
    data = await platform.read_structured_file(repo, path)
    if not isinstance(data, dict) or not isinstance(data.get("voting"), dict):
        logger.info("[%s] No voting configuration in %s", repo, path)
        return DISABLED
    try:
        return VoteConfig.model_validate(data["voting"])
    except ValidationError as exc:
        logger.warning(
            "[%s] Invalid voting configuration in %s: %s",
            repo,
            path,
            exc,
            extra={"event_type": "scheduler.config.invalid"},
        )
        return DISABLED


async def rescan_repository(
    *,
    platform: Platform,
    orchestrator: VoteOrchestrator,
    queue: VoteWorkQueue,
    repo: str,
    config_path: str,
) -> int:
    config = await load_vote_config(platform, repo, config_path)
    if config.disabled:
        return 0
    items = await platform.list_open_vote_items(repo, VOTE_OPEN)
    for item in items:
        queue.submit(lambda item=item: orchestrator.handle_vote_event(TriggerKind.SCAN, item, config))
    logger.info(
        "[%s] Queued %d open vote item(s)",
        repo,
        len(items),
        extra={"event_type": "scheduler.rescan.repository", "ops_payload": {"repository": repo, "items": len(items)}},
    )
    return len(items)


async def run_rescan(
    *,
    platform: Platform,
    orchestrator: VoteOrchestrator,
    queue: VoteWorkQueue,
    repositories: list[str],
    config_path: str,
) -> RescanResult:
    result = RescanResult()
    for repo in repositories:
        try:
            result.queued_items += await rescan_repository(
                platform=platform, orchestrator=orchestrator, queue=queue, repo=repo, config_path=config_path
            )
            result.repositories += 1
        except PlatformError as exc:
            logger.exception(
                "[%s] Re-scan failed: %s",
                repo,
                exc,
                extra={
                    "event_type": "scheduler.rescan.error",
                    "ops_payload": {"repository": repo, "exception_message": str(exc)},
                },
            )
            result.errors.append(f"{repo}: {exc}")
    return result


async def scheduler_loop(
    *,
    platform: Platform,
    orchestrator: VoteOrchestrator,
    queue: VoteWorkQueue,
    repositories: list[str],
    config_path: str,
    interval_hours: float,
) -> None:
    queue.start()
    while True:
        result = await run_rescan(
            platform=platform,
            orchestrator=orchestrator,
            queue=queue,
            repositories=repositories,
            config_path=config_path,
        )
        logger.info(
            "Vote re-scan completed: %d repositories, %d items",
            result.repositories,
            result.queued_items,
            extra={
                "event_type": "scheduler.rescan.completed",
                "ops_payload": {
                    "repositories": result.repositories,
                    "queued_items": result.queued_items,
                    "errors": result.errors,
                },
            },
        )
        await asyncio.sleep(interval_hours * 3600)
