from __future__ import annotations

import asyncio
import logging

from votebot.config import get_settings
from votebot.email.sender import EmailErrorReporter
from votebot.handlers.voting import VoteOrchestrator
from votebot.ops.log_context import configure_log_context
from votebot.platform.github import GitHubPlatform
from votebot.scheduler.main import scheduler_loop
from votebot.scheduler.queue import VoteWorkQueue

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s [%(correlation_id)s]: %(message)s"
)
configure_log_context()
logger = logging.getLogger(__name__)


async def _run() -> None:
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    platform = GitHubPlatform.from_settings(settings)
    queue = VoteWorkQueue(worker_count=settings.worker_count)
    reporter = EmailErrorReporter(
        resend_api_key=settings.resend_api_key,
        email_from=settings.email_from,
        http_timeout_seconds=settings.email_http_timeout_seconds,
    )
    orchestrator = VoteOrchestrator.from_settings(
        settings, platform=platform, reporter=reporter, schedule_later=queue.schedule_later
    )
    try:
        await scheduler_loop(
            platform=platform,
            orchestrator=orchestrator,
            queue=queue,
            repositories=settings.vote_repository_list(),
            config_path=settings.vote_config_path,
            interval_hours=settings.rescan_interval_hours,
        )
    finally:
        await queue.stop()
        await platform.aclose()


def main() -> None:
    settings = get_settings()
    logger.info(
        "Starting vote scheduler (%.2fh interval, %d repositories, %d workers)",
        settings.rescan_interval_hours,
        len(settings.vote_repository_list()),
        settings.worker_count,
    )
    asyncio.run(_run())


main()
