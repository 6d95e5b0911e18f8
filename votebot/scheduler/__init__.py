from votebot.scheduler.main import (
    RescanResult,
    load_vote_config,
    rescan_repository,
    run_rescan,
    scheduler_loop,
)
from votebot.scheduler.queue import VoteWorkQueue

__all__ = [
    "RescanResult",
    "VoteWorkQueue",
    "load_vote_config",
    "rescan_repository",
    "run_rescan",
    "scheduler_loop",
]
