from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]


class VoteWorkQueue:
    """A fixed pool of asyncio workers draining a queue of evaluation jobs.

    Delayed jobs are parked on the event loop timer and only enter the queue
    when due, so waiting never occupies a worker.
    """

    def __init__(self, *, worker_count: int = 4) -> None:
        self._worker_count = worker_count
        self._queue: asyncio.Queue[Job] = asyncio.Queue()
        self._workers: list[asyncio.Task[None]] = []
        self._timers: set[asyncio.TimerHandle] = set()

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def pending(self) -> int:
        return self._queue.qsize() + len(self._timers)

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._work(index), name=f"vote-worker-{index}") for index in range(self._worker_count)
        ]

    def submit(self, job: Job) -> None:
        self._queue.put_nowait(job)

    def schedule_later(self, delay_seconds: float, job: Job) -> None:
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle

        def due() -> None:
            self._timers.discard(handle)
            self.submit(job)

        handle = loop.call_later(delay_seconds, due)
        self._timers.add(handle)

    async def join(self) -> None:
        await self._queue.join()

    async def stop(self) -> None:
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

    async def _work(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await job()
            except Exception:
                logger.exception(
                    "Vote worker %d job failed",
                    index,
                    extra={"event_type": "scheduler.worker.error"},
                )
            finally:
                self._queue.task_done()
