"""
Bounded-concurrency priority queue for workflow runs.

Incoming trigger messages are submitted as jobs. A fixed pool of workers
pulls them in priority order (lower value first, FIFO within a priority),
so at most ``max_concurrent`` runs are in flight at any time.

Shutdown Flow:
    1. Stop accepting new updates (the caller's responsibility)
    2. :meth:`MessageQueue.wait_for_empty` drains queued and active jobs,
       bounded by a timeout
    3. :meth:`MessageQueue.stop` cancels the workers and any job still
       waiting in the queue

Example:
    >>> queue = MessageQueue(max_concurrent=5)
    >>> queue.start()
    >>> future = queue.submit(lambda: engine.run(trigger, repo), QueuePriority.HIGH)
    >>> state = await future
    >>> await queue.wait_for_empty(timeout=30)
    >>> await queue.stop()
"""

import asyncio
import itertools
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from telegit.enums import QueuePriority

log = structlog.get_logger(__name__)

Job = Callable[[], Awaitable[Any]]


class MessageQueue:
    """Priority work queue drained by a fixed worker pool.

    Attributes:
        max_concurrent: Number of workers, i.e. the maximum number of jobs
            running at the same time.
    """

    def __init__(self, max_concurrent: int = 5) -> None:
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be at least 1, got {max_concurrent}")
        self.max_concurrent = max_concurrent
        self._queue: asyncio.PriorityQueue[tuple[int, int, str, Job, asyncio.Future[Any]]] = asyncio.PriorityQueue()
        self._counter = itertools.count()
        self._workers: list[asyncio.Task[None]] = []
        self._active = 0

    @property
    def size(self) -> int:
        """Jobs waiting to start."""
        return self._queue.qsize()

    @property
    def active(self) -> int:
        """Jobs currently running."""
        return self._active

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        """Start the worker pool. Calling start twice is a no-op."""
        if self.running:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"queue-worker-{i}") for i in range(self.max_concurrent)
        ]
        log.info("queue_started", max_concurrent=self.max_concurrent)

    def submit(
        self,
        job: Job,
        priority: int = QueuePriority.NORMAL,
        job_id: str | None = None,
    ) -> asyncio.Future[Any]:
        """Queue a job.

        Args:
            job: Zero-argument coroutine function to run
            priority: Lower values run first
            job_id: Identifier used in logs

        Returns:
            Future resolved with the job's return value or exception.
        """
        seq = next(self._counter)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        job_id = job_id or f"job-{seq}"
        self._queue.put_nowait((int(priority), seq, job_id, job, future))
        log.debug("job_queued", job_id=job_id, priority=int(priority), queued=self.size)
        return future

    async def wait_for_empty(self, timeout: float | None = None) -> bool:
        """Wait until no job is queued or running.

        Returns:
            True if the queue drained, False if the timeout passed first.
        """
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except TimeoutError:
            log.warning("queue_drain_timeout", queued=self.size, active=self.active, timeout=timeout)
            return False
        return True

    async def stop(self) -> None:
        """Cancel the workers and every job that has not started."""
        workers, self._workers = self._workers, []
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)

        dropped = 0
        while not self._queue.empty():
            *_, future = self._queue.get_nowait()
            self._queue.task_done()
            future.cancel()
            dropped += 1

        if workers:
            log.info("queue_stopped", dropped=dropped)

    async def _worker(self, index: int) -> None:
        while True:
            priority, _, job_id, job, future = await self._queue.get()
            self._active += 1
            try:
                if future.cancelled():
                    continue
                log.debug("job_started", job_id=job_id, priority=priority, worker=index)
                try:
                    result = await job()
                except asyncio.CancelledError:
                    future.cancel()
                    raise
                except Exception as e:
                    log.error("job_failed", job_id=job_id, error=str(e), exc_info=True)
                    if not future.done():
                        future.set_exception(e)
                else:
                    if not future.done():
                        future.set_result(result)
            finally:
                self._active -= 1
                self._queue.task_done()
