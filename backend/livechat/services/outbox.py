"""
Side-effect outbox.

Broker operations return their result as soon as in-memory state is
updated; persistence writes and push notifications are queued here and
run by a small worker pool. A failing job is logged and counted, never
surfaced to the request that produced it.

Each worker drains its own queue. Jobs submitted with the same
``ordering_key`` (a session id) always land on the same worker, so the
side effects of one session run in submission order.
"""
import asyncio
import itertools
import logging
import time
import zlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..session.models import utcnow
from ..utils.telemetry import track_outbox_job

logger = logging.getLogger(__name__)

JobFunc = Callable[..., Awaitable[Any]]


@dataclass
class OutboxJob:
    """A queued side effect."""
    name: str
    func: JobFunc
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    ordering_key: Optional[str] = None
    enqueued_at: float = field(default_factory=time.monotonic)


@dataclass
class OutboxStats:
    """Statistics for the outbox workers."""
    submitted: int = 0
    succeeded: int = 0
    failed: int = 0
    dropped: int = 0
    last_job_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "submitted": self.submitted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "dropped": self.dropped,
            "last_job_at": self.last_job_at.isoformat() if self.last_job_at else None,
        }


class SideEffectOutbox:
    """
    Bounded job queues drained by ``num_workers`` asyncio tasks.

    Jobs submitted before ``start()`` wait in their queue and run once
    workers are up.
    """

    def __init__(self, num_workers: int = 2, max_size: int = 10000):
        """
        Initialize the outbox.

        Args:
            num_workers: Number of concurrent worker tasks
            max_size: Maximum queued jobs per worker; further submissions are dropped
        """
        self._num_workers = max(1, num_workers)
        self._queues: List[asyncio.Queue] = [
            asyncio.Queue(maxsize=max_size) for _ in range(self._num_workers)
        ]
        self._round_robin = itertools.cycle(range(self._num_workers))
        self._workers: List[asyncio.Task] = []
        self._stats = OutboxStats()

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def stats(self) -> OutboxStats:
        return self._stats

    def pending(self) -> int:
        return sum(q.qsize() for q in self._queues)

    def _partition(self, ordering_key: Optional[str]) -> int:
        if ordering_key is None:
            return next(self._round_robin)
        return zlib.crc32(ordering_key.encode("utf-8")) % self._num_workers

    def submit(
        self,
        name: str,
        func: JobFunc,
        *args,
        ordering_key: Optional[str] = None,
        **kwargs
    ) -> bool:
        """
        Queue a job without blocking.

        Args:
            name: Job label used in logs and metrics
            func: Coroutine function to run
            *args, **kwargs: Arguments for ``func``
            ordering_key: Jobs sharing this key run one after another, in order

        Returns:
            True if queued, False if the target queue is full
        """
        job = OutboxJob(name=name, func=func, args=args, kwargs=kwargs, ordering_key=ordering_key)

        try:
            self._queues[self._partition(ordering_key)].put_nowait(job)
        except asyncio.QueueFull:
            self._stats.dropped += 1
            track_outbox_job(name, "dropped")
            logger.warning(f"Outbox full, dropping job '{name}'")
            return False

        self._stats.submitted += 1
        return True

    async def start(self) -> None:
        """Start the worker pool."""
        if self._workers:
            logger.warning("Outbox workers already started")
            return

        for i, queue in enumerate(self._queues):
            self._workers.append(
                asyncio.create_task(self._worker_loop(i, queue), name=f"outbox_worker_{i}")
            )

        logger.info(f"Started {self._num_workers} outbox workers")

    async def join(self) -> None:
        """Wait until every queued job has run."""
        await asyncio.gather(*(q.join() for q in self._queues))

    async def stop(self, timeout: float = 5.0) -> None:
        """
        Drain the queues, then stop the workers.

        Args:
            timeout: Max seconds to wait for queued jobs
        """
        if not self._workers:
            return

        logger.info("Shutting down outbox workers...")

        try:
            await asyncio.wait_for(self.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Outbox drain timed out with {self.pending()} jobs pending")

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()

        logger.info(
            f"Outbox stopped. Stats: submitted={self._stats.submitted}, "
            f"succeeded={self._stats.succeeded}, failed={self._stats.failed}, "
            f"dropped={self._stats.dropped}"
        )

    async def run_job(self, job: OutboxJob) -> bool:
        """
        Execute one job, swallowing and logging its failure.

        Returns:
            True if the job succeeded
        """
        try:
            await job.func(*job.args, **job.kwargs)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._stats.failed += 1
            track_outbox_job(job.name, "failed")
            logger.error(f"Outbox job '{job.name}' failed: {e}", exc_info=True)
            return False
        finally:
            self._stats.last_job_at = utcnow()

        self._stats.succeeded += 1
        track_outbox_job(job.name, "succeeded")
        return True

    async def _worker_loop(self, worker_id: int, queue: asyncio.Queue) -> None:
        logger.debug(f"Outbox worker {worker_id} started")

        while True:
            job = await queue.get()
            try:
                await self.run_job(job)
            finally:
                queue.task_done()


__all__ = ["SideEffectOutbox", "OutboxJob", "OutboxStats"]
