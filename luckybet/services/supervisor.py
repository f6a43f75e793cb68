"""
Task Supervisor - Bounded background jobs with observable failures.

Webhooks acknowledge the gateway first and settle afterwards. Those jobs
run here: at most max_concurrency at a time, at most max_pending waiting,
and every failure is logged with its context and counted. A failure is
never surfaced to the request that submitted the job.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from luckybet.exceptions import BackgroundQueueFullError
from luckybet.observability.logging import get_logger, log_context
from luckybet.observability.metrics import metrics

logger = get_logger(__name__)


class TaskSupervisor:
    """Owns background tasks for the lifetime of the application."""

    def __init__(self, max_concurrency: int, max_pending: int) -> None:
        self.max_pending = max_pending
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(
        self, name: str, job: Callable[[], Awaitable[Any]], **context: Any
    ) -> asyncio.Task[None]:
        """
        Schedule job() in the background.

        Raises:
            BackgroundQueueFullError: backlog at capacity or supervisor shut down
        """
        if self._closed or len(self._tasks) >= self.max_pending:
            metrics.record_background_job(name, "rejected")
            logger.error("background_job_rejected", job=name, pending=len(self._tasks), **context)
            raise BackgroundQueueFullError(name, len(self._tasks))

        task = asyncio.create_task(self._run(name, job, context), name=name)
        self._tasks.add(task)
        metrics.background_jobs_pending.set(len(self._tasks))
        task.add_done_callback(self._forget)
        return task

    async def _run(
        self, name: str, job: Callable[[], Awaitable[Any]], context: dict[str, Any]
    ) -> None:
        async with self._semaphore:
            with log_context(job=name, **context):
                try:
                    await job()
                except asyncio.CancelledError:
                    metrics.record_background_job(name, "cancelled")
                    logger.warning("background_job_cancelled")
                    raise
                except Exception as e:
                    metrics.record_background_job(name, "failed")
                    metrics.record_error(type(e).__name__, name)
                    logger.error("background_job_failed", error=str(e), exc_info=True)
                else:
                    metrics.record_background_job(name, "succeeded")

    def _forget(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        metrics.background_jobs_pending.set(len(self._tasks))

    async def shutdown(self, timeout_seconds: float = 30.0) -> None:
        """Stop accepting jobs and wait for running ones; cancel what is left."""
        self._closed = True
        if not self._tasks:
            return
        logger.info("background_jobs_draining", pending=len(self._tasks))
        _, still_running = await asyncio.wait(set(self._tasks), timeout=timeout_seconds)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning("background_jobs_cancelled", count=len(still_running))
