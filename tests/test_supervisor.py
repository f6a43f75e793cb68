"""
Tests for TaskSupervisor.
"""

import asyncio

import pytest

from luckybet.exceptions import BackgroundQueueFullError
from luckybet.services.supervisor import TaskSupervisor


class TestSubmit:
    """Tests for bounded background jobs."""

    async def test_job_runs(self):
        supervisor = TaskSupervisor(max_concurrency=2, max_pending=10)
        done = asyncio.Event()

        async def job():
            done.set()

        await supervisor.submit("job", job)
        assert done.is_set()
        assert supervisor.pending == 0

    async def test_failure_is_contained(self):
        """A failing job is logged and counted, never raised to the submitter."""
        supervisor = TaskSupervisor(max_concurrency=2, max_pending=10)

        async def job():
            raise RuntimeError("settlement blew up")

        task = supervisor.submit("job", job, reference="REF1")
        await task

        assert task.exception() is None

    async def test_full_backlog_is_refused(self):
        supervisor = TaskSupervisor(max_concurrency=1, max_pending=2)
        release = asyncio.Event()

        async def job():
            await release.wait()

        supervisor.submit("job", job)
        supervisor.submit("job", job)
        with pytest.raises(BackgroundQueueFullError) as exc_info:
            supervisor.submit("job", job)
        assert exc_info.value.http_status == 503

        release.set()
        await supervisor.shutdown()

    async def test_concurrency_is_bounded(self):
        supervisor = TaskSupervisor(max_concurrency=2, max_pending=10)
        running = 0
        peak = 0

        async def job():
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        tasks = [supervisor.submit("job", job) for _ in range(6)]
        await asyncio.gather(*tasks)

        assert peak == 2


class TestShutdown:
    async def test_waits_for_running_jobs(self):
        supervisor = TaskSupervisor(max_concurrency=2, max_pending=10)
        finished = []

        async def job():
            await asyncio.sleep(0.01)
            finished.append(True)

        supervisor.submit("job", job)
        await supervisor.shutdown(timeout_seconds=1.0)

        assert finished == [True]

    async def test_cancels_stragglers(self):
        supervisor = TaskSupervisor(max_concurrency=2, max_pending=10)

        async def job():
            await asyncio.sleep(10)

        task = supervisor.submit("job", job)
        await supervisor.shutdown(timeout_seconds=0.01)

        assert task.cancelled()

    async def test_no_jobs_after_shutdown(self):
        supervisor = TaskSupervisor(max_concurrency=2, max_pending=10)
        await supervisor.shutdown()

        async def job():
            return None

        with pytest.raises(BackgroundQueueFullError):
            supervisor.submit("job", job)
