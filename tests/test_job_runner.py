"""Tests for background job handles."""

import asyncio

import pytest

from services.job_runner import JobRunner


def run(coro):
    return asyncio.run(coro)


class TestJobRunner:

    def test_completed_job(self):
        async def scenario():
            runner = JobRunner()
            job = runner.submit("quick sync", lambda: asyncio.sleep(0, result=3))
            assert job.status == "running"
            await job.wait()
            return job

        job = run(scenario())
        assert job.status == "completed"
        assert job.finished_at is not None
        assert job.error is None

    def test_failed_job_keeps_error_text(self):
        async def boom():
            raise RuntimeError("GitHub is down")

        async def scenario():
            runner = JobRunner()
            job = runner.submit("trending sync", boom)
            await job.wait()
            return job

        job = run(scenario())
        assert job.status == "failed"
        assert job.error == "GitHub is down"
        assert job.to_info().status == "failed"

    def test_cancel_running_job(self):
        async def scenario():
            runner = JobRunner()
            started = asyncio.Event()

            async def slow():
                started.set()
                await asyncio.sleep(60)

            job = runner.submit("slow", slow)
            await started.wait()
            assert runner.cancel(job.id) is True
            await job.wait()
            return runner, job

        runner, job = run(scenario())
        assert job.status == "cancelled"
        assert job.cancel() is False

    def test_cancel_before_first_step(self):
        async def scenario():
            runner = JobRunner()
            job = runner.submit("never runs", lambda: asyncio.sleep(60))
            job.cancel()
            await job.wait()
            return job

        assert run(scenario()).status == "cancelled"

    def test_cancel_unknown_job(self):
        with pytest.raises(KeyError):
            JobRunner().cancel("missing")

    def test_shutdown_cancels_everything_running(self):
        async def scenario():
            runner = JobRunner()
            jobs = [runner.submit(f"job {i}", lambda: asyncio.sleep(60)) for i in range(3)]
            await asyncio.sleep(0)
            await runner.shutdown()
            return jobs

        assert [job.status for job in run(scenario())] == ["cancelled"] * 3

    def test_history_is_bounded_and_newest_first(self):
        async def scenario():
            runner = JobRunner(history_limit=2)
            for i in range(4):
                job = runner.submit(f"job {i}", lambda: asyncio.sleep(0))
                await job.wait()
            return runner

        runner = run(scenario())
        assert [job.name for job in runner.list()] == ["job 3", "job 2"]
