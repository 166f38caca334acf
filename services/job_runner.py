"""
Background job runner.
Each trigger becomes an asyncio task behind a handle that can be listed and
cancelled; all running jobs are cancelled when the application stops.
"""
import asyncio
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

from models.pydantic_models import JobInfo

logger = logging.getLogger(__name__)

JobFactory = Callable[[], Awaitable[object]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BackgroundJob:
    """Handle for one background run."""

    name: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: str = "running"
    started_at: datetime = field(default_factory=_now)
    finished_at: Optional[datetime] = None
    error: Optional[str] = None
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.status != "running"

    def cancel(self) -> bool:
        """Request cancellation; False if the job already finished."""
        if self.task is None or self.task.done():
            return False
        return self.task.cancel()

    def _settle(self, task: asyncio.Task) -> None:
        # A task cancelled before its first step never enters JobRunner._run
        if self.status == "running" and task.cancelled():
            self.status = "cancelled"
            self.finished_at = _now()

    async def wait(self) -> None:
        if self.task is not None:
            await asyncio.gather(self.task, return_exceptions=True)

    def to_info(self) -> JobInfo:
        return JobInfo(
            id=self.id,
            name=self.name,
            status=self.status,
            started_at=self.started_at,
            finished_at=self.finished_at,
            error=self.error,
        )


class JobRunner:
    """Runs job factories as tasks and keeps a bounded history of handles."""

    def __init__(self, history_limit: int = 100):
        self.history_limit = history_limit
        self._jobs: "OrderedDict[str, BackgroundJob]" = OrderedDict()

    def submit(self, name: str, factory: JobFactory) -> BackgroundJob:
        """Start `factory()` in the background and return its handle immediately."""
        job = BackgroundJob(name=name)
        job.task = asyncio.create_task(self._run(job, factory), name=f"job:{name}:{job.id}")
        job.task.add_done_callback(job._settle)
        self._jobs[job.id] = job
        self._trim()
        logger.info("Job %s started (%s)", name, job.id)
        return job

    async def _run(self, job: BackgroundJob, factory: JobFactory) -> None:
        try:
            await factory()
        except asyncio.CancelledError:
            job.status = "cancelled"
            logger.warning("Job %s cancelled (%s)", job.name, job.id)
            raise
        except Exception as e:
            job.status = "failed"
            job.error = str(e) or e.__class__.__name__
            logger.exception("Job %s failed (%s)", job.name, job.id)
        else:
            job.status = "completed"
            logger.info("Job %s completed (%s)", job.name, job.id)
        finally:
            job.finished_at = _now()

    def _trim(self) -> None:
        # Forget the oldest finished jobs; running ones are always kept
        for job_id in list(self._jobs):
            if len(self._jobs) <= self.history_limit:
                break
            if self._jobs[job_id].done:
                del self._jobs[job_id]

    def get(self, job_id: str) -> Optional[BackgroundJob]:
        return self._jobs.get(job_id)

    def list(self) -> List[BackgroundJob]:
        return list(reversed(self._jobs.values()))

    def cancel(self, job_id: str) -> bool:
        job = self._jobs.get(job_id)
        if job is None:
            raise KeyError(job_id)
        return job.cancel()

    async def shutdown(self) -> None:
        """Cancel every running job and wait for them to unwind."""
        running = [job for job in self._jobs.values() if not job.done]
        for job in running:
            job.cancel()
        for job in running:
            await job.wait()
        if running:
            logger.info("Cancelled %d running job(s)", len(running))
