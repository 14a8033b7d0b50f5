"""Job scheduler adapters.

The engine submits two kinds of jobs, ``process_workflow(execution_id)``
and ``process_step(step_execution_id)``, either to run as soon as
possible (enqueue) or at a given UTC time (schedule). It never waits
itself; every delay is delegated to the scheduler.

- CeleryJobScheduler: durable, Redis-backed; jobs survive restarts.
- InProcessJobScheduler: asyncio tasks in the current loop; not durable,
  intended for development and demos.
"""

from abc import ABC, abstractmethod
import asyncio
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

import structlog

from core.constants import JobName
from core.logging_config import job_log_context
from core.utils import as_aware_utc, to_naive_utc, utcnow

logger = structlog.get_logger(__name__)

CELERY_TASK_NAMES = {
    JobName.PROCESS_WORKFLOW: "worker.tasks.workflow.process_workflow",
    JobName.PROCESS_STEP: "worker.tasks.workflow.process_step",
}


class JobScheduler(ABC):
    """Boundary to the background job scheduler."""

    @abstractmethod
    def enqueue(self, job: JobName, *args: Any) -> str:
        """Run ``job(*args)`` as soon as possible. Returns a job id."""

    @abstractmethod
    def schedule(self, job: JobName, when: datetime, *args: Any) -> str:
        """Run ``job(*args)`` at or after ``when`` (UTC). Returns a job id."""


class CeleryJobScheduler(JobScheduler):
    """Submit jobs to Celery workers by task name."""

    def __init__(self, celery_app=None, queue: Optional[str] = None):
        if celery_app is None:
            from worker.celery_app import celery_app as default_app
            celery_app = default_app
        if queue is None:
            from app.config import get_settings
            queue = get_settings().CELERY_QUEUE
        self.celery_app = celery_app
        self.queue = queue

    def enqueue(self, job: JobName, *args: Any) -> str:
        result = self.celery_app.send_task(
            CELERY_TASK_NAMES[JobName(job)],
            args=list(args),
            queue=self.queue,
        )
        logger.debug("Job enqueued", job=JobName(job).value, args=args, job_id=result.id)
        return result.id

    def schedule(self, job: JobName, when: datetime, *args: Any) -> str:
        result = self.celery_app.send_task(
            CELERY_TASK_NAMES[JobName(job)],
            args=list(args),
            eta=as_aware_utc(when),
            queue=self.queue,
        )
        logger.debug(
            "Job scheduled",
            job=JobName(job).value,
            args=args,
            eta=when.isoformat(),
            job_id=result.id,
        )
        return result.id


class InProcessJobScheduler(JobScheduler):
    """Run jobs as asyncio tasks on the running event loop.

    Must be bound to an engine (``bind``) before jobs are submitted,
    and used from inside a running loop.
    """

    def __init__(self, engine=None):
        self.engine = engine
        self._tasks: set = set()
        self._timers: dict = {}

    def bind(self, engine) -> "InProcessJobScheduler":
        self.engine = engine
        return self

    async def _run(self, job_id: str, job: JobName, args: tuple) -> None:
        self._timers.pop(job_id, None)
        handler = getattr(self.engine, JobName(job).value)
        try:
            with job_log_context(job, args[0] if args else None):
                await handler(*args)
        except Exception as e:
            logger.error("In-process job failed", job=JobName(job).value, job_id=job_id, error=str(e))

    def _spawn(self, job_id: str, job: JobName, args: tuple) -> None:
        task = asyncio.get_running_loop().create_task(self._run(job_id, job, args))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def enqueue(self, job: JobName, *args: Any) -> str:
        job_id = str(uuid4())
        self._spawn(job_id, job, args)
        return job_id

    def schedule(self, job: JobName, when: datetime, *args: Any) -> str:
        job_id = str(uuid4())
        delay = max(0.0, (to_naive_utc(when) - utcnow()).total_seconds())
        loop = asyncio.get_running_loop()
        self._timers[job_id] = loop.call_later(delay, self._spawn, job_id, job, args)
        return job_id

    @property
    def pending_count(self) -> int:
        return len(self._tasks) + len(self._timers)

    async def drain(self) -> None:
        """Wait until no immediate jobs are running (timers are left alone)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def shutdown(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        for task in self._tasks:
            task.cancel()
