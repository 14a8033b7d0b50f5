"""Shared pytest fixtures for the workflow engine test suite.

Provides:
- File-backed async SQLite database per test (no PostgreSQL needed)
- AsyncSession factory
- A recording job scheduler whose jobs tests run explicitly
- A controllable clock
- A recording notification sink
- Scripted step implementations registered in a test registry
"""

import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncGenerator, Optional
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

# Override settings BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")

from core.constants import JobName  # noqa: E402
from db.base import Base  # noqa: E402
from db.session import create_session_factory  # noqa: E402
from notifications.sink import NotificationSink  # noqa: E402
from steps.base_step import BaseStep, StepContext, StepResult  # noqa: E402
from steps.registry import StepRegistry  # noqa: E402
from worker.scheduler import JobScheduler  # noqa: E402
from workflow.builder import WorkflowBuilder  # noqa: E402
from workflow.engine import WorkflowEngine  # noqa: E402


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Async engine on a throwaway SQLite file with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}", echo=False)
    # Import all models so Base.metadata knows about them
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Scheduler / clock / notifications
# ---------------------------------------------------------------------------

class FakeClock:
    """Naive-UTC clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@dataclass
class RecordedJob:
    job_id: str
    job: JobName
    args: tuple
    when: Optional[datetime] = None


class RecordingJobScheduler(JobScheduler):
    """Keeps submitted jobs in a list; tests decide when they run."""

    def __init__(self):
        self.jobs: list[RecordedJob] = []
        self.history: list[RecordedJob] = []

    def enqueue(self, job: JobName, *args) -> str:
        return self._record(RecordedJob(str(uuid4()), JobName(job), args))

    def schedule(self, job: JobName, when: datetime, *args) -> str:
        return self._record(RecordedJob(str(uuid4()), JobName(job), args, when))

    def _record(self, job: RecordedJob) -> str:
        self.jobs.append(job)
        self.history.append(job)
        return job.job_id

    def due(self, now: Optional[datetime] = None) -> list[RecordedJob]:
        return [j for j in self.jobs if j.when is None or (now is not None and j.when <= now)]

    def scheduled(self, job: Optional[JobName] = None) -> list[RecordedJob]:
        return [j for j in self.jobs if j.when is not None and (job is None or j.job == job)]

    async def run_next(self, engine: WorkflowEngine, now: Optional[datetime] = None) -> Optional[RecordedJob]:
        due = self.due(now)
        if not due:
            return None
        job = due[0]
        self.jobs.remove(job)
        await getattr(engine, job.job.value)(*job.args)
        return job

    async def drain(self, engine: WorkflowEngine, now: Optional[datetime] = None, limit: int = 200) -> int:
        """Run due jobs (immediate ones, plus scheduled ones up to ``now``)."""
        ran = 0
        while ran < limit and await self.run_next(engine, now) is not None:
            ran += 1
        return ran


class RecordingSink(NotificationSink):
    def __init__(self):
        self.events: list[tuple] = []

    async def on_new_execution_started(self, execution) -> None:
        self.events.append(("started", execution.id, execution.status))

    async def on_workflow_status_changed(self, execution) -> None:
        self.events.append(("workflow_status", execution.id, execution.status))

    async def on_step_status_changed(self, step_execution) -> None:
        self.events.append(("step_status", step_execution.id, step_execution.status))

    async def on_execution_completed(self, execution) -> None:
        self.events.append(("completed", execution.id, execution.status))

    def of(self, kind: str) -> list[tuple]:
        return [e for e in self.events if e[0] == kind]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    return RecordingJobScheduler()


@pytest.fixture
def sink():
    return RecordingSink()


# ---------------------------------------------------------------------------
# Test steps
# ---------------------------------------------------------------------------

class EchoStep(BaseStep):
    """Succeeds, returning what it saw."""

    step_type = "Echo"

    async def execute(self, context: StepContext) -> StepResult:
        return StepResult.ok({
            "order": context.order,
            "configuration": context.configuration,
            "workflow_data": context.workflow_data,
        })


class ScriptedStep(BaseStep):
    """Returns queued results in order; repeats the last one when exhausted."""

    step_type = "Scripted"

    def __init__(self, *results: StepResult):
        self.results = list(results)
        self.contexts: list[StepContext] = []

    async def execute(self, context: StepContext) -> StepResult:
        self.contexts.append(context)
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


class AlwaysRetryStep(BaseStep):
    step_type = "AlwaysRetry"

    async def execute(self, context: StepContext) -> StepResult:
        return StepResult.fail("upstream unavailable", should_retry=True)


class InvalidInputStep(BaseStep):
    step_type = "InvalidInput"

    async def validate_input(self, context: StepContext) -> StepResult:
        return StepResult.fail("customer_id is required")

    async def execute(self, context: StepContext) -> StepResult:
        raise AssertionError("execute must not be called")


class SkippedStep(BaseStep):
    step_type = "Skipped"

    async def can_execute(self, context: StepContext) -> bool:
        return False

    async def execute(self, context: StepContext) -> StepResult:
        raise AssertionError("execute must not be called")


class BrokenValidationStep(BaseStep):
    """validate_input raises, which the step's own run() does not guard."""

    step_type = "BrokenValidation"

    async def validate_input(self, context: StepContext) -> StepResult:
        raise RuntimeError("validator crashed")

    async def execute(self, context: StepContext) -> StepResult:
        return StepResult.ok()


@pytest.fixture
def scripted_step():
    return ScriptedStep(StepResult.ok({"scripted": True}))


@pytest.fixture
def registry(scripted_step):
    registry = StepRegistry()
    registry.register(EchoStep.step_type, EchoStep)
    registry.register(ScriptedStep.step_type, lambda: scripted_step)
    registry.register(AlwaysRetryStep.step_type, AlwaysRetryStep)
    registry.register(InvalidInputStep.step_type, InvalidInputStep)
    registry.register(SkippedStep.step_type, SkippedStep)
    registry.register(BrokenValidationStep.step_type, BrokenValidationStep)
    return registry


@pytest.fixture
def engine(session_factory, scheduler, registry, sink, clock):
    return WorkflowEngine(
        session_factory=session_factory,
        scheduler=scheduler,
        registry=registry,
        notifier=sink,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# Definition helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def create_workflow(session_factory, registry):
    """Save a workflow from ``(step_type, name[, delay_minutes[, configuration]])`` tuples."""

    async def _create(*steps, name: Optional[str] = None) -> str:
        builder = WorkflowBuilder(registry=registry)
        for order, step in enumerate(steps, start=1):
            step_type, step_name, *rest = step
            delay_minutes = rest[0] if len(rest) > 0 else 0
            configuration = rest[1] if len(rest) > 1 else None
            builder.add_step(step_type, step_name, order, delay_minutes, configuration)
        async with session_factory() as session:
            return await builder.save(session, name or f"workflow-{uuid4().hex[:8]}")

    return _create
