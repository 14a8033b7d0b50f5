"""Tests for job scheduler adapters."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from core.constants import JobName
from core.utils import utcnow
from worker.scheduler import CELERY_TASK_NAMES, CeleryJobScheduler, InProcessJobScheduler


@pytest.mark.unit
class TestCeleryJobScheduler:

    def _scheduler(self):
        app = MagicMock()
        app.send_task.return_value = MagicMock(id="celery-job-1")
        return app, CeleryJobScheduler(celery_app=app, queue="workflows")

    def test_enqueue(self):
        app, scheduler = self._scheduler()

        job_id = scheduler.enqueue(JobName.PROCESS_WORKFLOW, "ex-1")

        assert job_id == "celery-job-1"
        app.send_task.assert_called_once_with(
            "worker.tasks.workflow.process_workflow",
            args=["ex-1"],
            queue="workflows",
        )

    def test_schedule_uses_aware_eta(self):
        app, scheduler = self._scheduler()
        when = datetime(2026, 5, 1, 8, 30)

        scheduler.schedule(JobName.PROCESS_STEP, when, "se-1")

        _, kwargs = app.send_task.call_args
        assert app.send_task.call_args.args[0] == "worker.tasks.workflow.process_step"
        assert kwargs["args"] == ["se-1"]
        assert kwargs["eta"] == datetime(2026, 5, 1, 8, 30, tzinfo=timezone.utc)
        assert kwargs["eta"].tzinfo is not None

    def test_task_names_match_worker_tasks(self):
        from worker.tasks import workflow as tasks

        assert tasks.process_workflow.name == CELERY_TASK_NAMES[JobName.PROCESS_WORKFLOW]
        assert tasks.process_step.name == CELERY_TASK_NAMES[JobName.PROCESS_STEP]
        assert tasks.process_workflow.max_retries == 0
        assert tasks.process_step.max_retries == 0


class FakeEngine:
    def __init__(self):
        self.calls = []

    async def process_workflow(self, execution_id):
        self.calls.append(("process_workflow", execution_id))

    async def process_step(self, step_execution_id):
        self.calls.append(("process_step", step_execution_id))


@pytest.mark.unit
class TestInProcessJobScheduler:

    async def test_enqueue_runs_on_loop(self):
        engine = FakeEngine()
        scheduler = InProcessJobScheduler().bind(engine)

        scheduler.enqueue(JobName.PROCESS_WORKFLOW, "ex-1")
        await scheduler.drain()

        assert engine.calls == [("process_workflow", "ex-1")]
        assert scheduler.pending_count == 0

    async def test_schedule_in_the_past_runs_promptly(self):
        engine = FakeEngine()
        scheduler = InProcessJobScheduler(engine)

        scheduler.schedule(JobName.PROCESS_STEP, utcnow() - timedelta(seconds=5), "se-1")
        await asyncio.sleep(0.01)
        await scheduler.drain()

        assert engine.calls == [("process_step", "se-1")]

    async def test_future_schedule_waits(self):
        engine = FakeEngine()
        scheduler = InProcessJobScheduler(engine)

        scheduler.schedule(JobName.PROCESS_STEP, utcnow() + timedelta(hours=1), "se-1")
        await asyncio.sleep(0.01)

        assert engine.calls == []
        assert scheduler.pending_count == 1
        scheduler.shutdown()
        assert scheduler.pending_count == 0

    async def test_jobs_run_with_bound_log_context(self):
        import structlog

        class ContextEngine(FakeEngine):
            async def process_step(self, step_execution_id):
                self.calls.append(structlog.contextvars.get_contextvars())

        engine = ContextEngine()
        scheduler = InProcessJobScheduler(engine)

        scheduler.enqueue(JobName.PROCESS_STEP, "se-1")
        await scheduler.drain()

        assert engine.calls == [{"job": "process_step", "step_execution_id": "se-1"}]
        assert "step_execution_id" not in structlog.contextvars.get_contextvars()

    async def test_job_errors_are_logged(self):
        class Broken(FakeEngine):
            async def process_workflow(self, execution_id):
                raise RuntimeError("boom")

        scheduler = InProcessJobScheduler(Broken())
        scheduler.enqueue(JobName.PROCESS_WORKFLOW, "ex-1")
        await scheduler.drain()
        assert scheduler.pending_count == 0


@pytest.mark.integration
class TestInProcessEndToEnd:

    async def test_workflow_runs_to_completion(self, session_factory, registry, create_workflow):
        from workflow.engine import WorkflowEngine

        scheduler = InProcessJobScheduler()
        engine = WorkflowEngine(session_factory, scheduler, registry)
        scheduler.bind(engine)

        definition_id = await create_workflow(("Echo", "a"), ("Echo", "b"))
        execution_id = await engine.start(definition_id)

        for _ in range(50):
            await scheduler.drain()
            if (await engine.get_status(execution_id)).status == "completed":
                break
            await asyncio.sleep(0.01)

        assert (await engine.get_status(execution_id)).status == "completed"
