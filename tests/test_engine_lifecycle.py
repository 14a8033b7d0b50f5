"""Tests for starting, inspecting, cancelling, pausing and resuming executions."""

from datetime import timedelta

import pytest

from core.constants import JobName
from core.exceptions import NotFoundError
from services.workflow_service import WorkflowDefinitionService


@pytest.mark.integration
class TestStart:

    async def test_start_creates_running_execution_with_pending_steps(self, engine, scheduler, sink, clock, create_workflow):
        definition_id = await create_workflow(("Echo", "first"), ("Echo", "second"))

        execution_id = await engine.start(definition_id, {"customer_id": 7})

        status = await engine.get_status(execution_id)
        assert status.status == "running"
        assert status.started_time == clock.now
        assert status.input_data == {"customer_id": 7}
        assert [s.order for s in status.steps] == [1, 2]
        assert [s.step_name for s in status.steps] == ["first", "second"]
        assert all(s.status == "pending" for s in status.steps)
        assert all(s.retry_count == 0 and s.max_retries == 3 for s in status.steps)
        assert all(s.scheduled_time is None for s in status.steps)

        assert [(j.job, j.args, j.when) for j in scheduler.jobs] == [
            (JobName.PROCESS_WORKFLOW, (execution_id,), None)
        ]
        assert sink.of("started") == [("started", execution_id, "running")]

    async def test_start_unknown_definition(self, engine):
        with pytest.raises(NotFoundError):
            await engine.start("does-not-exist")

    async def test_start_inactive_definition(self, engine, session_factory, create_workflow):
        definition_id = await create_workflow(("Echo", "only"))
        async with session_factory() as session:
            await WorkflowDefinitionService(session).deactivate(definition_id)
            await session.commit()

        with pytest.raises(NotFoundError):
            await engine.start(definition_id)

    async def test_scheduled_start_is_pending(self, engine, scheduler, clock, create_workflow):
        """Scenario B: a start one hour out stays pending until its job fires."""
        definition_id = await create_workflow(("Echo", "first"), ("Echo", "second", 15))
        when = clock.now + timedelta(hours=1)

        execution_id = await engine.start(definition_id, scheduled_time=when)

        status = await engine.get_status(execution_id)
        assert status.status == "pending"
        assert status.scheduled_time == when
        assert status.started_time is None
        assert status.steps[0].scheduled_time == when
        assert status.steps[1].scheduled_time == when + timedelta(minutes=15)
        assert all(s.started_time is None for s in status.steps)

        assert [(j.job, j.when) for j in scheduler.jobs] == [(JobName.PROCESS_WORKFLOW, when)]
        assert await scheduler.drain(engine) == 0

    async def test_scheduled_start_runs_when_due(self, engine, scheduler, clock, create_workflow):
        definition_id = await create_workflow(("Echo", "first"), ("Echo", "second", 15))
        execution_id = await engine.start(definition_id, scheduled_time=clock.now + timedelta(hours=1))

        clock.advance(hours=1)
        await scheduler.drain(engine, clock.now)

        status = await engine.get_status(execution_id)
        assert status.status == "running"
        assert status.started_time == clock.now
        assert status.steps[0].status == "completed"
        assert status.steps[1].status == "pending"

        step_jobs = scheduler.scheduled(JobName.PROCESS_STEP)
        assert [j.when for j in step_jobs] == [clock.now + timedelta(minutes=15)]

        clock.advance(minutes=15)
        await scheduler.drain(engine, clock.now)

        status = await engine.get_status(execution_id)
        assert status.status == "completed"
        assert [s.status for s in status.steps] == ["completed", "completed"]

    async def test_start_with_past_schedule_runs_immediately(self, engine, scheduler, clock, create_workflow):
        definition_id = await create_workflow(("Echo", "only"))
        execution_id = await engine.start(definition_id, scheduled_time=clock.now - timedelta(minutes=5))

        status = await engine.get_status(execution_id)
        assert status.status == "running"

        await scheduler.drain(engine, clock.now)
        assert (await engine.get_status(execution_id)).status == "completed"

    async def test_non_object_input_is_kept(self, engine, create_workflow):
        definition_id = await create_workflow(("Echo", "only"))
        execution_id = await engine.start(definition_id, [1, 2, 3])
        assert (await engine.get_status(execution_id)).input_data == [1, 2, 3]


@pytest.mark.integration
class TestGetStatus:

    async def test_missing_execution(self, engine):
        with pytest.raises(NotFoundError):
            await engine.get_status("missing")

    async def test_steps_sorted_by_order(self, engine, scheduler, create_workflow):
        definition_id = await create_workflow(("Echo", "a"), ("Echo", "b"), ("Echo", "c"))
        execution_id = await engine.start(definition_id)
        await scheduler.drain(engine)

        status = await engine.get_status(execution_id)
        assert [s.step_name for s in status.steps] == ["a", "b", "c"]
        assert [s.step_type for s in status.steps] == ["Echo", "Echo", "Echo"]
        assert status.workflow_name


@pytest.mark.integration
class TestCancel:

    async def test_cancel_running_execution(self, engine, scheduler, sink, clock, create_workflow):
        """Scenario C: cancel, then a queued driver job does nothing."""
        definition_id = await create_workflow(("Echo", "first"), ("Echo", "second"))
        execution_id = await engine.start(definition_id)

        assert await engine.cancel(execution_id) is True

        status = await engine.get_status(execution_id)
        assert status.status == "cancelled"
        assert status.completed_time == clock.now
        assert ("workflow_status", execution_id, "cancelled") in sink.events

        events_before = list(sink.events)
        await scheduler.drain(engine)

        status = await engine.get_status(execution_id)
        assert status.status == "cancelled"
        assert all(s.status == "pending" for s in status.steps)
        assert sink.events == events_before
        assert scheduler.jobs == []

    async def test_cancel_twice(self, engine, create_workflow):
        definition_id = await create_workflow(("Echo", "only"))
        execution_id = await engine.start(definition_id)

        assert await engine.cancel(execution_id) is True
        assert await engine.cancel(execution_id) is False

    async def test_cancel_completed_execution(self, engine, scheduler, create_workflow):
        definition_id = await create_workflow(("Echo", "only"))
        execution_id = await engine.start(definition_id)
        await scheduler.drain(engine)

        assert await engine.cancel(execution_id) is False
        assert (await engine.get_status(execution_id)).status == "completed"

    async def test_cancel_missing(self, engine):
        assert await engine.cancel("missing") is False

    async def test_cancel_pending_scheduled_execution(self, engine, scheduler, clock, create_workflow):
        definition_id = await create_workflow(("Echo", "only"))
        execution_id = await engine.start(definition_id, scheduled_time=clock.now + timedelta(hours=2))

        assert await engine.cancel(execution_id) is True

        clock.advance(hours=2)
        await scheduler.drain(engine, clock.now)
        assert (await engine.get_status(execution_id)).status == "cancelled"


@pytest.mark.integration
class TestPauseResume:

    async def test_pause_and_resume(self, engine, scheduler, sink, create_workflow):
        """Scenario E: a paused execution ignores its driver until resumed."""
        definition_id = await create_workflow(("Echo", "first"), ("Echo", "second"))
        execution_id = await engine.start(definition_id)

        # Run only the first step
        await scheduler.run_next(engine)
        assert [s.status for s in (await engine.get_status(execution_id)).steps] == ["completed", "pending"]

        assert await engine.pause(execution_id) is True
        assert (await engine.get_status(execution_id)).status == "paused"
        assert ("workflow_status", execution_id, "paused") in sink.events

        # The driver continuation queued before the pause is a no-op
        await scheduler.drain(engine)
        status = await engine.get_status(execution_id)
        assert status.status == "paused"
        assert status.steps[1].status == "pending"

        assert await engine.resume(execution_id) is True
        assert [(j.job, j.args) for j in scheduler.jobs] == [(JobName.PROCESS_WORKFLOW, (execution_id,))]

        await scheduler.drain(engine)
        status = await engine.get_status(execution_id)
        assert status.status == "completed"
        assert [s.status for s in status.steps] == ["completed", "completed"]

    async def test_pause_requires_running(self, engine, scheduler, clock, create_workflow):
        definition_id = await create_workflow(("Echo", "only"))
        pending_id = await engine.start(definition_id, scheduled_time=clock.now + timedelta(hours=1))
        assert await engine.pause(pending_id) is False

        running_id = await engine.start(definition_id)
        await scheduler.drain(engine)
        assert await engine.pause(running_id) is False  # completed by now

        assert await engine.pause("missing") is False

    async def test_resume_requires_paused(self, engine, create_workflow):
        definition_id = await create_workflow(("Echo", "only"))
        execution_id = await engine.start(definition_id)

        assert await engine.resume(execution_id) is False
        assert await engine.resume("missing") is False

    async def test_cancel_paused_execution(self, engine, create_workflow):
        definition_id = await create_workflow(("Echo", "only"))
        execution_id = await engine.start(definition_id)
        await engine.pause(execution_id)

        assert await engine.cancel(execution_id) is True
        assert await engine.resume(execution_id) is False
        assert (await engine.get_status(execution_id)).status == "cancelled"
