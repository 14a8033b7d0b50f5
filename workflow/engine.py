"""Workflow Execution Engine — durable, step-at-a-time workflow runner.

This is the core of the platform. It drives a workflow execution through
its ordered steps, one step per scheduler callback:

- start / cancel / pause / resume / get_status (lifecycle)
- process_workflow: advance an execution by at most one step, then
  re-enqueue itself (tail continuation)
- process_step: validate, gate, execute a single step, then record its
  output or schedule a retry with exponential backoff

Nothing is held in memory between callbacks. Every invocation reloads
its rows from the store and commits before returning, so any callback
can be replayed after a crash. Waits are never slept; they are handed to
the job scheduler as scheduled jobs.

Execution states:
    pending → running → completed | failed | cancelled
    running ⇄ paused

Step states:
    pending → running → completed | failed | skipped
    running → retrying → running → ...
"""

from datetime import timedelta
from typing import Any, Callable, Optional
from uuid import uuid4

import structlog
from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.attributes import set_committed_value

from core.constants import (
    CONDITIONS_NOT_MET_MESSAGE,
    PROCESSABLE_STEP_STATUSES,
    TERMINAL_EXECUTION_STATUSES,
    TERMINAL_STEP_STATUSES,
    VALIDATION_FAILED_PREFIX,
    JobName,
    StepExecutionStatus,
    WorkflowExecutionStatus,
)
from core.exceptions import NotFoundError
from core.utils import to_json_value, to_naive_utc, utcnow
from db.models import StepExecution, WorkflowExecution
from notifications.sink import NotificationSink, SafeNotifier
from services.execution_service import ExecutionService
from services.workflow_service import WorkflowDefinitionService
from steps.registry import StepRegistry, get_step_registry
from worker.scheduler import JobScheduler
from workflow.context import ContextBuilder
from workflow.retry_strategies import RetryStrategy
from workflow.schemas import WorkflowExecutionResult

logger = structlog.get_logger(__name__)

DEFAULT_MAX_RETRIES = 3


def _select_next_step(steps: list) -> Optional[StepExecution]:
    """Lowest-order pending step, or None.

    A lower-order step that is still running or retrying blocks every
    step after it.
    """
    for step in sorted(steps, key=lambda se: se.order):
        status = StepExecutionStatus(step.status)
        if status in TERMINAL_STEP_STATUSES:
            continue
        if status == StepExecutionStatus.PENDING:
            return step
        return None
    return None


class WorkflowEngine:
    """Durable workflow engine.

    Args:
        session_factory: Creates a fresh AsyncSession per invocation
        scheduler: Job scheduler used for continuations, delays and retries
        registry: Step type registry (defaults to the process singleton)
        notifier: Optional sink for status events
        retry_strategy: Backoff for retries without an explicit delay
        default_max_retries: max_retries given to new step executions
        clock: Returns the current naive UTC time
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        scheduler: JobScheduler,
        registry: Optional[StepRegistry] = None,
        notifier: Optional[NotificationSink] = None,
        retry_strategy: Optional[RetryStrategy] = None,
        default_max_retries: int = DEFAULT_MAX_RETRIES,
        clock: Callable[[], Any] = utcnow,
    ):
        self._session_factory = session_factory
        self.scheduler = scheduler
        self.registry = registry or get_step_registry()
        self.notifier = SafeNotifier(notifier)
        self.retry_strategy = retry_strategy or RetryStrategy.exponential()
        self.default_max_retries = default_max_retries
        self._now = clock

    # ─── Lifecycle ────────────────────────────────────────────

    async def start(
        self,
        workflow_definition_id: str,
        input_data: Any = None,
        scheduled_time=None,
    ) -> str:
        """Create an execution and hand it to the scheduler.

        Returns the execution id immediately; processing is asynchronous.

        Raises:
            NotFoundError: If the definition is missing or inactive
        """
        scheduled_time = to_naive_utc(scheduled_time)
        now = self._now()

        async with self._session_factory() as session:
            definition = await WorkflowDefinitionService(session).get_with_steps(
                workflow_definition_id
            )
            if definition is None or not definition.is_active:
                raise NotFoundError(
                    f"Workflow definition {workflow_definition_id} not found or inactive"
                )

            deferred = scheduled_time is not None and scheduled_time > now
            execution = WorkflowExecution(
                id=str(uuid4()),
                workflow_definition_id=definition.id,
                workflow_definition=definition,
                input_data=to_json_value(input_data),
                scheduled_time=scheduled_time,
                status=(
                    WorkflowExecutionStatus.PENDING.value
                    if deferred
                    else WorkflowExecutionStatus.RUNNING.value
                ),
                started_time=None if deferred else now,
                step_executions=[
                    StepExecution(
                        id=str(uuid4()),
                        workflow_step=workflow_step,
                        workflow_step_id=workflow_step.id,
                        status=StepExecutionStatus.PENDING.value,
                        scheduled_time=(
                            scheduled_time + timedelta(minutes=workflow_step.delay_minutes)
                            if scheduled_time is not None
                            else None
                        ),
                        retry_count=0,
                        max_retries=self.default_max_retries,
                    )
                    for workflow_step in sorted(definition.steps, key=lambda ws: ws.order)
                ],
            )
            session.add(execution)
            await session.commit()

        if scheduled_time is not None:
            self.scheduler.schedule(JobName.PROCESS_WORKFLOW, scheduled_time, execution.id)
        else:
            self.scheduler.enqueue(JobName.PROCESS_WORKFLOW, execution.id)

        logger.info(
            "Started workflow execution",
            workflow_definition_id=workflow_definition_id,
            execution_id=execution.id,
            status=execution.status,
            steps=len(execution.step_executions),
            scheduled_time=scheduled_time.isoformat() if scheduled_time else None,
        )
        await self.notifier.on_new_execution_started(execution)
        return execution.id

    async def get_status(self, execution_id: str) -> WorkflowExecutionResult:
        """Full execution view with steps sorted by order.

        Raises:
            NotFoundError: If the execution does not exist
        """
        async with self._session_factory() as session:
            execution = await ExecutionService(session).get_with_steps(execution_id)
            if execution is None:
                raise NotFoundError(f"Workflow execution {execution_id} not found")
            return WorkflowExecutionResult.from_execution(execution)

    async def cancel(self, execution_id: str) -> bool:
        """Cancel a non-terminal execution.

        In-flight callbacks are not interrupted; they observe the new
        status on their next invocation and stop.
        """
        async with self._session_factory() as session:
            execution = await session.get(WorkflowExecution, execution_id)
            if execution is None:
                return False
            if WorkflowExecutionStatus(execution.status) in TERMINAL_EXECUTION_STATUSES:
                return False
            execution.status = WorkflowExecutionStatus.CANCELLED.value
            execution.completed_time = self._now()
            await session.commit()

        logger.info("Cancelled workflow execution", execution_id=execution_id)
        await self.notifier.on_workflow_status_changed(execution)
        return True

    async def pause(self, execution_id: str) -> bool:
        """Pause a running execution. Already scheduled callbacks will no-op."""
        async with self._session_factory() as session:
            execution = await session.get(WorkflowExecution, execution_id)
            if execution is None or execution.status != WorkflowExecutionStatus.RUNNING.value:
                return False
            execution.status = WorkflowExecutionStatus.PAUSED.value
            await session.commit()

        logger.info("Paused workflow execution", execution_id=execution_id)
        await self.notifier.on_workflow_status_changed(execution)
        return True

    async def resume(self, execution_id: str) -> bool:
        """Resume a paused execution and re-enqueue its driver."""
        async with self._session_factory() as session:
            execution = await session.get(WorkflowExecution, execution_id)
            if execution is None or execution.status != WorkflowExecutionStatus.PAUSED.value:
                return False
            execution.status = WorkflowExecutionStatus.RUNNING.value
            await session.commit()

        self.scheduler.enqueue(JobName.PROCESS_WORKFLOW, execution_id)
        logger.info("Resumed workflow execution", execution_id=execution_id)
        await self.notifier.on_workflow_status_changed(execution)
        return True

    # ─── Workflow driver ──────────────────────────────────────

    async def process_workflow(self, execution_id: str) -> None:
        """Advance an execution by at most one step.

        Called by the job scheduler. Never raises: unexpected errors fail
        the execution instead of engaging the scheduler's own retries.
        """
        log = logger.bind(execution_id=execution_id)
        try:
            await self._advance(execution_id, log)
        except Exception as e:
            log.exception("Workflow processing failed")
            await self._fail_execution(execution_id, str(e) or type(e).__name__)

    async def _advance(self, execution_id: str, log) -> None:
        now = self._now()

        async with self._session_factory() as session:
            execution = await ExecutionService(session).get_with_steps(execution_id)
            if execution is None:
                log.warning("Workflow execution not found")
                return

            status = WorkflowExecutionStatus(execution.status)
            if status in TERMINAL_EXECUTION_STATUSES:
                log.debug("Execution already finished", status=status.value)
                return
            if status == WorkflowExecutionStatus.PAUSED:
                log.debug("Execution paused")
                return

            if status == WorkflowExecutionStatus.PENDING:
                execution.status = WorkflowExecutionStatus.RUNNING.value
                execution.started_time = now
                await session.commit()
                log.info("Execution running")
                await self.notifier.on_workflow_status_changed(execution)

            steps = list(execution.step_executions)
            next_step = _select_next_step(steps)

            if next_step is None:
                await self._finish_or_wait(session, execution, steps, now, log)
                return

            if next_step.scheduled_time is not None and next_step.scheduled_time > now:
                self.scheduler.schedule(
                    JobName.PROCESS_STEP, next_step.scheduled_time, next_step.id
                )
                log.info(
                    "Step deferred",
                    step_execution_id=next_step.id,
                    scheduled_time=next_step.scheduled_time.isoformat(),
                )
                return

            # Heartbeat for stalled-execution recovery
            execution.updated_at = now
            await session.commit()
            step_execution_id = next_step.id

        await self._process_step(step_execution_id, inline=True)
        self.scheduler.enqueue(JobName.PROCESS_WORKFLOW, execution_id)

    async def _finish_or_wait(
        self,
        session: AsyncSession,
        execution: WorkflowExecution,
        steps: list,
        now,
        log,
    ) -> None:
        """No pending step is eligible: finish the execution, or wait."""
        statuses = [StepExecutionStatus(se.status) for se in steps]

        if all(s in (StepExecutionStatus.COMPLETED, StepExecutionStatus.SKIPPED) for s in statuses):
            execution.status = WorkflowExecutionStatus.COMPLETED.value
            execution.completed_time = now
            execution.output_data = {
                se.step_name: se.output_data
                for se in sorted(steps, key=lambda se: se.order)
                if se.status == StepExecutionStatus.COMPLETED.value
            }
            await session.commit()
            log.info("Workflow execution completed", steps=len(steps))
        elif StepExecutionStatus.FAILED in statuses:
            # Steps still retrying are abandoned; their callbacks no-op
            failed = [
                se.step_name
                for se in sorted(steps, key=lambda se: se.order)
                if se.status == StepExecutionStatus.FAILED.value
            ]
            execution.status = WorkflowExecutionStatus.FAILED.value
            execution.completed_time = now
            execution.error_message = ", ".join(failed)
            await session.commit()
            log.warning("Workflow execution failed", failed_steps=failed)
        else:
            self._redispatch_overdue_retries(steps, now, log)
            return

        await self.notifier.on_execution_completed(execution)
        await self.notifier.on_workflow_status_changed(execution)

    def _redispatch_overdue_retries(self, steps: list, now, log) -> None:
        """Re-enqueue retrying steps whose callback was dropped while paused."""
        for se in steps:
            if se.status != StepExecutionStatus.RETRYING.value:
                continue
            if se.scheduled_time is None or se.scheduled_time <= now:
                self.scheduler.enqueue(JobName.PROCESS_STEP, se.id)
                log.info("Re-dispatched overdue retry", step_execution_id=se.id)
        log.debug("Waiting for in-flight steps")

    async def _fail_execution(self, execution_id: str, message: str) -> None:
        try:
            async with self._session_factory() as session:
                execution = await session.get(WorkflowExecution, execution_id)
                if execution is None:
                    return
                if WorkflowExecutionStatus(execution.status) in TERMINAL_EXECUTION_STATUSES:
                    return
                execution.status = WorkflowExecutionStatus.FAILED.value
                execution.completed_time = self._now()
                execution.error_message = message
                await session.commit()
        except Exception:
            logger.exception("Could not mark execution failed", execution_id=execution_id)
            return
        await self.notifier.on_execution_completed(execution)
        await self.notifier.on_workflow_status_changed(execution)

    # ─── Step processor ───────────────────────────────────────

    async def process_step(self, step_execution_id: str) -> None:
        """Run one step from a scheduler callback (delayed start or retry).

        When the step reaches a terminal state the driver is re-enqueued
        so the execution moves on.
        """
        await self._process_step(step_execution_id, inline=False)

    async def _process_step(self, step_execution_id: str, inline: bool) -> None:
        log = logger.bind(step_execution_id=step_execution_id)
        claimed = False
        outcome: Optional[StepExecutionStatus] = None
        execution_id = None

        try:
            async with self._session_factory() as session:
                step = await ExecutionService(session).get_step_execution(step_execution_id)
                if step is None:
                    log.warning("Step execution not found")
                    return

                execution = step.workflow_execution
                execution_id = execution.id
                log = log.bind(execution_id=execution_id, step_name=step.step_name)

                if StepExecutionStatus(step.status) not in PROCESSABLE_STEP_STATUSES:
                    log.debug("Step not processable", status=step.status)
                    return
                if execution.status != WorkflowExecutionStatus.RUNNING.value:
                    log.debug("Execution not running", execution_status=execution.status)
                    return

                now = self._now()
                if not inline and step.scheduled_time is not None and step.scheduled_time > now:
                    log.debug("Callback fired before scheduled time")
                    return

                claimed = await self._claim_step(session, step, now)
                if not claimed:
                    log.debug("Step claimed by another worker")
                    return
                await session.commit()
                await self.notifier.on_step_status_changed(step)

                outcome = await self._run_step(session, step, log)

        except Exception as e:
            log.exception("Step processing failed")
            if claimed:
                await self._fail_step(step_execution_id, str(e) or type(e).__name__)
                outcome = StepExecutionStatus.FAILED
            else:
                return

        if not inline and outcome in TERMINAL_STEP_STATUSES:
            try:
                self.scheduler.enqueue(JobName.PROCESS_WORKFLOW, execution_id)
            except Exception:
                # Recovery re-arms the driver once the execution goes stale
                log.exception("Could not enqueue workflow driver")

    async def _claim_step(self, session: AsyncSession, step: StepExecution, now) -> bool:
        """Move a pending/retrying step to running unless someone else did."""
        result = await session.execute(
            update(StepExecution)
            .where(
                StepExecution.id == step.id,
                or_(
                    StepExecution.status == StepExecutionStatus.PENDING.value,
                    StepExecution.status == StepExecutionStatus.RETRYING.value,
                ),
            )
            .values(status=StepExecutionStatus.RUNNING.value, started_time=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        set_committed_value(step, "status", StepExecutionStatus.RUNNING.value)
        set_committed_value(step, "started_time", now)
        return True

    async def _run_step(self, session: AsyncSession, step: StepExecution, log) -> StepExecutionStatus:
        step_type = step.workflow_step.step_definition.step_type
        implementation = self.registry.create(step_type)
        context = await ContextBuilder(session).build(step)

        validation = await implementation.validate_input(context)
        if not validation.success:
            log.warning("Step input invalid", error=validation.error)
            return await self._finish_step(
                session,
                step,
                StepExecutionStatus.FAILED,
                error_message=f"{VALIDATION_FAILED_PREFIX}{validation.error}",
            )

        if not await implementation.can_execute(context):
            log.info("Step skipped")
            return await self._finish_step(
                session,
                step,
                StepExecutionStatus.SKIPPED,
                error_message=CONDITIONS_NOT_MET_MESSAGE,
            )

        result = await implementation.run(context)

        if result.success:
            log.info("Step completed")
            return await self._finish_step(
                session,
                step,
                StepExecutionStatus.COMPLETED,
                output_data=to_json_value(result.output),
            )

        if self.retry_strategy.should_retry(step.retry_count, step.max_retries, result.should_retry):
            now = self._now()
            step.status = StepExecutionStatus.RETRYING.value
            step.retry_count += 1
            step.error_message = result.error
            step.scheduled_time = self.retry_strategy.next_attempt_at(
                now, step.retry_count, result.retry_delay
            )
            await session.commit()
            self.scheduler.schedule(JobName.PROCESS_STEP, step.scheduled_time, step.id)
            log.warning(
                "Step scheduled for retry",
                retry_count=step.retry_count,
                max_retries=step.max_retries,
                scheduled_time=step.scheduled_time.isoformat(),
                error=result.error,
            )
            await self.notifier.on_step_status_changed(step)
            return StepExecutionStatus.RETRYING

        log.warning("Step failed", retry_count=step.retry_count, error=result.error)
        return await self._finish_step(
            session,
            step,
            StepExecutionStatus.FAILED,
            error_message=result.error or "Step failed",
        )

    async def _finish_step(
        self,
        session: AsyncSession,
        step: StepExecution,
        status: StepExecutionStatus,
        error_message: Optional[str] = None,
        output_data: Any = None,
    ) -> StepExecutionStatus:
        step.status = status.value
        step.completed_time = self._now()
        step.error_message = error_message
        if status == StepExecutionStatus.COMPLETED:
            step.output_data = output_data
        await session.commit()
        await self.notifier.on_step_status_changed(step)
        return status

    async def _fail_step(self, step_execution_id: str, message: str) -> None:
        try:
            async with self._session_factory() as session:
                step = await session.get(StepExecution, step_execution_id)
                if step is None:
                    return
                step.status = StepExecutionStatus.FAILED.value
                step.completed_time = self._now()
                step.error_message = message
                await session.commit()
        except Exception:
            logger.exception("Could not mark step failed", step_execution_id=step_execution_id)
            return
        await self.notifier.on_step_status_changed(step)
