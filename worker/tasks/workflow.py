"""Celery tasks for workflow execution.

These tasks bridge the Celery worker with the WorkflowEngine. Every
task opens its own event loop and a per-job database engine, builds a
WorkflowEngine and runs exactly one engine callback.

Celery never retries these tasks: the engine records its own failures
and schedules its own retries.
"""

import asyncio
import logging

from core.constants import JobName
from core.logging_config import job_log_context
from worker.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run(coro):
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _process_workflow(execution_id: str) -> None:
    from app.bootstrap import create_workflow_engine
    from db.worker_session import worker_session_factory

    async with worker_session_factory() as session_factory:
        engine = create_workflow_engine(session_factory=session_factory)
        await engine.process_workflow(execution_id)


async def _process_step(step_execution_id: str) -> None:
    from app.bootstrap import create_workflow_engine
    from db.worker_session import worker_session_factory

    async with worker_session_factory() as session_factory:
        engine = create_workflow_engine(session_factory=session_factory)
        await engine.process_step(step_execution_id)


async def _recover(stale_minutes: int = None) -> list:
    from app.bootstrap import create_scheduler
    from app.config import get_settings
    from db.worker_session import worker_session_factory
    from workflow.recovery import RecoveryService

    async with worker_session_factory() as session_factory:
        service = RecoveryService(session_factory, create_scheduler(get_settings()))
        return await service.recover(stale_minutes)


# ─── Engine callbacks ────────────────────────────────────────────

@celery_app.task(
    name="worker.tasks.workflow.process_workflow",
    max_retries=0,
    acks_late=True,
)
def process_workflow(execution_id: str):
    """Advance a workflow execution by one step."""
    with job_log_context(JobName.PROCESS_WORKFLOW, execution_id):
        logger.info(f"process_workflow: {execution_id}")
        _run(_process_workflow(execution_id))


@celery_app.task(
    name="worker.tasks.workflow.process_step",
    max_retries=0,
    acks_late=True,
)
def process_step(step_execution_id: str):
    """Run a delayed or retried step."""
    with job_log_context(JobName.PROCESS_STEP, step_execution_id):
        logger.info(f"process_step: {step_execution_id}")
        _run(_process_step(step_execution_id))


# ─── Periodic ────────────────────────────────────────────────────

@celery_app.task(
    name="worker.tasks.workflow.recover_stalled_executions",
    max_retries=0,
)
def recover_stalled_executions(stale_minutes: int = None):
    """Re-enqueue the driver of executions that stopped making progress."""
    with job_log_context("recover_stalled_executions"):
        recovered = _run(_recover(stale_minutes))
    if recovered:
        logger.info(f"Recovered {len(recovered)} stalled executions")
    return {"recovered": recovered}
