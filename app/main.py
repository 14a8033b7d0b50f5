"""Workflow Engine - local runner.

Starts one execution of a saved workflow on the in-process scheduler and
waits for it to finish. Production deployments run Celery workers
(``celery -A worker.celery_app worker -Q workflows``) instead.

Run: python -m app.main <workflow-name> ['{"json": "input"}']
"""

import asyncio
import json
import sys

import structlog

from app.bootstrap import create_workflow_engine
from core.constants import TERMINAL_EXECUTION_STATUSES
from core.logging_config import setup_logging
from db.session import close_db, get_session_factory, init_db
from services.workflow_service import WorkflowDefinitionService
from worker.scheduler import InProcessJobScheduler

logger = structlog.get_logger(__name__)


async def run(workflow_name: str, input_data=None, poll_interval: float = 0.5) -> int:
    """Run ``workflow_name`` to completion. Returns a process exit code."""
    setup_logging()
    await init_db()

    session_factory = get_session_factory()
    async with session_factory() as session:
        definition = await WorkflowDefinitionService(session).get_by_name(workflow_name)
    if definition is None:
        logger.error("Workflow not found", workflow_name=workflow_name)
        await close_db()
        return 1

    scheduler = InProcessJobScheduler()
    engine = create_workflow_engine(session_factory=session_factory, scheduler=scheduler)

    try:
        execution_id = await engine.start(definition.id, input_data)
        while True:
            status = await engine.get_status(execution_id)
            if status.status in TERMINAL_EXECUTION_STATUSES:
                break
            await asyncio.sleep(poll_interval)
    finally:
        scheduler.shutdown()
        await close_db()

    print(status.model_dump_json(indent=2))
    return 0 if status.status == "completed" else 2


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print(__doc__.strip().splitlines()[-1])
        return 64
    input_data = json.loads(argv[1]) if len(argv) > 1 else None
    return asyncio.run(run(argv[0], input_data))


if __name__ == "__main__":
    sys.exit(main())
