"""
Execution Recovery Service.

Detects running executions whose driver chain was lost (worker crash,
broker restart, a job dropped while the execution was paused) and
re-enqueues their driver.

Recovery flow:
1. Scan for executions with status "running" not updated for
   ``stale_minutes`` (the driver touches ``updated_at`` on every tick)
2. Enqueue ``process_workflow`` for each one
3. The driver picks up where the store says it is: the next pending
   step, or an overdue retrying step which it re-dispatches

Driver and step processor are idempotent, so recovering a healthy but
slow execution is harmless.
"""

from datetime import timedelta
from typing import List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.constants import JobName
from core.utils import utcnow
from services.execution_service import ExecutionService
from worker.scheduler import JobScheduler

logger = structlog.get_logger(__name__)


class RecoveryService:
    """Re-arms the driver of stalled executions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        scheduler: JobScheduler,
        clock=utcnow,
    ):
        self._session_factory = session_factory
        self.scheduler = scheduler
        self._now = clock

    async def scan_stalled_executions(self, stale_minutes: int) -> List[str]:
        threshold = self._now() - timedelta(minutes=stale_minutes)
        async with self._session_factory() as session:
            stalled = await ExecutionService(session).find_stalled(threshold)
            return [execution.id for execution in stalled]

    async def recover(self, stale_minutes: Optional[int] = None) -> List[str]:
        """Re-enqueue the driver for every stalled execution.

        Returns:
            IDs of the executions that were re-enqueued
        """
        if stale_minutes is None:
            from app.config import get_settings
            stale_minutes = get_settings().RECOVERY_STALE_MINUTES

        execution_ids = await self.scan_stalled_executions(stale_minutes)
        if not execution_ids:
            logger.debug("No stalled executions found")
            return []

        logger.info("Found stalled executions", count=len(execution_ids))
        recovered = []
        for execution_id in execution_ids:
            try:
                self.scheduler.enqueue(JobName.PROCESS_WORKFLOW, execution_id)
                recovered.append(execution_id)
            except Exception as e:
                logger.error("Recovery enqueue failed", execution_id=execution_id, error=str(e))

        logger.info("Recovery complete", recovered=len(recovered), total=len(execution_ids))
        return recovered
