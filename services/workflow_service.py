"""Workflow definition service — lookups and activation."""

from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db.models import WorkflowDefinition, WorkflowStep
from services.base import BaseService

logger = structlog.get_logger(__name__)


class WorkflowDefinitionService(BaseService[WorkflowDefinition]):
    """Service for workflow definitions."""

    def __init__(self, db: AsyncSession):
        super().__init__(WorkflowDefinition, db)

    async def get_with_steps(self, workflow_definition_id: str) -> Optional[WorkflowDefinition]:
        """Load a definition with its workflow steps and their step definitions."""
        result = await self.db.execute(
            select(WorkflowDefinition)
            .where(WorkflowDefinition.id == workflow_definition_id)
            .options(
                selectinload(WorkflowDefinition.steps).selectinload(WorkflowStep.step_definition)
            )
        )
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> Optional[WorkflowDefinition]:
        result = await self.db.execute(
            select(WorkflowDefinition).where(WorkflowDefinition.name == name)
        )
        return result.scalar_one_or_none()

    async def activate(self, workflow_definition_id: str) -> Optional[WorkflowDefinition]:
        """Allow new executions of a definition."""
        definition = await self.update(workflow_definition_id, {"is_active": True})
        if definition:
            logger.info("Workflow definition activated", workflow_definition_id=workflow_definition_id)
        return definition

    async def deactivate(self, workflow_definition_id: str) -> Optional[WorkflowDefinition]:
        """Reject new executions. Running executions are unaffected."""
        definition = await self.update(workflow_definition_id, {"is_active": False})
        if definition:
            logger.info("Workflow definition deactivated", workflow_definition_id=workflow_definition_id)
        return definition
