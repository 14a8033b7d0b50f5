"""Execution store queries.

Every engine invocation rehydrates its state through these queries:
an execution with its step executions, workflow steps and step
definitions in one read, or a single step execution with its parent.
"""

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.constants import StepExecutionStatus, WorkflowExecutionStatus
from db.models import StepExecution, WorkflowExecution, WorkflowStep
from services.base import BaseService


class ExecutionService(BaseService[WorkflowExecution]):
    """Read access to executions and their step executions."""

    def __init__(self, db: AsyncSession):
        super().__init__(WorkflowExecution, db)

    async def get_with_steps(self, execution_id: str) -> Optional[WorkflowExecution]:
        """Load an execution with step executions → workflow step → step definition."""
        result = await self.db.execute(
            select(WorkflowExecution)
            .where(WorkflowExecution.id == execution_id)
            .options(
                selectinload(WorkflowExecution.workflow_definition),
                selectinload(WorkflowExecution.step_executions)
                .selectinload(StepExecution.workflow_step)
                .selectinload(WorkflowStep.step_definition),
            )
        )
        return result.scalar_one_or_none()

    async def get_step_execution(self, step_execution_id: str) -> Optional[StepExecution]:
        """Load a step execution with its parent execution and step definition."""
        result = await self.db.execute(
            select(StepExecution)
            .where(StepExecution.id == step_execution_id)
            .options(
                selectinload(StepExecution.workflow_execution)
                .selectinload(WorkflowExecution.workflow_definition),
                selectinload(StepExecution.workflow_step)
                .selectinload(WorkflowStep.step_definition),
            )
        )
        return result.scalar_one_or_none()

    async def completed_prior_steps(
        self,
        execution_id: str,
        order: int,
    ) -> Sequence[StepExecution]:
        """Completed step executions of ``execution_id`` with order below ``order``."""
        result = await self.db.execute(
            select(StepExecution)
            .join(WorkflowStep, StepExecution.workflow_step_id == WorkflowStep.id)
            .where(
                StepExecution.workflow_execution_id == execution_id,
                WorkflowStep.order < order,
                StepExecution.status == StepExecutionStatus.COMPLETED.value,
            )
            .order_by(WorkflowStep.order.asc())
            .options(
                selectinload(StepExecution.workflow_step)
                .selectinload(WorkflowStep.step_definition),
            )
        )
        return result.scalars().all()

    async def find_stalled(self, updated_before: datetime) -> Sequence[WorkflowExecution]:
        """Running executions that have not been touched since ``updated_before``."""
        result = await self.db.execute(
            select(WorkflowExecution)
            .where(
                WorkflowExecution.status == WorkflowExecutionStatus.RUNNING.value,
                WorkflowExecution.updated_at < updated_before,
            )
            .order_by(WorkflowExecution.updated_at.asc())
        )
        return result.scalars().all()
