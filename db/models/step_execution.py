"""StepExecution model."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import StepExecutionStatus
from db.base import BaseModel


class StepExecution(BaseModel):
    """The attempt sequence of one WorkflowStep within one WorkflowExecution.

    Attributes:
        id: Unique identifier (UUID string)
        workflow_execution_id: Owning execution
        workflow_step_id: Step being executed
        status: pending, running, completed, failed, skipped, retrying
        input_data / output_data: Step documents
        scheduled_time: Next time this step is eligible to run, used for
            both the initial delay and retry backoff
        started_time / completed_time: Lifecycle timestamps
        error_message: Last failure reason
        retry_count: Retries performed so far (never above max_retries)
        max_retries: Retry budget
    """

    __tablename__ = "step_executions"

    workflow_execution_id: Mapped[str] = mapped_column(
        ForeignKey("workflow_executions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    workflow_step_id: Mapped[str] = mapped_column(
        ForeignKey("workflow_steps.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(
        default=StepExecutionStatus.PENDING.value, index=True
    )
    input_data: Mapped[Optional[Any]] = mapped_column(JSON(none_as_null=True), nullable=True)
    output_data: Mapped[Optional[Any]] = mapped_column(JSON(none_as_null=True), nullable=True)
    scheduled_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    started_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(default=0)
    max_retries: Mapped[int] = mapped_column(default=3)

    # Relationships
    workflow_execution: Mapped["WorkflowExecution"] = relationship(
        "WorkflowExecution", back_populates="step_executions", lazy="noload"
    )
    workflow_step: Mapped["WorkflowStep"] = relationship(
        "WorkflowStep", lazy="selectin"
    )

    @property
    def order(self) -> int:
        return self.workflow_step.order

    @property
    def step_name(self) -> str:
        return self.workflow_step.step_definition.name
