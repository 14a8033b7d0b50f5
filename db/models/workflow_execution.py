"""WorkflowExecution model."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import WorkflowExecutionStatus
from db.base import BaseModel


class WorkflowExecution(BaseModel):
    """One run of a WorkflowDefinition.

    Attributes:
        id: Unique identifier (UUID string)
        workflow_definition_id: Definition being executed
        status: pending, running, completed, failed, cancelled, paused
        input_data: Input document supplied at start
        output_data: Step outputs keyed by step name (completed runs only)
        scheduled_time: When the run was scheduled to begin
        started_time / completed_time: Lifecycle timestamps
        error_message: Failure reason for failed runs
        step_executions: One StepExecution per WorkflowStep
    """

    __tablename__ = "workflow_executions"

    workflow_definition_id: Mapped[str] = mapped_column(
        ForeignKey("workflow_definitions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(
        default=WorkflowExecutionStatus.PENDING.value, index=True
    )
    input_data: Mapped[Optional[Any]] = mapped_column(JSON(none_as_null=True), nullable=True)
    output_data: Mapped[Optional[Any]] = mapped_column(JSON(none_as_null=True), nullable=True)
    scheduled_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    started_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    workflow_definition: Mapped["WorkflowDefinition"] = relationship(
        "WorkflowDefinition", back_populates="executions", lazy="selectin"
    )
    step_executions: Mapped[list["StepExecution"]] = relationship(
        "StepExecution",
        back_populates="workflow_execution",
        cascade="all, delete-orphan",
        lazy="noload",
    )
