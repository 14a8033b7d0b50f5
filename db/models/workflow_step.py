"""WorkflowStep model."""

from typing import Any, Optional

from sqlalchemy import JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class WorkflowStep(BaseModel):
    """A StepDefinition placed into a WorkflowDefinition at a given order.

    Attributes:
        id: Unique identifier (UUID string)
        workflow_definition_id: Owning workflow
        step_definition_id: Step being placed
        order: Position in the workflow (unique per workflow)
        delay_minutes: Delay applied when the execution is scheduled
        step_configuration: Overrides merged over the definition's configuration
        condition_rules: Stored condition rules, evaluated by the step itself
    """

    __tablename__ = "workflow_steps"
    __table_args__ = (
        UniqueConstraint("workflow_definition_id", "order", name="uq_workflow_steps_order"),
    )

    workflow_definition_id: Mapped[str] = mapped_column(
        ForeignKey("workflow_definitions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_definition_id: Mapped[str] = mapped_column(
        ForeignKey("step_definitions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    order: Mapped[int] = mapped_column(nullable=False)
    delay_minutes: Mapped[int] = mapped_column(default=0)
    step_configuration: Mapped[Optional[Any]] = mapped_column(JSON(none_as_null=True), nullable=True)
    condition_rules: Mapped[Optional[Any]] = mapped_column(JSON(none_as_null=True), nullable=True)

    # Relationships
    workflow_definition: Mapped["WorkflowDefinition"] = relationship(
        "WorkflowDefinition", back_populates="steps", lazy="noload"
    )
    step_definition: Mapped["StepDefinition"] = relationship(
        "StepDefinition", back_populates="workflow_steps", lazy="selectin"
    )
