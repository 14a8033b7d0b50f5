"""StepDefinition model."""

from typing import Any, Optional

from sqlalchemy import JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class StepDefinition(BaseModel):
    """A reusable step: a name bound to a registered step type.

    Attributes:
        id: Unique identifier (UUID string)
        name: Step name (also the key of its output in workflow output)
        step_type: Registry key resolved to an implementation at dispatch
        description: Optional description
        configuration: Default configuration document
        input_schema / output_schema: Schema placeholders (stored only)
        is_active: Active flag
    """

    __tablename__ = "step_definitions"
    __table_args__ = (
        UniqueConstraint("name", "step_type", name="uq_step_definitions_name_type"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    step_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    configuration: Mapped[Optional[Any]] = mapped_column(JSON(none_as_null=True), nullable=True)
    input_schema: Mapped[Optional[Any]] = mapped_column(JSON(none_as_null=True), nullable=True)
    output_schema: Mapped[Optional[Any]] = mapped_column(JSON(none_as_null=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True)

    workflow_steps: Mapped[list["WorkflowStep"]] = relationship(
        "WorkflowStep", back_populates="step_definition", lazy="noload"
    )
