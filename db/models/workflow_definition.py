"""WorkflowDefinition model."""

from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class WorkflowDefinition(BaseModel):
    """A template describing an ordered set of steps.

    Attributes:
        id: Unique identifier (UUID string)
        name: Unique workflow name
        description: Optional description
        is_active: Whether new executions may be started
        steps: WorkflowSteps ordered by ``order``
        created_at / updated_at: Timestamps
    """

    __tablename__ = "workflow_definitions"

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, index=True)

    # Relationships
    steps: Mapped[list["WorkflowStep"]] = relationship(
        "WorkflowStep",
        back_populates="workflow_definition",
        cascade="all, delete-orphan",
        order_by="WorkflowStep.order",
        lazy="noload",
    )
    executions: Mapped[list["WorkflowExecution"]] = relationship(
        "WorkflowExecution",
        back_populates="workflow_definition",
        lazy="noload",
    )
