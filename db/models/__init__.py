"""Database models for the workflow engine.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.workflow_definition import WorkflowDefinition
from db.models.step_definition import StepDefinition
from db.models.workflow_step import WorkflowStep
from db.models.workflow_execution import WorkflowExecution
from db.models.step_execution import StepExecution

__all__ = [
    "WorkflowDefinition",
    "StepDefinition",
    "WorkflowStep",
    "WorkflowExecution",
    "StepExecution",
]
