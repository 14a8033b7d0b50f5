"""Execution status views and workflow definition models."""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from core.constants import StepExecutionStatus, WorkflowExecutionStatus


class StepExecutionResult(BaseModel):
    """State of one step within an execution."""

    id: str = Field(description="Step execution ID")
    step_name: str = Field(description="Step definition name")
    step_type: str = Field(description="Registered step type")
    order: int = Field(description="Position in the workflow")
    status: StepExecutionStatus = Field(description="Step status")
    input_data: Optional[Any] = Field(default=None, description="Step input document")
    output_data: Optional[Any] = Field(default=None, description="Step output document")
    scheduled_time: Optional[datetime] = Field(default=None, description="Next eligible run time")
    started_time: Optional[datetime] = None
    completed_time: Optional[datetime] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    max_retries: int = 3
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WorkflowExecutionResult(BaseModel):
    """Full status of a workflow execution, steps sorted by order."""

    id: str = Field(description="Execution ID")
    workflow_definition_id: str = Field(description="Workflow definition ID")
    workflow_name: str = Field(description="Workflow definition name")
    status: WorkflowExecutionStatus = Field(description="Execution status")
    input_data: Optional[Any] = None
    output_data: Optional[Any] = None
    scheduled_time: Optional[datetime] = None
    started_time: Optional[datetime] = None
    completed_time: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    steps: List[StepExecutionResult] = Field(default_factory=list)

    @classmethod
    def from_execution(cls, execution) -> "WorkflowExecutionResult":
        steps = sorted(execution.step_executions, key=lambda se: se.order)
        return cls(
            id=execution.id,
            workflow_definition_id=execution.workflow_definition_id,
            workflow_name=execution.workflow_definition.name,
            status=execution.status,
            input_data=execution.input_data,
            output_data=execution.output_data,
            scheduled_time=execution.scheduled_time,
            started_time=execution.started_time,
            completed_time=execution.completed_time,
            error_message=execution.error_message,
            created_at=execution.created_at,
            steps=[
                StepExecutionResult(
                    id=se.id,
                    step_name=se.step_name,
                    step_type=se.workflow_step.step_definition.step_type,
                    order=se.order,
                    status=se.status,
                    input_data=se.input_data,
                    output_data=se.output_data,
                    scheduled_time=se.scheduled_time,
                    started_time=se.started_time,
                    completed_time=se.completed_time,
                    error_message=se.error_message,
                    retry_count=se.retry_count,
                    max_retries=se.max_retries,
                    created_at=se.created_at,
                )
                for se in steps
            ],
        )


class StepDefinitionModel(BaseModel):
    """A step as described by WorkflowBuilder, before it is persisted."""

    name: str = Field(min_length=1, max_length=200)
    step_type: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    order: int
    delay_minutes: int = Field(default=0, ge=0)
    configuration: Optional[Any] = None
    condition_rules: Optional[Any] = None


class WorkflowDefinitionModel(BaseModel):
    """A workflow as described by WorkflowBuilder."""

    name: str = ""
    description: Optional[str] = None
    steps: List[StepDefinitionModel] = Field(default_factory=list)
