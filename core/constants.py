"""Constants and enums for the workflow engine."""

from enum import Enum


class WorkflowExecutionStatus(str, Enum):
    """Workflow execution status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PAUSED = "paused"


class StepExecutionStatus(str, Enum):
    """Status of a single step execution."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    RETRYING = "retrying"


class JobName(str, Enum):
    """Jobs the engine submits to the job scheduler."""

    PROCESS_WORKFLOW = "process_workflow"
    PROCESS_STEP = "process_step"


# Execution states that never change again
TERMINAL_EXECUTION_STATUSES = frozenset({
    WorkflowExecutionStatus.COMPLETED,
    WorkflowExecutionStatus.FAILED,
    WorkflowExecutionStatus.CANCELLED,
})

TERMINAL_STEP_STATUSES = frozenset({
    StepExecutionStatus.COMPLETED,
    StepExecutionStatus.FAILED,
    StepExecutionStatus.SKIPPED,
})

# Steps the processor is allowed to pick up
PROCESSABLE_STEP_STATUSES = frozenset({
    StepExecutionStatus.PENDING,
    StepExecutionStatus.RETRYING,
})

STEP_OUTPUT_KEY_PREFIX = "step_"

VALIDATION_FAILED_PREFIX = "Input validation failed: "
CONDITIONS_NOT_MET_MESSAGE = "Step conditions not met"
