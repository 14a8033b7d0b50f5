"""
Base step interface for all workflow step implementations.

Every step type (log, delay, email, ...) must inherit from BaseStep
and implement the execute() method. validate_input() and can_execute()
have permissive defaults.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import structlog

from core.types import JsonDocument, JsonValue

logger = structlog.get_logger(__name__)


@dataclass
class StepContext:
    """Everything a step implementation sees while it runs.

    ``workflow_data`` holds the workflow input merged with the outputs of
    every completed lower-order step (keyed ``step_<name>``).
    ``configuration`` is the step definition's default configuration
    overlaid with the workflow step's own configuration.
    """

    workflow_execution_id: str
    step_execution_id: str
    workflow_definition_id: str
    step_definition_id: str
    step_type: str
    step_name: str
    order: int = 0
    configuration: JsonValue = None
    input_data: JsonValue = None
    workflow_data: JsonDocument = field(default_factory=dict)
    retry_count: int = 0
    max_retries: int = 0

    @property
    def config(self) -> JsonDocument:
        """Configuration as a dict (empty when missing or not an object)."""
        return self.configuration if isinstance(self.configuration, dict) else {}

    def get_step_output(self, step_name: str) -> JsonValue:
        """Output of a previously completed step, by step name."""
        return self.workflow_data.get(f"step_{step_name}")


class StepResult:
    """Standardized result of validating or executing a step."""

    def __init__(
        self,
        success: bool,
        output: Any = None,
        error: Optional[str] = None,
        should_retry: bool = False,
        retry_delay: Optional[timedelta] = None,
        metadata: Optional[Dict[str, Any]] = None,
        duration_ms: float = 0,
    ):
        self.success = success
        self.output = output
        self.error = error
        self.should_retry = should_retry
        self.retry_delay = retry_delay
        self.metadata = metadata or {}
        self.duration_ms = duration_ms
        self.timestamp = datetime.now(timezone.utc)

    @classmethod
    def ok(cls, output: Any = None, **metadata) -> "StepResult":
        return cls(success=True, output=output, metadata=metadata)

    @classmethod
    def fail(
        cls,
        error: str,
        should_retry: bool = False,
        retry_delay: Optional[timedelta] = None,
    ) -> "StepResult":
        return cls(
            success=False,
            error=error,
            should_retry=should_retry,
            retry_delay=retry_delay,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "output": self.output,
            "error": self.error,
            "should_retry": self.should_retry,
            "retry_delay_seconds": (
                self.retry_delay.total_seconds() if self.retry_delay else None
            ),
            "metadata": self.metadata,
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp.isoformat(),
        }


class BaseStep(ABC):
    """
    Abstract base class for all step implementations.

    Subclasses must implement:
    - execute(context) -> StepResult
    - step_type (class attribute, the key stored on StepDefinition)
    """

    step_type: str = "base"
    display_name: str = "Base Step"
    description: str = "Abstract base step"

    async def validate_input(self, context: StepContext) -> StepResult:
        """Check the context before anything runs. Failures are never retried."""
        return StepResult.ok()

    async def can_execute(self, context: StepContext) -> bool:
        """Return False to skip the step."""
        return True

    @abstractmethod
    async def execute(self, context: StepContext) -> StepResult:
        """
        Execute the step.

        Args:
            context: Step context built by the engine

        Returns:
            StepResult with output, or an error and an optional retry request
        """
        pass

    async def run(self, context: StepContext) -> StepResult:
        """
        Run the step with timing and error handling.

        This is the entry point called by the workflow engine. Exceptions
        raised by execute() become non-retryable failures.
        """
        start = time.monotonic()
        try:
            logger.info(
                "Step starting",
                step_type=self.step_type,
                step_name=context.step_name,
                step_execution_id=context.step_execution_id,
                retry_count=context.retry_count,
            )
            result = await self.execute(context)
            result.duration_ms = (time.monotonic() - start) * 1000

            logger.info(
                "Step finished",
                step_type=self.step_type,
                step_execution_id=context.step_execution_id,
                success=result.success,
                duration_ms=round(result.duration_ms, 2),
            )
            return result

        except Exception as e:
            duration_ms = (time.monotonic() - start) * 1000
            logger.error(
                "Step raised",
                step_type=self.step_type,
                step_execution_id=context.step_execution_id,
                error=str(e),
                duration_ms=round(duration_ms, 2),
            )
            return StepResult(success=False, error=str(e), duration_ms=duration_ms)

    @classmethod
    def get_config_schema(cls) -> Dict[str, Any]:
        """
        Return JSON schema for step configuration.

        Override in subclasses to define expected config shape.
        """
        return {"type": "object", "properties": {}}
