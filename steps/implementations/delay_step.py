"""Delay step — waits for a configured number of seconds."""

import asyncio
from typing import Any, Dict

import structlog
from pydantic import BaseModel

from core.utils import utcnow
from steps.base_step import BaseStep, StepContext, StepResult

logger = structlog.get_logger(__name__)


class DelayConfiguration(BaseModel):
    delay_seconds: float = 5


def _extract_configuration(context: StepContext) -> DelayConfiguration:
    if context.configuration is None:
        raise ValueError("Delay configuration is required")
    return DelayConfiguration.model_validate(context.configuration)


class DelayStep(BaseStep):
    """Pause inside the step for a short, fixed time.

    Long waits belong in WorkflowStep.delay_minutes, which the scheduler
    handles without holding a worker.

    Config:
        delay_seconds: Seconds to wait, must be greater than 0
    """

    step_type = "DelayStep"
    display_name = "Delay"
    description = "Wait for a number of seconds"

    async def validate_input(self, context: StepContext) -> StepResult:
        try:
            config = _extract_configuration(context)
        except Exception as e:
            return StepResult.fail(f"Invalid configuration: {e}")
        if config.delay_seconds <= 0:
            return StepResult.fail("delay_seconds must be greater than 0")
        return StepResult.ok()

    async def can_execute(self, context: StepContext) -> bool:
        try:
            return _extract_configuration(context).delay_seconds > 0
        except Exception:
            return False

    async def execute(self, context: StepContext) -> StepResult:
        config = _extract_configuration(context)
        logger.info("Delaying", delay_seconds=config.delay_seconds, step_name=context.step_name)
        await asyncio.sleep(config.delay_seconds)

        return StepResult.ok({
            "delay_completed": True,
            "delay_seconds": config.delay_seconds,
            "completed_at": utcnow().isoformat(),
        })

    @classmethod
    def get_config_schema(cls) -> Dict[str, Any]:
        return {
            "type": "object",
            "required": ["delay_seconds"],
            "properties": {
                "delay_seconds": {"type": "number", "exclusiveMinimum": 0},
            },
        }
