"""Log step — writes a configured message to the engine log."""

import logging
from typing import Any, Dict

import structlog
from pydantic import BaseModel

from core.utils import utcnow
from steps.base_step import BaseStep, StepContext, StepResult

logger = structlog.get_logger(__name__)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "information": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class LogConfiguration(BaseModel):
    message: str = ""
    level: str = "info"


def _extract_configuration(context: StepContext) -> LogConfiguration:
    if context.configuration is None:
        raise ValueError("Log configuration is required")
    return LogConfiguration.model_validate(context.configuration)


class LogStep(BaseStep):
    """Log a message.

    Config:
        message: Text to log (required for the step to run)
        level: debug, info, warning or error (default: info)
    """

    step_type = "LogStep"
    display_name = "Log"
    description = "Write a message to the workflow log"

    async def validate_input(self, context: StepContext) -> StepResult:
        try:
            _extract_configuration(context)
        except Exception as e:
            return StepResult.fail(f"Invalid configuration: {e}")
        return StepResult.ok()

    async def can_execute(self, context: StepContext) -> bool:
        try:
            return bool(_extract_configuration(context).message)
        except Exception:
            return False

    async def execute(self, context: StepContext) -> StepResult:
        config = _extract_configuration(context)
        level = _LEVELS.get(config.level.lower(), logging.INFO)
        logger.log(
            level,
            config.message,
            workflow_execution_id=context.workflow_execution_id,
            step_name=context.step_name,
        )
        return StepResult.ok({
            "logged": True,
            "level": config.level,
            "message": config.message,
            "logged_at": utcnow().isoformat(),
        })

    @classmethod
    def get_config_schema(cls) -> Dict[str, Any]:
        return {
            "type": "object",
            "required": ["message"],
            "properties": {
                "message": {"type": "string"},
                "level": {"type": "string", "enum": ["debug", "info", "warning", "error"]},
            },
        }
