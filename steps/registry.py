"""
Step Type Registry — explicit mapping of step type strings to implementations.

Populated at startup with the built-in steps; applications register
their own step types with register(). Resolution is a dictionary lookup,
never a scan of loaded code.
"""

from typing import Callable, Dict, Optional, Union

from core.exceptions import UnknownStepTypeError
from steps.base_step import BaseStep
from steps.implementations.delay_step import DelayStep
from steps.implementations.email_step import EmailStep
from steps.implementations.log_step import LogStep

StepFactory = Callable[[], BaseStep]

BUILTIN_STEP_TYPES: Dict[str, type] = {
    LogStep.step_type: LogStep,
    DelayStep.step_type: DelayStep,
    EmailStep.step_type: EmailStep,
}


class StepRegistry:
    """Central registry for all step type implementations."""

    def __init__(self, include_builtins: bool = True):
        self._factories: Dict[str, StepFactory] = {}
        if include_builtins:
            self._register_builtin_steps()

    def _register_builtin_steps(self):
        for step_type, step_class in BUILTIN_STEP_TYPES.items():
            self.register(step_type, step_class)

    def register(self, step_type: str, factory: Union[StepFactory, type]) -> None:
        """Register a step class or zero-argument factory under a type name."""
        self._factories[step_type] = factory

    def unregister(self, step_type: str) -> None:
        self._factories.pop(step_type, None)

    def is_registered(self, step_type: str) -> bool:
        return step_type in self._factories

    def create(self, step_type: str) -> BaseStep:
        """Create a step implementation for ``step_type``.

        Raises:
            UnknownStepTypeError: If nothing is registered under that name
        """
        factory = self._factories.get(step_type)
        if factory is None:
            raise UnknownStepTypeError(step_type)
        return factory()

    def list_all(self) -> list:
        """List registered step types with metadata."""
        items = []
        for step_type, factory in self._factories.items():
            cls = factory if isinstance(factory, type) else None
            items.append({
                "step_type": step_type,
                "display_name": getattr(cls, "display_name", step_type),
                "description": getattr(cls, "description", ""),
                "config_schema": cls.get_config_schema() if cls else {},
            })
        return items

    @property
    def available_types(self) -> list:
        return list(self._factories.keys())


# Singleton
_registry: Optional[StepRegistry] = None


def get_step_registry() -> StepRegistry:
    """Get or create the singleton step registry."""
    global _registry
    if _registry is None:
        _registry = StepRegistry()
    return _registry
