"""Fluent builder for workflow definitions.

Usage:
    builder = (
        WorkflowBuilder(registry=get_step_registry())
        .add_step("LogStep", "announce", 1, configuration={"message": "hello"})
        .add_step("DelayStep", "wait", 2, configuration={"delay_seconds": 1})
        .add_condition(2, "announce.logged == true")
    )
    definition_id = await builder.save(session, "greeting", "Says hello, then waits")
"""

from typing import Any, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ConflictError, UnknownStepTypeError, ValidationError
from db.models import StepDefinition, WorkflowDefinition, WorkflowStep
from services.workflow_service import WorkflowDefinitionService
from steps.registry import StepRegistry
from workflow.schemas import StepDefinitionModel, WorkflowDefinitionModel

logger = structlog.get_logger(__name__)


class WorkflowBuilder:
    """Collects ordered steps and persists them as a WorkflowDefinition."""

    def __init__(self, registry: Optional[StepRegistry] = None):
        self._registry = registry
        self._steps: list[StepDefinitionModel] = []

    def add_step(
        self,
        step_type: str,
        step_name: str,
        order: int,
        delay_minutes: int = 0,
        configuration: Any = None,
    ) -> "WorkflowBuilder":
        if self._registry is not None and not self._registry.is_registered(step_type):
            raise UnknownStepTypeError(step_type)
        if any(s.order == order for s in self._steps):
            raise ValidationError(f"Duplicate step order: {order}")
        try:
            step = StepDefinitionModel(
                name=step_name,
                step_type=step_type,
                order=order,
                delay_minutes=delay_minutes,
                configuration=configuration,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid step '{step_name}': {e}") from e
        self._steps.append(step)
        return self

    def add_condition(self, step_order: int, expression: str) -> "WorkflowBuilder":
        """Attach a condition rule to the step at ``step_order``.

        Rules are stored on the workflow step; evaluating them is up to
        the step implementation's ``can_execute``.
        """
        for step in self._steps:
            if step.order == step_order:
                rules = list(step.condition_rules or [])
                rules.append(expression)
                step.condition_rules = rules
                return self
        raise ValidationError(f"No step with order {step_order}")

    def build(self, name: str = "", description: Optional[str] = None) -> WorkflowDefinitionModel:
        return WorkflowDefinitionModel(
            name=name,
            description=description,
            steps=sorted(self._steps, key=lambda s: s.order),
        )

    async def save(
        self,
        session: AsyncSession,
        name: str,
        description: Optional[str] = None,
    ) -> str:
        """Persist the definition and commit. Returns the new definition id.

        Raises:
            ValidationError: If the workflow has no steps
            ConflictError: If a workflow with this name exists, or a step
                definition it names has been deactivated
        """
        model = self.build(name, description)
        if not model.name:
            raise ValidationError("Workflow name is required")
        if not model.steps:
            raise ValidationError("Workflow must have at least one step")

        if await WorkflowDefinitionService(session).get_by_name(model.name) is not None:
            raise ConflictError(f"Workflow '{model.name}' already exists")

        definition = WorkflowDefinition(
            name=model.name,
            description=model.description,
            is_active=True,
        )
        session.add(definition)

        for step in model.steps:
            step_definition = await self._get_or_create_step_definition(session, step)
            overrides = (
                step.configuration
                if step.configuration != step_definition.configuration
                else None
            )
            session.add(WorkflowStep(
                workflow_definition=definition,
                step_definition=step_definition,
                order=step.order,
                delay_minutes=step.delay_minutes,
                step_configuration=overrides,
                condition_rules=step.condition_rules,
            ))

        await session.commit()
        logger.info(
            "Workflow definition saved",
            workflow_definition_id=definition.id,
            name=definition.name,
            steps=len(model.steps),
        )
        return definition.id

    async def _get_or_create_step_definition(
        self,
        session: AsyncSession,
        step: StepDefinitionModel,
    ) -> StepDefinition:
        result = await session.execute(
            select(StepDefinition).where(
                StepDefinition.name == step.name,
                StepDefinition.step_type == step.step_type,
            )
        )
        step_definition = result.scalar_one_or_none()
        if step_definition is not None and not step_definition.is_active:
            raise ConflictError(
                f"Step definition '{step.name}' ({step.step_type}) is inactive"
            )
        if step_definition is None:
            step_definition = StepDefinition(
                name=step.name,
                step_type=step.step_type,
                description=step.description,
                configuration=step.configuration,
                is_active=True,
            )
            session.add(step_definition)
            await session.flush()
        return step_definition
