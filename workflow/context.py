"""Step context assembly.

A step sees:
- the workflow input merged with ``step_<name>`` entries holding the
  outputs of completed steps that come before it in the fixed order
  (by order, not by completion time);
- its step definition's configuration overlaid with the workflow step's
  own configuration;
- its own stored input document, untouched;
- its retry counters.
"""

from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import STEP_OUTPUT_KEY_PREFIX
from core.types import JsonDocument, JsonValue
from core.utils import is_empty_document, merge_documents
from db.models import StepExecution
from services.execution_service import ExecutionService
from steps.base_step import StepContext


def build_workflow_data(input_data: JsonValue, prior_steps: Iterable[StepExecution]) -> JsonDocument:
    """Merge workflow input with prior step outputs.

    A non-object input is exposed under the ``input`` key.
    """
    if isinstance(input_data, dict):
        data = dict(input_data)
    elif input_data is not None:
        data = {"input": input_data}
    else:
        data = {}

    for step in prior_steps:
        if is_empty_document(step.output_data):
            continue
        data[f"{STEP_OUTPUT_KEY_PREFIX}{step.step_name}"] = step.output_data
    return data


def build_configuration(step_execution: StepExecution) -> JsonValue:
    workflow_step = step_execution.workflow_step
    return merge_documents(
        workflow_step.step_definition.configuration,
        workflow_step.step_configuration,
    )


class ContextBuilder:
    """Build a StepContext from persisted rows."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.executions = ExecutionService(session)

    async def build(self, step_execution: StepExecution) -> StepContext:
        execution = step_execution.workflow_execution
        workflow_step = step_execution.workflow_step
        step_definition = workflow_step.step_definition

        prior_steps = await self.executions.completed_prior_steps(
            execution.id, workflow_step.order
        )

        return StepContext(
            workflow_execution_id=execution.id,
            step_execution_id=step_execution.id,
            workflow_definition_id=execution.workflow_definition_id,
            step_definition_id=step_definition.id,
            step_type=step_definition.step_type,
            step_name=step_definition.name,
            order=workflow_step.order,
            configuration=build_configuration(step_execution),
            input_data=step_execution.input_data,
            workflow_data=build_workflow_data(execution.input_data, prior_steps),
            retry_count=step_execution.retry_count,
            max_retries=step_execution.max_retries,
        )
