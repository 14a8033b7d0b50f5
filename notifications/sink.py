"""Notification sinks for execution status events.

The engine reports four events. Delivery is best-effort: the engine
calls sinks through SafeNotifier, which logs and drops any failure so a
broken sink can never fail or block an engine operation.
"""

from typing import Any, Iterable

import structlog

from core.utils import utcnow

logger = structlog.get_logger(__name__)


# ─── Event payloads ───────────────────────────────────────────

def _iso(value) -> Any:
    return value.isoformat() if value is not None else None


def execution_event(execution) -> dict:
    """Status payload for a WorkflowExecution."""
    definition = getattr(execution, "workflow_definition", None)
    duration_ms = None
    if execution.started_time and execution.completed_time:
        duration_ms = int((execution.completed_time - execution.started_time).total_seconds() * 1000)
    return {
        "execution_id": execution.id,
        "workflow_definition_id": execution.workflow_definition_id,
        "workflow_name": definition.name if definition is not None else "Unknown",
        "status": execution.status,
        "scheduled_time": _iso(execution.scheduled_time),
        "started_time": _iso(execution.started_time),
        "completed_time": _iso(execution.completed_time),
        "duration_ms": duration_ms,
        "error_message": execution.error_message,
        "updated_at": utcnow().isoformat(),
    }


def step_event(step_execution) -> dict:
    """Status payload for a StepExecution."""
    return {
        "step_execution_id": step_execution.id,
        "workflow_execution_id": step_execution.workflow_execution_id,
        "status": step_execution.status,
        "started_time": _iso(step_execution.started_time),
        "completed_time": _iso(step_execution.completed_time),
        "scheduled_time": _iso(step_execution.scheduled_time),
        "retry_count": step_execution.retry_count,
        "error_message": step_execution.error_message,
        "updated_at": utcnow().isoformat(),
    }


# ─── Sinks ────────────────────────────────────────────────────

class NotificationSink:
    """Receiver of execution events.

    Every method is a no-op here, so this class doubles as the sink used
    when nothing is configured. Subclasses override what they need.
    """

    async def on_new_execution_started(self, execution) -> None:
        pass

    async def on_workflow_status_changed(self, execution) -> None:
        pass

    async def on_step_status_changed(self, step_execution) -> None:
        pass

    async def on_execution_completed(self, execution) -> None:
        pass


class LoggingNotificationSink(NotificationSink):
    """Write every event to the structured log."""

    async def on_new_execution_started(self, execution) -> None:
        logger.info("execution.started", **execution_event(execution))

    async def on_workflow_status_changed(self, execution) -> None:
        logger.info("execution.status_changed", **execution_event(execution))

    async def on_step_status_changed(self, step_execution) -> None:
        logger.debug("step.status_changed", **step_event(step_execution))

    async def on_execution_completed(self, execution) -> None:
        logger.info("execution.completed", **execution_event(execution))


class CompositeNotificationSink(NotificationSink):
    """Fan each event out to several sinks, isolating their failures."""

    def __init__(self, sinks: Iterable[NotificationSink]):
        self.sinks = [SafeNotifier(sink) for sink in sinks]

    async def on_new_execution_started(self, execution) -> None:
        for sink in self.sinks:
            await sink.on_new_execution_started(execution)

    async def on_workflow_status_changed(self, execution) -> None:
        for sink in self.sinks:
            await sink.on_workflow_status_changed(execution)

    async def on_step_status_changed(self, step_execution) -> None:
        for sink in self.sinks:
            await sink.on_step_status_changed(step_execution)

    async def on_execution_completed(self, execution) -> None:
        for sink in self.sinks:
            await sink.on_execution_completed(execution)


class SafeNotifier(NotificationSink):
    """Wrap a sink so that its exceptions are logged and swallowed."""

    def __init__(self, sink: NotificationSink = None):
        self.sink = sink or NotificationSink()

    async def _deliver(self, event: str, entity) -> None:
        try:
            await getattr(self.sink, event)(entity)
        except Exception as e:
            logger.warning(
                "Notification delivery failed",
                notification_event=event,
                sink=type(self.sink).__name__,
                entity_id=getattr(entity, "id", None),
                error=str(e),
            )

    async def on_new_execution_started(self, execution) -> None:
        await self._deliver("on_new_execution_started", execution)

    async def on_workflow_status_changed(self, execution) -> None:
        await self._deliver("on_workflow_status_changed", execution)

    async def on_step_status_changed(self, step_execution) -> None:
        await self._deliver("on_step_status_changed", step_execution)

    async def on_execution_completed(self, execution) -> None:
        await self._deliver("on_execution_completed", execution)
