"""Webhook notification sink — POSTs execution events to an HTTP endpoint."""

from typing import Optional

import httpx
import structlog

from core.utils import utcnow
from notifications.sink import NotificationSink, execution_event, step_event

logger = structlog.get_logger(__name__)


class WebhookNotificationSink(NotificationSink):
    """Deliver events as JSON to ``url``.

    Payload:
        {"event": "<event name>", "data": {...}, "timestamp": "<iso>"}

    Non-2xx responses raise httpx.HTTPStatusError; callers wrap this
    sink in SafeNotifier so errors never reach the engine.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        headers: Optional[dict] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.headers = {
            "Content-Type": "application/json",
            **(headers or {}),
        }
        self._transport = transport

    async def _post(self, event: str, data: dict) -> None:
        payload = {
            "event": event,
            "data": data,
            "timestamp": utcnow().isoformat(),
        }
        headers = {**self.headers, "X-Workflow-Event": event}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(self.url, json=payload, headers=headers)
            response.raise_for_status()
        logger.debug("Webhook delivered", notification_event=event, status_code=response.status_code)

    async def on_new_execution_started(self, execution) -> None:
        await self._post("NewExecutionStarted", execution_event(execution))

    async def on_workflow_status_changed(self, execution) -> None:
        await self._post("WorkflowExecutionStatusChanged", execution_event(execution))

    async def on_step_status_changed(self, step_execution) -> None:
        await self._post("StepExecutionStatusChanged", step_event(step_execution))

    async def on_execution_completed(self, execution) -> None:
        await self._post("ExecutionCompleted", execution_event(execution))
