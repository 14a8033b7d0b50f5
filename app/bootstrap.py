"""Workflow engine wiring.

Builds a WorkflowEngine from settings: session factory, job scheduler,
step registry and notification sinks. Anything passed explicitly wins
over the configured default.
"""

from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings, get_settings
from db.session import get_session_factory
from notifications.sink import (
    CompositeNotificationSink,
    LoggingNotificationSink,
    NotificationSink,
)
from notifications.webhook import WebhookNotificationSink
from steps.registry import StepRegistry, get_step_registry
from worker.scheduler import CeleryJobScheduler, InProcessJobScheduler, JobScheduler
from workflow.engine import WorkflowEngine
from workflow.retry_strategies import RetryStrategy

logger = structlog.get_logger(__name__)


def create_notifier(settings: Settings) -> Optional[NotificationSink]:
    """Notification sinks enabled in settings, or None."""
    sinks: list[NotificationSink] = []
    if settings.NOTIFICATION_LOGGING:
        sinks.append(LoggingNotificationSink())
    if settings.NOTIFICATION_WEBHOOK_URL:
        sinks.append(WebhookNotificationSink(
            settings.NOTIFICATION_WEBHOOK_URL,
            timeout=settings.NOTIFICATION_WEBHOOK_TIMEOUT,
        ))
    if not sinks:
        return None
    if len(sinks) == 1:
        return sinks[0]
    return CompositeNotificationSink(sinks)


def create_scheduler(settings: Settings) -> JobScheduler:
    if settings.JOB_SCHEDULER == "in_process":
        return InProcessJobScheduler()
    if settings.JOB_SCHEDULER == "celery":
        return CeleryJobScheduler(queue=settings.CELERY_QUEUE)
    raise ValueError(f"Unknown JOB_SCHEDULER: {settings.JOB_SCHEDULER}")


def create_workflow_engine(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    scheduler: Optional[JobScheduler] = None,
    registry: Optional[StepRegistry] = None,
    notifier: Optional[NotificationSink] = None,
) -> WorkflowEngine:
    """Create a WorkflowEngine configured from settings.

    Usage:
        engine = create_workflow_engine()
        execution_id = await engine.start(workflow_definition_id, {"order_id": 42})
    """
    settings = get_settings()
    scheduler = scheduler or create_scheduler(settings)

    engine = WorkflowEngine(
        session_factory=session_factory or get_session_factory(),
        scheduler=scheduler,
        registry=registry or get_step_registry(),
        notifier=notifier if notifier is not None else create_notifier(settings),
        retry_strategy=RetryStrategy.exponential(
            base=settings.RETRY_BACKOFF_BASE,
            unit=timedelta(minutes=1),
        ),
        default_max_retries=settings.DEFAULT_STEP_MAX_RETRIES,
    )

    if isinstance(scheduler, InProcessJobScheduler) and scheduler.engine is None:
        scheduler.bind(engine)

    logger.debug(
        "Workflow engine created",
        scheduler=type(scheduler).__name__,
        step_types=engine.registry.available_types,
    )
    return engine
