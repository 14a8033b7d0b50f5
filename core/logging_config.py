"""Structured logging configuration using structlog.

JSON logs in production, colored console output in development. Every
entry carries the service name and environment. Jobs run by a worker
(Celery or in-process) bind the job name and the execution or step
execution id through contextvars, so engine, step and SQL logs emitted
while the job runs can be correlated without passing loggers around.
"""

import logging
import sys
from contextlib import AbstractContextManager
from typing import Optional

import structlog
from app.config import Settings, get_settings
from core.constants import JobName

# Which id a job's first argument is, per job
JOB_ID_KEYS = {
    JobName.PROCESS_WORKFLOW: "execution_id",
    JobName.PROCESS_STEP: "step_execution_id",
}


def add_service_context(settings: Settings):
    """Processor adding ``service`` and ``environment`` to every entry."""

    def processor(logger, method_name, event_dict):
        event_dict.setdefault("service", settings.APP_NAME)
        event_dict.setdefault("environment", settings.ENVIRONMENT)
        return event_dict

    return processor


def job_log_context(job: str, entity_id: Optional[str] = None) -> AbstractContextManager:
    """Bind a job and the id it works on for the duration of a block.

    Usage:
        with job_log_context(JobName.PROCESS_STEP, step_execution_id):
            await engine.process_step(step_execution_id)
    """
    try:
        job = JobName(job)
    except ValueError:
        return structlog.contextvars.bound_contextvars(job=str(job))

    bound = {"job": job.value}
    if entity_id is not None:
        bound[JOB_ID_KEYS[job]] = entity_id
    return structlog.contextvars.bound_contextvars(**bound)


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure structured logging for the engine and its workers.

    In development: colored, human-readable console output
    In production: JSON-formatted logs for log aggregation
    """
    settings = settings or get_settings()

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        add_service_context(settings),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_development or settings.LOG_FORMAT == "text":
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    # SQL statements only when echo is on
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.SQLALCHEMY_ECHO else logging.WARNING
    )
    # Webhook deliveries are logged by the sink itself
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("celery").setLevel(logging.INFO)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
