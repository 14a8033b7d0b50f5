"""Email step — sends a message through SMTP."""

import asyncio
import smtplib
from datetime import timedelta
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Optional

import structlog
from pydantic import BaseModel

from app.config import get_settings
from core.utils import utcnow
from steps.base_step import BaseStep, StepContext, StepResult

logger = structlog.get_logger(__name__)

SMTP_RETRY_DELAY = timedelta(minutes=2)


class EmailConfiguration(BaseModel):
    to: str = ""
    subject: str = ""
    body: str = ""
    cc: Optional[str] = None
    bcc: Optional[str] = None


def _extract_configuration(context: StepContext) -> EmailConfiguration:
    if context.configuration is None:
        raise ValueError("Email configuration is required")
    return EmailConfiguration.model_validate(context.configuration)


class EmailStep(BaseStep):
    """Send an email.

    SMTP connection settings come from SMTP_* settings.

    Config:
        to: Recipient address (required for the step to run)
        subject: Subject line (required for the step to run)
        body: Plain-text body
        cc, bcc: Optional comma-separated addresses
    """

    step_type = "EmailStep"
    display_name = "Email"
    description = "Send an email through SMTP"

    async def validate_input(self, context: StepContext) -> StepResult:
        try:
            _extract_configuration(context)
        except Exception as e:
            return StepResult.fail(f"Invalid configuration: {e}")
        return StepResult.ok()

    async def can_execute(self, context: StepContext) -> bool:
        try:
            config = _extract_configuration(context)
        except Exception:
            return False
        return bool(config.to) and bool(config.subject)

    async def execute(self, context: StepContext) -> StepResult:
        config = _extract_configuration(context)
        settings = get_settings()

        msg = MIMEMultipart()
        msg["Subject"] = config.subject
        msg["From"] = settings.SMTP_FROM
        msg["To"] = config.to
        if config.cc:
            msg["Cc"] = config.cc
        msg.attach(MIMEText(config.body, "plain"))

        recipients = [config.to]
        for extra in (config.cc, config.bcc):
            if extra:
                recipients.extend(addr.strip() for addr in extra.split(",") if addr.strip())

        logger.info("Sending email", to=config.to, subject=config.subject)
        try:
            # Run in executor to avoid blocking the event loop
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._send_smtp, settings, recipients, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Email send failed", to=config.to, error=str(e))
            return StepResult.fail(str(e), should_retry=True, retry_delay=SMTP_RETRY_DELAY)

        return StepResult.ok({
            "email_sent": True,
            "to": config.to,
            "subject": config.subject,
            "sent_at": utcnow().isoformat(),
        })

    @staticmethod
    def _send_smtp(settings, recipients: list, msg: MIMEMultipart) -> None:
        """Synchronous SMTP send."""
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
            if settings.SMTP_USE_TLS:
                server.starttls()
            if settings.SMTP_USER and settings.SMTP_PASSWORD:
                server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
            server.sendmail(settings.SMTP_FROM, recipients, msg.as_string())

    @classmethod
    def get_config_schema(cls) -> Dict[str, Any]:
        return {
            "type": "object",
            "required": ["to", "subject"],
            "properties": {
                "to": {"type": "string"},
                "subject": {"type": "string"},
                "body": {"type": "string"},
                "cc": {"type": "string"},
                "bcc": {"type": "string"},
            },
        }
