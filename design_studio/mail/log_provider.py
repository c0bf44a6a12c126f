from __future__ import annotations

import logging
import uuid

from design_studio.mail.base import EmailSendResult, Mailer

logger = logging.getLogger(__name__)


class LogMailer(Mailer):
    """Used when no mail API key is configured: the message is only logged."""

    def send(self, *, to: str, subject: str, html: str) -> EmailSendResult:
        logger.info("[EMAIL] not configured, logging only to=%s subject=%s", to, subject)
        return EmailSendResult(status="sent", provider_message_id=f"log-{uuid.uuid4().hex[:10]}")
