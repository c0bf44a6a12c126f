from __future__ import annotations

import html as html_module
import logging
import re

import httpx

from design_studio.core.config import EMAIL_FROM, HTTP_TIMEOUT_SECONDS
from design_studio.mail.base import EmailSendResult, Mailer

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"


def html_to_text(content: str) -> str:
    text = re.sub(r"<(script|style)[^>]*>.*?</\1>", "", content, flags=re.DOTALL | re.I)
    text = re.sub(r"<[^>]+>", " ", text)
    text = re.sub(r"\s+", " ", text).strip()
    return html_module.unescape(text)


class ResendMailer(Mailer):
    def __init__(self, api_key: str, *, sender: str = EMAIL_FROM, timeout: float = HTTP_TIMEOUT_SECONDS) -> None:
        self._api_key = api_key
        self._sender = sender
        self._timeout = timeout

    def send(self, *, to: str, subject: str, html: str) -> EmailSendResult:
        payload = {
            "from": self._sender,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        text = html_to_text(html)
        if text:
            payload["text"] = text
        headers = {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}

        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.post(RESEND_SEND_URL, headers=headers, json=payload)
        except httpx.TimeoutException:
            logger.warning("[EMAIL] resend timeout to=%s", to)
            return EmailSendResult(status="failed", error="Connection timeout")
        except httpx.HTTPError as exc:
            logger.warning("[EMAIL] resend request failed to=%s error=%s", to, exc)
            return EmailSendResult(status="failed", error=str(exc))

        if response.status_code >= 400:
            error = response.text[:500]
            logger.warning("[EMAIL] resend rejected status=%s to=%s", response.status_code, to)
            return EmailSendResult(status="failed", error=f"HTTP {response.status_code}: {error}")

        try:
            message_id = response.json().get("id")
        except ValueError:
            message_id = None
        return EmailSendResult(status="sent", provider_message_id=message_id)
