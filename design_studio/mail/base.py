from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass
class EmailSendResult:
    status: str  # sent | failed
    provider_message_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "sent"


class Mailer(Protocol):
    def send(self, *, to: str, subject: str, html: str) -> EmailSendResult:
        ...
