from __future__ import annotations

from design_studio.core.config import RESEND_API_KEY
from design_studio.mail.base import Mailer
from design_studio.mail.log_provider import LogMailer
from design_studio.mail.resend_provider import ResendMailer

_log_mailer = LogMailer()


def select_mailer(api_key: str = RESEND_API_KEY) -> Mailer:
    if api_key:
        return ResendMailer(api_key)
    return _log_mailer


def get_mailer() -> Mailer:
    return select_mailer()
