from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Any, Mapping

from sqlalchemy.orm import Session

from design_studio.core.config import APP_BASE_URL
from design_studio.models.email import EmailTemplate

_PLACEHOLDER = re.compile(r"\{\{\s*([a-zA-Z0-9_]+)\s*\}\}")

_BUTTON = (
    '<div style="text-align: center; margin: 30px 0;">'
    '<a href="{{link}}" style="display: inline-block; padding: 12px 24px; background-color: #2563eb; '
    'color: white; text-decoration: none; border-radius: 5px;">{{link_label}}</a></div>'
    "<p>Or copy and paste this link into your browser:</p>"
    '<p style="word-break: break-all; color: #2563eb;">{{link}}</p>'
)


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    body: str


DEFAULT_TEMPLATES: dict[str, tuple[str, str]] = {
    "payment_confirmation": (
        "Payment received - {{items}}",
        "<p>Hi {{name}},</p><p>We received your payment of ${{amount}} for {{items}}.</p>"
        "<p>Your request is now in our queue.</p>",
    ),
    "design_package_purchased": (
        "Your Design Package is ready to start",
        "<p>Hi {{name}},</p><p>Thank you for purchasing a Design Package.</p>"
        "<p>Start with your Virtual Prototype:</p>" + _BUTTON,
    ),
    "virtual_prototype_complete": (
        "Virtual Prototype Complete - Start Your Sell Sheet",
        "<p>Great news! Your Virtual Prototype is complete.</p><p>You can now start your Sell Sheet:</p>" + _BUTTON,
    ),
    "design_package_complete": (
        "Design Package Complete!",
        "<p>Congratulations! Your Design Package is complete.</p>"
        "<p>Both your Virtual Prototype and Sell Sheet are ready.</p>" + _BUTTON,
    ),
}


def design_package_link(order_id: str) -> str:
    return f"{APP_BASE_URL}/design-package/{order_id}"


def render_string(template: str, variables: Mapping[str, Any], *, escape: bool = True) -> str:
    def _replace(match: re.Match) -> str:
        value = variables.get(match.group(1))
        if value is None:
            return ""
        return html.escape(str(value)) if escape else str(value)

    return _PLACEHOLDER.sub(_replace, template)


def find_template(db: Session, trigger_event: str) -> EmailTemplate | None:
    return (
        db.query(EmailTemplate)
        .filter(EmailTemplate.trigger_event == trigger_event, EmailTemplate.is_active.is_(True))
        .order_by(EmailTemplate.id.desc())
        .first()
    )


def render_for_event(db: Session, trigger_event: str, variables: Mapping[str, Any]) -> RenderedEmail:
    template = find_template(db, trigger_event)
    if template is not None:
        subject, body = template.subject, template.body
    elif trigger_event in DEFAULT_TEMPLATES:
        subject, body = DEFAULT_TEMPLATES[trigger_event]
    else:
        raise KeyError(f"No email template for event: {trigger_event}")
    return RenderedEmail(
        subject=render_string(subject, variables, escape=False),
        body=render_string(body, variables),
    )
