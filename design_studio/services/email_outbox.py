from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy.orm import Session

from design_studio.core.clock import utcnow
from design_studio.core.database import SessionLocal
from design_studio.mail.base import EmailSendResult, Mailer
from design_studio.models.email import EmailLog, EmailOutbox
from design_studio.services.email_templates import render_for_event

logger = logging.getLogger(__name__)
OUTBOX_PREFIX = "[EMAIL_OUTBOX]"

OUTBOX_STATUSES = {"pending", "sent", "failed"}


def enqueue_email(
    db: Session,
    *,
    recipient: str,
    subject: str,
    body: str,
    trigger_event: str | None = None,
    reference_type: str | None = None,
    reference_id: str | int | None = None,
) -> EmailOutbox:
    """Add a pending row to the session. Nothing is sent here."""
    entry = EmailOutbox(
        recipient=recipient,
        subject=subject,
        body=body,
        trigger_event=trigger_event,
        reference_type=reference_type,
        reference_id=str(reference_id) if reference_id is not None else None,
        status="pending",
        attempts=0,
    )
    db.add(entry)
    return entry


def enqueue_event_email(
    db: Session,
    *,
    recipient: str | None,
    trigger_event: str,
    variables: Mapping[str, Any],
    reference_type: str | None = None,
    reference_id: str | int | None = None,
) -> EmailOutbox | None:
    if not recipient:
        logger.warning("%s no recipient event=%s reference_id=%s", OUTBOX_PREFIX, trigger_event, reference_id)
        return None
    rendered = render_for_event(db, trigger_event, variables)
    return enqueue_email(
        db,
        recipient=recipient,
        subject=rendered.subject,
        body=rendered.body,
        trigger_event=trigger_event,
        reference_type=reference_type,
        reference_id=reference_id,
    )


def _last_log_id(db: Session, outbox_id: int) -> int | None:
    row = (
        db.query(EmailLog.id)
        .filter(EmailLog.outbox_id == outbox_id)
        .order_by(EmailLog.id.desc())
        .first()
    )
    return row[0] if row else None


def dispatch_outbox_entry(db: Session, entry: EmailOutbox, mailer: Mailer) -> EmailLog:
    """Send one row and append an audit log. Commits; never raises on send failure."""
    previous_log_id = _last_log_id(db, entry.id) if entry.attempts else None
    try:
        result = mailer.send(to=entry.recipient, subject=entry.subject, html=entry.body)
    except Exception as exc:
        logger.exception("%s mailer raised outbox_id=%s", OUTBOX_PREFIX, entry.id)
        result = EmailSendResult(status="failed", error=str(exc) or exc.__class__.__name__)

    entry.attempts = int(entry.attempts or 0) + 1
    log_entry = EmailLog(
        outbox_id=entry.id,
        recipient=entry.recipient,
        subject=entry.subject,
        body=entry.body,
        status="sent" if result.ok else "failed",
        error=result.error,
        provider_message_id=result.provider_message_id,
        resent_from=previous_log_id,
    )
    db.add(log_entry)
    if result.ok:
        entry.status = "sent"
        entry.sent_at = utcnow()
        entry.last_error = None
        logger.info("%s sent outbox_id=%s to=%s", OUTBOX_PREFIX, entry.id, entry.recipient)
    else:
        entry.status = "failed"
        entry.last_error = result.error
        logger.warning("%s failed outbox_id=%s error=%s", OUTBOX_PREFIX, entry.id, result.error)
    db.commit()
    return log_entry


def dispatch_pending(db: Session, mailer: Mailer, *, limit: int = 50) -> dict[str, int]:
    entries = (
        db.query(EmailOutbox)
        .filter(EmailOutbox.status == "pending")
        .order_by(EmailOutbox.id.asc())
        .limit(limit)
        .all()
    )
    summary = {"sent": 0, "failed": 0}
    for entry in entries:
        log_entry = dispatch_outbox_entry(db, entry, mailer)
        summary[log_entry.status] += 1
    return summary


def retry_outbox_entry(db: Session, outbox_id: int, mailer: Mailer) -> EmailLog:
    entry = db.query(EmailOutbox).filter(EmailOutbox.id == outbox_id).first()
    if entry is None:
        raise LookupError("Outbox entry not found")
    if entry.status == "sent":
        logger.info("%s resending already sent outbox_id=%s", OUTBOX_PREFIX, outbox_id)
    return dispatch_outbox_entry(db, entry, mailer)


def dispatch_in_background(outbox_ids: list[int], mailer: Mailer) -> None:
    """Entry point for BackgroundTasks: opens its own session."""
    db = SessionLocal()
    try:
        for outbox_id in outbox_ids:
            entry = db.query(EmailOutbox).filter(EmailOutbox.id == outbox_id).first()
            if entry is None or entry.status != "pending":
                continue
            dispatch_outbox_entry(db, entry, mailer)
    except Exception:
        logger.exception("%s background dispatch failed ids=%s", OUTBOX_PREFIX, outbox_ids)
        db.rollback()
    finally:
        db.close()
