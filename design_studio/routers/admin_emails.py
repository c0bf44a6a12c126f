import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from design_studio.core.database import get_db
from design_studio.deps import require_admin
from design_studio.mail.base import Mailer
from design_studio.mail.service import get_mailer
from design_studio.models.email import EmailLog, EmailOutbox
from design_studio.models.user import User
from design_studio.services.email_outbox import OUTBOX_STATUSES, dispatch_pending, retry_outbox_entry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/emails", tags=["admin-emails"])


def _log_to_dict(entry: EmailLog) -> dict:
    return {
        "id": entry.id,
        "outbox_id": entry.outbox_id,
        "recipient": entry.recipient,
        "subject": entry.subject,
        "status": entry.status,
        "error": entry.error,
        "provider_message_id": entry.provider_message_id,
        "resent_from": entry.resent_from,
        "created_at": entry.created_at,
    }


def _outbox_to_dict(entry: EmailOutbox) -> dict:
    return {
        "id": entry.id,
        "recipient": entry.recipient,
        "subject": entry.subject,
        "trigger_event": entry.trigger_event,
        "reference_type": entry.reference_type,
        "reference_id": entry.reference_id,
        "status": entry.status,
        "attempts": entry.attempts,
        "last_error": entry.last_error,
        "created_at": entry.created_at,
        "sent_at": entry.sent_at,
    }


@router.get("")
def list_email_logs(
    status: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(EmailLog)
    if status:
        query = query.filter(EmailLog.status == status)
    logs = query.order_by(EmailLog.id.desc()).limit(limit).all()
    return [_log_to_dict(entry) for entry in logs]


@router.get("/outbox")
def list_outbox(
    status: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(EmailOutbox)
    if status:
        if status not in OUTBOX_STATUSES:
            raise HTTPException(status_code=400, detail="Invalid outbox status")
        query = query.filter(EmailOutbox.status == status)
    entries = query.order_by(EmailOutbox.id.desc()).limit(limit).all()
    return [_outbox_to_dict(entry) for entry in entries]


@router.post("/outbox/{outbox_id}/retry")
def retry_outbox(
    outbox_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    try:
        log_entry = retry_outbox_entry(db, outbox_id, mailer)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    logger.info("[EMAIL_OUTBOX] manual retry outbox_id=%s by=%s status=%s", outbox_id, admin.id, log_entry.status)
    return _log_to_dict(log_entry)


@router.post("/dispatch")
def dispatch_outbox(
    limit: int = Query(50, ge=1, le=500),
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    return dispatch_pending(db, mailer, limit=limit)
