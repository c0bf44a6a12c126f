from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping

from sqlalchemy.orm import Session

from design_studio.core.clock import utcnow
from design_studio.core.config import DRAFT_RETENTION_DAYS
from design_studio.models.job import JOB_PRIORITIES, JOB_STATUSES, Job, JobStatusHistory
from design_studio.services.designer_assignment import find_designer_for_package
from design_studio.services.job_access import JobAccessService

logger = logging.getLogger(__name__)
JOBS_PREFIX = "[JOBS]"

DRAFT_TITLE = "Untitled Job"
EDITABLE_FIELDS = {"title", "description", "department_id", "package_type", "priority", "due_date"}
PATCHABLE_FIELDS = EDITABLE_FIELDS | {"status", "designer_id", "archived"}
NON_NULLABLE_FIELDS = {"title", "status", "priority", "archived"}

AssignFn = Callable[[Session, str | None], int | None]


class JobNotFound(LookupError):
    pass


class JobStateConflict(ValueError):
    pass


def serialize_description(value: Any) -> str | None:
    """Intake forms send structured data; store it as JSON text."""
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def touch(job: Job, now: datetime | None = None) -> None:
    now = now or utcnow()
    job.updated_at = now
    job.last_activity_date = now


def _validate_status(value: str) -> str:
    if value not in JOB_STATUSES:
        raise ValueError(f"Invalid status: {value}")
    return value


def _validate_priority(value: str) -> str:
    if value not in JOB_PRIORITIES:
        raise ValueError(f"Invalid priority: {value}")
    return value


def record_status_change(
    db: Session,
    job: Job,
    new_status: str,
    *,
    changed_by: int | None,
    notes: str | None = None,
) -> JobStatusHistory | None:
    old_status = job.status
    if old_status == new_status:
        return None
    job.status = new_status
    if new_status == "Complete":
        job.completed_date = utcnow()
    entry = JobStatusHistory(
        job_id=job.id,
        changed_by=changed_by,
        old_status=old_status,
        new_status=new_status,
        notes=notes,
    )
    db.add(entry)
    logger.info("%s status job_id=%s %s -> %s by=%s", JOBS_PREFIX, job.id, old_status, new_status, changed_by)
    return entry


def _maybe_assign(db: Session, job: Job, assign: AssignFn) -> None:
    if job.designer_id is not None or not job.package_type:
        return
    designer_id = assign(db, job.package_type)
    if designer_id is not None:
        job.designer_id = designer_id


def create_job(
    db: Session,
    *,
    client_id: int,
    title: str,
    description: Any = None,
    department_id: int | None = None,
    package_type: str | None = None,
    priority: str = "Medium",
    designer_id: int | None = None,
    due_date: datetime | None = None,
    is_draft: bool = False,
    created_by: int | None = None,
    assign: AssignFn = find_designer_for_package,
) -> Job:
    title = (title or "").strip()
    if not title:
        raise ValueError("Title is required")

    now = utcnow()
    job = Job(
        client_id=client_id,
        title=title,
        description=serialize_description(description),
        department_id=department_id,
        package_type=package_type,
        priority=_validate_priority(priority or "Medium"),
        designer_id=designer_id,
        due_date=due_date,
        is_draft=is_draft,
        archived=False,
        status="Draft" if is_draft else "Pending",
        created_at=now,
        updated_at=now,
        last_activity_date=now,
    )
    _maybe_assign(db, job, assign)

    db.add(job)
    db.flush()
    db.add(JobStatusHistory(job_id=job.id, changed_by=created_by or client_id, old_status=None, new_status=job.status))
    logger.info(
        "%s created job_id=%s client_id=%s status=%s designer_id=%s",
        JOBS_PREFIX,
        job.id,
        client_id,
        job.status,
        job.designer_id,
    )
    return job


def get_job(db: Session, job_id: int) -> Job:
    job = db.query(Job).filter(Job.id == job_id).first()
    if not job:
        raise JobNotFound("Job not found")
    return job


def get_job_for_user(db: Session, job_id: int, user: Any) -> Job:
    job = get_job(db, job_id)
    JobAccessService.ensure_can_access(user, job)
    return job


def list_jobs(db: Session, user: Any, *, archived: bool | None = False, include_drafts: bool = True) -> list[Job]:
    query = JobAccessService.scope_query(db.query(Job), user)
    if archived is not None:
        query = query.filter(Job.archived.is_(archived))
    if not include_drafts:
        query = query.filter(Job.is_draft.is_(False))
    return query.order_by(Job.created_at.desc(), Job.id.desc()).all()


def update_job(db: Session, job: Job, user: Any, changes: Mapping[str, Any]) -> Job:
    unknown = set(changes) - PATCHABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown fields: {sorted(unknown)}")
    JobAccessService.ensure_can_patch(user, job, changes.keys())

    for key, value in changes.items():
        if value is None and key in NON_NULLABLE_FIELDS:
            raise ValueError(f"{key} cannot be null")
        if key == "status":
            record_status_change(db, job, _validate_status(value), changed_by=user.id)
        elif key == "priority":
            job.priority = _validate_priority(value)
        elif key == "description":
            job.description = serialize_description(value)
        elif key == "title":
            if not (value or "").strip():
                raise ValueError("Title is required")
            job.title = value.strip()
        else:
            setattr(job, key, value)

    touch(job)
    return job


def update_draft(
    db: Session,
    job: Job,
    user: Any,
    fields: Mapping[str, Any],
    *,
    make_active: bool = False,
    designer_id: int | None = None,
    assign: AssignFn = find_designer_for_package,
) -> Job:
    JobAccessService.ensure_owner(user, job)
    if not job.is_draft:
        raise JobStateConflict("Job is no longer a draft")

    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown fields: {sorted(unknown)}")

    for key, value in fields.items():
        if key == "description":
            job.description = serialize_description(value)
        elif key == "priority":
            job.priority = _validate_priority(value)
        elif key == "title":
            job.title = (value or "").strip() or DRAFT_TITLE
        else:
            setattr(job, key, value)

    if designer_id is not None:
        job.designer_id = designer_id

    if make_active:
        _maybe_assign(db, job, assign)
        job.is_draft = False
        record_status_change(db, job, "Pending", changed_by=user.id, notes="Draft submitted")

    touch(job)
    return job


def get_or_create_draft(db: Session, user: Any) -> tuple[Job, bool]:
    draft = (
        db.query(Job)
        .filter(Job.client_id == user.id, Job.is_draft.is_(True))
        .order_by(Job.updated_at.desc(), Job.id.desc())
        .first()
    )
    if draft:
        return draft, False
    draft = create_job(db, client_id=user.id, title=DRAFT_TITLE, is_draft=True, created_by=user.id)
    return draft, True


def cleanup_expired_drafts(db: Session, *, retention_days: int = DRAFT_RETENTION_DAYS, now: datetime | None = None) -> int:
    cutoff = (now or utcnow()) - timedelta(days=retention_days)
    expired = db.query(Job).filter(Job.is_draft.is_(True), Job.updated_at < cutoff).all()
    for job in expired:
        db.delete(job)
    logger.info("%s cleaned expired drafts count=%s cutoff=%s", JOBS_PREFIX, len(expired), cutoff.isoformat())
    return len(expired)


def delete_job(db: Session, job: Job, user: Any) -> None:
    JobAccessService.ensure_staff(user)
    db.delete(job)
    logger.info("%s deleted job_id=%s by=%s", JOBS_PREFIX, job.id, user.id)
