from datetime import datetime
from typing import Any, List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from design_studio.core.database import get_db
from design_studio.deps import get_current_user, require_admin
from design_studio.models.job import Job
from design_studio.models.user import User
from design_studio.routers.payments import _payment_to_dict
from design_studio.services.job_access import JobAccessService
from design_studio.services.jobs import (
    JobNotFound,
    JobStateConflict,
    cleanup_expired_drafts,
    create_job,
    delete_job,
    get_job,
    get_job_for_user,
    get_or_create_draft,
    list_jobs,
    update_draft,
    update_job,
)
from design_studio.services.payments import payment_for_job

router = APIRouter(prefix="/jobs", tags=["jobs"])

Description = Union[str, dict, list, None]


class JobCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: Description = None
    department_id: Optional[int] = None
    package_type: Optional[str] = None
    priority: str = "Medium"
    designer_id: Optional[int] = None
    client_id: Optional[int] = None
    due_date: Optional[datetime] = None
    is_draft: bool = False


class JobUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=500)
    description: Description = None
    department_id: Optional[int] = None
    package_type: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[datetime] = None
    status: Optional[str] = None
    designer_id: Optional[int] = None
    archived: Optional[bool] = None


class DraftFields(BaseModel):
    title: Optional[str] = Field(None, max_length=500)
    description: Description = None
    department_id: Optional[int] = None
    package_type: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[datetime] = None


class DraftUpdate(BaseModel):
    job_id: int
    fields: DraftFields = Field(default_factory=DraftFields)
    make_active: bool = False
    designer_id: Optional[int] = None


class JobRead(BaseModel):
    id: int
    title: str
    description: Optional[str]
    status: str
    priority: str
    client_id: int
    designer_id: Optional[int]
    department_id: Optional[int]
    package_type: Optional[str]
    is_draft: bool
    archived: bool
    due_date: Optional[datetime]
    completed_date: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    last_activity_date: datetime


def _job_to_dict(job: Job) -> dict:
    return {
        "id": job.id,
        "title": job.title,
        "description": job.description,
        "status": job.status,
        "priority": job.priority,
        "client_id": job.client_id,
        "designer_id": job.designer_id,
        "department_id": job.department_id,
        "package_type": job.package_type,
        "is_draft": bool(job.is_draft),
        "archived": bool(job.archived),
        "due_date": job.due_date,
        "completed_date": job.completed_date,
        "created_at": job.created_at,
        "updated_at": job.updated_at,
        "last_activity_date": job.last_activity_date,
    }


def _load_job(db: Session, job_id: int, user: Any) -> Job:
    try:
        return get_job_for_user(db, job_id, user)
    except JobNotFound as exc:
        raise HTTPException(status_code=404, detail="Job not found") from exc


@router.get("", response_model=List[JobRead])
def list_jobs_route(
    archived: Optional[bool] = Query(False),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [_job_to_dict(job) for job in list_jobs(db, user, archived=archived)]


@router.post("", response_model=JobRead, status_code=201)
def create_job_route(
    payload: JobCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    client_id = user.id
    if payload.client_id is not None and payload.client_id != user.id:
        JobAccessService.ensure_staff(user)
        client_id = payload.client_id
    if payload.designer_id is not None and user.role == "client":
        raise HTTPException(status_code=403, detail="Forbidden")

    try:
        job = create_job(
            db,
            client_id=client_id,
            title=payload.title,
            description=payload.description,
            department_id=payload.department_id,
            package_type=payload.package_type,
            priority=payload.priority,
            designer_id=payload.designer_id,
            due_date=payload.due_date,
            is_draft=payload.is_draft,
            created_by=user.id,
        )
        db.commit()
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to create job") from exc

    db.refresh(job)
    return _job_to_dict(job)


@router.get("/draft", response_model=JobRead)
def get_draft_route(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    draft, created = get_or_create_draft(db, user)
    if created:
        db.commit()
        db.refresh(draft)
    return _job_to_dict(draft)


@router.put("/draft/update", response_model=JobRead)
def update_draft_route(
    payload: DraftUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        job = get_job(db, payload.job_id)
    except JobNotFound as exc:
        raise HTTPException(status_code=404, detail="Job not found") from exc

    try:
        update_draft(
            db,
            job,
            user,
            payload.fields.model_dump(exclude_unset=True),
            make_active=payload.make_active,
            designer_id=payload.designer_id,
        )
        db.commit()
    except JobStateConflict as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    db.refresh(job)
    return _job_to_dict(job)


@router.delete("/cleanup-drafts")
def cleanup_drafts_route(_: User = Depends(require_admin), db: Session = Depends(get_db)):
    deleted = cleanup_expired_drafts(db)
    db.commit()
    return {"ok": True, "deleted": deleted}


@router.get("/{job_id}", response_model=JobRead)
def get_job_route(job_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _job_to_dict(_load_job(db, job_id, user))


@router.patch("/{job_id}", response_model=JobRead)
def update_job_route(
    job_id: int,
    payload: JobUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    job = _load_job(db, job_id, user)
    try:
        update_job(db, job, user, payload.model_dump(exclude_unset=True))
        db.commit()
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    db.refresh(job)
    return _job_to_dict(job)


@router.delete("/{job_id}")
def delete_job_route(job_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    job = _load_job(db, job_id, user)
    delete_job(db, job, user)
    db.commit()
    return {"ok": True}


@router.get("/{job_id}/history")
def job_history_route(job_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    job = _load_job(db, job_id, user)
    return [
        {
            "id": entry.id,
            "old_status": entry.old_status,
            "new_status": entry.new_status,
            "changed_by": entry.changed_by,
            "notes": entry.notes,
            "created_at": entry.created_at,
        }
        for entry in job.status_history
    ]


@router.get("/{job_id}/payment")
def job_payment_route(job_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    job = _load_job(db, job_id, user)
    payment = payment_for_job(db, job.id)
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    return _payment_to_dict(payment)
