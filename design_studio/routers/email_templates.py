from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from design_studio.core.database import get_db
from design_studio.deps import require_admin
from design_studio.models.email import EmailTemplate
from design_studio.models.user import User
from design_studio.services.email_templates import DEFAULT_TEMPLATES, render_string

router = APIRouter(prefix="/email-templates", tags=["email-templates"])


class TemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    subject: str = Field(..., min_length=1, max_length=500)
    body: str = Field(..., min_length=1)
    trigger_event: Optional[str] = Field(None, max_length=100)
    is_active: bool = True


class TemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    subject: Optional[str] = Field(None, min_length=1, max_length=500)
    body: Optional[str] = Field(None, min_length=1)
    trigger_event: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None


class TemplatePreview(BaseModel):
    variables: dict = Field(default_factory=dict)


def _template_to_dict(template: EmailTemplate) -> dict:
    return {
        "id": template.id,
        "name": template.name,
        "subject": template.subject,
        "body": template.body,
        "trigger_event": template.trigger_event,
        "is_active": bool(template.is_active),
        "created_at": template.created_at,
        "updated_at": template.updated_at,
    }


def _ensure_template(db: Session, template_id: int) -> EmailTemplate:
    template = db.query(EmailTemplate).filter(EmailTemplate.id == template_id).first()
    if not template:
        raise HTTPException(status_code=404, detail="Email template not found")
    return template


@router.get("")
def list_templates(_: User = Depends(require_admin), db: Session = Depends(get_db)):
    templates = db.query(EmailTemplate).order_by(EmailTemplate.name.asc()).all()
    return {
        "templates": [_template_to_dict(template) for template in templates],
        "default_events": sorted(DEFAULT_TEMPLATES),
    }


@router.post("", status_code=201)
def create_template(payload: TemplateCreate, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    template = EmailTemplate(**payload.model_dump())
    try:
        db.add(template)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="Template name already exists") from exc
    db.refresh(template)
    return _template_to_dict(template)


@router.get("/{template_id}")
def get_template(template_id: int, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    return _template_to_dict(_ensure_template(db, template_id))


@router.put("/{template_id}")
def update_template(
    template_id: int,
    payload: TemplateUpdate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    template = _ensure_template(db, template_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(template, key, value)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="Template name already exists") from exc
    db.refresh(template)
    return _template_to_dict(template)


@router.post("/{template_id}/preview")
def preview_template(
    template_id: int,
    payload: TemplatePreview,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    template = _ensure_template(db, template_id)
    return {
        "subject": render_string(template.subject, payload.variables, escape=False),
        "body": render_string(template.body, payload.variables),
    }


@router.delete("/{template_id}")
def delete_template(template_id: int, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    template = _ensure_template(db, template_id)
    db.delete(template)
    db.commit()
    return {"ok": True}
