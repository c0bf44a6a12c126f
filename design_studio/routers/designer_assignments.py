from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from design_studio.core.database import get_db
from design_studio.deps import require_admin, require_staff
from design_studio.models.user import User
from design_studio.services.designer_assignment import (
    deactivate_assignment,
    grouped_assignments,
    replace_assignments,
)

router = APIRouter(prefix="/designer-assignments", tags=["designer-assignments"])


class AssignmentReplace(BaseModel):
    job_type: str
    designer_ids: List[int]


@router.get("")
def list_assignments(_: User = Depends(require_staff), db: Session = Depends(get_db)):
    return grouped_assignments(db)


@router.post("")
def save_assignments(
    payload: AssignmentReplace,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        created = replace_assignments(db, payload.job_type, payload.designer_ids)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        raise HTTPException(status_code=500, detail="Failed to save designer assignments") from exc

    return {
        "ok": True,
        "job_type": payload.job_type,
        "assignments": [
            {"id": row.id, "designer_id": row.designer_id, "priority": row.priority} for row in created
        ],
    }


@router.delete("")
def remove_assignment(
    assignment_id: int = Query(..., alias="id"),
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        deactivate_assignment(db, assignment_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"ok": True}
