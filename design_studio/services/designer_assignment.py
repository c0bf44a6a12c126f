from __future__ import annotations

import logging
from typing import Any, Protocol, Sequence

from sqlalchemy.orm import Session

from design_studio.core.database import unit_of_work
from design_studio.models.designer_assignment import JOB_TYPES, DesignerAssignment
from design_studio.models.user import User

logger = logging.getLogger(__name__)
ASSIGNMENT_PREFIX = "[DESIGNER_ASSIGNMENT]"

# Checked in order; first match wins.
_PACKAGE_TYPE_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("sell sheet",), "sell_sheets"),
    (("virtual prototype", "3d"), "virtual_prototypes"),
    (("line drawing", "technical"), "line_drawings"),
)


def map_package_type_to_job_type(package_type: str | None) -> str | None:
    if not package_type:
        return None
    normalized = package_type.strip().lower()
    if normalized in JOB_TYPES:
        return normalized
    normalized = normalized.replace("_", " ").replace("-", " ")
    for needles, job_type in _PACKAGE_TYPE_RULES:
        if any(needle in normalized for needle in needles):
            return job_type
    return None


class AssignmentStrategy(Protocol):
    def select(self, candidates: Sequence[Any]) -> Any | None:
        ...


class HighestPriorityFirst:
    """Always picks the active row with the lowest priority number."""

    def select(self, candidates: Sequence[Any]) -> Any | None:
        if not candidates:
            return None
        return min(candidates, key=lambda row: (row.priority, row.id or 0))


DEFAULT_STRATEGY: AssignmentStrategy = HighestPriorityFirst()


def active_assignments(db: Session, job_type: str) -> list[DesignerAssignment]:
    return (
        db.query(DesignerAssignment)
        .filter(DesignerAssignment.job_type == job_type, DesignerAssignment.is_active.is_(True))
        .order_by(DesignerAssignment.priority.asc(), DesignerAssignment.id.asc())
        .all()
    )


def find_designer_for_package(
    db: Session,
    package_type: str | None,
    *,
    strategy: AssignmentStrategy | None = None,
) -> int | None:
    """Best effort: lookup errors are logged and yield no designer."""
    job_type = map_package_type_to_job_type(package_type)
    if job_type is None:
        logger.info("%s no bucket for package_type=%s", ASSIGNMENT_PREFIX, package_type)
        return None

    try:
        candidates = active_assignments(db, job_type)
        selected = (strategy or DEFAULT_STRATEGY).select(candidates)
    except Exception:
        logger.exception("%s lookup failed job_type=%s", ASSIGNMENT_PREFIX, job_type)
        return None

    if selected is None:
        logger.info("%s no active designers job_type=%s", ASSIGNMENT_PREFIX, job_type)
        return None
    logger.info("%s selected designer_id=%s job_type=%s", ASSIGNMENT_PREFIX, selected.designer_id, job_type)
    return selected.designer_id


def replace_assignments(db: Session, job_type: str, designer_ids: Sequence[int]) -> list[DesignerAssignment]:
    """Swap the active list of a bucket in a single transaction.

    Old rows are deactivated, never deleted.
    """
    if job_type not in JOB_TYPES:
        raise ValueError(f"Invalid job type: {job_type}")

    with unit_of_work(db):
        if designer_ids:
            found = {row.id for row in db.query(User.id).filter(User.id.in_(list(designer_ids))).all()}
            missing = [designer_id for designer_id in designer_ids if designer_id not in found]
            if missing:
                raise ValueError(f"Unknown designer ids: {missing}")

        (
            db.query(DesignerAssignment)
            .filter(DesignerAssignment.job_type == job_type, DesignerAssignment.is_active.is_(True))
            .update({DesignerAssignment.is_active: False}, synchronize_session="fetch")
        )
        created = []
        for index, designer_id in enumerate(designer_ids):
            row = DesignerAssignment(job_type=job_type, designer_id=designer_id, priority=index, is_active=True)
            db.add(row)
            created.append(row)
        db.flush()

    logger.info("%s replaced job_type=%s designers=%s", ASSIGNMENT_PREFIX, job_type, list(designer_ids))
    return created


def deactivate_assignment(db: Session, assignment_id: int) -> DesignerAssignment:
    assignment = db.query(DesignerAssignment).filter(DesignerAssignment.id == assignment_id).first()
    if not assignment:
        raise LookupError("Assignment not found")
    with unit_of_work(db):
        assignment.is_active = False
    return assignment


def grouped_assignments(db: Session) -> dict[str, list[dict[str, Any]]]:
    rows = (
        db.query(DesignerAssignment, User)
        .join(User, User.id == DesignerAssignment.designer_id)
        .filter(DesignerAssignment.is_active.is_(True))
        .order_by(DesignerAssignment.priority.asc(), DesignerAssignment.id.asc())
        .all()
    )
    grouped: dict[str, list[dict[str, Any]]] = {job_type: [] for job_type in JOB_TYPES}
    for assignment, designer in rows:
        grouped.setdefault(assignment.job_type, []).append(
            {
                "id": assignment.id,
                "designer_id": assignment.designer_id,
                "designer_name": designer.name,
                "designer_email": designer.email,
                "priority": assignment.priority,
            }
        )
    return grouped
