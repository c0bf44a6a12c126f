from __future__ import annotations

import logging
from typing import Any, Iterable

from fastapi import HTTPException, status
from sqlalchemy import false
from sqlalchemy.orm import Query

from design_studio.models.job import Job

logger = logging.getLogger(__name__)

STAFF_ONLY_FIELDS = {"status", "designer_id", "archived"}


class JobAccessService:
    """Role scoping for jobs: clients see their own, designers their assigned, staff all."""

    @staticmethod
    def normalize_role(role: str | None) -> str:
        return (role or "").strip().lower()

    @classmethod
    def is_staff(cls, user: Any) -> bool:
        return cls.normalize_role(user.role) in {"manager", "admin"}

    @staticmethod
    def log_access_denied(*, reason: str, user: Any, job_id: int | None) -> None:
        logger.warning(
            "Access denied (%s): user_id=%s user_role=%s job_id=%s",
            reason,
            getattr(user, "id", None),
            getattr(user, "role", None),
            job_id,
        )

    @classmethod
    def can_access(cls, user: Any, job: Any) -> bool:
        role = cls.normalize_role(user.role)
        if role in {"manager", "admin"}:
            return True
        if role == "client":
            return job.client_id == user.id
        if role == "designer":
            return job.designer_id == user.id
        return False

    @classmethod
    def ensure_can_access(cls, user: Any, job: Any) -> None:
        if not cls.can_access(user, job):
            cls.log_access_denied(reason="not_owner", user=user, job_id=getattr(job, "id", None))
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    @classmethod
    def ensure_can_patch(cls, user: Any, job: Any, fields: Iterable[str]) -> None:
        cls.ensure_can_access(user, job)
        if cls.normalize_role(user.role) != "client":
            return
        blocked = sorted(STAFF_ONLY_FIELDS.intersection(fields))
        if blocked:
            cls.log_access_denied(reason=f"staff_fields:{','.join(blocked)}", user=user, job_id=job.id)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    @classmethod
    def ensure_staff(cls, user: Any) -> None:
        if not cls.is_staff(user):
            cls.log_access_denied(reason="role_denied", user=user, job_id=None)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    @classmethod
    def scope_query(cls, query: Query, user: Any) -> Query:
        role = cls.normalize_role(user.role)
        if role in {"manager", "admin"}:
            return query
        if role == "client":
            return query.filter(Job.client_id == user.id)
        if role == "designer":
            return query.filter(Job.designer_id == user.id)
        return query.filter(false())

    @classmethod
    def ensure_owner(cls, user: Any, job: Any) -> None:
        if job.client_id != user.id:
            cls.log_access_denied(reason="not_job_owner", user=user, job_id=getattr(job, "id", None))
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
