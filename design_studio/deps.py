# design_studio/deps.py
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from design_studio.core.database import get_db
from design_studio.core.request_context import set_request_context
from design_studio.models.user import User
from design_studio.services.auth import decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)

logger = logging.getLogger(__name__)


def _extract_user_id(payload: Dict[str, Any]) -> Optional[int]:
    """Read the user id from ``sub`` (or the legacy ``user_id`` claim)."""
    raw = payload.get("sub", None)
    if raw is None:
        raw = payload.get("user_id", None)

    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        raw = raw.strip()
        if raw.isdigit():
            return int(raw)
    return None


def _unauthorized(detail: str = "Unauthorized") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _resolve_user(request: Request, credentials: HTTPAuthorizationCredentials, db: Session) -> User:
    try:
        payload = decode_access_token(credentials.credentials)
    except ValueError:
        raise _unauthorized("Invalid or expired token")

    user_id = _extract_user_id(payload)
    if user_id is None:
        raise _unauthorized("Invalid token")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise _unauthorized("User not found")

    request.state.user = user
    set_request_context(user_id=str(user.id))
    return user


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise _unauthorized()
    return _resolve_user(request, credentials, db)


def get_optional_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User | None:
    if credentials is None:
        return None
    return _resolve_user(request, credentials, db)


def _normalize_role(role: str | None) -> str:
    return (role or "").strip().lower()


def _log_access_denied(*, reason: str, user: User, request: Request) -> None:
    endpoint = f"{request.method} {request.url.path}"
    logger.warning(
        "Access denied (%s): user_id=%s user_role=%s endpoint=%s",
        reason,
        getattr(user, "id", None),
        getattr(user, "role", None),
        endpoint,
    )


def require_role(roles: Iterable[str]):
    allowed = {role.strip().lower() for role in roles}

    def _dependency(request: Request, user: User = Depends(get_current_user)) -> User:
        if _normalize_role(user.role) not in allowed:
            _log_access_denied(reason="role_denied", user=user, request=request)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return user

    return _dependency


require_staff = require_role(["manager", "admin"])
require_admin = require_role(["admin"])
