import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from design_studio.core.clock import utcnow
from design_studio.core.database import get_db
from design_studio.deps import get_current_user, require_admin, require_staff
from design_studio.models.user import USER_ROLES, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


class UserUpsert(BaseModel):
    open_id: str = Field(..., min_length=1, max_length=64)
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    login_method: Optional[str] = None
    role: Optional[str] = None


class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    role: Optional[str] = None


def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "open_id": user.open_id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "login_method": user.login_method,
        "role": user.role,
        "created_at": user.created_at,
        "updated_at": user.updated_at,
        "last_signed_in": user.last_signed_in,
    }


def _validate_role(role: str) -> str:
    normalized = role.strip().lower()
    if normalized not in USER_ROLES:
        raise HTTPException(status_code=400, detail="Invalid role")
    return normalized


def _is_staff(user: User) -> bool:
    return (user.role or "").lower() in {"manager", "admin"}


def _ensure_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _ensure_self_or_staff(current: User, user_id: int) -> None:
    if current.id != user_id and not _is_staff(current):
        raise HTTPException(status_code=403, detail="Forbidden")


@router.get("")
def list_users(
    role: Optional[str] = None,
    _: User = Depends(require_staff),
    db: Session = Depends(get_db),
):
    query = db.query(User)
    if role:
        query = query.filter(User.role == _validate_role(role))
    return [_user_to_dict(user) for user in query.order_by(User.id.asc()).all()]


@router.post("")
def upsert_user(payload: UserUpsert, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = db.query(User).filter(User.open_id == payload.open_id).first()
    data = payload.model_dump(exclude_unset=True, exclude={"open_id"})
    if "role" in data and data["role"] is not None:
        data["role"] = _validate_role(data["role"])

    created = user is None
    if created:
        user = User(open_id=payload.open_id, role=data.pop("role", None) or "client")
        db.add(user)
    for key, value in data.items():
        if value is not None:
            setattr(user, key, value)
    user.last_signed_in = utcnow()
    db.commit()
    db.refresh(user)
    logger.info("[USERS] upsert open_id=%s created=%s", user.open_id, created)
    return _user_to_dict(user)


@router.get("/{user_id}")
def get_user(user_id: int, current: User = Depends(get_current_user), db: Session = Depends(get_db)):
    _ensure_self_or_staff(current, user_id)
    return _user_to_dict(_ensure_user(db, user_id))


@router.patch("/{user_id}")
def update_user(
    user_id: int,
    payload: UserUpdate,
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _ensure_self_or_staff(current, user_id)
    user = _ensure_user(db, user_id)
    changes = payload.model_dump(exclude_unset=True)

    if "role" in changes:
        if (current.role or "").lower() != "admin":
            logger.warning("[USERS] role change denied user_id=%s by=%s", user_id, current.id)
            raise HTTPException(status_code=403, detail="Only admins can change roles")
        changes["role"] = _validate_role(changes["role"] or "")

    for key, value in changes.items():
        setattr(user, key, value)
    db.commit()
    db.refresh(user)
    return _user_to_dict(user)


@router.delete("/{user_id}")
def delete_user(user_id: int, current: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = _ensure_user(db, user_id)
    if user.id == current.id:
        raise HTTPException(status_code=400, detail="Cannot delete yourself")
    db.delete(user)
    db.commit()
    return {"ok": True}
