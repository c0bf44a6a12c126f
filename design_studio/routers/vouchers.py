from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from design_studio.core.clock import as_utc
from design_studio.core.database import get_db
from design_studio.deps import get_optional_user, require_admin
from design_studio.models.user import User
from design_studio.models.voucher import VoucherCode
from design_studio.services.vouchers import DISCOUNT_TYPES, find_voucher, normalize_code, validate_voucher

router = APIRouter(prefix="/vouchers", tags=["vouchers"])

NON_NULLABLE_FIELDS = ("code", "discount_type", "discount_value", "is_active")


class VoucherBase(BaseModel):
    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = Field(None, ge=0)
    max_uses: Optional[int] = Field(None, ge=1)
    uses_per_user: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None

    @field_validator("discount_type")
    @classmethod
    def validate_discount_type(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip().lower()
        if value not in DISCOUNT_TYPES:
            raise ValueError("discount_type must be percentage or fixed")
        return value


class VoucherCreate(VoucherBase):
    code: str = Field(..., min_length=1, max_length=50)
    discount_type: str
    discount_value: Decimal = Field(..., ge=0)


class VoucherUpdate(VoucherBase):
    code: Optional[str] = Field(None, min_length=1, max_length=50)


def _voucher_to_dict(voucher: VoucherCode) -> dict:
    return {
        "id": voucher.id,
        "code": voucher.code,
        "discount_type": voucher.discount_type,
        "discount_value": float(voucher.discount_value),
        "max_uses": voucher.max_uses,
        "uses_per_user": voucher.uses_per_user,
        "used_count": voucher.used_count,
        "valid_from": voucher.valid_from,
        "valid_until": voucher.valid_until,
        "is_active": bool(voucher.is_active),
        "created_at": voucher.created_at,
        "updated_at": voucher.updated_at,
    }


def _check_window(valid_from: Optional[datetime], valid_until: Optional[datetime]) -> None:
    if valid_from and valid_until and as_utc(valid_until) < as_utc(valid_from):
        raise HTTPException(status_code=400, detail="valid_until must be after valid_from")


def _ensure_voucher(db: Session, voucher_id: int) -> VoucherCode:
    voucher = db.query(VoucherCode).filter(VoucherCode.id == voucher_id).first()
    if not voucher:
        raise HTTPException(status_code=404, detail="Voucher not found")
    return voucher


@router.get("")
def list_or_validate_vouchers(
    code: Optional[str] = Query(None),
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    if code is not None:
        result = validate_voucher(db, code, user_id=user.id if user else None)
        return JSONResponse(status_code=result.status_code, content=result.to_dict())

    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized", headers={"WWW-Authenticate": "Bearer"})
    if (user.role or "").lower() != "admin":
        raise HTTPException(status_code=403, detail="Forbidden")
    vouchers = db.query(VoucherCode).order_by(VoucherCode.created_at.desc(), VoucherCode.id.desc()).all()
    return [_voucher_to_dict(voucher) for voucher in vouchers]


@router.post("", status_code=201)
def create_voucher(payload: VoucherCreate, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    code = normalize_code(payload.code)
    if not code:
        raise HTTPException(status_code=400, detail="Voucher code is required")
    if find_voucher(db, code) is not None:
        raise HTTPException(status_code=409, detail="Voucher code already exists")
    _check_window(payload.valid_from, payload.valid_until)

    voucher = VoucherCode(
        code=code,
        discount_type=payload.discount_type,
        discount_value=payload.discount_value,
        max_uses=payload.max_uses,
        uses_per_user=payload.uses_per_user,
        valid_from=payload.valid_from,
        valid_until=payload.valid_until,
        is_active=True if payload.is_active is None else payload.is_active,
        used_count=0,
    )
    try:
        db.add(voucher)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="Voucher code already exists") from exc
    db.refresh(voucher)
    return _voucher_to_dict(voucher)


@router.get("/{voucher_id}")
def get_voucher(voucher_id: int, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    return _voucher_to_dict(_ensure_voucher(db, voucher_id))


@router.put("/{voucher_id}")
def update_voucher(
    voucher_id: int,
    payload: VoucherUpdate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    voucher = _ensure_voucher(db, voucher_id)
    changes = payload.model_dump(exclude_unset=True)
    null_fields = sorted(key for key in NON_NULLABLE_FIELDS if key in changes and changes[key] is None)
    if null_fields:
        raise HTTPException(status_code=400, detail=f"Fields cannot be null: {', '.join(null_fields)}")
    if "code" in changes:
        changes["code"] = normalize_code(changes["code"])
        if not changes["code"]:
            raise HTTPException(status_code=400, detail="Voucher code is required")
        existing = find_voucher(db, changes["code"])
        if existing is not None and existing.id != voucher.id:
            raise HTTPException(status_code=409, detail="Voucher code already exists")
    if "max_uses" in changes and changes["max_uses"] is not None and changes["max_uses"] < voucher.used_count:
        raise HTTPException(status_code=400, detail="max_uses cannot be lower than used_count")
    _check_window(changes.get("valid_from", voucher.valid_from), changes.get("valid_until", voucher.valid_until))

    for key, value in changes.items():
        setattr(voucher, key, value)
    db.commit()
    db.refresh(voucher)
    return _voucher_to_dict(voucher)


@router.delete("/{voucher_id}")
def delete_voucher(voucher_id: int, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    voucher = _ensure_voucher(db, voucher_id)
    db.delete(voucher)
    db.commit()
    return {"ok": True}
