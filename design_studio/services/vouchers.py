from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from design_studio.core.clock import as_utc, utcnow
from design_studio.models.voucher import VoucherCode, VoucherUsage
from design_studio.services.pricing import ZERO, money

logger = logging.getLogger(__name__)

DISCOUNT_TYPES = {"percentage", "fixed"}

MSG_INVALID = "Invalid voucher code"
MSG_NOT_YET_VALID = "Voucher not yet valid"
MSG_EXPIRED = "Voucher has expired"
MSG_LIMIT_REACHED = "Voucher usage limit reached"
MSG_ALREADY_USED = "You have already used this voucher"


class VoucherRejected(ValueError):
    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True)
class VoucherChecks:
    """Usage limits applied on top of the active flag and date window."""

    total_usage: bool = True
    per_user_usage: bool = True


@dataclass(frozen=True)
class VoucherResult:
    valid: bool
    message: str
    status_code: int = 200
    code: str | None = None
    discount_type: str | None = None
    discount_value: Decimal | None = None
    voucher_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"valid": self.valid, "message": self.message}
        if self.valid:
            payload.update(
                {
                    "code": self.code,
                    "discount_type": self.discount_type,
                    "discount_value": float(self.discount_value or 0),
                }
            )
        return payload


def _reject(message: str, status_code: int = 400) -> VoucherResult:
    return VoucherResult(valid=False, message=message, status_code=status_code)


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def find_voucher(db: Session, code: str) -> VoucherCode | None:
    normalized = normalize_code(code)
    if not normalized:
        return None
    return db.query(VoucherCode).filter(func.upper(VoucherCode.code) == normalized).first()


def count_user_usages(db: Session, *, voucher_id: int, user_id: int) -> int:
    return (
        db.query(func.count(VoucherUsage.id))
        .filter(VoucherUsage.voucher_id == voucher_id, VoucherUsage.user_id == user_id)
        .scalar()
        or 0
    )


def check_total_usage(voucher: Any) -> str | None:
    max_uses = getattr(voucher, "max_uses", None)
    if max_uses is not None and int(voucher.used_count or 0) >= int(max_uses):
        return MSG_LIMIT_REACHED
    return None


def check_per_user_usage(voucher: Any, *, user_id: int | None, user_usage_count: int) -> str | None:
    uses_per_user = getattr(voucher, "uses_per_user", None)
    if user_id is None or uses_per_user is None:
        return None
    if int(user_usage_count) >= int(uses_per_user):
        return MSG_ALREADY_USED
    return None


def evaluate_voucher(
    voucher: Any,
    *,
    user_id: int | None = None,
    user_usage_count: int = 0,
    now: datetime | None = None,
    checks: VoucherChecks = VoucherChecks(),
) -> VoucherResult:
    if voucher is None or not voucher.is_active:
        return _reject(MSG_INVALID, status_code=404)

    now = as_utc(now) or utcnow()
    valid_from = as_utc(voucher.valid_from)
    if valid_from is not None and valid_from > now:
        return _reject(MSG_NOT_YET_VALID)
    valid_until = as_utc(voucher.valid_until)
    if valid_until is not None and valid_until < now:
        return _reject(MSG_EXPIRED)

    if checks.total_usage:
        reason = check_total_usage(voucher)
        if reason:
            return _reject(reason)
    if checks.per_user_usage:
        reason = check_per_user_usage(voucher, user_id=user_id, user_usage_count=user_usage_count)
        if reason:
            return _reject(reason)

    return VoucherResult(
        valid=True,
        message="Voucher applied",
        code=voucher.code,
        discount_type=voucher.discount_type,
        discount_value=Decimal(str(voucher.discount_value)),
        voucher_id=voucher.id,
    )


def validate_voucher(
    db: Session,
    code: str,
    *,
    user_id: int | None = None,
    now: datetime | None = None,
    checks: VoucherChecks = VoucherChecks(),
) -> VoucherResult:
    voucher = find_voucher(db, code)
    usage_count = 0
    if voucher is not None and user_id is not None and checks.per_user_usage and voucher.uses_per_user is not None:
        usage_count = count_user_usages(db, voucher_id=voucher.id, user_id=user_id)
    return evaluate_voucher(voucher, user_id=user_id, user_usage_count=usage_count, now=now, checks=checks)


def apply_discount(subtotal: Decimal, discount_type: str | None, discount_value: Decimal | None) -> Decimal:
    subtotal = Decimal(str(subtotal))
    value = Decimal(str(discount_value or 0))
    if discount_type == "fixed":
        return money(max(ZERO, subtotal - value))
    if discount_type == "percentage":
        return money(max(ZERO, subtotal * (Decimal("1") - value / Decimal("100"))))
    return money(subtotal)


def redeem_voucher(db: Session, *, voucher_id: int, user_id: int, order_ref: str | None = None) -> VoucherUsage:
    """Record a redemption. Caller owns the transaction."""
    voucher = db.query(VoucherCode).filter(VoucherCode.id == voucher_id).first()
    if voucher is None:
        raise VoucherRejected(MSG_INVALID, status_code=404)
    if check_total_usage(voucher):
        raise VoucherRejected(MSG_LIMIT_REACHED)

    voucher.used_count = int(voucher.used_count or 0) + 1
    usage = VoucherUsage(voucher_id=voucher.id, user_id=user_id, order_ref=order_ref)
    db.add(usage)
    logger.info("[VOUCHER] redeemed code=%s user_id=%s order_ref=%s", voucher.code, user_id, order_ref)
    return usage
