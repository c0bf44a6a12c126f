import logging
import traceback
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from design_studio.core.config import IS_PROD
from design_studio.core.database import get_db
from design_studio.deps import get_current_user
from design_studio.gateway.base import GatewayError, PaymentGateway
from design_studio.gateway.service import get_payment_gateway
from design_studio.mail.base import Mailer
from design_studio.mail.service import get_mailer
from design_studio.models.payment import Payment
from design_studio.models.user import User
from design_studio.services.email_outbox import dispatch_in_background
from design_studio.services.job_access import JobAccessService
from design_studio.services.payments import (
    CheckoutRequest,
    PaymentNotCompleted,
    PaymentOwnershipError,
    build_checkout,
    confirm_payment,
    create_payment_intent,
)
from design_studio.services.pricing import PricingTierNotFound, ProductNotFound, VirtualPrototypeAddOns
from design_studio.services.vouchers import VoucherRejected

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payment", tags=["payments"])


class VpAddOns(BaseModel):
    ar_upgrade: bool = False
    ar_virtual_prototype: bool = False
    animated_video: Optional[str] = Field(None, pattern="^(rotation|exploded|both)$")


class CheckoutPayload(BaseModel):
    department_key: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)
    add_ons: List[str] = Field(default_factory=list)
    vp_add_ons: Optional[VpAddOns] = None
    voucher_code: Optional[str] = None
    tier_name: Optional[str] = None
    pricing_tier_id: Optional[int] = None
    customer_email: Optional[EmailStr] = None
    customer_name: Optional[str] = None
    job_id: Optional[int] = None


class ConfirmPayload(BaseModel):
    payment_intent_id: str = Field(..., min_length=1)
    job_id: Optional[int] = None


def _payment_to_dict(payment: Payment) -> dict:
    return {
        "id": payment.id,
        "job_id": payment.job_id,
        "user_id": payment.user_id,
        "payment_intent_id": payment.gateway_payment_intent_id,
        "amount": float(payment.amount),
        "currency": payment.currency,
        "status": payment.status,
        "payment_method": payment.payment_method,
        "voucher_code": payment.voucher_code,
        "discount_amount": float(payment.discount_amount or 0),
        "created_at": payment.created_at,
        "line_items": [
            {
                "product_key": item.product_key,
                "product_name": item.product_name,
                "quantity": item.quantity,
                "unit_price": float(item.unit_price),
                "total_price": float(item.total_price),
                "item_type": item.item_type,
            }
            for item in payment.line_items
        ],
    }


def _checkout_request(payload: CheckoutPayload, user: User) -> CheckoutRequest:
    vp_add_ons = None
    if payload.vp_add_ons is not None:
        vp_add_ons = VirtualPrototypeAddOns(**payload.vp_add_ons.model_dump())
    return CheckoutRequest(
        department_key=payload.department_key,
        quantity=payload.quantity,
        add_ons=list(payload.add_ons),
        vp_add_ons=vp_add_ons,
        voucher_code=payload.voucher_code,
        tier_name=payload.tier_name,
        pricing_tier_id=payload.pricing_tier_id,
        user_id=user.id,
        customer_email=payload.customer_email or user.email,
        customer_name=payload.customer_name or user.name,
        job_id=payload.job_id,
    )


def _checkout_error(exc: Exception) -> HTTPException:
    if isinstance(exc, VoucherRejected):
        return HTTPException(status_code=exc.status_code, detail=exc.message)
    if isinstance(exc, (ProductNotFound, PricingTierNotFound)):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


@router.post("/quote")
def quote_route(
    payload: CheckoutPayload,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        checkout = build_checkout(db, _checkout_request(payload, user))
    except (VoucherRejected, ProductNotFound, PricingTierNotFound, ValueError) as exc:
        raise _checkout_error(exc) from exc
    return checkout.to_dict()


@router.post("/create-intent")
def create_intent_route(
    payload: CheckoutPayload,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    try:
        intent, checkout = create_payment_intent(db, gateway, _checkout_request(payload, user))
    except (VoucherRejected, ProductNotFound, PricingTierNotFound, ValueError) as exc:
        raise _checkout_error(exc) from exc
    except GatewayError as exc:
        logger.error("[PAYMENT_INTENT] gateway error user_id=%s error=%s", user.id, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    return {
        "client_secret": intent.client_secret,
        "payment_intent_id": intent.id,
        "amount": float(checkout.final_amount),
        "subtotal": float(checkout.subtotal),
        "discount_amount": float(checkout.discount_amount),
        "line_items": [item.to_dict() for item in checkout.quote.line_items],
    }


@router.post("/confirm")
def confirm_route(
    payload: ConfirmPayload,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    mailer: Mailer = Depends(get_mailer),
):
    try:
        result = confirm_payment(
            db,
            gateway,
            payment_intent_id=payload.payment_intent_id,
            job_id=payload.job_id,
            user_id=user.id,
            caller_is_staff=JobAccessService.is_staff(user),
        )
    except PaymentOwnershipError as exc:
        raise HTTPException(status_code=403, detail="Forbidden") from exc
    except PaymentNotCompleted as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception(
            "[PAYMENT_CONFIRM] failed intent_id=%s",
            payload.payment_intent_id,
            extra={"payment_intent_id": payload.payment_intent_id},
        )
        detail = {
            "error": "Failed to confirm payment",
            "payment_intent_id": payload.payment_intent_id,
            "details": str(exc),
        }
        if not IS_PROD:
            detail["stack"] = traceback.format_exc()
        raise HTTPException(status_code=500, detail=detail) from exc

    if result.outbox_ids:
        background_tasks.add_task(dispatch_in_background, result.outbox_ids, mailer)

    db.refresh(result.payment)
    return {
        "success": True,
        "created": result.created,
        "payment": _payment_to_dict(result.payment),
        "design_package_order_id": result.design_package.order_id if result.design_package else None,
    }
