from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy.orm import Session

from design_studio.core.config import DEFAULT_TIER_NAME, PAYMENT_CURRENCY
from design_studio.core.database import unit_of_work
from design_studio.gateway.base import METADATA_VALUE_LIMIT, PaymentGateway, PaymentIntent, stringify_metadata
from design_studio.models.design_package import DesignPackageOrder
from design_studio.models.email import EmailOutbox
from design_studio.models.job import Job
from design_studio.models.payment import Payment, PaymentLineItem
from design_studio.models.pricing import ProductPricing
from design_studio.models.user import User
from design_studio.services import pricing
from design_studio.services.design_packages import create_package, get_package, is_design_package_purchase
from design_studio.services.email_outbox import enqueue_event_email
from design_studio.services.email_templates import design_package_link
from design_studio.services.vouchers import (
    VoucherRejected,
    VoucherResult,
    apply_discount,
    redeem_voucher,
    validate_voucher,
)

logger = logging.getLogger(__name__)
INTENT_PREFIX = "[PAYMENT_INTENT]"
CONFIRM_PREFIX = "[PAYMENT_CONFIRM]"

_ITEM_PATTERN = re.compile(r"\s*(?P<name>[^,]+?)\s*\(\$(?P<price>[\d,]*\.?\d+)\)\s*(?:,|$)")


class PaymentNotCompleted(ValueError):
    pass


class PaymentOwnershipError(PermissionError):
    pass


@dataclass
class CheckoutRequest:
    department_key: str
    quantity: int = 1
    add_ons: list[str] = field(default_factory=list)
    vp_add_ons: pricing.VirtualPrototypeAddOns | None = None
    voucher_code: str | None = None
    tier_name: str | None = None
    pricing_tier_id: int | None = None
    user_id: int | None = None
    customer_email: str | None = None
    customer_name: str | None = None
    job_id: int | None = None


@dataclass
class Checkout:
    quote: pricing.PriceQuote
    subtotal: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    voucher: VoucherResult | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = self.quote.to_dict()
        payload.update(
            {
                "subtotal": float(self.subtotal),
                "discount_amount": float(self.discount_amount),
                "final_amount": float(self.final_amount),
                "voucher": self.voucher.to_dict() if self.voucher else None,
            }
        )
        return payload


@dataclass
class ConfirmationResult:
    payment: Payment
    created: bool
    design_package: DesignPackageOrder | None = None
    outbox_ids: list[int] = field(default_factory=list)


def build_checkout(db: Session, request: CheckoutRequest) -> Checkout:
    quote = pricing.quote(
        db,
        pricing.PriceRequest(
            product_key=request.department_key,
            quantity=request.quantity,
            add_ons=list(request.add_ons or []),
            vp_add_ons=request.vp_add_ons,
        ),
        pricing_tier_id=request.pricing_tier_id,
        tier_name=request.tier_name,
    )
    subtotal = quote.total_amount
    final_amount = subtotal
    voucher = None
    if request.voucher_code and request.voucher_code.strip():
        voucher = validate_voucher(db, request.voucher_code, user_id=request.user_id)
        if not voucher.valid:
            raise VoucherRejected(voucher.message, status_code=voucher.status_code)
        final_amount = apply_discount(subtotal, voucher.discount_type, voucher.discount_value)
    return Checkout(
        quote=quote,
        subtotal=subtotal,
        discount_amount=pricing.money(subtotal - final_amount),
        final_amount=final_amount,
        voucher=voucher,
    )


def format_items(line_items: Any, limit: int | None = None) -> str:
    """``Name ($price), ...``; with ``limit`` whole entries are dropped and replaced by ``...``."""
    parts = [f"{item.product_name} (${item.total_price:.2f})" for item in line_items]
    text = ", ".join(parts)
    if limit is None or len(text) <= limit:
        return text
    kept: list[str] = []
    for part in parts:
        if len(", ".join(kept + [part, "..."])) > limit:
            break
        kept.append(part)
    return ", ".join(kept + ["..."])


def compact_line_items(line_items: Any) -> list[list[Any]]:
    """``[key, quantity, total, item_type]`` rows; names are looked up again at confirmation."""
    return [
        [item.product_key, item.quantity, f"{item.total_price:.2f}", item.item_type]
        for item in line_items
    ]


def split_metadata_value(key: str, text: str, limit: int = METADATA_VALUE_LIMIT) -> dict[str, str]:
    """Spread ``text`` over ``key``, ``key2``, ``key3`` ... so no value exceeds ``limit``."""
    chunks = [text[start:start + limit] for start in range(0, len(text), limit)] or [""]
    return {key if index == 0 else f"{key}{index + 1}": chunk for index, chunk in enumerate(chunks)}


def join_metadata_value(metadata: dict[str, str], key: str) -> str | None:
    if key not in metadata:
        return None
    parts = [metadata[key]]
    index = 2
    while f"{key}{index}" in metadata:
        parts.append(metadata[f"{key}{index}"])
        index += 1
    return "".join(parts)


def build_intent_metadata(request: CheckoutRequest, checkout: Checkout) -> dict[str, str]:
    line_items = json.dumps(compact_line_items(checkout.quote.line_items), separators=(",", ":"))
    metadata: dict[str, Any] = {
        "userId": request.user_id,
        "customerEmail": request.customer_email,
        "customerName": request.customer_name,
        "departmentKey": request.department_key,
        "addOns": list(request.add_ons or []),
        "tierName": request.tier_name or DEFAULT_TIER_NAME,
        "jobId": request.job_id,
        "voucherCode": checkout.voucher.code if checkout.voucher else None,
        "voucherId": checkout.voucher.voucher_id if checkout.voucher else None,
        "discountAmount": f"{checkout.discount_amount:.2f}",
        "subtotal": f"{checkout.subtotal:.2f}",
        "items": format_items(checkout.quote.line_items, limit=METADATA_VALUE_LIMIT),
    }
    metadata.update(split_metadata_value("lineItems", line_items))
    return stringify_metadata(metadata)


def create_payment_intent(
    db: Session,
    gateway: PaymentGateway,
    request: CheckoutRequest,
) -> tuple[PaymentIntent, Checkout]:
    checkout = build_checkout(db, request)
    amount_cents = pricing.to_cents(checkout.final_amount)
    if amount_cents <= 0:
        raise ValueError("Order total must be greater than zero")
    intent = gateway.create_intent(
        amount_cents=amount_cents,
        currency=PAYMENT_CURRENCY,
        metadata=build_intent_metadata(request, checkout),
        description=format_items(checkout.quote.line_items),
        receipt_email=request.customer_email,
    )
    logger.info(
        "%s created intent_id=%s user_id=%s amount_cents=%s discount=%s",
        INTENT_PREFIX,
        intent.id,
        request.user_id,
        amount_cents,
        checkout.discount_amount,
    )
    return intent, checkout


def _decimal(value: Any) -> Decimal | None:
    try:
        return Decimal(str(value).replace(",", ""))
    except (InvalidOperation, ValueError):
        return None


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", name.strip().lower()).strip("_")


def _compact_entry(entry: list[Any], names: dict[str, str]) -> dict[str, Any]:
    key = str(entry[0])
    quantity = int(entry[1] if len(entry) > 1 and entry[1] else 1)
    total = _decimal(entry[2] if len(entry) > 2 else 0) or Decimal("0")
    return {
        "product_key": key,
        "product_name": names.get(key) or key.replace("_", " ").title(),
        "quantity": quantity,
        "unit_price": pricing.money(total / quantity),
        "total_price": pricing.money(total),
        "item_type": entry[3] if len(entry) > 3 and entry[3] else "service",
    }


def parse_line_items(metadata: dict[str, str], names: dict[str, str] | None = None) -> list[dict[str, Any]]:
    """Rebuild priced items from intent metadata.

    Prefers the ``lineItems`` JSON blob (split over ``lineItems2``... when
    long) and falls back to the human readable ``items`` string
    (``Name ($price), Name2 ($price2)``). Compact rows take their display
    name from ``names``.
    """
    names = names or {}
    raw = join_metadata_value(metadata, "lineItems")
    if raw:
        try:
            decoded = json.loads(raw)
        except ValueError:
            logger.warning("%s lineItems metadata is not valid JSON", CONFIRM_PREFIX)
            decoded = None
        if isinstance(decoded, list) and decoded:
            items = []
            for entry in decoded:
                if isinstance(entry, list):
                    items.append(_compact_entry(entry, names))
                    continue
                name = entry.get("product_name") or entry.get("productName") or entry.get("name") or "Item"
                total = _decimal(entry.get("total_price", entry.get("totalPrice", entry.get("price", 0)))) or Decimal("0")
                quantity = int(entry.get("quantity") or 1)
                unit = _decimal(entry.get("unit_price", entry.get("unitPrice"))) or total / quantity
                items.append(
                    {
                        "product_key": entry.get("product_key") or entry.get("productKey") or _slug(name),
                        "product_name": name,
                        "quantity": quantity,
                        "unit_price": pricing.money(unit),
                        "total_price": pricing.money(total),
                        "item_type": entry.get("item_type") or entry.get("itemType") or "service",
                    }
                )
            return items

    items = []
    for index, match in enumerate(_ITEM_PATTERN.finditer(metadata.get("items") or "")):
        name = match.group("name").strip()
        price = pricing.money(_decimal(match.group("price")) or 0)
        items.append(
            {
                "product_key": _slug(name),
                "product_name": name,
                "quantity": 1,
                "unit_price": price,
                "total_price": price,
                "item_type": "service" if index == 0 else "addon",
            }
        )
    return items


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def product_names(db: Session, metadata: dict[str, str]) -> dict[str, str]:
    raw = join_metadata_value(metadata, "lineItems") or "[]"
    try:
        decoded = json.loads(raw)
    except ValueError:
        return {}
    keys = {str(entry[0]) for entry in decoded if isinstance(entry, list) and entry}
    if not keys:
        return {}
    rows = (
        db.query(ProductPricing.product_key, ProductPricing.product_name)
        .filter(ProductPricing.product_key.in_(keys))
        .order_by(ProductPricing.pricing_tier_id.is_not(None), ProductPricing.id)
        .all()
    )
    names: dict[str, str] = {}
    for key, name in rows:
        names.setdefault(key, name)
    return names


def _existing_result(db: Session, payment: Payment) -> ConfirmationResult:
    logger.info("%s already recorded intent_id=%s payment_id=%s", CONFIRM_PREFIX, payment.gateway_payment_intent_id, payment.id)
    return ConfirmationResult(
        payment=payment,
        created=False,
        design_package=get_package(db, payment.gateway_payment_intent_id),
    )


def confirm_payment(
    db: Session,
    gateway: PaymentGateway,
    *,
    payment_intent_id: str,
    job_id: int | None = None,
    user_id: int | None = None,
    caller_is_staff: bool = False,
) -> ConfirmationResult:
    """Record a succeeded intent.

    The payer is the ``userId`` stored on the intent at creation; ``user_id``
    (the caller) only fills in when the intent carries none. Callers other
    than the payer need ``caller_is_staff``.
    """
    intent = gateway.retrieve_intent(payment_intent_id)
    metadata = dict(intent.metadata or {})
    owner_id = _int_or_none(metadata.get("userId"))
    if owner_id is not None and user_id is not None and user_id != owner_id and not caller_is_staff:
        logger.warning(
            "%s caller does not own intent intent_id=%s caller_id=%s owner_id=%s",
            CONFIRM_PREFIX,
            intent.id,
            user_id,
            owner_id,
        )
        raise PaymentOwnershipError("Payment belongs to another user")

    if intent.status != "succeeded":
        logger.warning("%s rejected intent_id=%s status=%s", CONFIRM_PREFIX, intent.id, intent.status)
        raise PaymentNotCompleted("Payment not completed")

    existing = db.query(Payment).filter(Payment.gateway_payment_intent_id == intent.id).first()
    if existing is not None:
        return _existing_result(db, existing)

    line_items = parse_line_items(metadata, product_names(db, metadata))
    payer_id = owner_id if owner_id is not None else user_id
    linked_job_id = job_id or _int_or_none(metadata.get("jobId"))
    if linked_job_id is not None and db.query(Job.id).filter(Job.id == linked_job_id).first() is None:
        logger.warning("%s unknown job_id=%s intent_id=%s", CONFIRM_PREFIX, linked_job_id, intent.id)
        linked_job_id = None

    payer = db.query(User).filter(User.id == payer_id).first() if payer_id else None
    recipient = metadata.get("customerEmail") or (payer.email if payer else None)
    customer_name = metadata.get("customerName") or (payer.name if payer else None) or "there"
    amount = pricing.money(Decimal(intent.amount) / 100)

    queued: list[EmailOutbox] = []
    package = None
    with unit_of_work(db):
        payment = Payment(
            job_id=linked_job_id,
            user_id=payer_id,
            gateway_payment_intent_id=intent.id,
            gateway_charge_id=intent.charge_id,
            amount=amount,
            currency=(intent.currency or PAYMENT_CURRENCY).upper(),
            status="completed",
            payment_method=intent.payment_method or "card",
            voucher_code=metadata.get("voucherCode"),
            discount_amount=pricing.money(metadata.get("discountAmount") or 0),
            metadata_json=json.dumps(metadata, ensure_ascii=False),
        )
        db.add(payment)
        db.flush()

        for item in line_items:
            db.add(PaymentLineItem(payment_id=payment.id, **item))

        voucher_id = _int_or_none(metadata.get("voucherId"))
        if voucher_id is not None and payer_id is not None:
            try:
                redeem_voucher(db, voucher_id=voucher_id, user_id=payer_id, order_ref=intent.id)
            except VoucherRejected as exc:
                # the customer already paid the discounted amount
                logger.warning("%s voucher not redeemed intent_id=%s reason=%s", CONFIRM_PREFIX, intent.id, exc.message)

        product_keys = [item["product_key"] for item in line_items]
        if is_design_package_purchase(metadata.get("departmentKey"), product_keys):
            if payer_id is None:
                logger.warning("%s design package without user intent_id=%s", CONFIRM_PREFIX, intent.id)
            else:
                package = create_package(db, order_id=intent.id, client_id=payer_id, payment_id=payment.id)
                queued.append(
                    enqueue_event_email(
                        db,
                        recipient=recipient,
                        trigger_event="design_package_purchased",
                        variables={
                            "name": customer_name,
                            "link": design_package_link(intent.id),
                            "link_label": "Start Virtual Prototype",
                        },
                        reference_type="design_package",
                        reference_id=intent.id,
                    )
                )
        else:
            queued.append(
                enqueue_event_email(
                    db,
                    recipient=recipient,
                    trigger_event="payment_confirmation",
                    variables={
                        "name": customer_name,
                        "amount": f"{amount:.2f}",
                        "items": metadata.get("items") or format_line_dicts(line_items),
                    },
                    reference_type="payment",
                    reference_id=intent.id,
                )
            )
        db.flush()

    outbox_ids = [entry.id for entry in queued if entry is not None]
    logger.info(
        "%s recorded intent_id=%s payment_id=%s items=%s package=%s outbox=%s",
        CONFIRM_PREFIX,
        intent.id,
        payment.id,
        len(line_items),
        package.order_id if package else None,
        outbox_ids,
    )
    return ConfirmationResult(payment=payment, created=True, design_package=package, outbox_ids=outbox_ids)


def format_line_dicts(line_items: list[dict[str, Any]]) -> str:
    return ", ".join(f"{item['product_name']} (${item['total_price']:.2f})" for item in line_items)


def payment_for_job(db: Session, job_id: int) -> Payment | None:
    return (
        db.query(Payment)
        .filter(Payment.job_id == job_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .first()
    )
