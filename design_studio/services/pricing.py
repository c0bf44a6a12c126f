from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping

from sqlalchemy import or_
from sqlalchemy.orm import Session

from design_studio.core.config import DEFAULT_TIER_NAME
from design_studio.models.pricing import PricingTier, ProductPricing

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")

ANIMATED_VIDEO_OPTIONS = {"rotation", "exploded", "both"}
VP_ADDON_KEYS = {
    "ar_upgrade": "vp_ar_upgrade",
    "ar_virtual_prototype": "vp_ar_virtual_prototype",
}


class ProductNotFound(LookupError):
    pass


class PricingTierNotFound(LookupError):
    pass


def money(value: Any) -> Decimal:
    return Decimal(str(value if value is not None else 0)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class LineItem:
    product_key: str
    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    item_type: str = "service"

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_key": self.product_key,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": float(self.unit_price),
            "total_price": float(self.total_price),
            "item_type": self.item_type,
        }


@dataclass(frozen=True)
class PriceQuote:
    line_items: tuple[LineItem, ...]
    total_amount: Decimal
    pricing_tier_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "line_items": [item.to_dict() for item in self.line_items],
            "total_amount": float(self.total_amount),
            "pricing_tier_id": self.pricing_tier_id,
        }


@dataclass
class VirtualPrototypeAddOns:
    ar_upgrade: bool = False
    ar_virtual_prototype: bool = False
    animated_video: str | None = None

    def product_keys(self) -> list[str]:
        keys = [product_key for flag, product_key in VP_ADDON_KEYS.items() if getattr(self, flag)]
        option = (self.animated_video or "").strip().lower()
        if option in ANIMATED_VIDEO_OPTIONS:
            keys.append(f"vp_animated_video_{option}")
        return keys


@dataclass
class PriceRequest:
    product_key: str
    quantity: int = 1
    add_ons: list[str] = field(default_factory=list)
    vp_add_ons: VirtualPrototypeAddOns | None = None


def build_price_table(rows: Iterable[Any], pricing_tier_id: int | None = None) -> dict[str, Any]:
    """Key active products by product_key; rows of the requested tier win over defaults."""
    table: dict[str, Any] = {}
    tier_rows: dict[str, Any] = {}
    for row in rows:
        if not getattr(row, "is_active", True):
            continue
        row_tier = getattr(row, "pricing_tier_id", None)
        if row_tier is None:
            table.setdefault(row.product_key, row)
        elif pricing_tier_id is not None and row_tier == pricing_tier_id:
            tier_rows.setdefault(row.product_key, row)
    table.update(tier_rows)
    return table


def load_price_table(db: Session, pricing_tier_id: int | None = None) -> dict[str, ProductPricing]:
    query = db.query(ProductPricing).filter(ProductPricing.is_active.is_(True))
    if pricing_tier_id is None:
        query = query.filter(ProductPricing.pricing_tier_id.is_(None))
    else:
        query = query.filter(
            or_(
                ProductPricing.pricing_tier_id.is_(None),
                ProductPricing.pricing_tier_id == pricing_tier_id,
            )
        )
    rows = query.order_by(ProductPricing.id.asc()).all()
    return build_price_table(rows, pricing_tier_id)


def resolve_tier_id(db: Session, *, pricing_tier_id: int | None = None, tier_name: str | None = None) -> int | None:
    if pricing_tier_id is not None:
        return pricing_tier_id
    name = (tier_name or "").strip()
    if not name or name == DEFAULT_TIER_NAME:
        return None
    tier = (
        db.query(PricingTier)
        .filter(PricingTier.name == name, PricingTier.is_active.is_(True))
        .first()
    )
    if not tier:
        logger.warning("[PRICING] unknown tier requested name=%s", name)
        raise PricingTierNotFound(f"Pricing tier not found: {name}")
    return tier.id


def _has_quantity_tiers(product: Any) -> bool:
    return (
        getattr(product, "minimum_quantity", None) is not None
        and getattr(product, "minimum_price", None) is not None
        and getattr(product, "per_unit_price", None) is not None
    )


def price_for_quantity(product: Any, quantity: int) -> tuple[int, Decimal]:
    """Return the billable quantity and the line total for ``quantity`` units."""
    quantity = max(int(quantity or 1), 1)
    if not _has_quantity_tiers(product):
        return quantity, money(Decimal(str(product.price)) * quantity)

    maximum = getattr(product, "maximum_quantity", None)
    if maximum is not None:
        quantity = min(quantity, int(maximum))

    minimum_quantity = int(product.minimum_quantity)
    minimum_price = Decimal(str(product.minimum_price))
    if quantity <= minimum_quantity:
        return quantity, money(minimum_price)
    extra_units = quantity - minimum_quantity
    return quantity, money(minimum_price + extra_units * Decimal(str(product.per_unit_price)))


def _single_line(product: Any, item_type: str) -> LineItem:
    price = money(product.price)
    return LineItem(
        product_key=product.product_key,
        product_name=product.product_name,
        quantity=1,
        unit_price=price,
        total_price=price,
        item_type=item_type,
    )


def resolve_price(
    table: Mapping[str, Any],
    product_key: str,
    *,
    quantity: int = 1,
    add_ons: Iterable[str] = (),
    vp_add_ons: VirtualPrototypeAddOns | None = None,
    pricing_tier_id: int | None = None,
) -> PriceQuote:
    product = table.get(product_key)
    if product is None:
        raise ProductNotFound(f"Product not found: {product_key}")

    billable_quantity, base_total = price_for_quantity(product, quantity)
    line_items = [
        LineItem(
            product_key=product.product_key,
            product_name=product.product_name,
            quantity=billable_quantity,
            unit_price=money(base_total / billable_quantity),
            total_price=base_total,
            item_type="service",
        )
    ]

    seen = {product_key}
    for key in add_ons or ():
        addon = table.get(key)
        if addon is None or key in seen:
            continue
        seen.add(key)
        line_items.append(_single_line(addon, "addon"))

    if vp_add_ons is not None:
        for key in vp_add_ons.product_keys():
            addon = table.get(key)
            if addon is None or key in seen:
                continue
            seen.add(key)
            line_items.append(_single_line(addon, "vp_addon"))

    total = sum((item.total_price for item in line_items), ZERO)
    return PriceQuote(line_items=tuple(line_items), total_amount=money(total), pricing_tier_id=pricing_tier_id)


def quote(
    db: Session,
    request: PriceRequest,
    *,
    pricing_tier_id: int | None = None,
    tier_name: str | None = None,
) -> PriceQuote:
    tier_id = resolve_tier_id(db, pricing_tier_id=pricing_tier_id, tier_name=tier_name)
    table = load_price_table(db, tier_id)
    return resolve_price(
        table,
        request.product_key,
        quantity=request.quantity,
        add_ons=request.add_ons,
        vp_add_ons=request.vp_add_ons,
        pricing_tier_id=tier_id,
    )


def public_price_map(db: Session, pricing_tier_id: int | None = None) -> dict[str, float]:
    return {key: float(money(row.price)) for key, row in load_price_table(db, pricing_tier_id).items()}
