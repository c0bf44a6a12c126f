from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from design_studio.core.database import get_db
from design_studio.deps import require_admin
from design_studio.models.pricing import PricingTier, ProductPricing
from design_studio.models.user import User
from design_studio.services.pricing import PricingTierNotFound, public_price_map, resolve_tier_id

router = APIRouter(tags=["pricing"])


class TierPayload(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    display_name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    membership_level: Optional[str] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


class ProductPayload(BaseModel):
    product_key: Optional[str] = Field(None, min_length=1, max_length=100)
    product_name: Optional[str] = Field(None, min_length=1, max_length=255)
    product_description: Optional[str] = None
    category: Optional[str] = None
    department_id: Optional[int] = None
    pricing_tier_id: Optional[int] = None
    price: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    is_active: Optional[bool] = None
    parent_product_key: Optional[str] = None
    minimum_quantity: Optional[int] = Field(None, ge=1)
    minimum_price: Optional[Decimal] = Field(None, ge=0)
    per_unit_price: Optional[Decimal] = Field(None, ge=0)
    maximum_quantity: Optional[int] = Field(None, ge=1)


def _tier_to_dict(tier: PricingTier) -> dict:
    return {
        "id": tier.id,
        "name": tier.name,
        "display_name": tier.display_name,
        "description": tier.description,
        "membership_level": tier.membership_level,
        "is_active": bool(tier.is_active),
        "sort_order": tier.sort_order,
    }


def _money(value) -> Optional[float]:
    return float(value) if value is not None else None


def _product_to_dict(product: ProductPricing) -> dict:
    return {
        "id": product.id,
        "product_key": product.product_key,
        "product_name": product.product_name,
        "product_description": product.product_description,
        "category": product.category,
        "department_id": product.department_id,
        "pricing_tier_id": product.pricing_tier_id,
        "price": _money(product.price),
        "currency": product.currency,
        "is_active": bool(product.is_active),
        "parent_product_key": product.parent_product_key,
        "minimum_quantity": product.minimum_quantity,
        "minimum_price": _money(product.minimum_price),
        "per_unit_price": _money(product.per_unit_price),
        "maximum_quantity": product.maximum_quantity,
    }


def _ensure_tier(db: Session, tier_id: int) -> PricingTier:
    tier = db.query(PricingTier).filter(PricingTier.id == tier_id).first()
    if not tier:
        raise HTTPException(status_code=404, detail="Pricing tier not found")
    return tier


def _ensure_product(db: Session, product_id: int) -> ProductPricing:
    product = db.query(ProductPricing).filter(ProductPricing.id == product_id).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


def _commit(db: Session, conflict_detail: str) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail=conflict_detail) from exc


@router.get("/pricing")
def get_public_pricing(
    tier_name: Optional[str] = Query(None),
    pricing_tier_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
):
    try:
        tier_id = resolve_tier_id(db, pricing_tier_id=pricing_tier_id, tier_name=tier_name)
    except PricingTierNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return public_price_map(db, tier_id)


@router.get("/admin/pricing/tiers")
def list_tiers(_: User = Depends(require_admin), db: Session = Depends(get_db)):
    tiers = db.query(PricingTier).order_by(PricingTier.sort_order.asc(), PricingTier.id.asc()).all()
    return [_tier_to_dict(tier) for tier in tiers]


@router.post("/admin/pricing/tiers", status_code=201)
def create_tier(payload: TierPayload, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    if not payload.name or not payload.display_name:
        raise HTTPException(status_code=400, detail="name and display_name are required")
    tier = PricingTier(
        name=payload.name.strip(),
        display_name=payload.display_name.strip(),
        description=payload.description,
        membership_level=payload.membership_level,
        is_active=True if payload.is_active is None else payload.is_active,
        sort_order=payload.sort_order or 0,
    )
    db.add(tier)
    _commit(db, "Pricing tier already exists")
    db.refresh(tier)
    return _tier_to_dict(tier)


@router.put("/admin/pricing/tiers/{tier_id}")
def update_tier(tier_id: int, payload: TierPayload, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    tier = _ensure_tier(db, tier_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(tier, key, value)
    _commit(db, "Pricing tier already exists")
    db.refresh(tier)
    return _tier_to_dict(tier)


@router.delete("/admin/pricing/tiers/{tier_id}")
def delete_tier(tier_id: int, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    tier = _ensure_tier(db, tier_id)
    in_use = db.query(ProductPricing.id).filter(ProductPricing.pricing_tier_id == tier.id).first()
    if in_use:
        raise HTTPException(status_code=409, detail="Pricing tier still has products")
    db.delete(tier)
    db.commit()
    return {"ok": True}


@router.get("/admin/pricing/products")
def list_products(
    pricing_tier_id: Optional[int] = Query(None),
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(ProductPricing)
    if pricing_tier_id is not None:
        query = query.filter(ProductPricing.pricing_tier_id == pricing_tier_id)
    products = query.order_by(ProductPricing.category.asc(), ProductPricing.product_key.asc()).all()
    return [_product_to_dict(product) for product in products]


@router.post("/admin/pricing/products", status_code=201)
def create_product(payload: ProductPayload, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    if not payload.product_key or not payload.product_name or payload.price is None:
        raise HTTPException(status_code=400, detail="product_key, product_name and price are required")
    if payload.pricing_tier_id is not None:
        _ensure_tier(db, payload.pricing_tier_id)
    data = payload.model_dump(exclude_unset=True)
    data.setdefault("category", "service")
    data.setdefault("currency", "USD")
    data.setdefault("is_active", True)
    product = ProductPricing(**data)
    db.add(product)
    _commit(db, "Product already exists")
    db.refresh(product)
    return _product_to_dict(product)


@router.put("/admin/pricing/products/{product_id}")
def update_product(
    product_id: int,
    payload: ProductPayload,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    product = _ensure_product(db, product_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("pricing_tier_id") is not None:
        _ensure_tier(db, changes["pricing_tier_id"])
    for key, value in changes.items():
        setattr(product, key, value)
    _commit(db, "Product already exists")
    db.refresh(product)
    return _product_to_dict(product)


@router.delete("/admin/pricing/products/{product_id}")
def delete_product(product_id: int, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    product = _ensure_product(db, product_id)
    db.delete(product)
    db.commit()
    return {"ok": True}
