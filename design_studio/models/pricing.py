from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text

from design_studio.core.clock import utcnow
from design_studio.core.database import Base


class PricingTier(Base):
    __tablename__ = "pricing_tiers"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), unique=True, nullable=False)
    display_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    membership_level = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class ProductPricing(Base):
    __tablename__ = "product_pricing"

    id = Column(Integer, primary_key=True)
    product_key = Column(String(100), nullable=False, index=True)
    product_name = Column(String(255), nullable=False)
    product_description = Column(Text, nullable=True)
    category = Column(String(50), nullable=False, default="service")  # service | addon | vp_addon
    department_id = Column(Integer, nullable=True)
    pricing_tier_id = Column(Integer, ForeignKey("pricing_tiers.id"), nullable=True, index=True)
    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    is_active = Column(Boolean, nullable=False, default=True)
    parent_product_key = Column(String(100), nullable=True)

    minimum_quantity = Column(Integer, nullable=True)
    minimum_price = Column(Numeric(10, 2), nullable=True)
    per_unit_price = Column(Numeric(10, 2), nullable=True)
    maximum_quantity = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
