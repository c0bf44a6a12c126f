from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from design_studio.core.clock import utcnow
from design_studio.core.database import Base


class VoucherCode(Base):
    __tablename__ = "voucher_codes"

    id = Column(Integer, primary_key=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    discount_type = Column(String(20), nullable=False)  # percentage | fixed
    discount_value = Column(Numeric(10, 2), nullable=False)
    max_uses = Column(Integer, nullable=True)
    uses_per_user = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)
    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    usages = relationship("VoucherUsage", back_populates="voucher", cascade="all, delete-orphan")


class VoucherUsage(Base):
    __tablename__ = "voucher_usage"

    id = Column(Integer, primary_key=True)
    voucher_id = Column(Integer, ForeignKey("voucher_codes.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    order_ref = Column(String(255), nullable=True)
    used_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    voucher = relationship("VoucherCode", back_populates="usages")
