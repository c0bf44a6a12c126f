from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from design_studio.core.clock import utcnow
from design_studio.core.database import Base

DELIVERABLE_STATUSES = ("locked", "not_started", "in_progress", "completed")


class DesignPackageOrder(Base):
    __tablename__ = "design_package_orders"

    id = Column(Integer, primary_key=True)
    order_id = Column(String(255), unique=True, nullable=False)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=True)

    virtual_prototype_status = Column(String(50), nullable=False, default="not_started")
    virtual_prototype_job_id = Column(Integer, ForeignKey("jobs.id"), nullable=True)
    virtual_prototype_completed_at = Column(DateTime(timezone=True), nullable=True)

    sell_sheet_status = Column(String(50), nullable=False, default="locked")
    sell_sheet_job_id = Column(Integer, ForeignKey("jobs.id"), nullable=True)
    sell_sheet_completed_at = Column(DateTime(timezone=True), nullable=True)

    package_status = Column(String(50), nullable=False, default="active")  # active | completed
    purchase_date = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
