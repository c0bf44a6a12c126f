from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String

from design_studio.core.clock import utcnow
from design_studio.core.database import Base

JOB_TYPES = ("sell_sheets", "virtual_prototypes", "line_drawings")


class DesignerAssignment(Base):
    __tablename__ = "designer_assignments"
    __table_args__ = (Index("ix_designer_assignments_job_type_active", "job_type", "is_active"),)

    id = Column(Integer, primary_key=True)
    job_type = Column(String(50), nullable=False)
    designer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    priority = Column(Integer, nullable=False, default=0)  # 0 = highest
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
