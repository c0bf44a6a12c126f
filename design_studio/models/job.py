from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from design_studio.core.clock import utcnow
from design_studio.core.database import Base

JOB_STATUSES = (
    "Draft",
    "Pending",
    "In Progress",
    "Assigned to Designer",
    "Proof Sent",
    "Revisions Requested",
    "Complete",
    "Cancel Job",
)
JOB_PRIORITIES = ("Low", "Medium", "High", "Urgent")


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    designer_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)
    department_id = Column(Integer, nullable=True)

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(50), nullable=False, default="Draft", index=True)
    priority = Column(String(20), nullable=False, default="Medium")
    package_type = Column(String(100), nullable=True)

    is_draft = Column(Boolean, nullable=False, default=False)
    archived = Column(Boolean, nullable=False, default=False)

    due_date = Column(DateTime(timezone=True), nullable=True)
    completed_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_activity_date = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    status_history = relationship(
        "JobStatusHistory",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="JobStatusHistory.id",
    )


class JobStatusHistory(Base):
    __tablename__ = "job_status_history"

    id = Column(Integer, primary_key=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), index=True, nullable=False)
    changed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    old_status = Column(String(50), nullable=True)
    new_status = Column(String(50), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    job = relationship("Job", back_populates="status_history")
