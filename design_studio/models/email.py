from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from design_studio.core.clock import utcnow
from design_studio.core.database import Base


class EmailTemplate(Base):
    __tablename__ = "email_templates"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), unique=True, nullable=False)
    subject = Column(String(500), nullable=False)
    body = Column(Text, nullable=False)
    trigger_event = Column(String(100), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class EmailOutbox(Base):
    __tablename__ = "email_outbox"

    id = Column(Integer, primary_key=True)
    recipient = Column(String(320), nullable=False)
    subject = Column(String(500), nullable=False)
    body = Column(Text, nullable=False)
    trigger_event = Column(String(100), nullable=True)
    reference_type = Column(String(50), nullable=True)
    reference_id = Column(String(255), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)  # pending | sent | failed
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)


class EmailLog(Base):
    __tablename__ = "email_logs"

    id = Column(Integer, primary_key=True)
    outbox_id = Column(Integer, ForeignKey("email_outbox.id"), nullable=True, index=True)
    recipient = Column(String(320), nullable=False)
    subject = Column(String(500), nullable=False)
    body = Column(Text, nullable=True)
    status = Column(String(20), nullable=False)  # sent | failed
    error = Column(Text, nullable=True)
    provider_message_id = Column(String(255), nullable=True)
    resent_from = Column(Integer, ForeignKey("email_logs.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
