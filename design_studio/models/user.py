from sqlalchemy import Column, DateTime, Integer, String

from design_studio.core.clock import utcnow
from design_studio.core.database import Base

USER_ROLES = ("client", "designer", "manager", "admin")
STAFF_ROLES = ("designer", "manager", "admin")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    open_id = Column(String(64), unique=True, index=True, nullable=False)

    name = Column(String, nullable=True)
    email = Column(String(320), index=True, nullable=True)
    phone = Column(String(32), nullable=True)
    login_method = Column(String(64), nullable=True)

    role = Column(String(20), nullable=False, default="client")  # client | designer | manager | admin

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    last_signed_in = Column(DateTime(timezone=True), default=utcnow, nullable=False)
