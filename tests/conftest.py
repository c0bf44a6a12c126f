"""Shared fixtures: an in-memory database and a few user factories."""
import os

os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from design_studio.core.database import Base
import design_studio.models  # noqa: F401
from design_studio.models.user import User


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    counter = {"value": 0}

    def _make_user(role: str = "client", **fields) -> User:
        counter["value"] += 1
        number = counter["value"]
        user = User(
            open_id=fields.pop("open_id", f"user-{number}"),
            name=fields.pop("name", f"{role.title()} {number}"),
            email=fields.pop("email", f"{role}{number}@example.com"),
            role=role,
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user
