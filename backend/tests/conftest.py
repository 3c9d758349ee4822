"""Shared fixtures: file-backed SQLite database, users, and a routing engine."""
import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.db.base import Base
from app.models import User  # noqa: F401  registers every table on Base.metadata
from app.services.routing import RoutingEngine

SEQUENCE = ["Manager", "Michelle", "Grace"]

FIXED_NOW = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


# ─── Database ─────────────────────────────────────────────────────────────────

@pytest.fixture
def db_engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'routing.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


# ─── Users ────────────────────────────────────────────────────────────────────

@pytest.fixture
def make_user(db):
    """Factory persisting a User with the given role."""
    def _make(role: str, sap_code_1: str | None = None, sap_code_2: str | None = None) -> User:
        user = User(
            email=f"{role.lower().replace(' ', '.')}.{uuid.uuid4().hex[:6]}@example.com",
            name=f"{role} User",
            password_hash="$2b$12$placeholder",
            role=role,
            sap_code_1=sap_code_1,
            sap_code_2=sap_code_2,
            is_active=True,
        )
        db.add(user)
        db.commit()
        return user
    return _make


# ─── Routing engine ───────────────────────────────────────────────────────────

@pytest.fixture
def events():
    """Captures RoutingEvents handed to the notifier."""
    return []


@pytest.fixture
def engine(events):
    return RoutingEngine(SEQUENCE, notifier=events.append, clock=lambda: FIXED_NOW)


@pytest.fixture
def submit(db, engine, make_user):
    """Submit a request as a fresh Employee; keyword overrides go to engine.submit."""
    def _submit(amount="500", routing_engine=None, **kwargs):
        requester = kwargs.pop("requester", None) or make_user("Employee")
        fields = {
            "category": "Travel",
            "description": "Client visit taxi fares",
            "submitter_role": requester.role,
        }
        fields.update(kwargs)
        return (routing_engine or engine).submit(
            db,
            requester_id=requester.id,
            amount=amount,
            **fields,
        )
    return _submit
