"""Shared fixtures: an isolated in-memory database per test and a ticking clock.

The environment is primed before any ``cityfix`` import because settings are
read at import time.
"""

from __future__ import annotations

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret-key-long-enough-for-hs256-signing")
os.environ.setdefault("REPORTS_RATELIMIT_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_SERVICE_ROLE"] = ""

import pytest
from sqlalchemy.orm import sessionmaker

from cityfix.db.session import build_engine, init_db
from cityfix.models.user import Profile, UserRole
from cityfix.schemas.report import Coordinates, Location, ReportDraft, UserRef
from cityfix.services.issues import SqlIssueBackend
from cityfix.services.realtime import ChangeFeed
from cityfix.services.report_store import ReportStore


class TickingClock:
    """Returns a strictly increasing time, one second per call."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def clock():
    return TickingClock(datetime(2025, 1, 1, tzinfo=timezone.utc))


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def backend(session_factory, feed, clock):
    return SqlIssueBackend(session_factory, feed, clock=clock)


@pytest.fixture
def store(backend):
    return ReportStore(backend)


@pytest.fixture
def add_profile(session_factory):
    def _add(user_id: str, name: str, role: UserRole = UserRole.citizen) -> Profile:
        with session_factory() as db:
            profile = Profile(
                id=user_id,
                email=f"{user_id}@example.com",
                name=name,
                hashed_password="x",
                role=role,
            )
            db.add(profile)
            db.commit()
            db.refresh(profile)
            return profile
    return _add


@pytest.fixture
def make_draft():
    def _make(**overrides) -> ReportDraft:
        data = dict(
            title="Large pothole on Main Street",
            description="Damaging cars near the Oak Avenue intersection.",
            category="pothole",
            severity="high",
            location=Location(
                address="123 Main St, Anytown",
                coordinates=Coordinates(lat=40.7128, lng=-74.006),
            ),
            images=["https://example.com/pothole1.jpg"],
            reported_by=UserRef(id="user-1", name="John Doe"),
        )
        data.update(overrides)
        return ReportDraft(**data)
    return _make
