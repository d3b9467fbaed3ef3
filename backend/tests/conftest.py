"""
Pytest fixtures for Duplex tests. Investigation state uses an in-memory
store or a throwaway SQLite database; nothing touches Postgres.
"""

from __future__ import annotations

import itertools
import os
from datetime import datetime

# Must be set before duplex.core.config is imported anywhere.
os.environ.setdefault("DB_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from duplex.db.init_db import init_db
from duplex.schemas.auth_event import AuthEvent, GeoLocation, Outcome, TargetSystem, UserProfile
from duplex.services.investigations.investigation_store import InMemoryInvestigationStore
from duplex.services.investigations.investigation_tracker import InvestigationTracker

from factories import CLEMSON, utc


@pytest.fixture
def make_event():
    """Factory for AuthEvents; sequence numbers follow creation order."""
    counter = itertools.count()

    def _make(
        user_id: str = "alice",
        timestamp: datetime | None = None,
        outcome: Outcome = Outcome.SUCCESS,
        source_ip: str | None = "8.8.8.8",
        device_id: str | None = "dev-1",
        geo: GeoLocation | None = CLEMSON,
        target_system: TargetSystem = TargetSystem.PRIMARY_2FA,
    ) -> AuthEvent:
        return AuthEvent(
            user_id=user_id,
            timestamp=timestamp or utc(2024, 3, 1, 10, 0),
            outcome=outcome,
            source_ip=source_ip,
            device_id=device_id,
            geo=geo,
            target_system=target_system,
            sequence=next(counter),
        )

    return _make


@pytest.fixture
def make_profile():
    def _make(
        user_id: str = "alice",
        account_created_at: datetime | None = utc(2022, 1, 1),
        home_region: str | None = "California",
        home_country: str | None = None,
    ) -> UserProfile:
        return UserProfile(
            user_id=user_id,
            account_created_at=account_created_at,
            home_region=home_region,
            home_country=home_country,
        )

    return _make


@pytest.fixture
def memory_store():
    return InMemoryInvestigationStore()


@pytest.fixture
def tracker(memory_store):
    return InvestigationTracker(memory_store)


@pytest.fixture
def sqlite_session_factory():
    """Fresh in-memory SQLite database shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()
