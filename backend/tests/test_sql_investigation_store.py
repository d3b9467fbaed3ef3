"""
Tests for the SQLAlchemy-backed investigation store against in-memory SQLite.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from duplex.core.exceptions import StateStoreUnavailable
from duplex.schemas.investigation import InvestigationRecord, InvestigationStatus
from duplex.services.investigations.investigation_tracker import InvestigationTracker
from duplex.services.investigations.sql_investigation_store import SqlInvestigationStore

from factories import utc

MARKED = utc(2024, 1, 1, 8, 30)


@pytest.fixture
def store(sqlite_session_factory):
    return SqlInvestigationStore(session_factory=sqlite_session_factory)


def test_roundtrip_keeps_utc_timestamps(store):
    rec = InvestigationRecord(
        user_id="alice",
        status=InvestigationStatus.INVESTIGATED,
        ticket_id="INC-1",
        opened_at=MARKED - timedelta(hours=1),
        marked_at=MARKED,
        suppress_until=MARKED + timedelta(hours=24),
    )
    store.put(rec)

    loaded = store.get("alice")

    assert loaded == rec
    assert loaded.suppress_until.tzinfo is not None


def test_put_overwrites_and_delete_removes(store):
    store.put(InvestigationRecord(user_id="alice", status=InvestigationStatus.OPEN))
    store.put(InvestigationRecord(user_id="alice", status=InvestigationStatus.INVESTIGATED))

    assert store.get("alice").status == InvestigationStatus.INVESTIGATED

    store.delete("alice")
    assert store.get("alice") is None
    store.delete("alice")


def test_ping_succeeds_on_live_database(store):
    store.ping()


def test_missing_schema_surfaces_as_store_unavailable():
    engine = create_engine("sqlite://", poolclass=StaticPool)
    store = SqlInvestigationStore(session_factory=sessionmaker(bind=engine))

    with pytest.raises(StateStoreUnavailable) as err:
        store.get("alice")
    assert err.value.user_id == "alice"

    with pytest.raises(StateStoreUnavailable):
        store.put(InvestigationRecord(user_id="alice"))

    engine.dispose()


def test_tracker_state_survives_a_new_store_instance(sqlite_session_factory):
    InvestigationTracker(SqlInvestigationStore(sqlite_session_factory)).mark_investigated("alice", MARKED)

    reopened = InvestigationTracker(SqlInvestigationStore(sqlite_session_factory))

    assert reopened.is_suppressed("alice", MARKED + timedelta(hours=23))
    assert not reopened.is_suppressed("alice", MARKED + timedelta(hours=24))
