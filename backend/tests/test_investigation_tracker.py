"""
Tests for the investigation state machine and the suppression stage.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from duplex.core.exceptions import StateStoreUnavailable
from duplex.schemas.findings import UserVerdict
from duplex.schemas.investigation import InvestigationRecord, InvestigationStatus
from duplex.services.investigations.investigation_store import InMemoryInvestigationStore
from duplex.services.investigations.investigation_tracker import LOCK_STRIPES, InvestigationTracker

from factories import utc

MARKED = utc(2024, 1, 1)


def _verdict(user_id: str, rank: int = 1) -> UserVerdict:
    return UserVerdict(user_id=user_id, score=1, risk_level="low", rank=rank, findings=[])


class FlakyStore(InMemoryInvestigationStore):
    """Fails reads for the listed users only."""

    def __init__(self, broken: set[str]) -> None:
        super().__init__()
        self.broken = broken

    def get(self, user_id):
        if user_id in self.broken:
            raise StateStoreUnavailable("connection reset", user_id=user_id)
        return super().get(user_id)


# -------------------------------------------------------------------------
# Transitions
# -------------------------------------------------------------------------
def test_unknown_user_reads_as_none(tracker):
    assert tracker.status("alice", MARKED) == InvestigationStatus.NONE
    assert tracker.is_suppressed("alice", MARKED) is False


def test_open_then_investigated_keeps_ticket(tracker):
    tracker.mark_open("alice", MARKED, ticket_id="INC-42")
    assert tracker.status("alice", MARKED) == InvestigationStatus.OPEN
    assert not tracker.is_suppressed("alice", MARKED)

    rec = tracker.mark_investigated("alice", MARKED + timedelta(hours=1))

    assert rec.ticket_id == "INC-42"
    assert rec.opened_at == MARKED
    assert rec.suppress_until == MARKED + timedelta(hours=25)


def test_suppression_lasts_exactly_24_hours(tracker):
    tracker.mark_investigated("alice", MARKED)

    assert tracker.is_suppressed("alice", MARKED)
    assert tracker.is_suppressed("alice", MARKED + timedelta(hours=24) - timedelta(seconds=1))
    assert not tracker.is_suppressed("alice", MARKED + timedelta(hours=24))
    assert tracker.status("alice", MARKED + timedelta(hours=25)) == InvestigationStatus.NONE


def test_marking_again_restarts_the_window(tracker):
    tracker.mark_investigated("alice", MARKED)
    tracker.mark_investigated("alice", MARKED + timedelta(hours=20))
    assert tracker.is_suppressed("alice", MARKED + timedelta(hours=30))


def test_ticket_for_suppressed_user_does_not_reopen(tracker):
    tracker.mark_investigated("alice", MARKED)

    rec = tracker.mark_open("alice", MARKED + timedelta(hours=1), ticket_id="INC-7")

    assert rec.status == InvestigationStatus.INVESTIGATED
    assert tracker.is_suppressed("alice", MARKED + timedelta(hours=2))


def test_ticket_after_expiry_opens_again(tracker):
    tracker.mark_investigated("alice", MARKED)
    rec = tracker.mark_open("alice", MARKED + timedelta(days=2), ticket_id="INC-8")
    assert rec.status == InvestigationStatus.OPEN


def test_clear_lifts_suppression(tracker, memory_store):
    tracker.mark_investigated("alice", MARKED)
    tracker.clear("alice")

    assert not tracker.is_suppressed("alice", MARKED)
    assert len(memory_store) == 0


def test_naive_timestamps_are_treated_as_utc(tracker):
    rec = tracker.mark_investigated("alice", MARKED.replace(tzinfo=None))
    assert rec.marked_at == MARKED


def test_custom_suppression_length(memory_store):
    tracker = InvestigationTracker(memory_store, suppression_hours=1)
    tracker.mark_investigated("alice", MARKED)
    assert not tracker.is_suppressed("alice", MARKED + timedelta(hours=1))


# -------------------------------------------------------------------------
# filter_verdicts
# -------------------------------------------------------------------------
def test_filter_drops_only_actively_suppressed_users(tracker):
    tracker.mark_investigated("bob", MARKED)
    tracker.mark_open("carol", MARKED)
    tracker.mark_investigated("dave", MARKED - timedelta(days=3))

    verdicts = [_verdict("alice", 1), _verdict("bob", 2), _verdict("carol", 3), _verdict("dave", 4)]
    result = tracker.filter_verdicts(verdicts, MARKED + timedelta(hours=12))

    assert [v.user_id for v in result.verdicts] == ["alice", "carol", "dave"]
    assert result.suppressed == ["bob"]
    assert result.errors == [] and result.warnings == []


def test_filter_applies_mark_made_during_the_run_and_warns(tracker):
    snapshots = {"alice": tracker.record("alice")}
    tracker.mark_investigated("alice", MARKED)

    result = tracker.filter_verdicts([_verdict("alice")], MARKED + timedelta(hours=1), snapshots)

    assert result.verdicts == []
    assert result.suppressed == ["alice"]
    assert [w.code for w in result.warnings] == ["concurrent_mark_conflict"]


def test_ticket_opened_during_run_is_not_a_mark_conflict(tracker):
    snapshots = {"alice": tracker.record("alice")}
    tracker.mark_open("alice", MARKED, ticket_id="INC-3")

    result = tracker.filter_verdicts([_verdict("alice")], MARKED + timedelta(hours=1), snapshots)

    assert [v.user_id for v in result.verdicts] == ["alice"]
    assert result.warnings == []


def test_remark_of_investigated_user_during_run_warns(tracker):
    tracker.mark_investigated("alice", MARKED)
    snapshots = {"alice": tracker.record("alice")}
    tracker.mark_investigated("alice", MARKED + timedelta(hours=2))

    result = tracker.filter_verdicts([_verdict("alice")], MARKED + timedelta(hours=3), snapshots)

    assert [w.code for w in result.warnings] == ["concurrent_mark_conflict"]


def test_filter_isolates_store_failures():
    tracker = InvestigationTracker(FlakyStore(broken={"bob"}))

    result = tracker.filter_verdicts([_verdict("alice"), _verdict("bob", 2)], MARKED)

    assert [v.user_id for v in result.verdicts] == ["alice"]
    assert len(result.errors) == 1
    assert result.errors[0].user_id == "bob"
    assert result.errors[0].stage == "suppression"
    assert result.errors[0].error_type == "StateStoreUnavailable"


def test_record_effective_status():
    rec = InvestigationRecord(
        user_id="alice",
        status=InvestigationStatus.INVESTIGATED,
        marked_at=MARKED,
        suppress_until=MARKED + timedelta(hours=24),
    )
    assert rec.effective_status(MARKED) == InvestigationStatus.INVESTIGATED
    assert rec.effective_status(MARKED + timedelta(hours=24)) == InvestigationStatus.NONE


def test_store_errors_propagate_from_direct_reads():
    tracker = InvestigationTracker(FlakyStore(broken={"alice"}))
    with pytest.raises(StateStoreUnavailable):
        tracker.status("alice", MARKED)


def test_lock_pool_does_not_grow_with_users(tracker):
    for i in range(500):
        tracker.mark_open(f"user-{i}", MARKED)

    assert len(tracker._locks) == LOCK_STRIPES
    assert tracker._lock_for("user-7") is tracker._lock_for("user-7")
