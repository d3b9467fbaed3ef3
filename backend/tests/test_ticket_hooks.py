from __future__ import annotations

from duplex.schemas.investigation import InvestigationStatus
from duplex.services.investigations.ticket_hooks import TicketHooks

from factories import utc

OPENED = utc(2024, 3, 1, 9)


def test_ticket_created_opens_investigation(tracker):
    hooks = TicketHooks(tracker)

    rec = hooks.ticket_created("alice", OPENED, ticket_id="INC-1")

    assert rec.status == InvestigationStatus.OPEN
    assert tracker.record("alice").ticket_id == "INC-1"


def test_failing_listener_does_not_block_others(tracker):
    hooks = TicketHooks(tracker)
    seen = []

    def broken(record):
        raise RuntimeError("webhook down")

    hooks.subscribe(broken)
    hooks.subscribe(lambda record: seen.append(record.user_id))

    hooks.ticket_created("alice", OPENED)

    assert seen == ["alice"]
