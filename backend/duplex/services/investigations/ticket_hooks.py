# backend/duplex/services/investigations/ticket_hooks.py
import logging
from datetime import datetime
from typing import Callable, List, Optional

from duplex.schemas.investigation import InvestigationRecord
from duplex.services.investigations.investigation_tracker import InvestigationTracker

logger = logging.getLogger(__name__)

TicketListener = Callable[[InvestigationRecord], None]


class TicketHooks:
    """
    Entry point for the ticketing system. The engine never creates
    tickets; the ticketing collaborator calls ticket_created() once it has
    one, which moves the user to `open` and fans out to subscribers.
    """

    def __init__(self, tracker: InvestigationTracker) -> None:
        self.tracker = tracker
        self._listeners: List[TicketListener] = []

    def subscribe(self, listener: TicketListener) -> None:
        self._listeners.append(listener)

    def ticket_created(
        self, user_id: str, at: datetime, ticket_id: Optional[str] = None
    ) -> InvestigationRecord:
        record = self.tracker.mark_open(user_id, at, ticket_id=ticket_id)

        # Fan-out to subscribers; one failing listener shouldn't stop the rest.
        for listener in self._listeners:
            try:
                listener(record)
            except Exception:
                logger.exception("Ticket listener %r failed for %s.", listener, user_id)

        return record
