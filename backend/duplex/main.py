# backend/duplex/main.py
"""
Wiring for a scheduler or CLI that wants a ready-to-use Duplex engine.

    engine = build_engine(event_source, profile_source)
    verdicts = await engine.evaluate(window)
    engine.mark_investigated("jdoe", datetime.now(timezone.utc))
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from duplex.core.config import settings
from duplex.core.logging import configure_logging
from duplex.db.init_db import init_db
from duplex.schemas.evaluation import EvaluationReport, EvaluationWindow
from duplex.schemas.findings import UserVerdict
from duplex.schemas.investigation import InvestigationRecord
from duplex.services.events.event_sources import AuthEventSource, ProfileSource
from duplex.services.investigations.investigation_store import InvestigationStore
from duplex.services.investigations.investigation_tracker import InvestigationTracker
from duplex.services.investigations.sql_investigation_store import SqlInvestigationStore
from duplex.services.investigations.ticket_hooks import TicketHooks
from duplex.services.pipeline.evaluation_service import EvaluationService


@dataclass
class DuplexEngine:
    service: EvaluationService
    tracker: InvestigationTracker
    tickets: TicketHooks

    async def evaluate(self, window: EvaluationWindow) -> List[UserVerdict]:
        return await self.service.evaluate(window)

    async def run(self, window: EvaluationWindow) -> EvaluationReport:
        return await self.service.run(window)

    def mark_investigated(self, user_id: str, at: datetime) -> InvestigationRecord:
        return self.tracker.mark_investigated(user_id, at)

    def ticket_created(
        self, user_id: str, at: datetime, ticket_id: Optional[str] = None
    ) -> InvestigationRecord:
        return self.tickets.ticket_created(user_id, at, ticket_id=ticket_id)


def build_engine(
    events: AuthEventSource,
    profiles: ProfileSource,
    store: InvestigationStore | None = None,
) -> DuplexEngine:
    """
    With no store given, investigation state goes to the database in
    settings.DATABASE_URL (tables are created if missing).
    """
    configure_logging(settings.LOG_LEVEL)

    if store is None:
        init_db()
        store = SqlInvestigationStore()

    tracker = InvestigationTracker(store)
    service = EvaluationService(events, profiles, tracker)
    return DuplexEngine(service=service, tracker=tracker, tickets=TicketHooks(tracker))
