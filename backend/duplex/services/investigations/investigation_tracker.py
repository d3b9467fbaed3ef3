# backend/duplex/services/investigations/investigation_tracker.py
import logging
import threading
import zlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Mapping, Optional, Sequence

from duplex.core.config import settings
from duplex.core.exceptions import StateStoreUnavailable
from duplex.schemas.auth_event import to_utc
from duplex.schemas.evaluation import EvaluationWarning, UserEvaluationError
from duplex.schemas.findings import UserVerdict
from duplex.schemas.investigation import InvestigationRecord, InvestigationStatus
from duplex.services.investigations.investigation_store import InvestigationStore

logger = logging.getLogger(__name__)

LOCK_STRIPES = 64


def _marked_since(
    snapshot: Optional[InvestigationRecord], current: Optional[InvestigationRecord]
) -> bool:
    """An analyst mark landed after the snapshot; tickets opening don't count."""
    if current is None or current.status != InvestigationStatus.INVESTIGATED:
        return False
    return snapshot is None or snapshot.marked_at != current.marked_at


@dataclass
class SuppressionResult:
    verdicts: List[UserVerdict] = field(default_factory=list)
    suppressed: List[str] = field(default_factory=list)
    errors: List[UserEvaluationError] = field(default_factory=list)
    warnings: List[EvaluationWarning] = field(default_factory=list)


class InvestigationTracker:
    """
    Per-user investigation state machine:

        none -> open -> investigated -> (suppression expires) -> none

    `open` comes from the ticket-created hook, `investigated` from an
    analyst. Expiry is never written back; a record whose suppress_until
    has passed simply reads as `none`.

    Every read-modify-write on one user runs under that user's lock, so an
    analyst marking a user and a run checking the same user can't
    interleave. Locks are striped over a fixed pool keyed by user id, so
    memory stays bounded however many users are seen; two users may share
    a stripe, but no code path holds more than one lock at a time.
    """

    def __init__(self, store: InvestigationStore, suppression_hours: int | None = None) -> None:
        self.store = store
        self.suppression = timedelta(
            hours=settings.SUPPRESSION_HOURS if suppression_hours is None else suppression_hours
        )
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def _lock_for(self, user_id: str) -> threading.Lock:
        return self._locks[zlib.crc32(user_id.encode("utf-8")) % len(self._locks)]

    # --------------------------------------------------------
    # Reads
    # --------------------------------------------------------
    def ping(self) -> None:
        self.store.ping()

    def record(self, user_id: str) -> Optional[InvestigationRecord]:
        with self._lock_for(user_id):
            return self.store.get(user_id)

    def status(self, user_id: str, as_of: datetime) -> InvestigationStatus:
        rec = self.record(user_id)
        if rec is None:
            return InvestigationStatus.NONE
        return rec.effective_status(as_of)

    def is_suppressed(self, user_id: str, as_of: datetime) -> bool:
        rec = self.record(user_id)
        return rec is not None and rec.is_suppressing(as_of)

    # --------------------------------------------------------
    # Transitions
    # --------------------------------------------------------
    def mark_open(
        self, user_id: str, at: datetime, ticket_id: Optional[str] = None
    ) -> InvestigationRecord:
        """none -> open. A user still inside a suppression window is left alone."""
        at = to_utc(at)
        with self._lock_for(user_id):
            current = self.store.get(user_id)
            if current is not None and current.is_suppressing(at):
                logger.info("%s is already investigated; ticket %s not reopened", user_id, ticket_id)
                return current

            record = InvestigationRecord(
                user_id=user_id,
                status=InvestigationStatus.OPEN,
                ticket_id=ticket_id,
                opened_at=at,
            )
            self.store.put(record)

        logger.info("Opened investigation for %s (ticket=%s)", user_id, ticket_id)
        return record

    def mark_investigated(self, user_id: str, at: datetime) -> InvestigationRecord:
        """open/any -> investigated; the user stays out of output until at + 24h."""
        at = to_utc(at)
        with self._lock_for(user_id):
            current = self.store.get(user_id)
            record = InvestigationRecord(
                user_id=user_id,
                status=InvestigationStatus.INVESTIGATED,
                ticket_id=current.ticket_id if current else None,
                opened_at=current.opened_at if current else None,
                marked_at=at,
                suppress_until=at + self.suppression,
            )
            self.store.put(record)

        logger.info(
            "Marked %s investigated; suppressed until %s",
            user_id,
            record.suppress_until.isoformat(),
        )
        return record

    def clear(self, user_id: str) -> None:
        """Analyst un-marks a user; they can reappear on the next run."""
        with self._lock_for(user_id):
            self.store.delete(user_id)
        logger.info("Cleared investigation state for %s", user_id)

    # --------------------------------------------------------
    # Final pipeline stage
    # --------------------------------------------------------
    def filter_verdicts(
        self,
        verdicts: Sequence[UserVerdict],
        as_of: datetime,
        snapshots: Mapping[str, Optional[InvestigationRecord]] | None = None,
    ) -> SuppressionResult:
        """
        Drop every user whose record is `investigated` and unexpired at
        `as_of`. State is re-read here, so a mark made while the run was in
        flight still applies (the later write wins); `snapshots` holds
        what the run saw when it started so the race can be reported.
        """
        snapshots = snapshots or {}
        result = SuppressionResult()

        for verdict in verdicts:
            user_id = verdict.user_id
            try:
                current = self.record(user_id)
            except StateStoreUnavailable as exc:
                logger.error("Suppression state unreadable for %s: %s", user_id, exc)
                result.errors.append(
                    UserEvaluationError(
                        user_id=user_id,
                        stage="suppression",
                        error_type=type(exc).__name__,
                        error=str(exc),
                    )
                )
                continue

            if user_id in snapshots and _marked_since(snapshots[user_id], current):
                logger.warning("%s was re-marked while being evaluated", user_id)
                result.warnings.append(
                    EvaluationWarning(
                        user_id=user_id,
                        code="concurrent_mark_conflict",
                        message="Investigation state changed during evaluation; latest state applied.",
                    )
                )

            if current is not None and current.is_suppressing(as_of):
                result.suppressed.append(user_id)
                continue

            result.verdicts.append(verdict)

        return result
