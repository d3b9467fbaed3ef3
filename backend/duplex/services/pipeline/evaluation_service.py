# backend/duplex/services/pipeline/evaluation_service.py

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from duplex.core.config import settings
from duplex.core.exceptions import EvaluationAborted, MalformedEventError, StateStoreUnavailable
from duplex.schemas.auth_event import AuthEvent, UserProfile
from duplex.schemas.evaluation import EvaluationReport, EvaluationWindow, UserEvaluationError
from duplex.schemas.findings import Finding, UserVerdict
from duplex.schemas.investigation import InvestigationRecord
from duplex.services.detection.detector_set import DetectorSet, detector_set
from duplex.services.eligibility.eligibility_filter import EligibilityFilter, eligibility_filter
from duplex.services.events.event_parser import parse_auth_event
from duplex.services.events.event_sources import AuthEventSource, ProfileSource
from duplex.services.events.retry import async_retry
from duplex.services.investigations.investigation_tracker import InvestigationTracker
from duplex.services.scoring.scoring_engine import ScoringEngine, scoring_engine

logger = logging.getLogger(__name__)


@dataclass
class _UserOutcome:
    user_id: str
    findings: List[Finding] = field(default_factory=list)
    snapshot: Optional[InvestigationRecord] = None
    excluded: bool = False
    malformed: int = 0
    error: Optional[UserEvaluationError] = None


class EvaluationService:
    """
    End-to-end Duplex run over one evaluation window:

      1. Check the investigation store is reachable (else abort the run)
      2. List users active in the window
      3. Per user, concurrently (bounded by EVALUATION_CONCURRENCY):
           fetch events + profile -> snapshot investigation state
           -> eligibility -> detectors
      4. Wait for every user, then rank globally
      5. Drop users inside a suppression window (last stage)
      6. Return the EvaluationReport

    Per-user failures land in report.errors and never stop other users.
    Cancelling the run discards everything; there is no partial ranking.
    """

    def __init__(
        self,
        events: AuthEventSource,
        profiles: ProfileSource,
        tracker: InvestigationTracker,
        eligibility: EligibilityFilter | None = None,
        detectors: DetectorSet | None = None,
        scoring: ScoringEngine | None = None,
        concurrency: int | None = None,
        fetch_attempts: int | None = None,
        fetch_base_delay: float | None = None,
    ) -> None:
        self.events = events
        self.profiles = profiles
        self.tracker = tracker
        self.eligibility = eligibility or eligibility_filter
        self.detectors = detectors or detector_set
        self.scoring = scoring or scoring_engine
        self.concurrency = max(1, concurrency or settings.EVALUATION_CONCURRENCY)
        self.fetch_attempts = fetch_attempts or settings.FETCH_ATTEMPTS
        self.fetch_base_delay = (
            settings.FETCH_BASE_DELAY if fetch_base_delay is None else fetch_base_delay
        )

    async def evaluate(self, window: EvaluationWindow) -> List[UserVerdict]:
        """Ranked, suppression-filtered verdicts for the window."""
        report = await self.run(window)
        return report.verdicts

    async def run(self, window: EvaluationWindow) -> EvaluationReport:
        as_of = window.as_of

        # --------------------------------------------------
        # 1) Aggregation-level preconditions
        # --------------------------------------------------
        try:
            self.tracker.ping()
        except StateStoreUnavailable as exc:
            logger.error("Investigation store unavailable; aborting run: %s", exc)
            raise EvaluationAborted(f"investigation store unavailable: {exc}") from exc

        # --------------------------------------------------
        # 2) Users active in the window
        # --------------------------------------------------
        try:
            users = await self._fetch(lambda: self.events.list_users(window))
        except Exception as exc:
            logger.error("Could not list users for %s..%s: %s", window.start, window.end, exc)
            raise EvaluationAborted(f"could not list users: {exc}") from exc

        users = sorted(set(users))
        logger.info("Evaluating %d users for %s..%s", len(users), window.start, window.end)

        # --------------------------------------------------
        # 3) Per-user evaluation (fan-out)
        # --------------------------------------------------
        sem = asyncio.Semaphore(self.concurrency)
        outcomes: List[_UserOutcome] = await asyncio.gather(
            *(self._evaluate_user(user_id, window, sem) for user_id in users)
        )

        # --------------------------------------------------
        # 4) Global ranking (fan-in)
        # --------------------------------------------------
        findings_by_user: Dict[str, List[Finding]] = {}
        snapshots: Dict[str, Optional[InvestigationRecord]] = {}
        errors: List[UserEvaluationError] = []

        for outcome in outcomes:
            if outcome.error is not None:
                errors.append(outcome.error)
                continue
            if outcome.findings:
                findings_by_user[outcome.user_id] = outcome.findings
                snapshots[outcome.user_id] = outcome.snapshot

        ranked = self.scoring.rank(findings_by_user)

        # --------------------------------------------------
        # 5) Suppression filter (last stage)
        # --------------------------------------------------
        suppression = self.tracker.filter_verdicts(ranked, as_of, snapshots)
        errors.extend(suppression.errors)

        report = EvaluationReport(
            window=window,
            verdicts=self.scoring.rerank(suppression.verdicts),
            errors=errors,
            warnings=suppression.warnings,
            users_seen=len(users),
            users_excluded=sum(1 for o in outcomes if o.excluded),
            users_suppressed=len(suppression.suppressed),
            malformed_events=sum(o.malformed for o in outcomes),
        )

        logger.info(
            "Run finished: %d seen, %d excluded, %d flagged, %d suppressed, %d failed",
            report.users_seen,
            report.users_excluded,
            len(report.verdicts),
            report.users_suppressed,
            len(report.errors),
        )
        return report

    # -------------------------------------------------------------------------
    # Per-user stages
    # -------------------------------------------------------------------------
    async def _fetch(self, fn):
        return await async_retry(
            fn, attempts=self.fetch_attempts, base_delay=self.fetch_base_delay
        )

    async def _evaluate_user(
        self, user_id: str, window: EvaluationWindow, sem: asyncio.Semaphore
    ) -> _UserOutcome:
        outcome = _UserOutcome(user_id=user_id)

        # Only the collaborator fetches suspend; everything after is CPU-bound.
        async with sem:
            try:
                raw_events = await self._fetch(lambda: self.events.fetch_events(user_id, window))
                profile: Optional[UserProfile] = await self._fetch(
                    lambda: self.profiles.fetch_profile(user_id)
                )
            except Exception as exc:
                logger.exception("Fetch failed for %s.", user_id)
                outcome.error = self._error(user_id, "fetch", exc)
                return outcome

        events = self._normalize(user_id, raw_events, outcome)

        try:
            outcome.snapshot = self.tracker.record(user_id)
        except StateStoreUnavailable as exc:
            logger.error("Suppression state unreadable for %s: %s", user_id, exc)
            outcome.error = self._error(user_id, "suppression", exc)
            return outcome

        if not self.eligibility.is_eligible(profile, events, window.as_of):
            outcome.excluded = True
            return outcome

        try:
            outcome.findings = self.detectors.detect(user_id, events, window.as_of)
        except Exception as exc:
            logger.exception("Detection failed for %s.", user_id)
            outcome.error = self._error(user_id, "detection", exc)

        return outcome

    @staticmethod
    def _normalize(user_id: str, items: List[Any], outcome: _UserOutcome) -> List[AuthEvent]:
        """Sources may hand back parsed AuthEvents or raw log rows."""
        events: List[AuthEvent] = []
        for offset, item in enumerate(items or []):
            if isinstance(item, AuthEvent):
                events.append(item)
                continue
            try:
                event = parse_auth_event(item, sequence=offset)
            except MalformedEventError as exc:
                logger.warning("Skipping malformed event for %s: %s", user_id, exc)
                outcome.malformed += 1
                continue
            if event is not None:
                events.append(event)
        return events

    @staticmethod
    def _error(user_id: str, stage: str, exc: Exception) -> UserEvaluationError:
        return UserEvaluationError(
            user_id=user_id,
            stage=stage,
            error_type=type(exc).__name__,
            error=str(exc),
        )
