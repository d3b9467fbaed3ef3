# backend/duplex/services/detection/detector_set.py
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List

from duplex.core.config import settings
from duplex.schemas.auth_event import AuthEvent, Outcome, chronological
from duplex.schemas.findings import Finding, FindingKind
from duplex.services.detection.geo import haversine_km
from duplex.services.eligibility.regions import locatable

logger = logging.getLogger(__name__)

# (user_id, chronologically ordered events, evaluation time) -> findings
DetectorRule = Callable[[str, List[AuthEvent], datetime], List[Finding]]


def default_weights() -> Dict[FindingKind, int]:
    return {
        FindingKind.FRAUD_REPORT: settings.WEIGHT_FRAUD_REPORT,
        FindingKind.IMPOSSIBLE_TRAVEL: settings.WEIGHT_IMPOSSIBLE_TRAVEL,
        FindingKind.DMP_FAILURE: settings.WEIGHT_DMP_FAILURE,
        FindingKind.FAILURE_WITHOUT_RECOVERY: settings.WEIGHT_FAILURE_WITHOUT_RECOVERY,
    }


class DetectorSet:
    """
    The four Duplex detectors.

    Implemented rules:
      1. Fraud report: the user pressed "report fraud" on a push.
      2. Failure without recovery: a failure not followed by a success
         within RECOVERY_WINDOW_MINUTES.
      3. Impossible travel: consecutive events from different IPs/devices
         that are too far apart for the time between them.
      4. Device Management Portal failure.

    Rules never see each other's output. Every rule gets the same
    chronologically ordered event list and the findings are concatenated
    without deduplication, so one event can back several findings.
    """

    def __init__(
        self,
        recovery_window_minutes: int | None = None,
        travel_min_distance_km: float | None = None,
        travel_min_speed_kph: float | None = None,
        weights: Dict[FindingKind, int] | None = None,
    ) -> None:
        self.recovery_window = timedelta(
            minutes=settings.RECOVERY_WINDOW_MINUTES
            if recovery_window_minutes is None
            else recovery_window_minutes
        )
        self.travel_min_distance_km = (
            settings.TRAVEL_MIN_DISTANCE_KM
            if travel_min_distance_km is None
            else travel_min_distance_km
        )
        self.travel_min_speed_kph = (
            settings.TRAVEL_MIN_SPEED_KPH
            if travel_min_speed_kph is None
            else travel_min_speed_kph
        )
        self.weights = weights or default_weights()

        self.rules: List[DetectorRule] = [
            self._rule_fraud_report,
            self._rule_failure_without_recovery,
            self._rule_impossible_travel,
            self._rule_dmp_failure,
        ]

    def register_rule(self, rule: DetectorRule) -> None:
        self.rules.append(rule)

    # -------------------------------------------------------------------------
    # Public entry point
    # -------------------------------------------------------------------------
    def detect(self, user_id: str, events: List[AuthEvent], as_of: datetime) -> List[Finding]:
        """
        Run every rule over one user's events and merge the findings.
        Events for other users are ignored.
        """
        ordered = chronological([e for e in events if e.user_id == user_id])
        if not ordered:
            return []

        findings: List[Finding] = []
        for rule in self.rules:
            findings.extend(rule(user_id, ordered, as_of))

        if findings:
            logger.debug("%s: %d findings", user_id, len(findings))
        return findings

    def _finding(
        self,
        user_id: str,
        kind: FindingKind,
        evidence: List[AuthEvent],
        as_of: datetime,
        description: str,
        metadata: dict | None = None,
    ) -> Finding:
        return Finding(
            user_id=user_id,
            kind=kind,
            weight=self.weights[kind],
            evidence=tuple(evidence),
            detected_at=as_of,
            description=description,
            metadata=metadata or {},
        )

    # -------------------------------------------------------------------------
    # Rule 1: Fraud reports
    # -------------------------------------------------------------------------
    def _rule_fraud_report(
        self, user_id: str, events: List[AuthEvent], as_of: datetime
    ) -> List[Finding]:
        findings: List[Finding] = []

        for ev in events:
            if ev.outcome != Outcome.FRAUD_REPORT:
                continue
            findings.append(
                self._finding(
                    user_id,
                    FindingKind.FRAUD_REPORT,
                    [ev],
                    as_of,
                    f"{user_id} reported a 2FA request from {ev.source_ip or 'unknown IP'} as fraud.",
                    {"ip": ev.source_ip},
                )
            )

        return findings

    # -------------------------------------------------------------------------
    # Rule 2: Failure without recovery
    # -------------------------------------------------------------------------
    def _rule_failure_without_recovery(
        self, user_id: str, events: List[AuthEvent], as_of: datetime
    ) -> List[Finding]:
        """
        A success recovers a failure F when F.time < success.time <=
        F.time + window. The upper bound is inclusive; a success carrying the
        failure's own timestamp does not count. Each failure is judged on
        its own even when several fall inside one window.
        """
        findings: List[Finding] = []
        minutes = int(self.recovery_window.total_seconds() // 60)

        for i, ev in enumerate(events):
            if ev.outcome != Outcome.FAILURE:
                continue

            deadline = ev.timestamp + self.recovery_window
            recovered = False
            for later in events[i + 1:]:
                if later.timestamp > deadline:
                    break
                if later.timestamp > ev.timestamp and later.outcome == Outcome.SUCCESS:
                    recovered = True
                    break

            if recovered:
                continue

            evidence = [ev]
            if i + 1 < len(events):
                evidence.append(events[i + 1])

            findings.append(
                self._finding(
                    user_id,
                    FindingKind.FAILURE_WITHOUT_RECOVERY,
                    evidence,
                    as_of,
                    f"2FA failure at {ev.timestamp.isoformat()} with no success "
                    f"in the following {minutes} minutes.",
                    {"window_minutes": minutes},
                )
            )

        return findings

    # -------------------------------------------------------------------------
    # Rule 3: Impossible travel
    # -------------------------------------------------------------------------
    def _rule_impossible_travel(
        self, user_id: str, events: List[AuthEvent], as_of: datetime
    ) -> List[Finding]:
        """
        Compare each event with the one right before it. Only distance
        and speed gate the finding: short hops under the distance floor are
        GeoIP noise no matter how fast they look.
        """
        findings: List[Finding] = []

        for prev, nxt in zip(events, events[1:]):
            if prev.source_ip == nxt.source_ip and prev.device_id == nxt.device_id:
                continue

            if not (locatable(prev) and locatable(nxt)):
                continue

            elapsed_s = (nxt.timestamp - prev.timestamp).total_seconds()
            if elapsed_s <= 0:
                continue

            distance_km = haversine_km(prev.geo, nxt.geo)
            if distance_km <= self.travel_min_distance_km:
                continue

            speed_kph = distance_km / (elapsed_s / 3600.0)
            if speed_kph <= self.travel_min_speed_kph:
                continue

            findings.append(
                self._finding(
                    user_id,
                    FindingKind.IMPOSSIBLE_TRAVEL,
                    [prev, nxt],
                    as_of,
                    f"Travelled {distance_km:.0f} km in {elapsed_s / 60:.1f} minutes "
                    f"({speed_kph:.0f} kph) between {prev.source_ip} and {nxt.source_ip}.",
                    {
                        "distance_km": round(distance_km, 3),
                        "elapsed_minutes": round(elapsed_s / 60, 3),
                        "speed_kph": round(speed_kph, 3),
                    },
                )
            )

        return findings

    # -------------------------------------------------------------------------
    # Rule 4: Device Management Portal failures
    # -------------------------------------------------------------------------
    def _rule_dmp_failure(
        self, user_id: str, events: List[AuthEvent], as_of: datetime
    ) -> List[Finding]:
        findings: List[Finding] = []

        for ev in events:
            if not ev.is_dmp_access or ev.outcome != Outcome.FAILURE:
                continue
            findings.append(
                self._finding(
                    user_id,
                    FindingKind.DMP_FAILURE,
                    [ev],
                    as_of,
                    f"Failed Device Management Portal access from {ev.source_ip or 'unknown IP'}.",
                    {"ip": ev.source_ip},
                )
            )

        return findings


detector_set = DetectorSet()
