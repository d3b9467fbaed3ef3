# backend/duplex/services/events/event_parser.py
"""
Turn raw 2FA log rows into AuthEvents.

Log rows from the provider are not uniform: the same value can live under
different keys ("result" vs "outcome", "_time" vs "timestamp") and location
may be nested or flat. Rows that cannot produce a valid AuthEvent are logged
and skipped; they never stop the rest of the batch.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from duplex.core.exceptions import MalformedEventError
from duplex.schemas.auth_event import AuthEvent, GeoLocation, Outcome, TargetSystem

logger = logging.getLogger(__name__)

OUTCOME_ALIASES = {
    "success": Outcome.SUCCESS,
    "failure": Outcome.FAILURE,
    "fraud": Outcome.FRAUD_REPORT,
    "fraud_report": Outcome.FRAUD_REPORT,
}

DMP_INTEGRATIONS = {
    "device management portal",
    "device management portal protected resource",
    "device_management_portal",
}

# Accounts the provider logs that are not people
SERVICE_ACCOUNTS = {"system"}


@dataclass
class ParseResult:
    events: List[AuthEvent] = field(default_factory=list)
    malformed: List[MalformedEventError] = field(default_factory=list)
    ignored: int = 0


def _first(row: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        v = row.get(k)
        if v not in (None, ""):
            return v
    return None


def _outcome(row: Dict[str, Any]) -> Outcome:
    raw = _first(row, "outcome", "result")
    if raw is None:
        raise MalformedEventError("missing outcome", row)
    outcome = OUTCOME_ALIASES.get(str(raw).strip().lower())
    if outcome is None:
        raise MalformedEventError(f"unknown outcome {raw!r}", row)
    return outcome


def _target_system(row: Dict[str, Any]) -> TargetSystem:
    raw = _first(row, "target_system", "integration")
    if raw is None:
        return TargetSystem.PRIMARY_2FA
    if str(raw).strip().lower() in DMP_INTEGRATIONS:
        return TargetSystem.DEVICE_MANAGEMENT_PORTAL
    return TargetSystem.PRIMARY_2FA


def _geo(row: Dict[str, Any]) -> Optional[GeoLocation]:
    loc = row.get("geo") or row.get("location") or row
    if not isinstance(loc, dict):
        return None

    lat = _first(loc, "lat", "latitude")
    lon = _first(loc, "lon", "lng", "longitude")
    if lat is None or lon is None:
        return None

    try:
        return GeoLocation(
            lat=float(lat),
            lon=float(lon),
            city=_first(loc, "city"),
            region=_first(loc, "region", "state"),
            country=_first(loc, "country", "country_code"),
        )
    except (TypeError, ValueError) as exc:
        logger.debug("Unusable geolocation %s/%s: %s", lat, lon, exc)
        return None


def parse_auth_event(row: Dict[str, Any], sequence: int) -> Optional[AuthEvent]:
    """
    Build one AuthEvent. Returns None for rows that belong to service
    accounts; raises MalformedEventError for rows that are broken.
    """
    user = _first(row, "user_id", "user")
    if user is None:
        raise MalformedEventError("missing user", row)
    user = str(user)
    if " " in user or user.lower() in SERVICE_ACCOUNTS:
        return None

    timestamp = _first(row, "timestamp", "_time", "time")
    if timestamp is None:
        raise MalformedEventError(f"missing timestamp for {user}", row)

    try:
        return AuthEvent(
            user_id=user,
            timestamp=timestamp,
            outcome=_outcome(row),
            source_ip=_first(row, "source_ip", "ip"),
            device_id=_first(row, "device_id", "device", "mac"),
            geo=_geo(row),
            target_system=_target_system(row),
            sequence=sequence,
        )
    except ValidationError as exc:
        raise MalformedEventError(f"invalid event for {user}: {exc}", row) from exc


def parse_auth_events(rows: Iterable[Dict[str, Any]], start_sequence: int = 0) -> ParseResult:
    """
    Parse a batch of rows in ingestion order. Sequence numbers follow the
    row order and are assigned before any row is rejected, so the same
    input always yields the same sequences.
    """
    result = ParseResult()

    for offset, row in enumerate(rows):
        try:
            event = parse_auth_event(row, start_sequence + offset)
        except MalformedEventError as exc:
            logger.warning("Skipping malformed 2FA event: %s", exc)
            result.malformed.append(exc)
            continue

        if event is None:
            result.ignored += 1
            continue
        result.events.append(event)

    if result.malformed:
        logger.info(
            "Parsed %d events (%d malformed, %d ignored)",
            len(result.events),
            len(result.malformed),
            result.ignored,
        )
    return result
