# backend/duplex/schemas/auth_event.py
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def to_utc(value: datetime) -> datetime:
    """Naive timestamps are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    FRAUD_REPORT = "fraud_report"


class TargetSystem(str, Enum):
    PRIMARY_2FA = "primary_2FA"
    DEVICE_MANAGEMENT_PORTAL = "device_management_portal"


class GeoLocation(BaseModel):
    """Where the source IP resolved to, as reported by the log provider."""
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None


class AuthEvent(BaseModel):
    """
    One 2FA attempt, normalized. Immutable once ingested.

    `sequence` is the ingestion order and breaks timestamp ties so that
    detectors always walk a user's history in the same order.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    timestamp: datetime
    outcome: Outcome
    source_ip: Optional[str] = None
    device_id: Optional[str] = Field(
        None, description="Device or MAC identifier reported by the 2FA provider"
    )
    geo: Optional[GeoLocation] = None
    target_system: TargetSystem = TargetSystem.PRIMARY_2FA
    sequence: int = 0

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, v: datetime) -> datetime:
        return to_utc(v)

    @property
    def region(self) -> Optional[str]:
        return self.geo.region if self.geo else None

    def sort_key(self) -> tuple:
        return (self.timestamp, self.sequence)

    @property
    def is_dmp_access(self) -> bool:
        return self.target_system == TargetSystem.DEVICE_MANAGEMENT_PORTAL


class UserProfile(BaseModel):
    """Account metadata from the asset / helpdesk system."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    account_created_at: Optional[datetime] = None
    home_region: Optional[str] = None
    home_city: Optional[str] = None
    home_country: Optional[str] = None

    @field_validator("account_created_at")
    @classmethod
    def _created_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc(v) if v is not None else None


def chronological(events: list[AuthEvent]) -> list[AuthEvent]:
    return sorted(events, key=AuthEvent.sort_key)
