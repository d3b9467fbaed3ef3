"""Shared locations and timestamps for Duplex tests."""

from __future__ import annotations

from datetime import datetime, timezone

from duplex.schemas.auth_event import GeoLocation

LOS_ANGELES = GeoLocation(lat=34.0522, lon=-118.2437, city="Los Angeles", region="California", country="US")
NEW_YORK = GeoLocation(lat=40.7128, lon=-74.0060, city="New York", region="New York", country="US")
CLEMSON = GeoLocation(lat=34.6834, lon=-82.8374, city="Clemson", region="South Carolina", country="US")
CHARLOTTE = GeoLocation(lat=35.2271, lon=-80.8431, city="Charlotte", region="North Carolina", country="US")
BEIJING = GeoLocation(lat=39.9042, lon=116.4074, city="Beijing", region="Beijing", country="CN")
# GeoIP result with no region, as is common for foreign addresses
MOSCOW = GeoLocation(lat=55.7558, lon=37.6173, city="Moscow", region=None, country="RU")


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)
