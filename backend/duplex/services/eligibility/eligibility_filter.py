# backend/duplex/services/eligibility/eligibility_filter.py
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from duplex.core.config import settings
from duplex.schemas.auth_event import AuthEvent, UserProfile, to_utc
from duplex.services.eligibility.regions import (
    country_of_region,
    locatable,
    same_country,
    same_region,
)

logger = logging.getLogger(__name__)


class EligibilityFilter:
    """
    Decides whether a user is worth running detectors on at all.

    A user is excluded when ANY rule matches:
      1. The account is younger than NEW_ACCOUNT_DAYS at evaluation time.
      2. Every locatable event in the window comes from the home region.

    Pure predicate: no I/O, no state.
    """

    def __init__(self, new_account_days: int | None = None) -> None:
        self.new_account_days = (
            settings.NEW_ACCOUNT_DAYS if new_account_days is None else new_account_days
        )

    def is_eligible(
        self,
        profile: Optional[UserProfile],
        events: List[AuthEvent],
        as_of: datetime,
    ) -> bool:
        reason = self.exclusion_reason(profile, events, as_of)
        if reason:
            user = profile.user_id if profile else (events[0].user_id if events else "?")
            logger.info("%s excluded from evaluation: %s", user, reason)
            return False
        return True

    def exclusion_reason(
        self,
        profile: Optional[UserProfile],
        events: List[AuthEvent],
        as_of: datetime,
    ) -> Optional[str]:
        if profile is None:
            # nothing to judge age or home by; let the detectors decide
            return None

        if self._is_new_account(profile, as_of):
            return "account_too_new"

        if self._home_region_only(profile, events):
            return "home_region_only"

        return None

    def _is_new_account(self, profile: UserProfile, as_of: datetime) -> bool:
        if profile.account_created_at is None:
            return False
        age = to_utc(as_of) - profile.account_created_at
        return age < timedelta(days=self.new_account_days)

    @staticmethod
    def _home_region_only(profile: UserProfile, events: List[AuthEvent]) -> bool:
        if not profile.home_region:
            return False

        home_country = profile.home_country or country_of_region(profile.home_region)
        home_signals = 0

        for e in events:
            if not locatable(e):
                continue
            # GeoIP often leaves the region blank abroad; the country still counts
            country = e.geo.country
            if home_country and country and not same_country(home_country, country):
                return False
            if e.region:
                if not same_region(profile.home_region, e.region):
                    return False
                home_signals += 1

        # no regional signal either way means eligible
        return home_signals > 0


eligibility_filter = EligibilityFilter()
