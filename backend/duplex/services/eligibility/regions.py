# backend/duplex/services/eligibility/regions.py
from ipaddress import ip_address
from typing import Iterable, Optional

from duplex.core.config import settings
from duplex.schemas.auth_event import AuthEvent

US_STATES = {
    "AL": "Alabama", "AK": "Alaska", "AZ": "Arizona", "AR": "Arkansas",
    "CA": "California", "CO": "Colorado", "CT": "Connecticut", "DE": "Delaware",
    "FL": "Florida", "GA": "Georgia", "HI": "Hawaii", "ID": "Idaho",
    "IL": "Illinois", "IN": "Indiana", "IA": "Iowa", "KS": "Kansas",
    "KY": "Kentucky", "LA": "Louisiana", "ME": "Maine", "MD": "Maryland",
    "MA": "Massachusetts", "MI": "Michigan", "MN": "Minnesota", "MS": "Mississippi",
    "MO": "Missouri", "MT": "Montana", "NE": "Nebraska", "NV": "Nevada",
    "NH": "New Hampshire", "NJ": "New Jersey", "NM": "New Mexico", "NY": "New York",
    "NC": "North Carolina", "ND": "North Dakota", "OH": "Ohio", "OK": "Oklahoma",
    "OR": "Oregon", "PA": "Pennsylvania", "RI": "Rhode Island", "SC": "South Carolina",
    "SD": "South Dakota", "TN": "Tennessee", "TX": "Texas", "UT": "Utah",
    "VT": "Vermont", "VA": "Virginia", "WA": "Washington", "WV": "West Virginia",
    "WI": "Wisconsin", "WY": "Wyoming",
}


def normalize_region(region: Optional[str]) -> Optional[str]:
    """'SC', 'sc' and 'South Carolina' all normalize to 'south carolina'."""
    if not region:
        return None
    value = region.strip()
    value = US_STATES.get(value.upper(), value)
    return value.lower()


def same_region(a: Optional[str], b: Optional[str]) -> bool:
    na, nb = normalize_region(a), normalize_region(b)
    return na is not None and na == nb


COUNTRY_ALIASES = {"USA": "US", "UNITED STATES": "US", "UNITED STATES OF AMERICA": "US"}


def normalize_country(country: Optional[str]) -> Optional[str]:
    if not country:
        return None
    value = country.strip().upper()
    return COUNTRY_ALIASES.get(value, value)


def same_country(a: Optional[str], b: Optional[str]) -> bool:
    na, nb = normalize_country(a), normalize_country(b)
    return na is not None and na == nb


def country_of_region(region: Optional[str]) -> Optional[str]:
    """A home region given as a US state implies a US home country."""
    if normalize_region(region) in {s.lower() for s in US_STATES.values()}:
        return "US"
    return None


def is_unlocatable_ip(ip: Optional[str], vpn_ips: Iterable[str] | None = None) -> bool:
    """
    VPN egress and non-public addresses geolocate to the VPN concentrator
    or nowhere, never to the user.
    """
    if not ip:
        return False
    if ip in (settings.VPN_IPS if vpn_ips is None else vpn_ips):
        return True
    try:
        addr = ip_address(ip)
    except ValueError:
        return False
    return (
        addr.is_private
        or addr.is_loopback
        or addr.is_link_local
        or addr.is_reserved
        or addr.is_multicast
        or addr.is_unspecified
    )


def locatable(event: AuthEvent, vpn_ips: Iterable[str] | None = None) -> bool:
    return event.geo is not None and not is_unlocatable_ip(event.source_ip, vpn_ips)
