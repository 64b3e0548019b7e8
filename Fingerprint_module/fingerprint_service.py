"""
Builds the login fingerprint (device + location + anonymity flags).
Enrichment failures never surface: the worst case is the Unknown fingerprint.
"""
import logging
from typing import Optional

from .Fingerprint_schema import Fingerprint
from .device_parser import parse_user_agent
from .geolocation_service import GeoLookup, resolve_location

logger = logging.getLogger(__name__)


def build_fingerprint(
    user_agent: Optional[str],
    ip: Optional[str],
    lookup: Optional[GeoLookup] = None,
    use_cache: bool = True,
) -> Fingerprint:
    device = parse_user_agent(user_agent)
    location = resolve_location(ip, lookup=lookup, use_cache=use_cache)
    logger.debug(
        "Fingerprint built: device=%s/%s location=%s vpn=%s proxy=%s tor=%s",
        device.type, device.os, location.label,
        location.is_vpn, location.is_proxy, location.is_tor,
    )
    return Fingerprint(device=device, location=location)
