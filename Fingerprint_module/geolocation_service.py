"""
IP geolocation service for session fingerprinting.
Uses an ipinfo.io-style JSON API with optional Redis caching.

VPN/proxy/Tor detection is a keyword heuristic over the network operator
string returned by the lookup. It is best-effort, not authoritative.
"""
import ipaddress
import json
import logging
import re
from typing import Any, Callable, Dict, Optional

import redis
import requests

from config import settings
from .Fingerprint_schema import Location, UNKNOWN, local_location, unknown_location

logger = logging.getLogger(__name__)

GeoLookup = Callable[[str], Dict[str, Any]]

GEOLOOKUP_REQUEST_HEADERS = {
    "User-Agent": "CivicSecurity/1.0",
    "Accept": "application/json",
}

PRIVATE_NETWORKS = (
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
)

VPN_KEYWORDS = (
    "vpn", "proxy", "hosting", "datacenter", "data center", "cloud",
    "digital ocean", "digitalocean", "amazon", "azure", "linode", "vultr",
)
# Short keywords need word boundaries ("tor" is inside "Victoria")
VPN_PATTERN = re.compile(r"\baws\b")
PROXY_KEYWORDS = ("proxy", "squid", "nginx")
TOR_PATTERN = re.compile(r"\b(tor|onion|relay)\b")

_redis_client = None
_redis_checked = False


def _get_redis_client():
    """Lazily connect to Redis when REDIS_URL is configured."""
    global _redis_client, _redis_checked
    if _redis_checked:
        return _redis_client
    _redis_checked = True
    if not settings.REDIS_URL:
        return None
    try:
        client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        client.ping()
        _redis_client = client
        logger.info("Redis available for geolocation caching")
    except redis.RedisError as e:
        logger.warning(f"Redis not available for geolocation caching: {e}")
        _redis_client = None
    return _redis_client


def _cache_key(ip: str) -> str:
    return f"geoip:{ip}"


def _get_from_cache(ip: str) -> Optional[Dict[str, Any]]:
    client = _get_redis_client()
    if not client:
        return None
    try:
        cached = client.get(_cache_key(ip))
        if cached:
            logger.debug(f"Geolocation for {ip} found in cache")
            return json.loads(cached)
    except (redis.RedisError, json.JSONDecodeError) as e:
        logger.warning(f"Error reading geolocation cache: {e}")
    return None


def _save_to_cache(ip: str, payload: Dict[str, Any]) -> None:
    client = _get_redis_client()
    if not client:
        return
    try:
        client.set(_cache_key(ip), json.dumps(payload), ex=settings.GEO_CACHE_TTL_SECONDS)
    except redis.RedisError as e:
        logger.warning(f"Error saving geolocation cache: {e}")


def ipinfo_lookup(ip: str) -> Dict[str, Any]:
    """
    Default lookup collaborator: GET {GEOLOOKUP_URL}/{ip}/json with a bounded timeout.
    Raises on transport or HTTP errors; resolve_location() degrades those.
    """
    headers = dict(GEOLOOKUP_REQUEST_HEADERS)
    if settings.IPINFO_TOKEN:
        headers["Authorization"] = f"Bearer {settings.IPINFO_TOKEN}"
    response = requests.get(
        f"{settings.GEOLOOKUP_URL.rstrip('/')}/{ip}/json",
        timeout=settings.GEOLOOKUP_TIMEOUT_SECONDS,
        headers=headers,
    )
    response.raise_for_status()
    return response.json()


def is_private_ip(ip: Optional[str]) -> bool:
    """
    True for RFC1918, loopback, ::1 and "localhost".
    """
    if not ip:
        return False
    value = ip.strip()
    if value.lower() == "localhost":
        return True
    try:
        address = ipaddress.ip_address(value)
    except ValueError:
        return False
    return any(address.version == network.version and address in network for network in PRIVATE_NETWORKS)


def detect_vpn(isp: Optional[str]) -> bool:
    if not isp:
        return False
    org = isp.lower()
    return any(keyword in org for keyword in VPN_KEYWORDS) or bool(VPN_PATTERN.search(org))


def detect_proxy(isp: Optional[str]) -> bool:
    if not isp:
        return False
    org = isp.lower()
    return any(keyword in org for keyword in PROXY_KEYWORDS)


def detect_tor(isp: Optional[str]) -> bool:
    if not isp:
        return False
    return bool(TOR_PATTERN.search(isp.lower()))


def _parse_coordinates(loc: Optional[str]) -> tuple:
    try:
        lat, lng = (loc or "0,0").split(",")
        return float(lat), float(lng)
    except (ValueError, AttributeError):
        return 0.0, 0.0


def location_from_payload(ip: str, payload: Dict[str, Any]) -> Location:
    """Map an ipinfo-style payload onto a Location."""
    latitude, longitude = _parse_coordinates(payload.get("loc"))
    isp = payload.get("org") or UNKNOWN
    country_code = payload.get("country") or "XX"
    return Location(
        ip=ip,
        country=payload.get("country_name") or payload.get("country") or UNKNOWN,
        country_code=country_code,
        region=payload.get("region") or UNKNOWN,
        city=payload.get("city") or UNKNOWN,
        timezone=payload.get("timezone") or UNKNOWN,
        latitude=latitude,
        longitude=longitude,
        isp=isp,
        is_vpn=detect_vpn(payload.get("org")),
        is_proxy=detect_proxy(payload.get("org")),
        is_tor=detect_tor(payload.get("org")),
    )


def resolve_location(ip: Optional[str], lookup: Optional[GeoLookup] = None, use_cache: bool = True) -> Location:
    """
    Resolve a network address to a coarse Location.

    Private/loopback addresses short-circuit to the Local pseudo-location
    without calling the lookup. Any lookup failure degrades to the Unknown
    location with all anonymity flags false; this function never raises.
    """
    if is_private_ip(ip):
        return local_location(ip)
    if not ip:
        return unknown_location(ip)

    payload = _get_from_cache(ip) if use_cache else None
    if payload is None:
        try:
            payload = (lookup or ipinfo_lookup)(ip)
        except Exception as e:
            logger.warning(f"Geolocation lookup failed for {ip}: {e}")
            return unknown_location(ip)
        if not isinstance(payload, dict) or payload.get("bogon") or payload.get("error"):
            logger.warning(f"Geolocation lookup returned no usable data for {ip}")
            return unknown_location(ip)
        if use_cache:
            _save_to_cache(ip, payload)

    try:
        return location_from_payload(ip, payload)
    except Exception as e:
        logger.warning(f"Could not parse geolocation payload for {ip}: {e}")
        return unknown_location(ip)
