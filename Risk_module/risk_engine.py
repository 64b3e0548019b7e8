"""
Login risk scoring.

score_login() is a pure function of its inputs: the new login's fingerprint,
the user's prior logins and the event timestamp. It performs no I/O and never
raises on incomplete input; missing data adds risk instead.
"""
import math
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field

from config import RiskConfig
from Fingerprint_module.Fingerprint_schema import DeviceType, Fingerprint, Location

EARTH_RADIUS_KM = 6371.0

FACTOR_VPN = "VPN detected"
FACTOR_PROXY = "Proxy detected"
FACTOR_TOR = "Tor network detected"
FACTOR_UNKNOWN_DEVICE = "Unknown device type"
FACTOR_MISSING_USER_AGENT = "Missing client identifier"
FACTOR_UNRESOLVED_LOCATION = "Unresolved location"
FACTOR_IMPOSSIBLE_TRAVEL = "Impossible travel detected"
FACTOR_RAPID_LOCATION_CHANGE = "Rapid location change"
FACTOR_NEW_COUNTRY = "New country login"
FACTOR_UNUSUAL_TIME = "Unusual login time"

DEFAULT_RISK_CONFIG = RiskConfig()


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PriorLogin(BaseModel):
    """The parts of an earlier session the engine compares against."""
    location: Location
    created_at: datetime


class RiskAssessment(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    risk_score: int = Field(0, ge=0, le=100)
    risk_level: RiskLevel = RiskLevel.LOW
    risk_factors: List[str] = Field(default_factory=list)
    requires_verification: bool = False
    recommendations: List[str] = Field(default_factory=list)


def calculate_distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle (haversine) distance in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _local_hour(event_time: datetime, tz_name: Optional[str]) -> int:
    """Hour of the event in the login location's timezone when it is a known IANA zone."""
    if tz_name and "/" in tz_name:
        try:
            return _as_utc(event_time).astimezone(ZoneInfo(tz_name)).hour
        except (ZoneInfoNotFoundError, ValueError):
            pass
    return event_time.hour


def risk_level_for(score: int, config: RiskConfig = DEFAULT_RISK_CONFIG) -> str:
    if score < config.medium_threshold:
        return RiskLevel.LOW.value
    if score < config.high_threshold:
        return RiskLevel.MEDIUM.value
    return RiskLevel.HIGH.value


def security_recommendations(score: int, factors: Sequence[str]) -> List[str]:
    """Advisory actions for the caller; nothing here is enforced."""
    recommendations = []

    if score > 70:
        recommendations.append("Require immediate 2FA verification")
        recommendations.append("Send security alert to user")
        recommendations.append("Limit session duration to 1 hour")
    elif score > 50:
        recommendations.append("Send security notification to user")
        recommendations.append("Monitor session activity closely")
    elif score > 30:
        recommendations.append("Log security event for review")

    if FACTOR_VPN in factors:
        recommendations.append("Consider blocking VPN access for sensitive operations")

    if FACTOR_TOR in factors:
        recommendations.append("Block Tor access or require enhanced verification")

    return recommendations


def score_login(
    fingerprint: Fingerprint,
    history: Sequence[PriorLogin],
    event_time: datetime,
    config: RiskConfig = DEFAULT_RISK_CONFIG,
) -> RiskAssessment:
    """
    Additive heuristic risk score for a new login, capped at config.max_score.

    history holds the user's earlier logins in any order; the geographic
    checks compare against the most recent one.
    """
    score = 0
    factors: List[str] = []
    location = fingerprint.location
    device = fingerprint.device

    if location.is_vpn:
        score += config.vpn_weight
        factors.append(FACTOR_VPN)

    if location.is_proxy:
        score += config.proxy_weight
        factors.append(FACTOR_PROXY)

    if location.is_tor:
        score += config.tor_weight
        factors.append(FACTOR_TOR)

    if not location.is_resolved:
        score += config.unresolved_location_weight
        factors.append(FACTOR_UNRESOLVED_LOCATION)

    if history:
        previous = max(history, key=lambda prior: _as_utc(prior.created_at))
        elapsed_hours = abs(
            (_as_utc(event_time) - _as_utc(previous.created_at)).total_seconds()
        ) / 3600.0

        # Distance is meaningless when either side has no real coordinates
        if location.has_coordinates and previous.location.has_coordinates:
            distance = calculate_distance_km(
                location.latitude, location.longitude,
                previous.location.latitude, previous.location.longitude,
            )
            if distance > config.impossible_travel_km and elapsed_hours < config.impossible_travel_hours:
                score += config.impossible_travel_weight
                factors.append(FACTOR_IMPOSSIBLE_TRAVEL)
            elif distance > config.rapid_change_km and elapsed_hours < config.rapid_change_hours:
                score += config.rapid_location_change_weight
                factors.append(FACTOR_RAPID_LOCATION_CHANGE)

        if location.is_resolved and previous.location.is_resolved and location.country != previous.location.country:
            score += config.new_country_weight
            factors.append(FACTOR_NEW_COUNTRY)

    if device.type == DeviceType.UNKNOWN:
        score += config.unknown_device_weight
        factors.append(FACTOR_UNKNOWN_DEVICE)

    if not (device.user_agent or "").strip():
        score += config.missing_user_agent_weight
        factors.append(FACTOR_MISSING_USER_AGENT)

    hour = _local_hour(event_time, location.timezone)
    if config.unusual_hour_start <= hour < config.unusual_hour_end:
        score += config.unusual_time_weight
        factors.append(FACTOR_UNUSUAL_TIME)

    score = max(0, min(score, config.max_score))

    return RiskAssessment(
        risk_score=score,
        risk_level=risk_level_for(score, config),
        risk_factors=factors,
        requires_verification=score > config.verification_threshold,
        recommendations=security_recommendations(score, factors),
    )
