from datetime import datetime, timedelta, timezone

import pytest

from pydantic import ValidationError

from config import AlertConfig, RiskConfig, SessionConfig
from Fingerprint_module.Fingerprint_schema import DeviceInfo, Fingerprint, Location, unknown_location
from Risk_module.risk_engine import (
    FACTOR_IMPOSSIBLE_TRAVEL,
    FACTOR_MISSING_USER_AGENT,
    FACTOR_NEW_COUNTRY,
    FACTOR_RAPID_LOCATION_CHANGE,
    FACTOR_TOR,
    FACTOR_UNKNOWN_DEVICE,
    FACTOR_UNRESOLVED_LOCATION,
    FACTOR_UNUSUAL_TIME,
    FACTOR_VPN,
    PriorLogin,
    calculate_distance_km,
    risk_level_for,
    score_login,
)

NOON_UTC = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
WEB_DEVICE = DeviceInfo(type="web", os="Windows", browser="Chrome", user_agent="Mozilla/5.0 Chrome")


def _location(lat, lng, country="IN", tz="UTC", **flags):
    return Location(
        ip="203.0.113.10", country=country, country_code=country, city="City",
        region="Region", timezone=tz, latitude=lat, longitude=lng, isp="Example ISP", **flags
    )


def _fingerprint(location, device=WEB_DEVICE):
    return Fingerprint(device=device, location=location)


def test_distance_is_symmetric_and_zero_for_same_point():
    delhi = (28.6, 77.2)
    london = (51.5, -0.1)
    assert calculate_distance_km(*delhi, *london) == pytest.approx(calculate_distance_km(*london, *delhi))
    assert calculate_distance_km(*delhi, *delhi) == 0
    assert 6600 < calculate_distance_km(*delhi, *london) < 6800


def test_clean_login_without_history_is_low():
    result = score_login(_fingerprint(_location(28.6, 77.2)), [], NOON_UTC)
    assert result.risk_score == 0
    assert result.risk_level == "low"
    assert result.risk_factors == []
    assert not result.requires_verification


def test_impossible_travel_1500km_in_3h():
    # ~1500 km due north along a meridian
    previous = PriorLogin(location=_location(10.0, 77.0), created_at=NOON_UTC - timedelta(hours=3))
    result = score_login(_fingerprint(_location(23.49, 77.0)), [previous], NOON_UTC)

    assert FACTOR_IMPOSSIBLE_TRAVEL in result.risk_factors
    assert FACTOR_RAPID_LOCATION_CHANGE not in result.risk_factors
    assert result.risk_score >= 25


def test_rapid_location_change_600km_in_1h():
    previous = PriorLogin(location=_location(10.0, 77.0), created_at=NOON_UTC - timedelta(hours=1))
    result = score_login(_fingerprint(_location(15.4, 77.0)), [previous], NOON_UTC)

    assert FACTOR_RAPID_LOCATION_CHANGE in result.risk_factors
    assert FACTOR_IMPOSSIBLE_TRAVEL not in result.risk_factors
    assert result.risk_score == 15


def test_new_country_is_independent_of_distance():
    previous = PriorLogin(location=_location(28.6, 77.2, country="IN"), created_at=NOON_UTC - timedelta(days=2))
    result = score_login(_fingerprint(_location(28.7, 77.3, country="NP")), [previous], NOON_UTC)
    assert result.risk_factors == [FACTOR_NEW_COUNTRY]
    assert result.risk_score == 10


def test_compares_against_most_recent_prior_login():
    older = PriorLogin(location=_location(51.5, -0.1, country="GB"), created_at=NOON_UTC - timedelta(hours=1))
    newest = PriorLogin(location=_location(28.6, 77.2), created_at=NOON_UTC - timedelta(minutes=30))
    result = score_login(_fingerprint(_location(28.6, 77.2)), [older, newest], NOON_UTC)
    assert result.risk_score == 0


def test_anonymity_flags_add_their_weights():
    location = _location(52.5, 13.4, country="DE", is_vpn=True, is_proxy=True, is_tor=True)
    result = score_login(_fingerprint(location), [], NOON_UTC)
    assert result.risk_score == 20 + 15 + 30
    assert FACTOR_VPN in result.risk_factors
    assert FACTOR_TOR in result.risk_factors
    assert result.risk_level == "high"
    assert result.requires_verification


def test_missing_client_identifier_and_unknown_device():
    result = score_login(_fingerprint(_location(28.6, 77.2), device=DeviceInfo()), [], NOON_UTC)
    assert FACTOR_UNKNOWN_DEVICE in result.risk_factors
    assert FACTOR_MISSING_USER_AGENT in result.risk_factors
    assert result.risk_score == 15


def test_unresolved_location_adds_risk_and_skips_geo_checks():
    previous = PriorLogin(location=_location(28.6, 77.2), created_at=NOON_UTC - timedelta(minutes=10))
    result = score_login(_fingerprint(unknown_location("203.0.113.99")), [previous], NOON_UTC)
    assert result.risk_factors == [FACTOR_UNRESOLVED_LOCATION]
    assert result.risk_score == 10


def test_unusual_time_uses_login_local_hour():
    # 22:30 UTC is 04:00 in Kolkata
    late = datetime(2026, 3, 10, 22, 30, tzinfo=timezone.utc)
    kolkata = score_login(_fingerprint(_location(28.6, 77.2, tz="Asia/Kolkata")), [], late)
    london = score_login(_fingerprint(_location(51.5, -0.1, country="GB", tz="Europe/London")), [], late)

    assert FACTOR_UNUSUAL_TIME in kolkata.risk_factors
    assert FACTOR_UNUSUAL_TIME not in london.risk_factors


def test_score_is_clamped_to_max():
    config = RiskConfig(vpn_weight=80, tor_weight=80)
    location = _location(52.5, 13.4, is_vpn=True, is_tor=True)
    result = score_login(_fingerprint(location), [], NOON_UTC, config)
    assert result.risk_score == 100


def test_score_is_deterministic_for_identical_inputs():
    previous = PriorLogin(location=_location(28.6, 77.2), created_at=NOON_UTC - timedelta(hours=2))
    fingerprint = _fingerprint(_location(51.5, -0.1, country="GB", is_vpn=True))
    first = score_login(fingerprint, [previous], NOON_UTC)
    second = score_login(fingerprint, [previous], NOON_UTC)
    assert first == second


@pytest.mark.parametrize("score,level", [(0, "low"), (29, "low"), (30, "medium"), (59, "medium"), (60, "high"), (100, "high")])
def test_risk_level_buckets(score, level):
    assert risk_level_for(score) == level


def test_high_scores_recommend_step_up_and_tor_blocking():
    location = _location(52.5, 13.4, is_vpn=True, is_proxy=True, is_tor=True)
    result = score_login(_fingerprint(location, device=DeviceInfo()), [], NOON_UTC)
    assert "Require immediate 2FA verification" in result.recommendations
    assert "Limit session duration to 1 hour" in result.recommendations
    assert "Block Tor access or require enhanced verification" in result.recommendations


@pytest.mark.parametrize("config_cls,field", [
    (RiskConfig, "vpn_weight"),
    (SessionConfig, "session_ttl_seconds"),
    (AlertConfig, "retention_days"),
])
def test_configs_are_immutable(config_cls, field):
    config = config_cls()
    with pytest.raises(ValidationError):
        setattr(config, field, 1)


def test_enum_fields_are_stored_as_values():
    assert type(DeviceInfo(type="mobile").type) is str
    assessment = score_login(_fingerprint(_location(28.6, 77.2)), [], NOON_UTC)
    assert type(assessment.risk_level) is str
    assert assessment.risk_level == "low"
