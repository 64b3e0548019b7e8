import json

import pytest
import requests

from conftest import FakeGeoLookup, DELHI_IP, TOR_IP
from Fingerprint_module import geolocation_service
from Fingerprint_module.fingerprint_service import build_fingerprint
from Fingerprint_module.geolocation_service import (
    detect_proxy,
    detect_tor,
    detect_vpn,
    is_private_ip,
    resolve_location,
)


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


class FakeRedis:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ex=None):
        self.store[key] = value


@pytest.mark.parametrize("ip", ["10.1.2.3", "172.16.0.9", "172.31.255.1", "192.168.1.5", "127.0.0.1", "::1", "localhost"])
def test_private_addresses_are_detected(ip):
    assert is_private_ip(ip)


@pytest.mark.parametrize("ip", ["8.8.8.8", "172.32.0.1", "81.2.69.142", "not-an-ip", "", None])
def test_public_or_invalid_addresses_are_not_private(ip):
    assert not is_private_ip(ip)


def test_operator_keyword_detection():
    assert detect_vpn("NordVPN Hosting")
    assert detect_tor("Tor Exit Relay")
    assert detect_proxy("Squid Proxy Cache")

    residential = "Comcast Cable Communications, LLC"
    assert not detect_vpn(residential)
    assert not detect_proxy(residential)
    assert not detect_tor(residential)


def test_short_keywords_need_word_boundaries():
    # "tor" inside a word and "aws" inside a word are not matches
    assert not detect_tor("Victoria Broadband Networks")
    assert not detect_vpn("Lawson Telecom")
    assert detect_vpn("AWS EC2 (us-east-1)")


def test_private_address_short_circuits_without_lookup():
    lookup = FakeGeoLookup()
    location = resolve_location("192.168.1.5", lookup=lookup)
    assert location.country == "Local"
    assert location.is_local
    assert not (location.is_vpn or location.is_proxy or location.is_tor)
    assert lookup.calls == []


def test_lookup_payload_is_mapped():
    location = resolve_location(DELHI_IP, lookup=FakeGeoLookup(), use_cache=False)
    assert location.city == "New Delhi"
    assert location.country == "IN"
    assert location.timezone == "Asia/Kolkata"
    assert location.latitude == pytest.approx(28.6)
    assert location.longitude == pytest.approx(77.2)
    assert not location.is_vpn


def test_tor_operator_flags_location():
    location = resolve_location(TOR_IP, lookup=FakeGeoLookup(), use_cache=False)
    assert location.is_tor


def test_lookup_failure_degrades_to_unknown():
    location = resolve_location("203.0.113.50", lookup=FakeGeoLookup(payloads={}), use_cache=False)
    assert location.country == "Unknown"
    assert not location.is_resolved
    assert not (location.is_vpn or location.is_proxy or location.is_tor)


def test_bogon_payload_degrades_to_unknown():
    lookup = FakeGeoLookup(payloads={"198.18.0.1": {"ip": "198.18.0.1", "bogon": True}})
    assert resolve_location("198.18.0.1", lookup=lookup, use_cache=False).country == "Unknown"


def test_default_lookup_uses_requests_with_timeout(monkeypatch):
    captured = {}

    def fake_get(url, timeout=None, headers=None):
        captured["url"] = url
        captured["timeout"] = timeout
        return FakeResponse({"ip": "8.8.8.8", "city": "Mountain View", "country": "US",
                             "loc": "37.4,-122.1", "org": "AS15169 Google LLC",
                             "timezone": "America/Los_Angeles"})

    monkeypatch.setattr(geolocation_service.requests, "get", fake_get)
    location = resolve_location("8.8.8.8", use_cache=False)

    assert captured["url"].endswith("/8.8.8.8/json")
    assert captured["timeout"] == geolocation_service.settings.GEOLOOKUP_TIMEOUT_SECONDS
    assert location.city == "Mountain View"


def test_default_lookup_timeout_degrades_to_unknown(monkeypatch):
    def fake_get(url, timeout=None, headers=None):
        raise requests.Timeout("lookup timed out")

    monkeypatch.setattr(geolocation_service.requests, "get", fake_get)
    assert resolve_location("8.8.4.4", use_cache=False).country == "Unknown"


def test_default_lookup_http_error_degrades_to_unknown(monkeypatch):
    monkeypatch.setattr(
        geolocation_service.requests, "get",
        lambda url, timeout=None, headers=None: FakeResponse({}, status_code=429),
    )
    assert resolve_location("1.1.1.1", use_cache=False).country == "Unknown"


def test_successful_lookup_is_cached(monkeypatch):
    cache = FakeRedis()
    monkeypatch.setattr(geolocation_service, "_get_redis_client", lambda: cache)
    lookup = FakeGeoLookup()

    first = resolve_location(DELHI_IP, lookup=lookup)
    second = resolve_location(DELHI_IP, lookup=lookup)

    assert lookup.calls == [DELHI_IP]
    assert json.loads(cache.store[f"geoip:{DELHI_IP}"])["city"] == "New Delhi"
    assert first == second


def test_fingerprint_combines_device_and_location():
    fingerprint = build_fingerprint(None, "127.0.0.1", lookup=FakeGeoLookup())
    assert fingerprint.device.type == "unknown"
    assert fingerprint.location.is_local
    assert fingerprint.device_label == "unknown - Unknown"
