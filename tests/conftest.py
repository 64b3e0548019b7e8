import os
import sys
from datetime import timedelta
from pathlib import Path

import pytest

# Configure test environment before any application module reads settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-session-security"
os.environ["REDIS_URL"] = ""

# Ensure the project root is on sys.path when pytest changes CWD to this tests dir
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from database import Base, SessionLocal, engine  # noqa: E402
from Login_module.User.user_model import User  # noqa: E402,F401
from Login_module.User.user_crud import create_user  # noqa: E402
from Login_module.Utils.datetime_utils import now_utc  # noqa: E402
from Session_module.Session_model import LoginSession  # noqa: E402,F401
from Session_module.Session_audit_model import SessionAuditLog  # noqa: E402,F401
from Alert_module.Alert_model import SecurityAlert  # noqa: E402,F401
from Alert_module.Alert_preference_model import AlertPreference  # noqa: E402,F401
from Alert_module import alert_dispatcher  # noqa: E402

DESKTOP_CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
IPHONE_SAFARI_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1"
)

DELHI_IP = "103.21.58.1"
LONDON_IP = "81.2.69.142"
TOR_IP = "185.220.101.1"
VPN_IP = "45.83.1.1"

GEO_PAYLOADS = {
    DELHI_IP: {
        "ip": DELHI_IP, "city": "New Delhi", "region": "Delhi", "country": "IN",
        "loc": "28.6,77.2", "org": "AS9829 Bharat Sanchar Nigam Ltd", "timezone": "Asia/Kolkata",
    },
    LONDON_IP: {
        "ip": LONDON_IP, "city": "London", "region": "England", "country": "GB",
        "loc": "51.5,-0.1", "org": "AS20712 Andrews & Arnold Ltd", "timezone": "Europe/London",
    },
    TOR_IP: {
        "ip": TOR_IP, "city": "Berlin", "region": "Berlin", "country": "DE",
        "loc": "52.52,13.40", "org": "AS60729 Tor Exit Relay", "timezone": "Europe/Berlin",
    },
    VPN_IP: {
        "ip": VPN_IP, "city": "Amsterdam", "region": "North Holland", "country": "NL",
        "loc": "52.37,4.89", "org": "NordVPN Hosting", "timezone": "Europe/Amsterdam",
    },
}


class FakeGeoLookup:
    """Injectable lookup(ip) -> dict backed by fixed payloads."""

    def __init__(self, payloads=None):
        self.payloads = dict(GEO_PAYLOADS if payloads is None else payloads)
        self.calls = []

    def __call__(self, ip):
        self.calls.append(ip)
        if ip not in self.payloads:
            raise ConnectionError(f"no route to lookup service for {ip}")
        return dict(self.payloads[ip])


class RecordingDispatcher(alert_dispatcher.NotificationDispatcher):
    def __init__(self):
        self.scheduled = []

    def schedule(self, channel, alert_id, user_id):
        self.scheduled.append((channel, alert_id, user_id))

    def channels_for(self, alert_id):
        return [channel for channel, aid, _ in self.scheduled if aid == alert_id]


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def user(db):
    return create_user(db, email="asha@example.com", name="Asha")


@pytest.fixture
def other_user(db):
    return create_user(db, email="ben@example.com", name="Ben")


@pytest.fixture
def fake_lookup():
    return FakeGeoLookup()


@pytest.fixture
def dispatcher():
    recording = RecordingDispatcher()
    alert_dispatcher.set_dispatcher(recording)
    yield recording
    alert_dispatcher.set_dispatcher(alert_dispatcher.LoggingNotificationDispatcher())


@pytest.fixture
def base_time():
    """Midday UTC yesterday: inside the session TTL and outside the unusual-hour window for the test zones."""
    return now_utc().replace(hour=12, minute=0, second=0, microsecond=0) - timedelta(days=1)
