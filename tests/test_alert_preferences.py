from datetime import timedelta

import pytest

from config import SessionConfig
from conftest import DELHI_IP, DESKTOP_CHROME_UA, IPHONE_SAFARI_UA, LONDON_IP, TOR_IP
from Alert_module import Alert_crud
from Alert_module.Alert_preference_crud import get_alert_preferences, update_alert_preferences
from Alert_module.Alert_preference_model import AlertPreference
from Alert_module.Alert_schema import AlertPreferences, AlertPreferencesUpdate, AlertType
from Alert_module.alert_dispatcher import channels_for_alert
from Login_module.Utils.security_errors import InvalidOperationError
from Session_module import session_service
from Session_module.Session_schema import SecuritySettingsRequest


def _raise(db, user, alert_type=AlertType.NEW_DEVICE.value, severity="low"):
    return Alert_crud.raise_alert(
        db,
        user_id=user.id,
        alert_type=alert_type,
        severity=severity,
        title="Security event",
        description="Something happened on your account.",
    )


def _login(db, user, lookup, ip=DELHI_IP, user_agent=DESKTOP_CHROME_UA, **kwargs):
    return session_service.register_login(db, user.id, user_agent, ip, lookup=lookup, **kwargs)


def test_defaults_without_a_stored_row(db, user):
    prefs = get_alert_preferences(db, user.id)

    assert prefs == AlertPreferences()
    assert prefs.severity_threshold == "low"
    assert prefs.alert_types == []
    assert prefs.email_notifications and prefs.push_notifications
    assert db.query(AlertPreference).count() == 0


def test_partial_updates_keep_other_fields(db, user, other_user):
    update_alert_preferences(db, user.id, {"email_notifications": False})
    prefs = update_alert_preferences(db, user.id, {"severity_threshold": "high", "alert_types": ["new_location"]})

    assert not prefs.email_notifications
    assert prefs.push_notifications
    assert prefs.severity_threshold == "high"
    assert prefs.alert_types == ["new_location"]
    assert db.query(AlertPreference).count() == 1
    assert get_alert_preferences(db, other_user.id) == AlertPreferences()


def test_invalid_threshold_is_rejected(db, user):
    with pytest.raises(InvalidOperationError):
        update_alert_preferences(db, user.id, {"severity_threshold": "extreme"})
    assert db.query(AlertPreference).count() == 0


def test_unknown_field_is_rejected(db, user):
    with pytest.raises(InvalidOperationError) as exc:
        update_alert_preferences(db, user.id, {"sms_everything": True})
    assert exc.value.details["fields"] == ["sms_everything"]


def test_update_request_maps_to_columns():
    changes = AlertPreferencesUpdate(enable_email_notifications=False, severity_threshold="medium").to_changes()
    assert changes == {"email_notifications": False, "severity_threshold": "medium"}


def test_security_settings_accept_older_field_names():
    legacy = SecuritySettingsRequest(enable_location_alerts=False, enable_new_device_alerts=False)
    assert legacy.to_changes() == {"location_alerts": False, "new_device_alerts": False}

    # The current name wins when both are sent
    both = SecuritySettingsRequest(location_alerts=True, enable_location_alerts=False, email_alerts=False)
    assert both.to_changes() == {"location_alerts": True, "email_notifications": False}


@pytest.mark.parametrize("prefs,severity,alert_type,channels", [
    (None, "critical", "new_device", ["email", "push", "sms"]),
    (AlertPreferences(), "high", "new_device", ["email", "push"]),
    (AlertPreferences(email_notifications=False), "critical", "new_device", ["push", "sms"]),
    (AlertPreferences(push_notifications=False), "low", "new_device", []),
    (AlertPreferences(severity_threshold="high"), "medium", "new_device", []),
    (AlertPreferences(severity_threshold="high"), "high", "new_device", ["email", "push"]),
    (AlertPreferences(alert_types=["new_location"]), "medium", "new_device", []),
    (AlertPreferences(alert_types=["new_location"]), "medium", "new_location", ["email", "push"]),
    (AlertPreferences(failed_login_alerts=False), "high", "multiple_failed_attempts", []),
])
def test_channels_follow_preferences(prefs, severity, alert_type, channels):
    assert channels_for_alert(severity, alert_type, prefs) == channels


def test_muted_email_is_not_scheduled(db, user, dispatcher):
    update_alert_preferences(db, user.id, {"email_notifications": False})

    alert = _raise(db, user, severity="high")

    assert dispatcher.channels_for(alert.id) == ["push"]
    assert list(alert.notifications) == ["push"]


def test_alert_below_threshold_is_recorded_without_notifications(db, user, dispatcher):
    update_alert_preferences(db, user.id, {"severity_threshold": "high"})

    quiet = _raise(db, user, severity="medium")
    loud = _raise(db, user, severity="critical")

    assert quiet.status == "unread"
    assert quiet.notifications == {}
    assert dispatcher.channels_for(quiet.id) == []
    assert dispatcher.channels_for(loud.id) == ["email", "push", "sms"]
    assert Alert_crud.get_unread_count(db, user.id) == 2


def test_type_filter_limits_notifications(db, user, dispatcher):
    update_alert_preferences(db, user.id, {"alert_types": ["new_location"]})

    device = _raise(db, user, alert_type="new_device", severity="medium")
    location = _raise(db, user, alert_type="new_location", severity="medium")

    assert dispatcher.channels_for(device.id) == []
    assert dispatcher.channels_for(location.id) == ["email", "push"]


def test_new_device_toggle_skips_the_alert(db, user, fake_lookup, dispatcher, base_time):
    update_alert_preferences(db, user.id, {"new_device_alerts": False})
    _login(db, user, fake_lookup, event_time=base_time)

    result = _login(db, user, fake_lookup, user_agent=IPHONE_SAFARI_UA, event_time=base_time + timedelta(hours=1))

    assert result["alerts"] == []
    assert Alert_crud.list_user_alerts(db, user.id) == []


def test_location_toggle_skips_the_alert(db, user, fake_lookup, base_time):
    update_alert_preferences(db, user.id, {"location_alerts": False})
    _login(db, user, fake_lookup, event_time=base_time)

    result = _login(db, user, fake_lookup, ip=LONDON_IP, event_time=base_time + timedelta(hours=2))

    assert result["alerts"] == []


def test_suspicious_activity_toggle_keeps_high_risk_alert(db, user, fake_lookup, base_time):
    update_alert_preferences(db, user.id, {"suspicious_activity_alerts": False})
    _login(db, user, fake_lookup, event_time=base_time)

    result = _login(db, user, fake_lookup, ip=TOR_IP, user_agent="", event_time=base_time + timedelta(hours=1))

    types = {a.type for a in result["alerts"]}
    assert AlertType.HIGH_RISK_LOGIN.value in types
    assert AlertType.SUSPICIOUS_LOCATION.value not in types


def test_development_alert_is_labelled(db, user, dispatcher):
    alert = Alert_crud.raise_test_alert(db, user.id, "unusual_activity", "medium")

    assert alert.title == "Test Security Alert"
    assert alert.alert_metadata["kind"] == "generic"
    assert alert.alert_metadata["extra"]["test_alert"] is True
    assert alert.alert_metadata["extra"]["created_by"] == "development"
    assert dispatcher.channels_for(alert.id) == ["email", "push"]


def test_suspicious_activity_toggle_skips_refresh_alert(db, user, fake_lookup):
    update_alert_preferences(db, user.id, {"suspicious_activity_alerts": False})
    config = SessionConfig(suspicious_refresh_count=1)
    refresh_token = _login(db, user, fake_lookup)["tokens"]["refresh_token"]

    for _ in range(3):
        refresh_token = session_service.refresh_session(db, refresh_token, config=config)["refresh_token"]

    assert Alert_crud.list_user_alerts(db, user.id) == []
