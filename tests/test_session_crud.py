from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from conftest import DELHI_IP, DESKTOP_CHROME_UA, IPHONE_SAFARI_UA, LONDON_IP
from Fingerprint_module.fingerprint_service import build_fingerprint
from Login_module.Utils.datetime_utils import now_utc, to_utc
from Login_module.Utils.security_errors import (
    CurrentSessionRevokeError,
    SessionExpiredError,
    SessionNotFoundError,
    StorageError,
)
from Session_module import Session_crud
from Session_module.Session_audit_model import SessionAuditLog
from Session_module.Session_model import LoginSession


@pytest.fixture
def fingerprint(fake_lookup):
    return build_fingerprint(DESKTOP_CHROME_UA, DELHI_IP, lookup=fake_lookup, use_cache=False)


def _create(db, user, fingerprint, **kwargs):
    return Session_crud.create_login_session(db, user.id, fingerprint, **kwargs)


def test_created_session_is_listed_as_active(db, user, fingerprint):
    ls = _create(db, user, fingerprint)

    active = Session_crud.list_active_sessions(db, user.id)
    assert [s.id for s in active] == [ls.id]
    assert to_utc(ls.expires_at) - to_utc(ls.created_at) == timedelta(days=7)
    assert ls.refresh_token_family
    assert ls.country == "IN"
    assert ls.device_type == "web"


def test_expiry_is_filled_before_insert_when_missing(db, user):
    ls = LoginSession(user_id=user.id, refresh_token_family="family-1", ip_address="8.8.8.8", risk_score=150)
    db.add(ls)
    db.commit()
    db.refresh(ls)

    assert ls.expires_at is not None
    assert to_utc(ls.expires_at) - to_utc(ls.created_at) == timedelta(days=7)
    assert ls.risk_score == 100


def test_history_is_the_users_active_sessions(db, user, other_user, fake_lookup, base_time):
    london = build_fingerprint(DESKTOP_CHROME_UA, LONDON_IP, lookup=fake_lookup, use_cache=False)
    delhi = build_fingerprint(DESKTOP_CHROME_UA, DELHI_IP, lookup=fake_lookup, use_cache=False)

    # Another user's London session must not count as history
    _create(db, other_user, london, event_time=base_time)
    first = _create(db, user, delhi, event_time=base_time)
    assert first.risk_score == 0

    # A revoked session is not history either
    Session_crud.revoke_session(db, first.id, user.id)
    second = _create(db, user, london, event_time=base_time + timedelta(hours=1))
    assert second.risk_score == 0


def test_revoke_removes_from_active_and_is_idempotent(db, user, fingerprint):
    ls = _create(db, user, fingerprint)

    revoked_session, revoked = Session_crud.revoke_session(db, ls.id, user.id)
    assert revoked
    assert not revoked_session.is_active
    assert revoked_session.revoke_reason == Session_crud.REVOKE_REASON_USER
    assert Session_crud.list_active_sessions(db, user.id) == []

    fetched = Session_crud.get_user_session(db, ls.id, user.id)
    assert fetched.is_active is False

    again, revoked_again = Session_crud.revoke_session(db, ls.id, user.id)
    assert not revoked_again
    assert again.id == ls.id


def test_revoking_current_session_is_rejected(db, user, fingerprint):
    ls = _create(db, user, fingerprint)
    with pytest.raises(CurrentSessionRevokeError) as exc:
        Session_crud.revoke_session(db, ls.id, user.id, current_session_id=ls.id)
    assert exc.value.code == "CANNOT_REVOKE_CURRENT_SESSION"
    assert Session_crud.get_user_session(db, ls.id, user.id).is_active


def test_other_users_session_is_not_found(db, user, other_user, fingerprint):
    ls = _create(db, other_user, fingerprint)
    with pytest.raises(SessionNotFoundError):
        Session_crud.revoke_session(db, ls.id, user.id)
    with pytest.raises(SessionNotFoundError):
        Session_crud.get_user_session(db, "missing-session-id", user.id)


def test_bulk_revoke_keeps_current_and_other_users(db, user, other_user, fingerprint):
    current = _create(db, user, fingerprint)
    others = [_create(db, user, fingerprint) for _ in range(3)]
    foreign = _create(db, other_user, fingerprint)

    count, targets = Session_crud.deactivate_other_sessions(db, user.id, current.id)

    assert count == 3
    assert {s.id for s in targets} == {s.id for s in others}
    assert [s.id for s in Session_crud.list_active_sessions(db, user.id)] == [current.id]
    assert [s.id for s in Session_crud.list_active_sessions(db, other_user.id)] == [foreign.id]


def test_touch_activity_is_best_effort(db, user, fingerprint, monkeypatch):
    ls = _create(db, user, fingerprint)
    assert Session_crud.touch_activity(db, ls.id)

    assert not Session_crud.touch_activity(db, "missing-session-id")

    Session_crud.revoke_session(db, ls.id, user.id)
    assert not Session_crud.touch_activity(db, ls.id)

    live = _create(db, user, fingerprint)

    def failing_commit():
        raise OperationalError("UPDATE login_sessions", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "commit", failing_commit)
    assert Session_crud.touch_activity(db, live.id) is False


def test_storage_failures_surface_as_storage_error(db, user, fingerprint, monkeypatch):
    def failing_commit():
        raise OperationalError("INSERT INTO login_sessions", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "commit", failing_commit)
    with pytest.raises(StorageError) as exc:
        _create(db, user, fingerprint)
    assert exc.value.status_code == 503


def test_rotate_refresh_updates_the_same_row(db, user, fingerprint):
    ls = _create(db, user, fingerprint)

    refreshed = Session_crud.rotate_refresh(db, ls.refresh_token_family)
    refreshed = Session_crud.rotate_refresh(db, ls.refresh_token_family)

    assert refreshed.id == ls.id
    assert refreshed.refresh_count == 2
    assert refreshed.last_refreshed_at is not None
    assert db.query(LoginSession).count() == 1


def test_rotate_refresh_expires_stale_session(db, user, fingerprint):
    ls = _create(db, user, fingerprint, expires_at=now_utc() - timedelta(minutes=1))

    with pytest.raises(SessionExpiredError):
        Session_crud.rotate_refresh(db, ls.refresh_token_family)

    db.refresh(ls)
    assert not ls.is_active
    assert ls.revoke_reason == Session_crud.REVOKE_REASON_EXPIRED


def test_rotate_refresh_unknown_family(db):
    with pytest.raises(SessionNotFoundError):
        Session_crud.rotate_refresh(db, "unknown-family")


def test_long_lived_session_stays_valid_until_expires_at(db, user, fingerprint):
    now = now_utc()
    ls = _create(db, user, fingerprint, event_time=now - timedelta(days=8), expires_at=now + timedelta(days=22))

    assert [s.id for s in Session_crud.list_active_sessions(db, user.id)] == [ls.id]
    assert ls.is_valid()

    refreshed = Session_crud.rotate_refresh(db, ls.refresh_token_family)
    assert refreshed.is_active
    assert refreshed.refresh_count == 1


def test_ownership_lookup_failures_surface_as_storage_error(db, user, fingerprint, monkeypatch):
    ls = _create(db, user, fingerprint)
    family = ls.refresh_token_family
    session_id = ls.id

    def failing_query(*args, **kwargs):
        raise OperationalError("SELECT login_sessions", {}, Exception("server closed the connection"))

    monkeypatch.setattr(db, "query", failing_query)
    with pytest.raises(StorageError):
        Session_crud.revoke_session(db, session_id, user.id)
    with pytest.raises(StorageError):
        Session_crud.rotate_refresh(db, family)
    with pytest.raises(StorageError):
        Session_crud.get_user_session(db, session_id, user.id)


def test_cleanup_deletes_expired_and_stale_inactive(db, user, fingerprint):
    now = now_utc()
    live = _create(db, user, fingerprint)
    expired = _create(db, user, fingerprint, expires_at=now - timedelta(hours=1))
    stale = _create(db, user, fingerprint, event_time=now - timedelta(days=40), expires_at=now + timedelta(days=1))
    recent_inactive = _create(db, user, fingerprint)
    Session_crud.revoke_session(db, stale.id, user.id)
    Session_crud.revoke_session(db, recent_inactive.id, user.id)
    # Deleted rows can no longer be read through their instances
    expired_id, stale_id = expired.id, stale.id

    # Revocation does not move last activity, so the stale one stays 40 days old
    deleted = Session_crud.cleanup_expired_sessions(db)

    assert deleted == 2
    remaining = {s.id for s in db.query(LoginSession).all()}
    assert remaining == {live.id, recent_inactive.id}
    assert expired_id not in remaining
    assert stale_id not in remaining

    # Idempotent
    assert Session_crud.cleanup_expired_sessions(db) == 0


def test_security_stats(db, user, fake_lookup):
    delhi = build_fingerprint(DESKTOP_CHROME_UA, DELHI_IP, lookup=fake_lookup, use_cache=False)
    london = build_fingerprint(IPHONE_SAFARI_UA, LONDON_IP, lookup=fake_lookup, use_cache=False)
    first = _create(db, user, delhi)
    _create(db, user, london)
    Session_crud.revoke_session(db, first.id, user.id)

    stats = Session_crud.get_security_stats(db, user.id)

    assert stats["total_sessions"] == 2
    assert stats["active_sessions"] == 1
    assert stats["unique_countries"] == 2
    assert stats["unique_devices"] == 2
    assert stats["last_login_at"] is not None


def test_lifecycle_events_are_audited(db, user, fingerprint):
    ls = _create(db, user, fingerprint)
    Session_crud.revoke_session(db, ls.id, user.id)

    events = [log.event_type for log in db.query(SessionAuditLog).order_by(SessionAuditLog.id).all()]
    assert events == ["CREATED", "REVOKED"]
