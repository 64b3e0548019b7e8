from datetime import timedelta

from Alert_module import Alert_crud
from Alert_module.Alert_model import SecurityAlert
from Alert_module.alert_cleanup import purge_alerts_job
from Login_module.Utils.datetime_utils import now_utc
from Session_module import scheduler as session_scheduler
from Session_module.Session_model import LoginSession
from Session_module.session_cleanup import cleanup_sessions_job


def test_cleanup_job_deletes_expired_sessions(db, user):
    now = now_utc()
    db.add_all([
        LoginSession(user_id=user.id, refresh_token_family="live", ip_address="81.2.69.142"),
        LoginSession(user_id=user.id, refresh_token_family="expired", ip_address="81.2.69.142",
                     created_at=now - timedelta(days=8), expires_at=now - timedelta(days=1)),
    ])
    db.commit()

    cleanup_sessions_job()

    db.expire_all()
    assert [s.refresh_token_family for s in db.query(LoginSession).all()] == ["live"]


def test_purge_job_keeps_unread(db, user):
    unread = Alert_crud.raise_alert(db, user.id, "new_device", "low", "New device login", "desc")
    read = Alert_crud.raise_alert(db, user.id, "new_device", "low", "New device login", "desc")
    Alert_crud.mark_alert_read(db, read.id, user.id)
    for alert in (unread, read):
        alert.created_at = now_utc() - timedelta(days=365)
    db.commit()

    purge_alerts_job()

    db.expire_all()
    assert [a.id for a in db.query(SecurityAlert).all()] == [unread.id]


def test_scheduler_registers_both_jobs():
    scheduler = session_scheduler.start_scheduler()
    try:
        assert {job.id for job in scheduler.get_jobs()} == {"session_cleanup", "alert_purge"}
        assert session_scheduler.start_scheduler() is scheduler
    finally:
        session_scheduler.shutdown_scheduler()
    assert session_scheduler.scheduler is None
