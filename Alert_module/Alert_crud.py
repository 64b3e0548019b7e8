from sqlalchemy.orm import Session
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Union
import logging
import math

from pydantic import BaseModel

from config import AlertConfig
from Login_module.Utils.datetime_utils import now_utc, to_utc
from Login_module.Utils.security_errors import AlertNotFoundError, InvalidOperationError, storage_guard
from .Alert_model import SecurityAlert
from .Alert_schema import AlertSeverity, AlertStatus, AlertType, GenericAlertMetadata, parse_alert_metadata
from .Alert_preference_crud import get_alert_preferences
from .alert_dispatcher import (
    NotificationDispatcher,
    channels_for_alert,
    planned_notifications,
    schedule_notifications,
)

logger = logging.getLogger(__name__)

DEFAULT_ALERT_CONFIG = AlertConfig()

ACTION_READ = "read"
ACTION_DISMISSED = "dismissed"
ACTION_RESOLVED = "resolved"


def raise_alert(
    db: Session,
    user_id: int,
    alert_type: str,
    severity: str,
    title: str,
    description: str,
    metadata: Union[BaseModel, dict, None] = None,
    session_id: Optional[str] = None,
    dispatcher: Optional[NotificationDispatcher] = None
) -> SecurityAlert:
    """
    Persist one alert, then schedule the channels the user's preferences allow
    for its severity and type.

    The alert row is the durable part: once it is committed, a failure to
    record the notification state is logged and the alert is still returned.
    """
    try:
        alert_type = AlertType(alert_type).value
        severity = AlertSeverity(severity).value
    except ValueError as e:
        raise InvalidOperationError(str(e), {"type": alert_type, "severity": severity})

    meta = parse_alert_metadata(metadata)
    channels = channels_for_alert(severity, alert_type, get_alert_preferences(db, user_id))

    with storage_guard(db, "raise alert"):
        alert = SecurityAlert(
            user_id=user_id,
            session_id=session_id,
            type=alert_type,
            severity=severity,
            title=title,
            description=description,
            alert_metadata=meta.model_dump(mode="json"),
            notifications=planned_notifications(channels),
            status=AlertStatus.UNREAD.value,
            user_actions=[],
            created_at=now_utc(),
        )
        db.add(alert)
        db.commit()
        db.refresh(alert)

    logger.info(f"Security alert {alert.id} raised for user {user_id}: {alert_type} ({severity})")
    if not channels:
        logger.info(f"Notifications for alert {alert.id} suppressed by user preferences")
        return alert

    notifications = schedule_notifications(alert.id, user_id, channels, dispatcher)
    try:
        alert.notifications = notifications
        db.commit()
        db.refresh(alert)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"Failed to record notification state for alert {alert.id}: {e}")
    return alert


def raise_test_alert(
    db: Session,
    user_id: int,
    alert_type: str,
    severity: str,
    session_id: Optional[str] = None,
    dispatcher: Optional[NotificationDispatcher] = None
) -> SecurityAlert:
    """Development helper: a clearly labelled alert that runs the full fan-out."""
    return raise_alert(
        db,
        user_id=user_id,
        alert_type=alert_type,
        severity=severity,
        title="Test Security Alert",
        description="This is a test security alert for development purposes.",
        metadata=GenericAlertMetadata(
            extra={
                "test_alert": True,
                "created_by": "development",
                "timestamp": now_utc().isoformat(),
            }
        ),
        session_id=session_id,
        dispatcher=dispatcher,
    )


def get_alert(db: Session, alert_id: int, user_id: int) -> SecurityAlert:
    with storage_guard(db, "load alert"):
        alert = db.query(SecurityAlert).filter(
            SecurityAlert.id == alert_id,
            SecurityAlert.user_id == user_id
        ).first()
    if not alert:
        raise AlertNotFoundError(alert_id)
    return alert


def get_unread_count(db: Session, user_id: int) -> int:
    return db.query(SecurityAlert).filter(
        SecurityAlert.user_id == user_id,
        SecurityAlert.status == AlertStatus.UNREAD.value
    ).count()


def list_alerts_for_user(
    db: Session,
    user_id: int,
    severity: Optional[str] = None,
    status: Optional[str] = None,
    alert_type: Optional[str] = None,
    unread_only: bool = False,
    page: int = 1,
    limit: Optional[int] = None,
    config: AlertConfig = DEFAULT_ALERT_CONFIG
) -> dict:
    """Newest-first page of the user's alerts plus total and unread counts."""
    page = max(1, page)
    limit = limit or config.default_page_size
    limit = max(1, min(limit, config.max_page_size))

    query = db.query(SecurityAlert).filter(SecurityAlert.user_id == user_id)
    if severity:
        query = query.filter(SecurityAlert.severity == severity)
    if unread_only:
        query = query.filter(SecurityAlert.status == AlertStatus.UNREAD.value)
    elif status:
        query = query.filter(SecurityAlert.status == status)
    if alert_type:
        query = query.filter(SecurityAlert.type == alert_type)

    total = query.count()
    alerts = (
        query.order_by(SecurityAlert.created_at.desc(), SecurityAlert.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "alerts": alerts,
        "total": total,
        "unread_count": get_unread_count(db, user_id),
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }


def list_user_alerts(db: Session, user_id: int) -> List[SecurityAlert]:
    return (
        db.query(SecurityAlert)
        .filter(SecurityAlert.user_id == user_id)
        .order_by(SecurityAlert.created_at.desc())
        .all()
    )


def list_alerts_for_session(db: Session, session_id: str, user_id: int) -> List[SecurityAlert]:
    return (
        db.query(SecurityAlert)
        .filter(SecurityAlert.session_id == session_id, SecurityAlert.user_id == user_id)
        .order_by(SecurityAlert.created_at.desc())
        .all()
    )


def _apply_user_action(
    db: Session,
    alert_id: int,
    user_id: int,
    status: AlertStatus,
    action: str,
    notes: Optional[str] = None
) -> SecurityAlert:
    """Set status directly and append an action record. Repeating an action is allowed."""
    now = now_utc()
    with storage_guard(db, f"{action} alert"):
        alert = get_alert(db, alert_id, user_id)
        alert.status = status.value
        if alert.read_at is None:
            alert.read_at = now
        if status == AlertStatus.RESOLVED and alert.resolved_at is None:
            alert.resolved_at = now
        # Reassign so the JSON column is flagged dirty
        alert.user_actions = list(alert.user_actions or []) + [
            {"action": action, "timestamp": now.isoformat(), "notes": notes}
        ]
        db.commit()
        db.refresh(alert)
    return alert


def mark_alert_read(db: Session, alert_id: int, user_id: int) -> SecurityAlert:
    return _apply_user_action(db, alert_id, user_id, AlertStatus.READ, ACTION_READ)


def dismiss_alert(db: Session, alert_id: int, user_id: int, notes: Optional[str] = None) -> SecurityAlert:
    return _apply_user_action(db, alert_id, user_id, AlertStatus.DISMISSED, ACTION_DISMISSED, notes)


def resolve_alert(db: Session, alert_id: int, user_id: int, notes: Optional[str] = None) -> SecurityAlert:
    return _apply_user_action(db, alert_id, user_id, AlertStatus.RESOLVED, ACTION_RESOLVED, notes)


def mark_all_read(db: Session, user_id: int, alert_ids: Optional[Iterable[int]] = None) -> int:
    """Bulk unread -> read, optionally restricted to alert_ids. Returns the number updated."""
    query = db.query(SecurityAlert).filter(
        SecurityAlert.user_id == user_id,
        SecurityAlert.status == AlertStatus.UNREAD.value
    )
    if alert_ids is not None:
        ids = list(alert_ids)
        if not ids:
            return 0
        query = query.filter(SecurityAlert.id.in_(ids))

    with storage_guard(db, "mark all alerts read"):
        count = query.update(
            {SecurityAlert.status: AlertStatus.READ.value, SecurityAlert.read_at: now_utc()},
            synchronize_session=False,
        )
        db.commit()
    return count


def get_alert_stats(
    db: Session,
    user_id: int,
    window_days: int = 30,
    config: AlertConfig = DEFAULT_ALERT_CONFIG,
    now: Optional[datetime] = None
) -> dict:
    """
    Counts by status, severity and type over the window, plus a zero-filled
    daily trend for the most recent days (at most config.trend_days).
    """
    window_days = max(1, window_days)
    now = to_utc(now or now_utc())
    since = now - timedelta(days=window_days)
    base = db.query(SecurityAlert).filter(
        SecurityAlert.user_id == user_id,
        SecurityAlert.created_at >= since
    )

    def _grouped(column) -> Dict[str, int]:
        rows = (
            base.with_entities(column, func.count(SecurityAlert.id))
            .group_by(column)
            .all()
        )
        return {key: count for key, count in rows}

    with storage_guard(db, "alert stats"):
        by_status = _grouped(SecurityAlert.status)
        by_severity = _grouped(SecurityAlert.severity)
        by_type = _grouped(SecurityAlert.type)

        trend_days = min(config.trend_days, window_days)
        trend_start = (now - timedelta(days=trend_days - 1)).date()
        recent = base.filter(
            SecurityAlert.created_at >= datetime.combine(trend_start, datetime.min.time(), tzinfo=now.tzinfo)
        ).with_entities(SecurityAlert.created_at, SecurityAlert.severity).all()

    buckets = {
        (trend_start + timedelta(days=offset)).isoformat(): {"count": 0, "high_severity": 0}
        for offset in range(trend_days)
    }
    for created_at, severity in recent:
        bucket = buckets.get(to_utc(created_at).date().isoformat())
        if bucket is None:
            continue
        bucket["count"] += 1
        if severity in (AlertSeverity.HIGH.value, AlertSeverity.CRITICAL.value):
            bucket["high_severity"] += 1

    return {
        "window_days": window_days,
        "total": sum(by_status.values()),
        "by_status": {s.value: by_status.get(s.value, 0) for s in AlertStatus},
        "by_severity": {s.value: by_severity.get(s.value, 0) for s in AlertSeverity},
        "by_type": by_type,
        "daily_trend": [{"date": day, **counts} for day, counts in buckets.items()],
    }


def purge_old_alerts(
    db: Session,
    retention_days: Optional[int] = None,
    config: AlertConfig = DEFAULT_ALERT_CONFIG,
    now: Optional[datetime] = None
) -> int:
    """Delete read/dismissed/resolved alerts older than the retention window. Unread alerts are kept."""
    retention_days = retention_days if retention_days is not None else config.retention_days
    cutoff = to_utc(now or now_utc()) - timedelta(days=retention_days)

    with storage_guard(db, "purge alerts"):
        deleted = (
            db.query(SecurityAlert)
            .filter(
                SecurityAlert.created_at < cutoff,
                SecurityAlert.status != AlertStatus.UNREAD.value
            )
            .delete(synchronize_session=False)
        )
        db.commit()

    if deleted:
        logger.info(f"Purged {deleted} security alert(s) older than {retention_days} days")
    return deleted


def clear_alerts(db: Session, user_id: int) -> int:
    """Delete every alert of the user regardless of status."""
    with storage_guard(db, "clear alerts"):
        deleted = (
            db.query(SecurityAlert)
            .filter(SecurityAlert.user_id == user_id)
            .delete(synchronize_session=False)
        )
        db.commit()
    logger.info(f"Cleared {deleted} security alert(s) for user {user_id}")
    return deleted


def mark_notification_sent(
    db: Session,
    alert_id: int,
    channel: str,
    error: Optional[str] = None
) -> SecurityAlert:
    """Delivery-side callback: record the outcome for one channel."""
    with storage_guard(db, "load alert"):
        alert = db.query(SecurityAlert).filter(SecurityAlert.id == alert_id).first()
    if not alert:
        raise AlertNotFoundError(alert_id)

    notifications = {k: dict(v) for k, v in (alert.notifications or {}).items()}
    entry = notifications.setdefault(channel, {"scheduled": False, "scheduled_at": None})
    entry["sent"] = error is None
    entry["sent_at"] = now_utc().isoformat() if error is None else None
    entry["error"] = error

    with storage_guard(db, "record notification delivery"):
        alert.notifications = notifications
        db.commit()
        db.refresh(alert)
    return alert
