"""
Notification fan-out for security alerts.

This module only decides which channels an alert goes to and hands each one
to a dispatcher. Delivery itself belongs to the dispatcher implementation;
the delivery side reports outcomes back through Alert_crud.mark_notification_sent.
"""
import logging
from typing import Dict, List, Optional

from Login_module.Utils.datetime_utils import now_utc
from .Alert_schema import AlertPreferences, AlertSeverity, AlertType, NotificationChannel

logger = logging.getLogger(__name__)

SEVERITY_CHANNELS = {
    AlertSeverity.CRITICAL.value: [NotificationChannel.EMAIL.value, NotificationChannel.PUSH.value, NotificationChannel.SMS.value],
    AlertSeverity.HIGH.value: [NotificationChannel.EMAIL.value, NotificationChannel.PUSH.value],
    AlertSeverity.MEDIUM.value: [NotificationChannel.EMAIL.value, NotificationChannel.PUSH.value],
    AlertSeverity.LOW.value: [NotificationChannel.PUSH.value],
}


SEVERITY_RANK = {
    AlertSeverity.LOW.value: 0,
    AlertSeverity.MEDIUM.value: 1,
    AlertSeverity.HIGH.value: 2,
    AlertSeverity.CRITICAL.value: 3,
}


def channels_for_severity(severity: str) -> List[str]:
    return list(SEVERITY_CHANNELS.get(severity, [NotificationChannel.PUSH.value]))


def channels_for_alert(
    severity: str,
    alert_type: str,
    preferences: Optional[AlertPreferences] = None
) -> List[str]:
    """
    Severity fan-out narrowed by the user's preferences. An empty list means
    the alert is recorded without notifying anyone.
    """
    channels = channels_for_severity(severity)
    if preferences is None:
        return channels

    if SEVERITY_RANK.get(severity, 0) < SEVERITY_RANK.get(preferences.severity_threshold, 0):
        return []
    if preferences.alert_types and alert_type not in preferences.alert_types:
        return []
    if alert_type == AlertType.MULTIPLE_FAILED_ATTEMPTS.value and not preferences.failed_login_alerts:
        return []

    muted = set()
    if not preferences.email_notifications:
        muted.add(NotificationChannel.EMAIL.value)
    if not preferences.push_notifications:
        muted.add(NotificationChannel.PUSH.value)
    return [c for c in channels if c not in muted]


class NotificationDispatcher:
    """Hands an alert to one delivery channel. Must not block on delivery."""

    def schedule(self, channel: str, alert_id: int, user_id: int) -> None:
        raise NotImplementedError


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Default dispatcher: records the hand-off in the application log."""

    def schedule(self, channel: str, alert_id: int, user_id: int) -> None:
        logger.info(f"Scheduled {channel} notification for alert {alert_id} (user {user_id})")


_dispatcher: NotificationDispatcher = LoggingNotificationDispatcher()


def get_dispatcher() -> NotificationDispatcher:
    return _dispatcher


def set_dispatcher(dispatcher: NotificationDispatcher) -> None:
    global _dispatcher
    _dispatcher = dispatcher


def planned_notifications(channels: List[str]) -> Dict[str, dict]:
    """Per-channel state before any hand-off: nothing scheduled yet."""
    return {
        channel: {
            "scheduled": False,
            "scheduled_at": None,
            "sent": False,
            "sent_at": None,
            "error": None,
        }
        for channel in channels
    }


def schedule_notifications(
    alert_id: int,
    user_id: int,
    channels: List[str],
    dispatcher: Optional[NotificationDispatcher] = None
) -> Dict[str, dict]:
    """
    Hand every channel to the dispatcher and return the per-channel state
    to persist on the alert. A failing channel is recorded, not raised.
    """
    dispatcher = dispatcher or get_dispatcher()
    state = planned_notifications(channels)
    for channel, entry in state.items():
        try:
            dispatcher.schedule(channel, alert_id, user_id)
            entry["scheduled"] = True
            entry["scheduled_at"] = now_utc().isoformat()
        except Exception as e:
            logger.warning(f"Failed to schedule {channel} notification for alert {alert_id}: {e}")
            entry["error"] = str(e)
    return state
