"""
Session security flows built on the session store and the alert sink.

Alert raising here is a side effect of the session operation: a failure to
record an alert is logged and never undoes the session change that caused it.
"""
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from config import RiskConfig, SessionConfig, settings
from Alert_module import Alert_crud
from Alert_module.Alert_model import SecurityAlert
from Alert_module.Alert_preference_crud import get_alert_preferences
from Alert_module.Alert_schema import (
    AlertPreferences,
    AlertSeverity,
    AlertType,
    LoginRiskMetadata,
    RefreshPatternMetadata,
    SessionRevocationMetadata,
    SessionSnapshot,
    SuspiciousReportMetadata,
    alert_to_item,
)
from Alert_module.alert_dispatcher import NotificationDispatcher
from Fingerprint_module.Fingerprint_schema import Fingerprint
from Fingerprint_module.fingerprint_service import build_fingerprint
from Fingerprint_module.geolocation_service import GeoLookup
from Login_module.User.user_crud import is_active_user
from Login_module.Utils import Security
from Login_module.Utils.datetime_utils import now_utc, to_utc_isoformat
from Login_module.Utils.security_errors import SessionNotFoundError, SessionSecurityError
from Risk_module.risk_engine import (
    DEFAULT_RISK_CONFIG,
    RiskAssessment,
    risk_level_for,
    security_recommendations,
)
from . import Session_crud
from .Session_audit_crud import EVENT_REPORTED, list_session_audit_logs, try_audit
from .Session_model import LoginSession
from .Session_schema import SessionData, SessionDevice, SessionLocation, SessionSecurity

logger = logging.getLogger(__name__)


def session_snapshot(ls: LoginSession) -> SessionSnapshot:
    return SessionSnapshot(
        session_id=ls.id,
        device_type=ls.device_type,
        device_os=ls.device_os,
        browser=ls.device_browser,
        ip_address=ls.ip_address,
        city=ls.city,
        country=ls.country,
        latitude=ls.latitude,
        longitude=ls.longitude,
        isp=ls.isp,
        risk_score=ls.risk_score,
        created_at=ls.created_at,
        last_active_at=ls.last_active_at,
    )


def stored_assessment(ls: LoginSession, risk_config: RiskConfig = DEFAULT_RISK_CONFIG) -> RiskAssessment:
    """Rebuild the login-time assessment from the persisted columns."""
    factors = list(ls.risk_factors or [])
    return RiskAssessment(
        risk_score=ls.risk_score,
        risk_level=risk_level_for(ls.risk_score, risk_config),
        risk_factors=factors,
        requires_verification=ls.requires_verification,
        recommendations=security_recommendations(ls.risk_score, factors),
    )


def session_to_data(ls: LoginSession, current_session_id: Optional[str] = None) -> SessionData:
    return SessionData(
        session_id=ls.id,
        device=SessionDevice(
            type=ls.device_type,
            os=ls.device_os,
            browser=ls.device_browser,
            app=ls.device_app,
        ),
        location=SessionLocation(
            ip_address=ls.ip_address,
            country=ls.country,
            country_code=ls.country_code,
            region=ls.region,
            city=ls.city,
            timezone=ls.timezone,
            latitude=ls.latitude,
            longitude=ls.longitude,
            isp=ls.isp,
        ),
        security=SessionSecurity(
            is_vpn=ls.is_vpn,
            is_proxy=ls.is_proxy,
            is_tor=ls.is_tor,
            risk_score=ls.risk_score,
            risk_level=risk_level_for(ls.risk_score),
            risk_factors=list(ls.risk_factors or []),
            requires_verification=ls.requires_verification,
            verified_at=to_utc_isoformat(ls.verified_at),
        ),
        is_active=ls.is_active,
        is_current=bool(current_session_id) and ls.id == current_session_id,
        login_method=ls.login_method,
        created_at=to_utc_isoformat(ls.created_at),
        last_active_at=to_utc_isoformat(ls.last_active_at),
        expires_at=to_utc_isoformat(ls.expires_at),
        revoked_at=to_utc_isoformat(ls.revoked_at),
        revoke_reason=ls.revoke_reason,
        refresh_count=ls.refresh_count or 0,
        session_duration_seconds=ls.session_duration_seconds or 0,
    )


def issue_tokens(ls: LoginSession) -> dict:
    """Access token bound to the session id; refresh token bound to its family."""
    access_token = Security.create_access_token({"sub": str(ls.user_id), "session_id": ls.id})
    refresh_token = Security.create_refresh_token(ls.user_id, ls.refresh_token_family)
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_in": settings.ACCESS_TOKEN_EXPIRE_SECONDS,
        "session_id": ls.id,
    }


def _safe_raise_alert(db: Session, **kwargs) -> Optional[SecurityAlert]:
    try:
        return Alert_crud.raise_alert(db, **kwargs)
    except SessionSecurityError as e:
        logger.warning(f"Failed to raise {kwargs.get('alert_type')} alert for user {kwargs.get('user_id')}: {e.message}")
        return None


def _alert_settings(db: Session, user_id: int) -> AlertPreferences:
    """The user's alert toggles; unreadable preferences fall back to the defaults."""
    try:
        return get_alert_preferences(db, user_id)
    except SessionSecurityError as e:
        logger.warning(f"Failed to load alert preferences for user {user_id}: {e.message}")
        return AlertPreferences()


def _login_alerts(
    db: Session,
    ls: LoginSession,
    fingerprint: Fingerprint,
    assessment: RiskAssessment,
    recent: List[LoginSession],
    config: SessionConfig,
    dispatcher: Optional[NotificationDispatcher]
) -> List[SecurityAlert]:
    location = fingerprint.location
    device = fingerprint.device
    snapshot = session_snapshot(ls)

    def _meta(**extra):
        return LoginRiskMetadata(
            session=snapshot,
            risk_score=assessment.risk_score,
            risk_level=assessment.risk_level,
            risk_factors=assessment.risk_factors,
            recommendations=assessment.recommendations,
            extra=extra,
        )

    # High-risk logins always alert; the other checks follow the user's toggles
    prefs = _alert_settings(db, ls.user_id)
    pending = []

    if assessment.risk_score > config.high_risk_alert_score:
        severity = (
            AlertSeverity.HIGH if assessment.risk_score > config.critical_risk_alert_score
            else AlertSeverity.MEDIUM
        )
        pending.append(dict(
            alert_type=AlertType.HIGH_RISK_LOGIN.value,
            severity=severity.value,
            title="High-risk login detected",
            description=(
                f"A login with risk score {assessment.risk_score} was detected from "
                f"{location.label}. Factors: {', '.join(assessment.risk_factors) or 'none'}."
            ),
            metadata=_meta(),
        ))

    # First ever login has nothing to compare against
    if recent:
        known_device = any(
            s.device_type == device.type and s.device_os == device.os for s in recent
        )
        if not known_device and prefs.new_device_alerts:
            pending.append(dict(
                alert_type=AlertType.NEW_DEVICE.value,
                severity=AlertSeverity.LOW.value,
                title="New device login",
                description=f"Your account was accessed from a new device: {fingerprint.device_label}.",
                metadata=_meta(device=fingerprint.device_label),
            ))

        if location.is_resolved and not location.is_local and prefs.location_alerts:
            known_country = any(s.country == location.country for s in recent)
            if not known_country:
                pending.append(dict(
                    alert_type=AlertType.NEW_LOCATION.value,
                    severity=AlertSeverity.MEDIUM.value,
                    title="Login from new location",
                    description=f"Your account was accessed from a new location: {location.label}.",
                    metadata=_meta(location=location.label),
                ))

    if location.is_vpn and prefs.suspicious_activity_alerts:
        pending.append(dict(
            alert_type=AlertType.SUSPICIOUS_LOCATION.value,
            severity=AlertSeverity.MEDIUM.value,
            title="VPN login detected",
            description=f"A login through a VPN or hosting provider ({location.isp}) was detected.",
            metadata=_meta(network="vpn", isp=location.isp),
        ))

    if location.is_tor and prefs.suspicious_activity_alerts:
        pending.append(dict(
            alert_type=AlertType.SUSPICIOUS_LOCATION.value,
            severity=AlertSeverity.HIGH.value,
            title="Tor network login detected",
            description="A login through the Tor network was detected.",
            metadata=_meta(network="tor", isp=location.isp),
        ))

    alerts = []
    for kwargs in pending:
        alert = _safe_raise_alert(
            db, user_id=ls.user_id, session_id=ls.id, dispatcher=dispatcher, **kwargs
        )
        if alert:
            alerts.append(alert)
    return alerts


def register_login(
    db: Session,
    user_id: int,
    user_agent: Optional[str],
    ip: Optional[str],
    login_method: str = "password",
    lookup: Optional[GeoLookup] = None,
    event_time: Optional[datetime] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    config: SessionConfig = Session_crud.DEFAULT_SESSION_CONFIG,
    risk_config: RiskConfig = DEFAULT_RISK_CONFIG,
    correlation_id: Optional[str] = None
) -> dict:
    """
    Successful-login hook: fingerprint, score, persist the session, raise
    the qualifying alerts and issue the token pair.
    """
    fingerprint = build_fingerprint(user_agent, ip, lookup=lookup)
    recent = Session_crud.list_recent_sessions(
        db, user_id,
        days=config.recent_window_days,
        limit=config.recent_history_limit,
        now=event_time,
    )

    ls = Session_crud.create_login_session(
        db,
        user_id=user_id,
        fingerprint=fingerprint,
        login_method=login_method,
        event_time=event_time,
        config=config,
        risk_config=risk_config,
        correlation_id=correlation_id,
    )
    assessment = stored_assessment(ls, risk_config)
    alerts = _login_alerts(db, ls, fingerprint, assessment, recent, config, dispatcher)

    return {
        "session": ls,
        "assessment": assessment,
        "alerts": alerts,
        "tokens": issue_tokens(ls),
    }


def refresh_session(
    db: Session,
    refresh_token: str,
    config: SessionConfig = Session_crud.DEFAULT_SESSION_CONFIG,
    dispatcher: Optional[NotificationDispatcher] = None,
    correlation_id: Optional[str] = None
) -> dict:
    """
    Rotate the token pair for the session owning the refresh-token family.
    The same session row is updated; no new session is created.
    """
    payload = Security.decode_refresh_token(refresh_token)
    family = payload.get("family")
    if not family:
        raise SessionNotFoundError()

    ls = Session_crud.get_session_by_family(db, family)
    if not ls or str(ls.user_id) != str(payload.get("sub")) or not is_active_user(db, ls.user_id):
        raise SessionNotFoundError(ls.id if ls else None)

    ls = Session_crud.rotate_refresh(db, family, correlation_id=correlation_id)

    # Alert once, on the refresh that crosses the threshold
    if (
        ls.refresh_count == config.suspicious_refresh_count + 1
        and _alert_settings(db, ls.user_id).suspicious_activity_alerts
    ):
        _safe_raise_alert(
            db,
            user_id=ls.user_id,
            session_id=ls.id,
            alert_type=AlertType.UNUSUAL_ACTIVITY.value,
            severity=AlertSeverity.MEDIUM.value,
            title="Unusual token refresh activity",
            description=(
                f"Session on {ls.device_type} - {ls.device_os} has refreshed its "
                f"tokens {ls.refresh_count} times."
            ),
            metadata=RefreshPatternMetadata(
                session=session_snapshot(ls),
                refresh_count=ls.refresh_count,
                threshold=config.suspicious_refresh_count,
            ),
            dispatcher=dispatcher,
        )

    return issue_tokens(ls)


def revoke_single(
    db: Session,
    user_id: int,
    session_id: str,
    current_session_id: Optional[str],
    dispatcher: Optional[NotificationDispatcher] = None,
    correlation_id: Optional[str] = None
) -> Tuple[LoginSession, bool]:
    ls, revoked = Session_crud.revoke_session(
        db, session_id, user_id,
        reason=Session_crud.REVOKE_REASON_USER,
        current_session_id=current_session_id,
        correlation_id=correlation_id,
    )
    if revoked:
        _safe_raise_alert(
            db,
            user_id=user_id,
            session_id=ls.id,
            alert_type=AlertType.SESSION_REVOKED.value,
            severity=AlertSeverity.LOW.value,
            title="Session revoked",
            description=f"A session on {ls.device_type} - {ls.device_os} ({ls.city}, {ls.country}) was signed out.",
            metadata=SessionRevocationMetadata(
                reason=Session_crud.REVOKE_REASON_USER,
                revoked_count=1,
                revoked_sessions=[session_snapshot(ls)],
                current_session_id=current_session_id,
            ),
            dispatcher=dispatcher,
        )
    return ls, revoked


def revoke_all_except_current(
    db: Session,
    user_id: int,
    current_session_id: Optional[str],
    dispatcher: Optional[NotificationDispatcher] = None,
    correlation_id: Optional[str] = None
) -> int:
    """Bulk revoke; one aggregate alert when anything was revoked."""
    count, targets = Session_crud.deactivate_other_sessions(
        db, user_id, current_session_id,
        reason=Session_crud.REVOKE_REASON_ALL,
        correlation_id=correlation_id,
    )
    if count:
        _safe_raise_alert(
            db,
            user_id=user_id,
            session_id=current_session_id,
            alert_type=AlertType.ALL_SESSIONS_REVOKED.value,
            severity=AlertSeverity.MEDIUM.value,
            title="All other sessions revoked",
            description=f"{count} other session(s) were signed out of your account.",
            metadata=SessionRevocationMetadata(
                reason=Session_crud.REVOKE_REASON_ALL,
                revoked_count=count,
                revoked_sessions=[session_snapshot(s) for s in targets],
                current_session_id=current_session_id,
            ),
            dispatcher=dispatcher,
        )
    return count


def logout_current(
    db: Session,
    user_id: int,
    session_id: Optional[str],
    correlation_id: Optional[str] = None
) -> bool:
    """Revoke the caller's own session. Tokens without a session claim have nothing to revoke."""
    if not session_id:
        return False
    _, revoked = Session_crud.revoke_session(
        db, session_id, user_id,
        reason=Session_crud.REVOKE_REASON_LOGOUT,
        correlation_id=correlation_id,
    )
    return revoked


def report_suspicious_activity(
    db: Session,
    user_id: int,
    session_id: str,
    reason: str,
    description: Optional[str] = None,
    revoke: bool = True,
    current_session_id: Optional[str] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    correlation_id: Optional[str] = None
) -> Tuple[SecurityAlert, bool]:
    """
    Record a user report against one of their sessions. The reported session
    is revoked unless it is the caller's own session or revoke is False.
    """
    ls = Session_crud.get_user_session(db, session_id, user_id)

    revoked = False
    if revoke and ls.id != current_session_id:
        ls, revoked = Session_crud.revoke_session(
            db, session_id, user_id,
            reason=Session_crud.REVOKE_REASON_SUSPICIOUS,
            correlation_id=correlation_id,
        )

    try_audit(
        db, EVENT_REPORTED,
        user_id=user_id,
        session_id=ls.id,
        reason=reason,
        correlation_id=correlation_id,
    )

    alert = Alert_crud.raise_alert(
        db,
        user_id=user_id,
        session_id=ls.id,
        alert_type=AlertType.USER_REPORTED_SUSPICIOUS.value,
        severity=AlertSeverity.HIGH.value,
        title="Suspicious activity reported",
        description=f"You reported suspicious activity on a session from {ls.city}, {ls.country}: {reason}",
        metadata=SuspiciousReportMetadata(
            reported_session=session_snapshot(ls),
            reason=reason,
            description=description,
            session_revoked=revoked,
        ),
        dispatcher=dispatcher,
    )
    logger.warning(f"User {user_id} reported suspicious activity on session {ls.id}: {reason}")
    return alert, revoked


def get_session_details(db: Session, user_id: int, session_id: str) -> Tuple[LoginSession, List[SecurityAlert]]:
    ls = Session_crud.get_user_session(db, session_id, user_id)
    return ls, Alert_crud.list_alerts_for_session(db, ls.id, user_id)


def security_overview(
    db: Session,
    user_id: int,
    config: SessionConfig = Session_crud.DEFAULT_SESSION_CONFIG,
    risk_config: RiskConfig = DEFAULT_RISK_CONFIG
) -> dict:
    """Dashboard summary of the user's recent sign-in activity."""
    active = Session_crud.list_active_sessions(db, user_id)
    recent = Session_crud.list_recent_sessions(
        db, user_id, days=config.recent_window_days, limit=1000
    )
    unread = Alert_crud.list_alerts_for_user(db, user_id, unread_only=True, limit=5)

    return {
        "active_sessions": len(active),
        "recent_logins": len(recent),
        "unique_locations": len({(s.city, s.country) for s in recent}),
        "unique_devices": len({(s.device_type, s.device_os) for s in recent}),
        "high_risk_logins": sum(1 for s in recent if s.risk_score >= risk_config.high_threshold),
        "vpn_logins": sum(1 for s in recent if s.is_vpn),
        "pending_alerts": unread["unread_count"],
        "recent_alerts": [alert_to_item(a).model_dump() for a in unread["alerts"]],
        "window_days": config.recent_window_days,
    }


def export_security_data(db: Session, user_id: int, current_session_id: Optional[str] = None) -> dict:
    """Everything the account holder may download about their sessions and alerts."""
    sessions = Session_crud.list_user_sessions(db, user_id)
    alerts = Alert_crud.list_user_alerts(db, user_id)
    audit = list_session_audit_logs(db, user_id)

    return {
        "exported_at": now_utc().isoformat(),
        "user_id": user_id,
        "sessions": [session_to_data(s, current_session_id).model_dump() for s in sessions],
        "alerts": [alert_to_item(a).model_dump() for a in alerts],
        "preferences": get_alert_preferences(db, user_id).model_dump(),
        "audit_log": [
            {
                "event_type": log.event_type,
                "session_id": log.session_id,
                "reason": log.reason,
                "timestamp": to_utc_isoformat(log.timestamp),
            }
            for log in audit
        ],
        "summary": {
            "total_sessions": len(sessions),
            "active_sessions": sum(1 for s in sessions if s.is_active),
            "total_alerts": len(alerts),
            "unread_alerts": Alert_crud.get_unread_count(db, user_id),
            "stats": {
                k: (to_utc_isoformat(v) if isinstance(v, datetime) else v)
                for k, v in Session_crud.get_security_stats(db, user_id).items()
            },
        },
    }
