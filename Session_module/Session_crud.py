from sqlalchemy.orm import Session
from sqlalchemy import and_, func, or_
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
import logging

from config import RiskConfig, SessionConfig
from Fingerprint_module.Fingerprint_schema import Fingerprint, Location
from Login_module.Utils.datetime_utils import now_utc, to_utc
from Login_module.Utils.Security import generate_token_family
from Login_module.Utils.security_errors import (
    CurrentSessionRevokeError,
    SessionExpiredError,
    SessionNotFoundError,
    storage_guard,
)
from Risk_module.risk_engine import DEFAULT_RISK_CONFIG, PriorLogin, score_login
from .Session_model import LoginSession
from .Session_audit_crud import (
    EVENT_CREATED,
    EVENT_EXPIRED,
    EVENT_REFRESHED,
    EVENT_REVOKED,
    try_audit,
)

logger = logging.getLogger(__name__)

DEFAULT_SESSION_CONFIG = SessionConfig()

REVOKE_REASON_USER = "user_revoked"
REVOKE_REASON_ALL = "user_revoked_all"
REVOKE_REASON_LOGOUT = "user_logout"
REVOKE_REASON_SUSPICIOUS = "suspicious_activity"
REVOKE_REASON_EXPIRED = "session_expired"


def session_location(ls: LoginSession) -> Location:
    return Location(
        ip=ls.ip_address or "",
        country=ls.country,
        country_code=ls.country_code,
        region=ls.region,
        city=ls.city,
        timezone=ls.timezone,
        latitude=ls.latitude,
        longitude=ls.longitude,
        isp=ls.isp,
        is_vpn=ls.is_vpn,
        is_proxy=ls.is_proxy,
        is_tor=ls.is_tor,
    )


def _prior_login(ls: LoginSession) -> PriorLogin:
    return PriorLogin(location=session_location(ls), created_at=to_utc(ls.created_at))


def _active_filter(query, now: datetime):
    return query.filter(LoginSession.is_active == True, LoginSession.expires_at > now)


def _elapsed_seconds(ls: LoginSession, now: datetime) -> int:
    if not ls.created_at:
        return 0
    return max(0, int((now - to_utc(ls.created_at)).total_seconds()))


def create_login_session(
    db: Session,
    user_id: int,
    fingerprint: Fingerprint,
    login_method: str = "password",
    refresh_token_family: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    event_time: Optional[datetime] = None,
    config: SessionConfig = DEFAULT_SESSION_CONFIG,
    risk_config: RiskConfig = DEFAULT_RISK_CONFIG,
    correlation_id: Optional[str] = None
) -> LoginSession:
    """
    Score the login against the user's active sessions and persist it.

    The risk score is always computed here; callers cannot supply one.
    """
    event_time = to_utc(event_time or now_utc())

    with storage_guard(db, "create session"):
        history = [
            _prior_login(ls)
            for ls in _active_filter(db.query(LoginSession), event_time)
            .filter(LoginSession.user_id == user_id)
            .all()
        ]
        assessment = score_login(fingerprint, history, event_time, risk_config)

        device = fingerprint.device
        location = fingerprint.location
        ls = LoginSession(
            user_id=user_id,
            refresh_token_family=refresh_token_family or generate_token_family(),
            device_type=device.type,
            device_os=device.os,
            device_browser=device.browser,
            device_app=device.app,
            user_agent=(device.user_agent or "")[:200],
            ip_address=location.ip or "",
            country=location.country,
            country_code=location.country_code,
            region=location.region,
            city=location.city,
            timezone=location.timezone,
            latitude=location.latitude,
            longitude=location.longitude,
            isp=location.isp,
            is_vpn=location.is_vpn,
            is_proxy=location.is_proxy,
            is_tor=location.is_tor,
            risk_score=assessment.risk_score,
            risk_factors=list(assessment.risk_factors),
            requires_verification=assessment.requires_verification,
            is_active=True,
            login_method=login_method,
            created_at=event_time,
            last_active_at=event_time,
            expires_at=to_utc(expires_at) if expires_at else event_time + timedelta(seconds=config.session_ttl_seconds),
        )
        db.add(ls)
        db.commit()
        db.refresh(ls)

    logger.info(
        f"Login session {ls.id} created for user {user_id} "
        f"(risk={ls.risk_score}, factors={ls.risk_factors})"
    )
    try_audit(
        db, EVENT_CREATED,
        user_id=user_id,
        session_id=ls.id,
        reason=f"Session created via {login_method}",
        ip_address=ls.ip_address,
        user_agent=ls.user_agent,
        correlation_id=correlation_id,
    )
    return ls


def get_session_by_id(db: Session, session_id: str) -> Optional[LoginSession]:
    with storage_guard(db, "load session"):
        return db.query(LoginSession).filter(LoginSession.id == session_id).first()


def get_session_by_family(db: Session, refresh_token_family: str) -> Optional[LoginSession]:
    with storage_guard(db, "load session by family"):
        return db.query(LoginSession).filter(
            LoginSession.refresh_token_family == refresh_token_family
        ).first()


def get_user_session(db: Session, session_id: str, user_id: int) -> LoginSession:
    """Fetch a session owned by user_id; other users' sessions are reported as missing."""
    with storage_guard(db, "load session"):
        ls = db.query(LoginSession).filter(
            LoginSession.id == session_id,
            LoginSession.user_id == user_id
        ).first()
    if not ls:
        raise SessionNotFoundError(session_id)
    return ls


def touch_activity(db: Session, session_id: str) -> bool:
    """
    Record activity on an active session. Best-effort: failures are logged,
    never raised, and a missing or inactive session is simply reported as False.
    """
    try:
        ls = db.query(LoginSession).filter(LoginSession.id == session_id).first()
        if not ls or not ls.is_active:
            return False
        now = now_utc()
        ls.last_active_at = now
        ls.session_duration_seconds = _elapsed_seconds(ls, now)
        db.commit()
        return True
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"Failed to update activity for session {session_id}: {e}")
        return False


def list_active_sessions(db: Session, user_id: int, now: Optional[datetime] = None) -> List[LoginSession]:
    now = to_utc(now or now_utc())
    return (
        _active_filter(db.query(LoginSession), now)
        .filter(LoginSession.user_id == user_id)
        .order_by(LoginSession.last_active_at.desc())
        .all()
    )


def list_recent_sessions(
    db: Session,
    user_id: int,
    days: int = 30,
    limit: int = 10,
    now: Optional[datetime] = None
) -> List[LoginSession]:
    """Sessions created within the window, active or not, newest first."""
    since = to_utc(now or now_utc()) - timedelta(days=days)
    return (
        db.query(LoginSession)
        .filter(LoginSession.user_id == user_id, LoginSession.created_at >= since)
        .order_by(LoginSession.created_at.desc())
        .limit(limit)
        .all()
    )


def list_user_sessions(db: Session, user_id: int) -> List[LoginSession]:
    return (
        db.query(LoginSession)
        .filter(LoginSession.user_id == user_id)
        .order_by(LoginSession.created_at.desc())
        .all()
    )


def revoke_session(
    db: Session,
    session_id: str,
    user_id: int,
    reason: str = REVOKE_REASON_USER,
    current_session_id: Optional[str] = None,
    correlation_id: Optional[str] = None
) -> Tuple[LoginSession, bool]:
    """
    Deactivate one of the user's sessions.

    Returns (session, revoked). Revoking an already inactive session is a
    no-op that returns revoked=False. The connection's own session cannot be
    revoked here; callers use logout for that.
    """
    now = now_utc()
    with storage_guard(db, "revoke session"):
        ls = get_user_session(db, session_id, user_id)
        if current_session_id and ls.id == current_session_id:
            raise CurrentSessionRevokeError(session_id)
        updated = (
            db.query(LoginSession)
            .filter(
                LoginSession.id == session_id,
                LoginSession.user_id == user_id,
                LoginSession.is_active == True
            )
            .update(
                {
                    LoginSession.is_active: False,
                    LoginSession.revoked_at: now,
                    LoginSession.revoke_reason: reason,
                    LoginSession.session_duration_seconds: _elapsed_seconds(ls, now),
                },
                synchronize_session=False,
            )
        )
        db.commit()
        db.refresh(ls)

    if updated:
        logger.info(f"Session {session_id} revoked for user {user_id} ({reason})")
        try_audit(
            db, EVENT_REVOKED,
            user_id=user_id,
            session_id=session_id,
            reason=reason,
            correlation_id=correlation_id,
        )
    return ls, bool(updated)


def deactivate_other_sessions(
    db: Session,
    user_id: int,
    current_session_id: Optional[str],
    reason: str = REVOKE_REASON_ALL,
    correlation_id: Optional[str] = None
) -> Tuple[int, List[LoginSession]]:
    """
    Deactivate every active session of the user except the current one in a
    single filtered update. Returns (count, snapshot of the targeted sessions).
    """
    now = now_utc()

    def _targets(query):
        query = query.filter(LoginSession.user_id == user_id, LoginSession.is_active == True)
        if current_session_id:
            query = query.filter(LoginSession.id != current_session_id)
        return query

    with storage_guard(db, "revoke all sessions"):
        targets = _targets(db.query(LoginSession)).all()
        count = _targets(db.query(LoginSession)).update(
            {
                LoginSession.is_active: False,
                LoginSession.revoked_at: now,
                LoginSession.revoke_reason: reason,
            },
            synchronize_session=False,
        )
        db.commit()

    logger.info(f"Revoked {count} session(s) for user {user_id} except {current_session_id}")
    for ls in targets:
        try_audit(
            db, EVENT_REVOKED,
            user_id=user_id,
            session_id=ls.id,
            reason=reason,
            correlation_id=correlation_id,
        )
    return count, targets


def rotate_refresh(
    db: Session,
    refresh_token_family: str,
    correlation_id: Optional[str] = None
) -> LoginSession:
    """
    Record a token refresh on the session owning the refresh-token family.

    A session past expires_at is deactivated and SessionExpiredError is raised.
    """
    ls = get_session_by_family(db, refresh_token_family)
    if not ls or not ls.is_active:
        raise SessionNotFoundError(ls.id if ls else None)

    now = now_utc()
    if not ls.is_valid(now):
        with storage_guard(db, "expire session"):
            ls.is_active = False
            ls.revoked_at = now
            ls.revoke_reason = REVOKE_REASON_EXPIRED
            db.commit()
        try_audit(db, EVENT_EXPIRED, user_id=ls.user_id, session_id=ls.id,
                  reason=REVOKE_REASON_EXPIRED, correlation_id=correlation_id)
        raise SessionExpiredError(ls.id)

    with storage_guard(db, "refresh session"):
        db.query(LoginSession).filter(LoginSession.id == ls.id).update(
            {
                LoginSession.refresh_count: LoginSession.refresh_count + 1,
                LoginSession.last_refreshed_at: now,
                LoginSession.last_active_at: now,
                LoginSession.session_duration_seconds: _elapsed_seconds(ls, now),
            },
            synchronize_session=False,
        )
        db.commit()
        db.refresh(ls)

    try_audit(db, EVENT_REFRESHED, user_id=ls.user_id, session_id=ls.id,
              reason=f"Refresh #{ls.refresh_count}", correlation_id=correlation_id)
    return ls


def cleanup_expired_sessions(
    db: Session,
    config: SessionConfig = DEFAULT_SESSION_CONFIG,
    now: Optional[datetime] = None
) -> int:
    """
    Delete sessions past expires_at and inactive sessions whose last
    activity is older than the retention window. Safe to run concurrently:
    a single delete-by-filter, no read-then-write.
    """
    now = to_utc(now or now_utc())
    cutoff = now - timedelta(days=config.inactive_retention_days)

    with storage_guard(db, "cleanup sessions"):
        deleted = (
            db.query(LoginSession)
            .filter(
                or_(
                    LoginSession.expires_at <= now,
                    and_(LoginSession.is_active == False, LoginSession.last_active_at < cutoff),
                )
            )
            .delete(synchronize_session=False)
        )
        db.commit()

    if deleted:
        logger.info(f"Session cleanup removed {deleted} session(s)")
    return deleted


def get_security_stats(db: Session, user_id: int, now: Optional[datetime] = None) -> dict:
    """Aggregate summary of the user's sessions."""
    now = to_utc(now or now_utc())

    with storage_guard(db, "security stats"):
        total, avg_risk, countries, last_login = (
            db.query(
                func.count(LoginSession.id),
                func.avg(LoginSession.risk_score),
                func.count(func.distinct(LoginSession.country)),
                func.max(LoginSession.created_at),
            )
            .filter(LoginSession.user_id == user_id)
            .one()
        )
        devices = (
            db.query(LoginSession.device_type, LoginSession.device_os)
            .filter(LoginSession.user_id == user_id)
            .distinct()
            .count()
        )
        active = (
            _active_filter(db.query(LoginSession), now)
            .filter(LoginSession.user_id == user_id)
            .count()
        )
        high_risk = (
            db.query(LoginSession)
            .filter(
                LoginSession.user_id == user_id,
                LoginSession.risk_score >= DEFAULT_RISK_CONFIG.high_threshold
            )
            .count()
        )

    return {
        "total_sessions": total or 0,
        "active_sessions": active,
        "average_risk_score": round(float(avg_risk), 2) if avg_risk is not None else 0.0,
        "unique_countries": countries or 0,
        "unique_devices": devices,
        "high_risk_sessions": high_risk,
        "last_login_at": to_utc(last_login),
    }
