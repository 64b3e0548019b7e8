"""
Session audit log CRUD operations.
"""
import logging
from sqlalchemy.orm import Session
from typing import Optional

from Login_module.Utils.datetime_utils import now_utc
from .Session_audit_model import SessionAuditLog

logger = logging.getLogger(__name__)

EVENT_CREATED = "CREATED"
EVENT_REVOKED = "REVOKED"
EVENT_EXPIRED = "EXPIRED"
EVENT_REFRESHED = "REFRESHED"
EVENT_REPORTED = "REPORTED"


def create_session_audit_log(
    db: Session,
    event_type: str,
    user_id: Optional[int] = None,
    session_id: Optional[str] = None,
    reason: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    correlation_id: Optional[str] = None
) -> SessionAuditLog:
    """
    Create session audit log entry.
    """
    log = SessionAuditLog(
        user_id=user_id,
        session_id=session_id,
        event_type=event_type,
        reason=reason,
        timestamp=now_utc(),
        ip_address=ip_address,
        user_agent=user_agent,
        correlation_id=correlation_id
    )
    db.add(log)
    db.commit()
    db.refresh(log)
    return log


def try_audit(db: Session, event_type: str, **kwargs) -> None:
    """Audit logging never fails the calling operation."""
    try:
        create_session_audit_log(db, event_type, **kwargs)
    except Exception as e:
        db.rollback()
        logger.warning(f"Failed to create session audit log: {e}")


def list_session_audit_logs(db: Session, user_id: int, limit: int = 100) -> list[SessionAuditLog]:
    return (
        db.query(SessionAuditLog)
        .filter(SessionAuditLog.user_id == user_id)
        .order_by(SessionAuditLog.timestamp.desc())
        .limit(limit)
        .all()
    )
