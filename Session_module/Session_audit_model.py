"""
Session audit log model for tracking session creation, revocation and refresh.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from database import Base
from Login_module.Utils.datetime_utils import now_utc


class SessionAuditLog(Base):
    """
    Session audit log - tracks session lifecycle events.
    Event types: CREATED, REVOKED, EXPIRED, REFRESHED, REPORTED
    """
    __tablename__ = "session_audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    session_id = Column(String(36), ForeignKey("login_sessions.id", ondelete="SET NULL"), nullable=True, index=True)
    event_type = Column(String(20), nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), default=now_utc, nullable=False, index=True)
    reason = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True, index=True)
    user_agent = Column(String(500), nullable=True)
    correlation_id = Column(String(100), nullable=True, index=True)
