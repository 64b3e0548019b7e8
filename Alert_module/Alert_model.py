from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index, JSON
from database import Base
from Login_module.Utils.datetime_utils import now_utc


class SecurityAlert(Base):
    """
    Durable record of a security-relevant event for one user.
    status: unread -> read / dismissed -> resolved (any state may be set directly).
    """
    __tablename__ = "security_alerts"
    __table_args__ = (
        Index("ix_security_alerts_user_created", "user_id", "created_at"),
        Index("ix_security_alerts_user_status", "user_id", "status"),
        Index("ix_security_alerts_user_type", "user_id", "type"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(String(36), ForeignKey("login_sessions.id", ondelete="SET NULL"), nullable=True, index=True)

    type = Column(String(50), nullable=False)
    severity = Column(String(20), nullable=False, default="low", index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    alert_metadata = Column("metadata", JSON, nullable=False, default=dict)

    # {"email": {"scheduled": bool, "scheduled_at": iso, "sent": bool, "sent_at": iso, "error": str}}
    notifications = Column(JSON, nullable=False, default=dict)

    status = Column(String(20), nullable=False, default="unread", index=True)
    user_actions = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), nullable=False, default=now_utc, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
