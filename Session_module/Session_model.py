import uuid
from datetime import timedelta

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey, Index,
    Integer, JSON, String, event,
)
from database import Base
from Login_module.Utils.datetime_utils import now_utc, to_utc

DEFAULT_SESSION_TTL = timedelta(days=7)


class LoginSession(Base):
    """One authenticated login lineage; token refreshes update this row."""
    __tablename__ = "login_sessions"
    __table_args__ = (
        CheckConstraint("risk_score >= 0 AND risk_score <= 100", name="ck_login_sessions_risk_score"),
        Index("ix_login_sessions_user_active", "user_id", "is_active"),
        Index("ix_login_sessions_user_created", "user_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    refresh_token_family = Column(String(64), nullable=False, unique=True, index=True)

    # Device information
    device_type = Column(String(20), nullable=False, default="unknown")
    device_os = Column(String(50), nullable=False, default="Unknown")
    device_browser = Column(String(50), nullable=False, default="Unknown")
    device_app = Column(String(50), nullable=False, default="Unknown")
    user_agent = Column(String(200), nullable=False, default="")

    # Location information
    ip_address = Column(String(64), nullable=False, index=True)
    country = Column(String(100), nullable=False, default="Unknown", index=True)
    country_code = Column(String(8), nullable=False, default="XX")
    region = Column(String(100), nullable=False, default="Unknown")
    city = Column(String(100), nullable=False, default="Unknown")
    timezone = Column(String(64), nullable=False, default="Unknown")
    latitude = Column(Float, nullable=False, default=0.0)
    longitude = Column(Float, nullable=False, default=0.0)
    isp = Column(String(255), nullable=False, default="Unknown")

    # Security flags
    is_vpn = Column(Boolean, nullable=False, default=False)
    is_proxy = Column(Boolean, nullable=False, default=False)
    is_tor = Column(Boolean, nullable=False, default=False)
    risk_score = Column(Integer, nullable=False, default=0)
    risk_factors = Column(JSON, nullable=False, default=list)
    requires_verification = Column(Boolean, nullable=False, default=False)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    # Lifecycle
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now_utc, index=True)
    last_active_at = Column(DateTime(timezone=True), nullable=False, default=now_utc, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoke_reason = Column(String(100), nullable=True)

    # Metadata
    login_method = Column(String(20), nullable=False, default="password")
    session_duration_seconds = Column(Integer, nullable=False, default=0)
    refresh_count = Column(Integer, nullable=False, default=0)
    last_refreshed_at = Column(DateTime(timezone=True), nullable=True)

    def is_valid(self, now=None) -> bool:
        """Active and not past expires_at. expires_at is the only lifetime bound."""
        now = to_utc(now or now_utc())
        if not self.is_active:
            return False
        if self.expires_at and to_utc(self.expires_at) <= now:
            return False
        return True


@event.listens_for(LoginSession, "before_insert")
def _ensure_expiry(mapper, connection, target):
    """expires_at is always set before first persistence."""
    if target.created_at is None:
        target.created_at = now_utc()
    if target.last_active_at is None:
        target.last_active_at = target.created_at
    if target.expires_at is None:
        target.expires_at = to_utc(target.created_at) + DEFAULT_SESSION_TTL
    if target.risk_score is not None:
        target.risk_score = max(0, min(int(target.risk_score), 100))
