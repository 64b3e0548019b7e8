from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String
from database import Base
from Login_module.Utils.datetime_utils import now_utc


class AlertPreference(Base):
    """
    Per-user alert delivery preferences and security settings.
    A user without a row gets the defaults (everything enabled, threshold low).
    """
    __tablename__ = "security_alert_preferences"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)

    # Delivery
    email_notifications = Column(Boolean, nullable=False, default=True)
    push_notifications = Column(Boolean, nullable=False, default=True)
    # Empty list means every type notifies
    alert_types = Column(JSON, nullable=False, default=list)
    severity_threshold = Column(String(20), nullable=False, default="low")

    # Security settings
    new_device_alerts = Column(Boolean, nullable=False, default=True)
    location_alerts = Column(Boolean, nullable=False, default=True)
    suspicious_activity_alerts = Column(Boolean, nullable=False, default=True)
    failed_login_alerts = Column(Boolean, nullable=False, default=True)
    weekly_security_report = Column(Boolean, nullable=False, default=False)
    two_factor_enabled = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=now_utc)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc)
