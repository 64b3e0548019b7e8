from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from Login_module.Utils.datetime_utils import to_utc_isoformat


class AlertType(str, Enum):
    NEW_DEVICE = "new_device"
    NEW_LOCATION = "new_location"
    SUSPICIOUS_LOCATION = "suspicious_location"
    HIGH_RISK_LOGIN = "high_risk_login"
    MULTIPLE_FAILED_ATTEMPTS = "multiple_failed_attempts"
    PASSWORD_CHANGED = "password_changed"
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_UNLOCKED = "account_unlocked"
    SECURITY_SETTINGS_CHANGED = "security_settings_changed"
    DATA_EXPORT_REQUESTED = "data_export_requested"
    ACCOUNT_DELETION_REQUESTED = "account_deletion_requested"
    UNUSUAL_ACTIVITY = "unusual_activity"
    USER_REPORTED_SUSPICIOUS = "user_reported_suspicious"
    SESSION_REVOKED = "session_revoked"
    ALL_SESSIONS_REVOKED = "all_sessions_revoked"


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatus(str, Enum):
    UNREAD = "unread"
    READ = "read"
    DISMISSED = "dismissed"
    RESOLVED = "resolved"


class NotificationChannel(str, Enum):
    EMAIL = "email"
    PUSH = "push"
    SMS = "sms"


# --- Metadata shapes ---------------------------------------------------------

class SessionSnapshot(BaseModel):
    """Point-in-time copy of the session an alert is about."""
    session_id: str
    device_type: Optional[str] = None
    device_os: Optional[str] = None
    browser: Optional[str] = None
    ip_address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    isp: Optional[str] = None
    risk_score: Optional[int] = None
    created_at: Optional[datetime] = None
    last_active_at: Optional[datetime] = None


class LoginRiskMetadata(BaseModel):
    kind: Literal["login_risk"] = "login_risk"
    session: SessionSnapshot
    risk_score: int
    risk_level: str
    risk_factors: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    extra: Dict[str, Any] = Field(default_factory=dict)


class SessionRevocationMetadata(BaseModel):
    kind: Literal["session_revocation"] = "session_revocation"
    reason: str
    revoked_count: int = 1
    revoked_sessions: List[SessionSnapshot] = Field(default_factory=list)
    current_session_id: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


class SuspiciousReportMetadata(BaseModel):
    kind: Literal["suspicious_report"] = "suspicious_report"
    reported_session: SessionSnapshot
    reason: str
    description: Optional[str] = None
    session_revoked: bool = False
    extra: Dict[str, Any] = Field(default_factory=dict)


class RefreshPatternMetadata(BaseModel):
    kind: Literal["refresh_pattern"] = "refresh_pattern"
    session: SessionSnapshot
    refresh_count: int
    threshold: int
    extra: Dict[str, Any] = Field(default_factory=dict)


class GenericAlertMetadata(BaseModel):
    """Fallback for alert types with no dedicated shape."""
    kind: Literal["generic"] = "generic"
    ip_address: Optional[str] = None
    location: Optional[str] = None
    device: Optional[str] = None
    risk_score: Optional[int] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


AlertMetadata = Annotated[
    Union[
        LoginRiskMetadata,
        SessionRevocationMetadata,
        SuspiciousReportMetadata,
        RefreshPatternMetadata,
        GenericAlertMetadata,
    ],
    Field(discriminator="kind"),
]

_metadata_adapter = TypeAdapter(AlertMetadata)


def parse_alert_metadata(data: Union[BaseModel, Dict[str, Any], None]) -> AlertMetadata:
    """
    Validate a metadata bag into one of the known shapes.
    Untagged dicts become GenericAlertMetadata with unknown keys kept in extra.
    """
    if data is None:
        return GenericAlertMetadata()
    if isinstance(data, BaseModel):
        return _metadata_adapter.validate_python(data.model_dump())
    if "kind" in data:
        return _metadata_adapter.validate_python(data)

    known = set(GenericAlertMetadata.model_fields) - {"kind", "extra"}
    extra = dict(data.get("extra") or {})
    extra.update({k: v for k, v in data.items() if k not in known and k != "extra"})
    return GenericAlertMetadata(**{k: v for k, v in data.items() if k in known}, extra=extra)


# --- Request / response models -----------------------------------------------

class UserActionItem(BaseModel):
    action: str
    timestamp: str
    notes: Optional[str] = None


class AlertItem(BaseModel):
    id: int
    user_id: int
    session_id: Optional[str] = None
    type: str
    severity: str
    title: str
    description: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    notifications: Dict[str, Any] = Field(default_factory=dict)
    status: str
    user_actions: List[UserActionItem] = Field(default_factory=list)
    created_at: Optional[str] = None
    read_at: Optional[str] = None
    resolved_at: Optional[str] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class AlertSummary(BaseModel):
    unread_count: int
    total_count: int


class AlertListResponse(BaseModel):
    status: str = "success"
    message: str = "Security alerts retrieved successfully."
    data: List[AlertItem]
    pagination: Pagination
    summary: AlertSummary


class AlertResponse(BaseModel):
    status: str = "success"
    message: str
    data: AlertItem


class AlertActionRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)


class MarkAllReadRequest(BaseModel):
    alert_ids: Optional[List[int]] = None


class BulkActionResponse(BaseModel):
    status: str = "success"
    message: str
    count: int


class DailyTrendItem(BaseModel):
    date: str
    count: int
    high_severity: int


class AlertStatsData(BaseModel):
    window_days: int
    total: int
    by_status: Dict[str, int]
    by_severity: Dict[str, int]
    by_type: Dict[str, int]
    daily_trend: List[DailyTrendItem]


class AlertStatsResponse(BaseModel):
    status: str = "success"
    message: str = "Security statistics retrieved successfully."
    data: AlertStatsData


# --- Preferences -------------------------------------------------------------

class AlertPreferences(BaseModel):
    """Effective preferences of one user; the defaults apply when nothing is stored."""
    model_config = ConfigDict(from_attributes=True, use_enum_values=True, validate_default=True)

    email_notifications: bool = True
    push_notifications: bool = True
    # Empty list means every type notifies
    alert_types: List[AlertType] = Field(default_factory=list)
    severity_threshold: AlertSeverity = AlertSeverity.LOW

    new_device_alerts: bool = True
    location_alerts: bool = True
    suspicious_activity_alerts: bool = True
    failed_login_alerts: bool = True
    weekly_security_report: bool = False
    two_factor_enabled: bool = False


class AlertPreferencesUpdate(BaseModel):
    enable_email_notifications: Optional[bool] = None
    enable_push_notifications: Optional[bool] = None
    alert_types: Optional[List[AlertType]] = None
    severity_threshold: Optional[AlertSeverity] = None

    def to_changes(self) -> Dict[str, Any]:
        fields = {
            "enable_email_notifications": "email_notifications",
            "enable_push_notifications": "push_notifications",
            "alert_types": "alert_types",
            "severity_threshold": "severity_threshold",
        }
        return {
            column: getattr(self, name)
            for name, column in fields.items()
            if getattr(self, name) is not None
        }


class AlertPreferencesResponse(BaseModel):
    status: str = "success"
    message: str
    data: AlertPreferences


class TestAlertRequest(BaseModel):
    type: AlertType = AlertType.UNUSUAL_ACTIVITY
    severity: AlertSeverity = AlertSeverity.LOW


def alert_to_item(alert) -> AlertItem:
    return AlertItem(
        id=alert.id,
        user_id=alert.user_id,
        session_id=alert.session_id,
        type=alert.type,
        severity=alert.severity,
        title=alert.title,
        description=alert.description,
        metadata=alert.alert_metadata or {},
        notifications=alert.notifications or {},
        status=alert.status,
        user_actions=alert.user_actions or [],
        created_at=to_utc_isoformat(alert.created_at),
        read_at=to_utc_isoformat(alert.read_at),
        resolved_at=to_utc_isoformat(alert.resolved_at),
    )
