from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class LoginMethod(str, Enum):
    PASSWORD = "password"
    OTP = "otp"
    SOCIAL = "social"
    BIOMETRIC = "biometric"


class SessionDevice(BaseModel):
    type: str
    os: str
    browser: str
    app: str


class SessionLocation(BaseModel):
    ip_address: str
    country: str
    country_code: str
    region: str
    city: str
    timezone: str
    latitude: float
    longitude: float
    isp: str


class SessionSecurity(BaseModel):
    is_vpn: bool
    is_proxy: bool
    is_tor: bool
    risk_score: int
    risk_level: str
    risk_factors: List[str] = []
    requires_verification: bool
    verified_at: Optional[str] = None


class SessionData(BaseModel):
    """Session as shown to its owner. The refresh-token family is never exposed."""
    session_id: str
    device: SessionDevice
    location: SessionLocation
    security: SessionSecurity
    is_active: bool
    is_current: bool = False
    login_method: str
    created_at: Optional[str] = None
    last_active_at: Optional[str] = None
    expires_at: Optional[str] = None
    revoked_at: Optional[str] = None
    revoke_reason: Optional[str] = None
    refresh_count: int = 0
    session_duration_seconds: int = 0


class ActiveSessionsResponse(BaseModel):
    status: str = "success"
    message: str
    active_sessions_count: int
    sessions: List[SessionData]


class SessionDetailsResponse(BaseModel):
    status: str = "success"
    message: str
    session: SessionData
    alerts: List[Dict[str, Any]] = []


class RevokeSessionResponse(BaseModel):
    status: str = "success"
    message: str
    session_id: str
    revoked: bool


class RevokeAllResponse(BaseModel):
    status: str = "success"
    message: str
    revoked_count: int


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    status: str = "success"
    message: str = "Tokens issued successfully."
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    session_id: str


class ReportSuspiciousRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    revoke_session: bool = True


class ReportSuspiciousResponse(BaseModel):
    status: str = "success"
    message: str
    alert_id: int
    session_revoked: bool


class SecurityStatsResponse(BaseModel):
    status: str = "success"
    message: str = "Session statistics retrieved successfully."
    data: Dict[str, Any]


class SecurityOverviewResponse(BaseModel):
    status: str = "success"
    message: str = "Security overview retrieved successfully."
    data: Dict[str, Any]


class SecurityExportResponse(BaseModel):
    status: str = "success"
    message: str = "Security data exported successfully."
    data: Dict[str, Any]


class LogoutResponse(BaseModel):
    status: str = "success"
    message: str = "Logged out successfully."
    session_id: Optional[str] = None


class SecuritySettingsRequest(BaseModel):
    """Partial update: only the fields that are sent change."""
    email_alerts: Optional[bool] = None
    push_notifications: Optional[bool] = None
    new_device_alerts: Optional[bool] = None
    location_alerts: Optional[bool] = None
    failed_login_alerts: Optional[bool] = None
    suspicious_activity_alerts: Optional[bool] = None
    weekly_security_report: Optional[bool] = None
    two_factor_enabled: Optional[bool] = None
    # Older clients
    enable_new_device_alerts: Optional[bool] = None
    enable_location_alerts: Optional[bool] = None

    def to_changes(self) -> Dict[str, Any]:
        changes = {
            "email_notifications": self.email_alerts,
            "push_notifications": self.push_notifications,
            "new_device_alerts": self.new_device_alerts if self.new_device_alerts is not None else self.enable_new_device_alerts,
            "location_alerts": self.location_alerts if self.location_alerts is not None else self.enable_location_alerts,
            "failed_login_alerts": self.failed_login_alerts,
            "suspicious_activity_alerts": self.suspicious_activity_alerts,
            "weekly_security_report": self.weekly_security_report,
            "two_factor_enabled": self.two_factor_enabled,
        }
        return {k: v for k, v in changes.items() if v is not None}


class SecuritySettingsResponse(BaseModel):
    status: str = "success"
    message: str = "Security settings updated successfully."
    data: Dict[str, Any]
