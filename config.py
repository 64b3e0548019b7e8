import os
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict


class RiskConfig(BaseModel):
    """Weights and thresholds used by the login risk engine."""
    model_config = ConfigDict(frozen=True)

    vpn_weight: int = 20
    proxy_weight: int = 15
    tor_weight: int = 30
    unknown_device_weight: int = 10
    missing_user_agent_weight: int = 5
    unresolved_location_weight: int = 10
    impossible_travel_weight: int = 25
    rapid_location_change_weight: int = 15
    new_country_weight: int = 10
    unusual_time_weight: int = 5

    impossible_travel_km: float = 1000.0
    impossible_travel_hours: float = 6.0
    rapid_change_km: float = 500.0
    rapid_change_hours: float = 2.0

    # Logins with a local hour in [start, end) are treated as unusual
    unusual_hour_start: int = 0
    unusual_hour_end: int = 6

    medium_threshold: int = 30
    high_threshold: int = 60
    verification_threshold: int = 50
    max_score: int = 100


class SessionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_ttl_seconds: int = 7 * 24 * 60 * 60
    inactive_retention_days: int = 30
    recent_window_days: int = 30
    recent_history_limit: int = 10
    suspicious_refresh_count: int = 100
    high_risk_alert_score: int = 50
    critical_risk_alert_score: int = 70


class AlertConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    retention_days: int = 90
    trend_days: int = 7
    default_page_size: int = 20
    max_page_size: int = 100


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=os.path.join(os.path.dirname(__file__), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    DATABASE_URL: str = ""
    SECRET_KEY: str = ""
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_SECONDS: int = 3600
    REFRESH_TOKEN_EXPIRE_SECONDS: int = 7 * 24 * 60 * 60

    # Session store
    SESSION_TTL_SECONDS: int = 7 * 24 * 60 * 60
    INACTIVE_SESSION_RETENTION_DAYS: int = 30
    SUSPICIOUS_REFRESH_COUNT: int = 100

    # Alert sink
    ALERT_RETENTION_DAYS: int = 90

    # Geolocation lookup
    GEOLOOKUP_URL: str = "https://ipinfo.io"
    IPINFO_TOKEN: Optional[str] = None
    GEOLOOKUP_TIMEOUT_SECONDS: float = 5.0
    GEO_CACHE_TTL_SECONDS: int = 86400
    REDIS_URL: Optional[str] = None

    # Background jobs
    SESSION_CLEANUP_INTERVAL_MINUTES: int = 90
    ALERT_PURGE_INTERVAL_HOURS: int = 24

    ENVIRONMENT: str = "development"
    ALLOWED_ORIGINS: str = "*"

    def session_config(self) -> SessionConfig:
        return SessionConfig(
            session_ttl_seconds=self.SESSION_TTL_SECONDS,
            inactive_retention_days=self.INACTIVE_SESSION_RETENTION_DAYS,
            suspicious_refresh_count=self.SUSPICIOUS_REFRESH_COUNT,
        )

    def alert_config(self) -> AlertConfig:
        return AlertConfig(retention_days=self.ALERT_RETENTION_DAYS)

    def risk_config(self) -> RiskConfig:
        return RiskConfig()


settings = Settings()
