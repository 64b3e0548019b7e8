from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

UNKNOWN = "Unknown"
LOCAL = "Local"


class DeviceType(str, Enum):
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"
    WEB = "web"
    UNKNOWN = "unknown"


class DeviceInfo(BaseModel):
    """Coarse device classification parsed from the client identifier string."""
    model_config = ConfigDict(use_enum_values=True)

    type: DeviceType = DeviceType.UNKNOWN
    os: str = UNKNOWN
    browser: str = UNKNOWN
    app: str = UNKNOWN
    user_agent: str = ""


class Location(BaseModel):
    """Coarse location of a network address plus anonymity indicators."""
    ip: str = ""
    country: str = UNKNOWN
    country_code: str = "XX"
    region: str = UNKNOWN
    city: str = UNKNOWN
    timezone: str = UNKNOWN
    latitude: float = 0.0
    longitude: float = 0.0
    isp: str = UNKNOWN
    is_vpn: bool = False
    is_proxy: bool = False
    is_tor: bool = False

    @property
    def is_local(self) -> bool:
        return self.country == LOCAL

    @property
    def is_resolved(self) -> bool:
        """False when the lookup degraded to the Unknown location."""
        return self.country != UNKNOWN

    @property
    def has_coordinates(self) -> bool:
        return self.is_resolved and not self.is_local

    @property
    def label(self) -> str:
        return f"{self.city}, {self.country}"


class Fingerprint(BaseModel):
    """DeviceInfo + Location (with anonymity flags) computed for one login."""
    device: DeviceInfo = Field(default_factory=DeviceInfo)
    location: Location = Field(default_factory=Location)

    @property
    def device_label(self) -> str:
        return f"{self.device.type} - {self.device.os}"


def unknown_location(ip: Optional[str] = None) -> Location:
    return Location(ip=ip or "")


def local_location(ip: Optional[str] = None) -> Location:
    return Location(
        ip=ip or "",
        country=LOCAL,
        country_code="LO",
        region="Local Network",
        city=LOCAL,
        timezone=LOCAL,
        isp="Local Network",
    )
