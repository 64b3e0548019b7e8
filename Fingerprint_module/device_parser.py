"""
Client identifier (User-Agent) parsing into a coarse device classification.
Substring matching on the lower-cased string, first match wins.
"""
import logging
import re
from typing import Optional

from .Fingerprint_schema import DeviceInfo, DeviceType, UNKNOWN

logger = logging.getLogger(__name__)

USER_AGENT_MAX_LENGTH = 200

# Marker sent by the native mobile app in its User-Agent
APP_MARKER = "civicapp"
APP_NAME = "Civic App Mobile"
APP_RUNTIME = "React Native"

DEVICE_TYPE_MARKERS = (
    (DeviceType.MOBILE, ("mobile", "android", "iphone")),
    (DeviceType.TABLET, ("tablet", "ipad")),
    (DeviceType.DESKTOP, ("electron",)),
    (DeviceType.WEB, ("mozilla", "chrome", "safari")),
)

# Android and iOS strings also contain "linux" / "mac os", so they go first
OS_MARKERS = (
    ("Android", ("android",)),
    ("iOS", ("iphone", "ipad", "ios")),
    ("Windows", ("windows",)),
    ("macOS", ("mac os", "macintosh")),
    ("Linux", ("linux",)),
)

# Edge and Chrome strings both contain "chrome"/"safari"
BROWSER_MARKERS = (
    ("Edge", ("edg/", "edge")),
    ("Firefox", ("firefox", "fxios")),
    ("Chrome", ("chrome", "crios")),
    ("Safari", ("safari",)),
)

IOS_VERSION_RE = re.compile(r"OS (\d+_\d+)")
ANDROID_VERSION_RE = re.compile(r"Android (\d+\.?\d*)")


def _first_match(ua: str, markers) -> Optional[object]:
    for label, needles in markers:
        if any(needle in ua for needle in needles):
            return label
    return None


def _extract_version(pattern: re.Pattern, user_agent: str) -> str:
    match = pattern.search(user_agent)
    return match.group(1) if match else ""


def parse_user_agent(user_agent: Optional[str]) -> DeviceInfo:
    """
    Classify a raw client identifier into device type, OS and browser/app.
    Never raises; an empty or unparseable string yields the unknown device.
    """
    raw = user_agent or ""
    try:
        ua = raw.lower()

        device_type = _first_match(ua, DEVICE_TYPE_MARKERS) or DeviceType.UNKNOWN
        os_name = _first_match(ua, OS_MARKERS) or UNKNOWN

        browser = UNKNOWN
        app = UNKNOWN
        if APP_MARKER in ua:
            app = APP_NAME
            browser = APP_RUNTIME
        else:
            browser = _first_match(ua, BROWSER_MARKERS) or UNKNOWN

        if os_name == "iOS":
            version = _extract_version(IOS_VERSION_RE, raw)
            if version:
                os_name = f"iOS {version.replace('_', '.')}"
        elif os_name == "Android":
            version = _extract_version(ANDROID_VERSION_RE, raw)
            if version:
                os_name = f"Android {version}"

        return DeviceInfo(
            type=device_type,
            os=os_name,
            browser=browser,
            app=app,
            user_agent=raw[:USER_AGENT_MAX_LENGTH],
        )
    except Exception as e:
        logger.warning(f"Failed to parse user agent, using unknown device: {e}")
        return DeviceInfo(user_agent=raw[:USER_AGENT_MAX_LENGTH])
