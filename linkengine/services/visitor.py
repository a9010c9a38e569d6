"""
Request context and visitor enrichment.

A visit arrives as a RequestContext (what the HTTP layer saw) and is turned
into a VisitorInfo (browser, OS, device category, country, city) before it
is written to the click log.
"""

from typing import Optional

from pydantic import BaseModel, Field

from linkengine.geo.strategies import GeoLocatorStrategy, NullGeoLocator, UNKNOWN


class RequestContext(BaseModel):
    """What the resolver knows about the inbound request"""
    ip_address: str = Field(..., description="Client IP address")
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    unlock_credential: Optional[str] = Field(None, description="Password for locked links")


class VisitorInfo(BaseModel):
    browser: str = UNKNOWN
    os: str = UNKNOWN
    device: str = "unknown"  # desktop, mobile, tablet, unknown
    country: str = UNKNOWN
    city: str = UNKNOWN


# Checked in order; the first token found wins. Edge and Opera carry
# "Chrome" in their UA, and Chrome carries "Safari".
_BROWSERS = (
    ("edg/", "Edge"),
    ("edge/", "Edge"),
    ("opr/", "Opera"),
    ("opera", "Opera"),
    ("samsungbrowser", "Samsung Internet"),
    ("firefox/", "Firefox"),
    ("fxios", "Firefox"),
    ("crios", "Chrome"),
    ("chrome/", "Chrome"),
    ("safari/", "Safari"),
    ("msie", "Internet Explorer"),
    ("trident/", "Internet Explorer"),
)

# Android before Linux, iOS devices before Mac OS X.
_OPERATING_SYSTEMS = (
    ("windows", "Windows"),
    ("iphone", "iOS"),
    ("ipad", "iOS"),
    ("ipod", "iOS"),
    ("android", "Android"),
    ("cros", "Chrome OS"),
    ("mac os x", "macOS"),
    ("macintosh", "macOS"),
    ("linux", "Linux"),
)


def parse_browser(user_agent: str) -> str:
    ua = user_agent.lower()
    return next((name for token, name in _BROWSERS if token in ua), UNKNOWN)


def parse_os(user_agent: str) -> str:
    ua = user_agent.lower()
    return next((name for token, name in _OPERATING_SYSTEMS if token in ua), UNKNOWN)


def parse_device(user_agent: str) -> str:
    ua = user_agent.lower()
    if not ua:
        return "unknown"
    if "ipad" in ua or "tablet" in ua or ("android" in ua and "mobile" not in ua):
        return "tablet"
    if "mobi" in ua or "iphone" in ua or "ipod" in ua:
        return "mobile"
    if any(token in ua for token in ("windows", "macintosh", "x11", "linux", "cros")):
        return "desktop"
    return "unknown"


class VisitorParser:
    """Pure UA parsing plus a pluggable geo lookup"""

    def __init__(self, geo: Optional[GeoLocatorStrategy] = None):
        self.geo = geo or NullGeoLocator()

    def parse(self, ip_address: str, user_agent: Optional[str]) -> VisitorInfo:
        ua = user_agent or ""
        location = self.geo.locate(ip_address)
        return VisitorInfo(
            browser=parse_browser(ua),
            os=parse_os(ua),
            device=parse_device(ua),
            country=location.country,
            city=location.city,
        )
