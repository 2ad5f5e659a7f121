"""Device and location descriptors derived at session creation."""
from typing import Literal

from pydantic import BaseModel

DeviceType = Literal["desktop", "mobile", "tablet", "unknown"]


class DeviceInfo(BaseModel):
    """Structured fingerprint of a user agent."""
    
    device_name: str
    device_type: DeviceType
    browser: str
    os: str


class GeoLocation(BaseModel):
    """Coarse location of an IP address."""
    
    country: str
    country_code: str
    city: str
    region: str = ""
    timezone: str = ""
    isp: str = ""
