"""SQLAlchemy models package."""
from sessionguard.models.session import DeviceSession
from sessionguard.models.security import GeoCacheEntry, SuspiciousActivity

__all__ = [
    "DeviceSession",
    "SuspiciousActivity",
    "GeoCacheEntry",
]
