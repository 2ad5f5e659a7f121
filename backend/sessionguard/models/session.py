"""Device session models."""
import uuid
from datetime import datetime

from sqlalchemy import Column, Index, Integer, String, text

from sessionguard.database import Base


class DeviceSession(Base):
    """One authenticated device-login for a user.

    At most one row per user has is_current = 1. The partial unique index
    enforces this in the store so that racing logins cannot both commit a
    current row.
    """

    __tablename__ = "device_sessions"
    __table_args__ = (
        Index("ix_device_sessions_user_activity", "user_id", "last_active"),
        Index(
            "uq_device_sessions_user_current",
            "user_id",
            unique=True,
            sqlite_where=text("is_current = 1"),
            postgresql_where=text("is_current = 1"),
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    token = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)

    # Derived from the user agent at creation
    device_name = Column(String(100), nullable=False)
    device_type = Column(String(10), nullable=False)  # desktop, mobile, tablet, unknown
    browser = Column(String(50), nullable=False)
    os = Column(String(50), nullable=False)

    # Location snapshot at creation
    ip_address = Column(String(45))
    location_country = Column(String(100))
    location_city = Column(String(100))
    location_country_code = Column(String(2))

    is_current = Column(Integer, default=1, nullable=False)  # SQLite boolean
    last_active = Column(String(26), default=lambda: datetime.utcnow().isoformat())
    created_at = Column(String(26), default=lambda: datetime.utcnow().isoformat())
