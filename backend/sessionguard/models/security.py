"""Anomaly review and geolocation cache models."""
import uuid
from datetime import datetime

from sqlalchemy import Column, Float, Index, Integer, String, Text

from sessionguard.database import Base


class SuspiciousActivity(Base):
    """Activity flagged for manual review. Flags never act on the account."""

    __tablename__ = "suspicious_activity"
    __table_args__ = (
        Index("ix_suspicious_activity_pending", "reviewed", "created_at"),
        Index("ix_suspicious_activity_user_type", "user_id", "activity_type", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)

    # suspicious_location, rapid_requests, seek_skip, ip_mismatch, multi_device_attempt
    activity_type = Column(String(50), nullable=False)
    severity = Column(String(10), nullable=False)  # low, medium, high
    details = Column(Text, default="{}")  # JSON

    # Session that triggered the flag; kept as a plain id so terminating it leaves the record
    session_id = Column(String(36))

    # Review
    reviewed = Column(Integer, default=0, nullable=False)  # SQLite boolean
    reviewed_by = Column(String(36))
    reviewed_at = Column(String(26))
    action_taken = Column(String(100))

    created_at = Column(String(26), default=lambda: datetime.utcnow().isoformat())


class GeoCacheEntry(Base):
    """Geolocation lookup cached by IP, shared by every instance on the database."""

    __tablename__ = "geo_cache"

    ip_address = Column(String(45), primary_key=True)
    payload = Column(Text, nullable=False)  # JSON
    expires_at = Column(Float, nullable=False, index=True)  # epoch seconds
