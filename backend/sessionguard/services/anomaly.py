"""Location anomaly heuristics.

Flags are queued for manual review only. Nothing here restricts, locks or
signs out an account.
"""
from datetime import datetime, timedelta
import json
import logging

from sqlalchemy.orm import Session

from sessionguard.config import get_settings
from sessionguard.models.security import SuspiciousActivity
from sessionguard.models.session import DeviceSession
from sessionguard.schemas.device import GeoLocation

logger = logging.getLogger(__name__)
settings = get_settings()

ACTIVITY_TYPES = (
    "suspicious_location",
    "rapid_requests",
    "seek_skip",
    "ip_mismatch",
    "multi_device_attempt",
)
SEVERITIES = ("low", "medium", "high")


def is_location_suspicious(
    previous: GeoLocation | None,
    current: GeoLocation | None,
) -> bool:
    """Whether two consecutive locations are in different countries.
    
    Missing data on either side is never suspicious, so failed lookups do
    not produce flags.
    """
    if previous is None or current is None:
        return False
    return previous.country_code != current.country_code


def location_from_session(session: DeviceSession | None) -> GeoLocation | None:
    """Rebuild the location snapshot stored on a session row."""
    if session is None or not session.location_country_code:
        return None
    return GeoLocation(
        country=session.location_country or "Unknown",
        country_code=session.location_country_code,
        city=session.location_city or "Unknown",
    )


def flag_suspicious_activity(
    db: Session,
    user_id: str,
    activity_type: str,
    severity: str,
    details: dict,
    session_id: str | None = None,
) -> SuspiciousActivity | None:
    """Queue an activity for review unless an identical flag is recent.
    
    Adds the record to the caller's transaction without committing. Returns
    None when the flag was suppressed as a duplicate.
    """
    if activity_type not in ACTIVITY_TYPES:
        raise ValueError(f"Unknown activity type: {activity_type}")
    if severity not in SEVERITIES:
        raise ValueError(f"Unknown severity: {severity}")

    window_start = datetime.utcnow() - timedelta(minutes=settings.anomaly_dedupe_window_minutes)
    recent = db.query(SuspiciousActivity.id).filter(
        SuspiciousActivity.user_id == user_id,
        SuspiciousActivity.activity_type == activity_type,
        SuspiciousActivity.created_at >= window_start.isoformat(),
    ).first()
    if recent:
        logger.info(f"Suppressed duplicate {activity_type} flag for user {user_id}")
        return None

    activity = SuspiciousActivity(
        user_id=user_id,
        activity_type=activity_type,
        severity=severity,
        details=json.dumps(details),
        session_id=session_id,
    )
    db.add(activity)
    db.flush()
    logger.warning(f"Flagged {activity_type} ({severity}) for user {user_id}: {details}")
    return activity
