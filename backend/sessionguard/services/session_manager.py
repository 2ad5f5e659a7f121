"""Session lifecycle: creation, validation, heartbeat and termination.

Per user, at most one session row is current. A new login demotes the
previous current row to stale instead of deleting it; the stale device
finds out on its next validation, which reports the current row as the
conflict. Rows are only ever removed by explicit termination.

Demotion and insertion happen in one transaction, and the partial unique
index on (user_id) WHERE is_current = 1 rejects a racing second writer, so
a user never ends up with two current rows, whichever login commits first.
"""
from dataclasses import dataclass
from datetime import datetime
import logging
import secrets

from sqlalchemy.orm import Session

from sessionguard.database import store_transaction
from sessionguard.models.security import SuspiciousActivity
from sessionguard.models.session import DeviceSession
from sessionguard.services.anomaly import (
    flag_suspicious_activity,
    is_location_suspicious,
    location_from_session,
)
from sessionguard.services.device_detection import parse_user_agent
from sessionguard.services.geolocation import (
    GeolocationResolver,
    get_geolocation_resolver,
    normalize_ip,
)

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    """Session state carried explicitly through a request."""

    user_id: str
    token: str | None = None


@dataclass
class SessionCreation:
    token: str
    session: DeviceSession
    superseded_session: DeviceSession | None = None
    anomaly: SuspiciousActivity | None = None


@dataclass
class SessionValidation:
    """Outcome of checking a device's token against the current session.

    valid=False with a conflict_session means another device logged in
    since; valid=False without one means there is no current session.
    """

    valid: bool
    conflict_session: DeviceSession | None = None


@dataclass
class SessionListing:
    session: DeviceSession
    is_this_device: bool


def generate_session_token() -> str:
    """Create an opaque session token."""
    return secrets.token_urlsafe(32)


def _get_current_session(db: Session, user_id: str) -> DeviceSession | None:
    return db.query(DeviceSession).filter(
        DeviceSession.user_id == user_id,
        DeviceSession.is_current == 1,
    ).first()


def _get_latest_session(db: Session, user_id: str) -> DeviceSession | None:
    return db.query(DeviceSession).filter(
        DeviceSession.user_id == user_id,
    ).order_by(DeviceSession.created_at.desc()).first()


def create_session(
    db: Session,
    user_id: str,
    user_agent: str | None,
    ip_address: str | None = None,
    resolver: GeolocationResolver | None = None,
) -> SessionCreation:
    """Create the user's new current session and return its token.
    
    Called once per successful authentication. Not idempotent: every call
    adds a row. Geolocation failures leave the location empty and never
    block creation.
    
    Raises:
        SessionStoreError: the store rejected the write; nothing was applied.
    """
    if not user_id:
        raise ValueError("user_id is required")

    device = parse_user_agent(user_agent)
    ip_address = normalize_ip(ip_address)
    geo = None
    if ip_address:
        geo = (resolver or get_geolocation_resolver()).resolve(ip_address)

    with store_transaction(db, f"Create session for user {user_id}"):
        current = _get_current_session(db, user_id)
        previous = current or _get_latest_session(db, user_id)

        db.query(DeviceSession).filter(
            DeviceSession.user_id == user_id,
            DeviceSession.is_current == 1,
        ).update({"is_current": 0}, synchronize_session=False)

        token = generate_session_token()
        session = DeviceSession(
            token=token,
            user_id=user_id,
            device_name=device.device_name,
            device_type=device.device_type,
            browser=device.browser,
            os=device.os,
            ip_address=ip_address,
            location_country=geo.country if geo else None,
            location_city=geo.city if geo else None,
            location_country_code=geo.country_code if geo else None,
            is_current=1,
        )
        db.add(session)
        db.flush()

        anomaly = None
        previous_location = location_from_session(previous)
        if is_location_suspicious(previous_location, geo):
            anomaly = flag_suspicious_activity(
                db,
                user_id=user_id,
                activity_type="suspicious_location",
                severity="medium",
                details={
                    "previous_country": previous_location.country,
                    "previous_country_code": previous_location.country_code,
                    "current_country": geo.country,
                    "current_country_code": geo.country_code,
                    "previous_session_id": previous.id,
                    "ip_address": ip_address,
                },
                session_id=session.id,
            )

    if current is not None:
        logger.info(f"Demoted session {current.id} for user {user_id}")
    logger.info(f"Created session {session.id} for user {user_id} on {device.device_name}")

    return SessionCreation(
        token=token,
        session=session,
        superseded_session=current,
        anomaly=anomaly,
    )


def validate_session(
    db: Session,
    user_id: str,
    local_token: str | None,
    heartbeat_interval_seconds: int = 0,
) -> SessionValidation:
    """Check a device's locally held token against the current session.
    
    On a match the session's last_active is refreshed, at most once per
    heartbeat_interval_seconds when that is positive.
    """
    if not local_token:
        return SessionValidation(valid=False)

    with store_transaction(db, f"Validate session for user {user_id}"):
        current = _get_current_session(db, user_id)
        if current is None:
            return SessionValidation(valid=False)

        if not secrets.compare_digest(current.token.encode(), local_token.encode()):
            logger.info(f"Session conflict for user {user_id}: superseded by {current.id}")
            return SessionValidation(valid=False, conflict_session=current)

        now = datetime.utcnow()
        if _heartbeat_due(current.last_active, now, heartbeat_interval_seconds):
            current.last_active = now.isoformat()

    return SessionValidation(valid=True)


def _heartbeat_due(last_active: str | None, now: datetime, interval_seconds: int) -> bool:
    if interval_seconds <= 0 or not last_active:
        return True
    try:
        last = datetime.fromisoformat(last_active)
    except ValueError:
        return True
    return (now - last).total_seconds() >= interval_seconds


def get_active_sessions(
    db: Session,
    user_id: str,
    local_token: str | None = None,
) -> list[SessionListing]:
    """Get every session row of a user, most recently active first."""
    with store_transaction(db, f"List sessions for user {user_id}"):
        sessions = db.query(DeviceSession).filter(
            DeviceSession.user_id == user_id,
        ).order_by(DeviceSession.last_active.desc()).all()

    return [
        SessionListing(
            session=session,
            is_this_device=bool(local_token) and session.token == local_token,
        )
        for session in sessions
    ]


def terminate_session(
    db: Session,
    session_id: str,
    user_id: str | None = None,
) -> bool:
    """Delete one session row.
    
    When user_id is given only that user's row can match. Returns False if
    nothing was deleted.
    """
    with store_transaction(db, f"Terminate session {session_id}"):
        query = db.query(DeviceSession).filter(DeviceSession.id == session_id)
        if user_id is not None:
            query = query.filter(DeviceSession.user_id == user_id)
        deleted = query.delete(synchronize_session=False)

    if deleted:
        logger.info(f"Terminated session {session_id}")
    return bool(deleted)


def terminate_all_other_sessions(db: Session, user_id: str, local_token: str | None) -> bool:
    """Delete every session of the user except the one holding local_token."""
    if not local_token:
        return False

    with store_transaction(db, f"Terminate other sessions for user {user_id}"):
        deleted = db.query(DeviceSession).filter(
            DeviceSession.user_id == user_id,
            DeviceSession.token != local_token,
        ).delete(synchronize_session=False)

    logger.info(f"Terminated {deleted} other sessions for user {user_id}")
    return True


def force_terminate_all_sessions(db: Session, user_id: str) -> int:
    """Delete every session of the user ("log out everywhere")."""
    with store_transaction(db, f"Terminate all sessions for user {user_id}"):
        deleted = db.query(DeviceSession).filter(
            DeviceSession.user_id == user_id,
        ).delete(synchronize_session=False)

    logger.info(f"Terminated all {deleted} sessions for user {user_id}")
    return deleted
