"""Device session API endpoints."""
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from sessionguard.api.deps import Identity, get_current_identity, get_db, get_session_context
from sessionguard.config import get_settings
from sessionguard.models.session import DeviceSession
from sessionguard.schemas.device import DeviceInfo
from sessionguard.schemas.session import (
    SessionCreateResponse,
    SessionResponse,
    SessionValidationResponse,
    TerminateResponse,
)
from sessionguard.services.device_detection import get_short_device_name
from sessionguard.services.geolocation import format_location, normalize_ip
from sessionguard.services.session_manager import (
    SessionContext,
    create_session,
    force_terminate_all_sessions,
    get_active_sessions,
    terminate_all_other_sessions,
    terminate_session,
    validate_session,
)

router = APIRouter(prefix="/sessions", tags=["sessions"])
settings = get_settings()


def get_request_ip(request: Request) -> str | None:
    """Extract the client IP for session metadata.

    X-Forwarded-For is only read when the peer is a trusted proxy. Hops are
    walked from the right, skipping trusted proxies, so a client cannot pick
    the address by prepending its own entries. Anything that is not an IP
    address yields None.
    """
    peer = request.client.host if request.client else None
    trusted = set(settings.trusted_proxy_ips)
    if peer not in trusted:
        return normalize_ip(peer)

    xff = request.headers.get("x-forwarded-for")
    if not xff:
        return normalize_ip(peer)

    for hop in reversed([part.strip() for part in xff.split(",")]):
        if hop not in trusted:
            return normalize_ip(hop)
    return normalize_ip(peer)


def set_session_cookie(response: Response, session_token: str) -> None:
    """Issue secure HttpOnly session cookie."""
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session_token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        path=settings.session_cookie_path,
        max_age=settings.session_cookie_max_age_days * 24 * 60 * 60,
    )


def clear_session_cookie(response: Response) -> None:
    """Clear session cookie."""
    response.delete_cookie(
        key=settings.session_cookie_name,
        path=settings.session_cookie_path,
        secure=settings.session_cookie_secure,
        httponly=True,
        samesite=settings.session_cookie_samesite,
    )


def to_session_response(session: DeviceSession, is_this_device: bool = False) -> SessionResponse:
    """Build the API view of a session row."""
    return SessionResponse(
        id=session.id,
        device_name=session.device_name,
        short_device_name=get_short_device_name(DeviceInfo(
            device_name=session.device_name,
            device_type=session.device_type,
            browser=session.browser,
            os=session.os,
        )),
        device_type=session.device_type,
        browser=session.browser,
        os=session.os,
        ip_address=session.ip_address,
        location_country=session.location_country,
        location_city=session.location_city,
        location=format_location(
            session.location_country,
            session.location_city,
            session.location_country_code,
        ),
        is_current=bool(session.is_current),
        is_this_device=is_this_device,
        last_active=session.last_active,
        created_at=session.created_at,
    )


@router.post("", response_model=SessionCreateResponse, status_code=status.HTTP_201_CREATED)
def create_device_session(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """Register this device as the user's current session.
    
    Called by the identity provider flow once per successful login.
    """
    created = create_session(
        db,
        user_id=identity.user_id,
        user_agent=request.headers.get("user-agent"),
        ip_address=get_request_ip(request),
    )
    set_session_cookie(response, created.token)

    superseded = None
    if created.superseded_session is not None:
        superseded = to_session_response(created.superseded_session)

    return SessionCreateResponse(
        session_token=created.token,
        session=to_session_response(created.session, is_this_device=True),
        superseded_session=superseded,
        flagged_for_review=created.anomaly is not None,
    )


@router.post("/validate", response_model=SessionValidationResponse)
def validate_device_session(
    db: Session = Depends(get_db),
    context: SessionContext = Depends(get_session_context),
):
    """Check that this device still holds the user's current session."""
    result = validate_session(
        db,
        context.user_id,
        context.token,
        heartbeat_interval_seconds=settings.heartbeat_min_interval_seconds,
    )
    if result.valid:
        return SessionValidationResponse(valid=True)

    if result.conflict_session is not None:
        return SessionValidationResponse(
            valid=False,
            conflict_session=to_session_response(result.conflict_session),
            message=(
                "You were logged out because someone logged in from "
                f"{result.conflict_session.device_name}"
            ),
        )

    return SessionValidationResponse(
        valid=False,
        message="Your session expired. Please log in again.",
    )


@router.get("", response_model=list[SessionResponse])
def list_device_sessions(
    db: Session = Depends(get_db),
    context: SessionContext = Depends(get_session_context),
):
    """Get all of the user's sessions, marking the one held by this device."""
    listings = get_active_sessions(db, context.user_id, context.token)
    return [to_session_response(item.session, item.is_this_device) for item in listings]


@router.delete("/{session_id}", response_model=TerminateResponse)
def terminate_device_session(
    session_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """Sign out one of the user's devices."""
    if not terminate_session(db, session_id, user_id=identity.user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )
    return TerminateResponse(success=True, terminated=1)


@router.post("/terminate-others", response_model=TerminateResponse)
def terminate_other_device_sessions(
    db: Session = Depends(get_db),
    context: SessionContext = Depends(get_session_context),
):
    """Sign out every device except this one."""
    if not terminate_all_other_sessions(db, context.user_id, context.token):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No session token for this device",
        )
    return TerminateResponse(success=True)


@router.post("/terminate-all", response_model=TerminateResponse)
def terminate_all_device_sessions(
    response: Response,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """Sign out everywhere, including this device."""
    terminated = force_terminate_all_sessions(db, identity.user_id)
    clear_session_cookie(response)
    return TerminateResponse(success=True, terminated=terminated)
