"""Session schemas."""
from pydantic import BaseModel


class SessionResponse(BaseModel):
    """Device session as shown to its owner."""
    
    id: str
    device_name: str
    short_device_name: str  # Icon, browser and OS, e.g. "📱 Safari • iOS"
    device_type: str
    browser: str
    os: str
    ip_address: str | None = None
    location_country: str | None = None
    location_city: str | None = None
    location: str  # Display string, e.g. "Mumbai, India"
    is_current: bool  # Canonical session for the user
    is_this_device: bool = False  # Holds the caller's token
    last_active: str
    created_at: str


class SessionCreateResponse(BaseModel):
    """Response to a new device login."""
    
    session_token: str
    session: SessionResponse
    superseded_session: SessionResponse | None = None
    flagged_for_review: bool = False


class SessionValidationResponse(BaseModel):
    """Result of validating the caller's session token."""
    
    valid: bool
    conflict_session: SessionResponse | None = None
    message: str | None = None


class TerminateResponse(BaseModel):
    """Result of a termination request."""
    
    success: bool
    terminated: int | None = None
