"""Shared API dependencies."""
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from sessionguard.config import get_settings
from sessionguard.database import get_db
from sessionguard.services.session_manager import SessionContext

__all__ = ["get_db", "get_current_identity", "require_admin", "get_session_context", "Identity"]

settings = get_settings()
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Identity:
    """Caller as asserted by the identity provider's access token."""

    user_id: str
    role: str | None = None


def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Identity:
    """Verify the identity provider's bearer token.
    
    Tokens are only verified here; issuing them is the identity provider's job.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.secret_key,
            algorithms=[settings.algorithm],
        )
    except JWTError:
        raise credentials_exception

    if payload.get("type", "access") != "access":
        raise credentials_exception

    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception

    return Identity(user_id=str(user_id), role=payload.get("role"))


def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    """Restrict an endpoint to administrators."""
    if identity.role != settings.admin_role:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required",
        )
    return identity


def get_session_context(
    request: Request,
    identity: Identity = Depends(get_current_identity),
) -> SessionContext:
    """Build the request's session context from the session header or cookie."""
    token = request.headers.get(settings.session_header_name) or request.cookies.get(
        settings.session_cookie_name
    )
    return SessionContext(user_id=identity.user_id, token=token or None)
