"""Map service errors to HTTP responses."""
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from sessionguard.errors import ReviewError, SessionStoreError

logger = logging.getLogger(__name__)


def create_error_response(status_code: int, detail: str, error_type: str) -> JSONResponse:
    """Create JSON error response with a type for machine parsing."""
    return JSONResponse(status_code=status_code, content={"detail": detail, "type": error_type})


async def session_store_error_handler(_: Request, exc: SessionStoreError) -> JSONResponse:
    """Store failures are retryable and carry no internal detail."""
    logger.error(f"Session store failure: {exc}")
    return create_error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Something went wrong. Please try again.",
        "session_store_unavailable",
    )


async def review_error_handler(_: Request, exc: ReviewError) -> JSONResponse:
    if exc.not_found:
        return create_error_response(status.HTTP_404_NOT_FOUND, str(exc), "not_found")
    return create_error_response(status.HTTP_409_CONFLICT, str(exc), "already_reviewed")


def install_error_handlers(app: FastAPI) -> None:
    """Register handlers for errors raised by the services."""
    app.add_exception_handler(SessionStoreError, session_store_error_handler)
    app.add_exception_handler(ReviewError, review_error_handler)
