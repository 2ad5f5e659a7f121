"""Errors raised across the session subsystem.

Token mismatches and conflicts are ordinary validation results, not errors.
Geolocation failures never leave the resolver.
"""


class SessionGuardError(Exception):
    """Base class for session subsystem errors."""


class SessionStoreError(SessionGuardError):
    """Raised when the session store rejects a read or write.

    The transaction that raised it has been rolled back, so nothing of the
    operation applied. Callers should show a generic retryable error.
    """

    def __init__(self, message: str = "Session store unavailable") -> None:
        super().__init__(message)


class ReviewError(SessionGuardError):
    """Raised when a flagged activity cannot be reviewed."""

    def __init__(self, message: str, *, not_found: bool = False) -> None:
        super().__init__(message)
        self.not_found = not_found
