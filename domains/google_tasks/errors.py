"""Exceptions raised by the Google Tasks integration."""

from typing import Optional


class GoogleTasksError(Exception):
    """Base exception for the Google Tasks integration."""

    pass


class AuthError(GoogleTasksError):
    """Authorization, code exchange or token refresh failed.

    ``error_code`` holds the OAuth error string (e.g. ``invalid_grant``)
    when the token endpoint returned one.
    """

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.error_code = error_code


class TokenExpiredError(GoogleTasksError):
    """The API still rejected the access token after a refresh."""

    pass


class ApiError(GoogleTasksError):
    """Non-2xx response from the Google Tasks API."""

    def __init__(self, status: int, reason: str, message: str):
        super().__init__(f"HTTP {status} {reason}: {message}")
        self.status = status
        self.reason = reason
        self.message = message


class NotFoundError(ApiError):
    """404 - the remote task or list no longer exists."""

    pass


class RateLimitError(ApiError):
    """429 - rate limited by the API."""

    def __init__(self, status: int, reason: str, message: str, retry_after: Optional[float] = None):
        super().__init__(status, reason, message)
        self.retry_after = retry_after


class DocumentIOError(GoogleTasksError):
    """Reading or writing a reminder's source document failed."""

    pass


class SyncError(GoogleTasksError):
    """A sync pass could not start (list resolution or snapshot failed)."""

    pass
