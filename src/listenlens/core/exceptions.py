"""Exceptions shared by the session, cache and catalog layers."""

from typing import Optional


class ListenLensError(Exception):
    """Base exception for ListenLens operations."""

    pass


class AuthError(ListenLensError):
    """Base exception for credential failures."""

    pass


class SessionExpiredError(AuthError):
    """Raised when the refresh exchange fails.

    Fatal to the current session: the stored credential has already been
    cleared and the user must authenticate again.
    """

    def __init__(self, message: str = None):
        super().__init__(message or "Session expired. Please log in again.")


class UnauthorizedError(AuthError):
    """Raised when a single API request is rejected with 401."""

    pass


class NetworkError(ListenLensError):
    """Raised when a request fails at the transport or HTTP level."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RateLimitedError(NetworkError):
    """Raised when the catalog rate limits the request (429)."""

    def __init__(self, message: str = None, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(message or "Rate limit reached", status_code=429)


class StorageError(ListenLensError):
    """Raised when the local cache cannot be read or written."""

    pass


class StorageQuotaExceededError(StorageError):
    """Raised when a cache write would exceed the storage quota."""

    pass
