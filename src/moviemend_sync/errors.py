"""Error types raised by the sync layer."""

from typing import Optional

from .constants import UNIQUE_VIOLATION_CODE


class MovieSyncError(Exception):
    """Base class for all sync layer errors."""


class Unauthenticated(MovieSyncError):
    """No valid session is available."""

    def __init__(self, message: str = "Must be logged in"):
        super().__init__(message)


class Unreachable(MovieSyncError):
    """Transport failure while the device believed it was online."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class RemoteError(MovieSyncError):
    """The backing store rejected the request."""

    def __init__(self, code: str, message: str = "", status: Optional[int] = None):
        super().__init__(f"[{code}] {message}" if message else f"[{code}]")
        self.code = code
        self.message = message
        self.status = status

    @property
    def is_unique_violation(self) -> bool:
        return self.code == UNIQUE_VIOLATION_CODE


class OfflineUnavailable(MovieSyncError):
    """Offline and no usable cached data."""

    def __init__(self, namespace: str, key: Optional[object] = None):
        target = namespace if key is None else f"{namespace}/{key}"
        super().__init__(f"Offline and no cached data for {target}")
        self.namespace = namespace
        self.key = key


class CacheError(MovieSyncError):
    """Local cache storage failure. Never escapes the cache."""


class CacheQuotaExceeded(CacheError):
    """Write would exceed the storage quota."""
