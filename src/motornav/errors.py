# errors.py
# Exception taxonomy for the navigation engine.
# Every error carries a `kind` so callers can pick a retry prompt.

from enum import Enum
from typing import Optional


class NavigationError(Exception):
    """Base class for all engine errors."""
    pass


# ---------------------------------------------------------------------------
# Route fetching
# ---------------------------------------------------------------------------

class RouteFetchFailure(Enum):
    NO_CONNECTIVITY = "no_connectivity"
    PROVIDER_ERROR  = "provider_error"
    NO_ROUTES_FOUND = "no_routes_found"


class RouteFetchError(NavigationError):
    """Directions request failed or produced nothing usable."""

    def __init__(self, kind: RouteFetchFailure, message: str = "") -> None:
        self.kind = kind
        super().__init__(message or kind.value)

    @property
    def retryable(self) -> bool:
        return self.kind in (RouteFetchFailure.NO_CONNECTIVITY, RouteFetchFailure.PROVIDER_ERROR)


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------

class LocationFailure(Enum):
    PERMISSION_DENIED = "permission_denied"
    UNAVAILABLE       = "unavailable"


class LocationError(NavigationError):
    def __init__(self, kind: LocationFailure, message: str = "") -> None:
        self.kind = kind
        super().__init__(message or kind.value)


# ---------------------------------------------------------------------------
# Motor profile
# ---------------------------------------------------------------------------

class InvalidMotorProfile(NavigationError):
    """Motor data cannot be used for fuel estimates (e.g. efficiency <= 0)."""
    pass


# ---------------------------------------------------------------------------
# Backend persistence
# ---------------------------------------------------------------------------

class PersistenceFailure(Enum):
    TRIP_SAVE_FAILED        = "trip_save_failed"
    MAINTENANCE_SAVE_FAILED = "maintenance_save_failed"


class PersistenceError(NavigationError):
    def __init__(self, kind: PersistenceFailure, message: str = "", status_code: Optional[int] = None) -> None:
        self.kind = kind
        self.status_code = status_code
        super().__init__(message or kind.value)


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------

class SessionStateError(NavigationError):
    """Raised when an invalid session transition is attempted."""
    pass


class NoRouteSelectedError(SessionStateError):
    """start() was called before a route was picked from the route set."""
    pass
