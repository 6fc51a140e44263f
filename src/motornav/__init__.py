#Marks motornav as a package.
#Re-exports the public entry points so callers import from motornav without
#knowing internal file names. No business logic.

from .errors import (
    InvalidMotorProfile,
    LocationError,
    NavigationError,
    NoRouteSelectedError,
    PersistenceError,
    RouteFetchError,
    SessionStateError,
)
from .models import Coordinate, MotorProfile, Route, RouteSet, SessionStatus, TripSummary
from .nav_config import NavConfig
from .navigator import NavigationSystem
from .session_engine import SessionEngine

__all__ = [
    "Coordinate",
    "InvalidMotorProfile",
    "LocationError",
    "MotorProfile",
    "NavConfig",
    "NavigationError",
    "NavigationSystem",
    "NoRouteSelectedError",
    "PersistenceError",
    "Route",
    "RouteFetchError",
    "RouteSet",
    "SessionEngine",
    "SessionStateError",
    "SessionStatus",
    "TripSummary",
]
