"""
Purpose: Session lifecycle transitions.
What it does:
Pure functions that take a NavigationSession snapshot and return the next one.
Every illegal transition raises instead of silently doing nothing.

    IDLE -> SELECTING -> NAVIGATING <-> REROUTING -> ARRIVED
                  \\___________\\______________\\___-> CANCELLED
"""

from dataclasses import replace
from typing import Iterable, Optional

from .errors import NoRouteSelectedError, SessionStateError
from .models import Coordinate, MotorProfile, NavigationSession, RouteSet, SessionStatus

ACTIVE_STATES = frozenset({SessionStatus.SELECTING, SessionStatus.NAVIGATING, SessionStatus.REROUTING})
TRACKING_STATES = frozenset({SessionStatus.NAVIGATING, SessionStatus.REROUTING})


def _require(session: NavigationSession, allowed: Iterable[SessionStatus], action: str) -> None:
    allowed = frozenset(allowed)
    if session.status not in allowed:
        names = ", ".join(sorted(s.name for s in allowed))
        raise SessionStateError(f"Cannot {action} while {session.status.name}; allowed from: {names}")


def begin_selection(session: NavigationSession, route_set: RouteSet, motor: MotorProfile) -> NavigationSession:
    """
    Routes arrived for a fresh query. The user still has to pick one,
    so no active route is set here.
    """
    _require(session, (SessionStatus.IDLE, SessionStatus.SELECTING), "enter route selection")
    return replace(
        session,
        status=SessionStatus.SELECTING,
        origin=route_set.origin,
        destination=route_set.destination,
        motor=motor,
        route_set=route_set,
        active_route=None,
    )


def select_route(session: NavigationSession, route_id: str) -> NavigationSession:
    _require(session, (SessionStatus.SELECTING,), "select a route")
    route = session.route_set.find(route_id)
    if route is None:
        raise SessionStateError(f"Route {route_id} is not part of the current route set.")
    return replace(session, active_route=route)


def start_navigation(session: NavigationSession, position: Optional[Coordinate], now: float) -> NavigationSession:
    """
    Begin tracking. Path history is seeded with the current position.

    Raises:
        SessionStateError: not in SELECTING, or no current position.
        NoRouteSelectedError: no route was picked from the route set.
    """
    _require(session, (SessionStatus.SELECTING,), "start navigation")
    if session.active_route is None:
        raise NoRouteSelectedError("Select a route before starting navigation.")
    if position is None:
        raise SessionStateError("A current position is required to start navigation.")
    return replace(
        session,
        status=SessionStatus.NAVIGATING,
        path_history=(position,),
        start_timestamp=now,
        last_position=position,
        last_moved_at=now,
    )


def record_position(
    session: NavigationSession,
    position: Coordinate,
    now: float,
    speed_kmh: Optional[float] = None,
) -> NavigationSession:
    """
    Append `position` to the path unless it equals the last recorded point.
    Consecutive duplicates are dropped so they never add zero-length segments.
    """
    _require(session, TRACKING_STATES, "record a position")
    moved = not session.path_history or session.path_history[-1] != position
    return replace(
        session,
        path_history=session.path_history + (position,) if moved else session.path_history,
        last_position=position,
        last_moved_at=now if moved else session.last_moved_at,
        speed_kmh=speed_kmh if speed_kmh is not None else session.speed_kmh,
    )


def enter_rerouting(session: NavigationSession) -> NavigationSession:
    _require(session, (SessionStatus.NAVIGATING,), "start rerouting")
    return replace(session, status=SessionStatus.REROUTING, reroute_count=session.reroute_count + 1)


def apply_reroute(session: NavigationSession, route_set: RouteSet) -> NavigationSession:
    """New routes from the current position; the best one is auto-selected."""
    _require(session, (SessionStatus.REROUTING,), "apply a reroute")
    return replace(
        session,
        status=SessionStatus.NAVIGATING,
        route_set=route_set,
        active_route=route_set.best_route,
    )


def rejoin_route(session: NavigationSession) -> NavigationSession:
    """Rider came back onto the active route before a reroute landed."""
    _require(session, (SessionStatus.REROUTING,), "rejoin the route")
    return replace(session, status=SessionStatus.NAVIGATING)


def arrive(session: NavigationSession, now: float) -> NavigationSession:
    _require(session, TRACKING_STATES, "arrive")
    return replace(session, status=SessionStatus.ARRIVED, end_timestamp=now)


def cancel(session: NavigationSession, now: float) -> NavigationSession:
    _require(session, ACTIVE_STATES, "cancel")
    return replace(session, status=SessionStatus.CANCELLED, end_timestamp=now)
