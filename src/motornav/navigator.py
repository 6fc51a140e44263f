# navigator.py
# Public entry point for the navigation engine.
# Owns no business logic; delegates everything to specialist modules.

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from .analytics_monitor import AnalyticsMonitor
from .backend_sync import BackendSync
from .errors import InvalidMotorProfile, LocationError, LocationFailure, PersistenceError
from .geo_utils import eta_seconds, planar_distance
from .geocoder import ReverseGeocoder
from .location_tracker import LocationSource, LocationTracker
from .models import (
    Coordinate,
    LocationFix,
    MaintenanceAction,
    MaintenanceType,
    MotorProfile,
    NavigationSession,
    Notification,
    Route,
    RouteSet,
    SessionStatus,
    TripSummary,
)
from .nav_config import NavConfig
from .nav_logger import NavLogger
from .route_provider import RouteProvider
from .session_engine import SessionEngine, SessionEvent, SessionEventKind
from .trip_recorder import TripRecorder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TripResult:
    """Outcome of a finished trip. The trip is complete even when saved is False."""
    summary: TripSummary
    saved: bool
    error: Optional[PersistenceError] = None


class NavigationSystem:
    """
    High-level navigation facade for a headless client.

    Typical lifecycle:
        nav = NavigationSystem("user-1", location_source, config)
        route_set = nav.plan_route(destination, motor)
        nav.select_route(route_set.best_route.id)
        nav.start_navigation()

        # GPS loop (or nav.run()):
        session = nav.update(fix)

    Args:
        user_id:         Backend user owning the trips.
        location_source: Device location service.
        config:          Optional NavConfig; defaults to NavConfig().
        provider, backend, geocoder: Optional collaborators (injected in tests).
    """

    def __init__(
        self,
        user_id: str,
        location_source: LocationSource,
        config: Optional[NavConfig] = None,
        provider: Optional[RouteProvider] = None,
        backend: Optional[BackendSync] = None,
        geocoder: Optional[ReverseGeocoder] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or NavConfig()
        self.user_id = user_id

        # Specialist modules
        self._provider = provider or RouteProvider(self.config)
        self._backend = backend or BackendSync(self.config)
        self._geocoder = geocoder or ReverseGeocoder(self.config)
        self._tracker = LocationTracker(location_source, self.config)
        self._engine = SessionEngine(self._provider, self.config, clock)
        self._recorder = TripRecorder(user_id, clock)
        self._monitor = AnalyticsMonitor(lambda: self._engine.session, self.config, clock)
        self._logger = NavLogger(self.config)

        self.last_trip: Optional[TripResult] = None
        self._engine.subscribe(self._on_session_event)

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: Callable[[SessionEvent], None]) -> Callable[[], None]:
        return self._engine.subscribe(listener)

    def on_notification(self, listener: Callable[[Notification], None]) -> None:
        self._monitor.subscribe(listener)

    # ------------------------------------------------------------------
    # Motor registry
    # ------------------------------------------------------------------

    def load_motors(self) -> List[MotorProfile]:
        return self._backend.fetch_motors(self.user_id)

    # ------------------------------------------------------------------
    # Navigation control
    # ------------------------------------------------------------------

    def plan_route(
        self,
        destination: Coordinate,
        motor: MotorProfile,
        origin: Optional[Coordinate] = None,
    ) -> RouteSet:
        """
        Fetch candidate routes from `origin` (default: current position).

        Raises:
            LocationError: no origin given and location is unavailable/denied.
            RouteFetchError: provider failure; the session stays where it was.
        """
        if origin is None:
            self._tracker.start()
            origin = self._tracker.position
        destination = self._geocoder.annotate(destination)

        route_set = self._engine.request_routes(origin, destination, motor)
        self._logger.save_route_set(route_set)
        return route_set

    def select_route(self, route_id: str) -> Route:
        route = self._engine.select_route(route_id)
        self._logger.save_route_set(self._engine.session.route_set, route.id)
        return route

    def start_navigation(self, off_route_threshold_m: Optional[float] = None) -> NavigationSession:
        """
        Start tracking the selected route from the current position.

        Raises:
            LocationError: permission denied / no fix.
            NoRouteSelectedError, SessionStateError
            ValueError: invalid off_route_threshold_m.
        """
        self._tracker.start()
        position = self._geocoder.annotate(self._tracker.position)
        session = self._engine.start(position, off_route_threshold_m)
        self._monitor.start()
        logger.info(f"Route ready: {len(session.active_route.instructions)} steps.")
        return session

    def stop_navigation(self) -> Optional[TripResult]:
        """Forcibly end the current navigation session."""
        self._engine.stop()
        return self.last_trip

    # ------------------------------------------------------------------
    # GPS update: call this on every position fix
    # ------------------------------------------------------------------

    def update(self, fix: LocationFix) -> NavigationSession:
        """
        Process a new GPS fix and return the session snapshot.
        """
        session = self._engine.update(fix.coordinate, fix.speed_kmh)
        if session.status.is_tracking:
            self._logger.log_event(session)
        return session

    def process_pending(self, timeout: float = 0.0) -> NavigationSession:
        """Apply a finished reroute without waiting for the next fix."""
        return self._engine.process_pending(timeout)

    def run(self, timeout: Optional[float] = None) -> Optional[TripResult]:
        """Feed tracker fixes into the engine until the trip ends or the stream stops."""
        for fix in self._tracker.fixes(timeout):
            session = self.update(fix)
            if session.status.is_terminal:
                break
        return self.last_trip

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def log_maintenance(
        self,
        action_type: MaintenanceType,
        cost: float,
        quantity: Optional[float] = None,
        notes: Optional[str] = None,
        motor: Optional[MotorProfile] = None,
    ) -> MaintenanceAction:
        """
        Record a refuel / oil change / tune-up at the current position.

        Raises:
            InvalidMotorProfile: no motor given and none in the session.
            LocationError: no known position.
            PersistenceError: backend rejected the record.
        """
        motor = motor or self._engine.session.motor
        if motor is None:
            raise InvalidMotorProfile("No motor selected for the maintenance record.")
        location = self._tracker.position or self._engine.session.last_position
        if location is None:
            raise LocationError(LocationFailure.UNAVAILABLE, "No position known for the maintenance record.")

        action = MaintenanceAction(
            type=action_type,
            timestamp=datetime.now(timezone.utc),
            location=location,
            cost=cost,
            quantity=quantity,
            notes=notes,
        )
        self._backend.save_maintenance(self.user_id, motor.id, action)
        return action

    # ------------------------------------------------------------------
    # Trip persistence
    # ------------------------------------------------------------------

    def retry_pending_trips(self) -> int:
        """Re-post queued trips. Returns how many were saved."""
        pending = self._logger.load_pending_trips()
        still_pending = []
        for payload in pending:
            try:
                self._backend.save_trip_payload(payload)
            except PersistenceError as e:
                logger.warning(f"Pending trip still not saved: {e}")
                still_pending.append(payload)
        self._logger.replace_pending_trips(still_pending)
        return len(pending) - len(still_pending)

    def _on_session_event(self, event: SessionEvent) -> None:
        if event.kind in (SessionEventKind.ARRIVED, SessionEventKind.CANCELLED):
            self._finish(event.session, arrived=event.kind == SessionEventKind.ARRIVED)
        elif event.kind == SessionEventKind.REROUTED:
            self._logger.save_route_set(event.session.route_set, event.session.active_route.id)
            self._logger.log_event(event.session, "rerouted")
        elif event.kind == SessionEventKind.REROUTE_FAILED:
            logger.warning("Unable to reroute; still tracking position.")
            self._logger.log_event(event.session, "reroute_failed")

    def _finish(self, session: NavigationSession, arrived: bool) -> None:
        self._tracker.stop()
        self._monitor.stop()
        self._logger.log_event(session, session.status.value)

        if session.start_timestamp is None:
            # Cancelled during route selection: nothing was travelled.
            self.last_trip = None
            return

        summary = self._recorder.finalize(session, arrived)
        try:
            self._backend.save_trip(summary)
            self.last_trip = TripResult(summary, saved=True)
        except PersistenceError as e:
            logger.warning(f"Trip save failed, queued for retry: {e}")
            self._logger.queue_pending_trip(summary.to_payload())
            self.last_trip = TripResult(summary, saved=False, error=e)

    # ------------------------------------------------------------------
    # Convenience read-only properties
    # ------------------------------------------------------------------

    @property
    def session(self) -> NavigationSession:
        return self._engine.session

    @property
    def status(self) -> SessionStatus:
        return self._engine.status

    @property
    def is_active(self) -> bool:
        return self._engine.status.is_tracking

    def remaining(self) -> Tuple[Optional[float], Optional[float]]:
        """(metres to the route end, seconds at current speed) or Nones when not tracking."""
        session = self._engine.session
        if not session.status.is_tracking or session.last_position is None:
            return None, None
        distance = planar_distance(session.last_position, session.active_route.end)
        return distance, eta_seconds(distance, session.speed_kmh)

    def close(self) -> None:
        self._tracker.stop()
        self._monitor.stop()
        self._engine.close()
