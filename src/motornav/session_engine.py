# session_engine.py
# Owns the NavigationSession for one rider and drives it through its lifecycle.
# Call request_routes() / select_route() / start() once, then update() on every
# GPS fix. Reroute fetches run on a single worker thread; their results are
# applied back on the caller's thread, so session state has a single writer.

import logging
import queue
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, NamedTuple, Optional

from . import state_machine as sm
from .errors import NavigationError, SessionStateError
from .models import Coordinate, MotorProfile, NavigationSession, Route, RouteSet, SessionStatus
from .nav_config import NavConfig
from .off_route import has_arrived, is_off_route

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Change notifications
# ---------------------------------------------------------------------------

class SessionEventKind(Enum):
    ROUTES_READY   = "routes_ready"
    ROUTE_SELECTED = "route_selected"
    STARTED        = "started"
    POSITION       = "position"
    OFF_ROUTE      = "off_route"
    REROUTED       = "rerouted"
    REROUTE_RETRY  = "reroute_retry"
    REROUTE_FAILED = "reroute_failed"
    REJOINED       = "rejoined"
    ARRIVED        = "arrived"
    CANCELLED      = "cancelled"


@dataclass(frozen=True)
class SessionEvent:
    kind: SessionEventKind
    session: NavigationSession
    detail: str = ""


# ---------------------------------------------------------------------------
# Reroute worker
# ---------------------------------------------------------------------------

class _RerouteJob(NamedTuple):
    generation: int
    episode: int
    origin: Coordinate
    destination: Coordinate
    motor: MotorProfile


class _RerouteResult(NamedTuple):
    generation: int
    episode: int
    route_set: Optional[RouteSet]
    error: Optional[Exception]


class RerouteWorker:
    """Runs directions fetches one at a time on a daemon thread."""

    def __init__(self, provider) -> None:
        self._provider = provider
        self._jobs: "queue.Queue" = queue.Queue()
        self.results: "queue.Queue" = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    def submit(self, job: _RerouteJob) -> None:
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._run, daemon=True, name="reroute-worker")
            self._thread.start()
        self._jobs.put(job)

    def close(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        self._jobs.put(None)
        self._thread.join(timeout=timeout)
        self._thread = None

    def _run(self) -> None:
        while True:
            job = self._jobs.get()
            if job is None:
                break
            try:
                route_set = self._provider.fetch_routes(job.origin, job.destination, job.motor)
                result = _RerouteResult(job.generation, job.episode, route_set, None)
            except NavigationError as e:
                result = _RerouteResult(job.generation, job.episode, None, e)
            except Exception as e:
                logger.exception("Unexpected error during reroute fetch")
                result = _RerouteResult(job.generation, job.episode, None, e)
            finally:
                self._jobs.task_done()
            self.results.put(result)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class SessionEngine:
    """
    Stateful navigation session coordinator.

    Usage:
        engine = SessionEngine(provider, config)
        route_set = engine.request_routes(origin, destination, motor)
        engine.select_route(route_set.best_route.id)
        engine.start(origin)

        # Inside GPS loop:
        session = engine.update(position)

    Args:
        provider: Object with fetch_routes(origin, destination, motor) -> RouteSet.
        config:   NavConfig instance.
        clock:    Time source in unix seconds, injectable for tests.
    """

    def __init__(self, provider, config: Optional[NavConfig] = None, clock: Callable[[], float] = time.time) -> None:
        self.config = config or NavConfig()
        self._provider = provider
        self._clock = clock
        self._worker = RerouteWorker(provider)
        self._listeners: List[Callable[[SessionEvent], None]] = []

        self._session = NavigationSession.idle(self.config.off_route_threshold_m)
        self._generation = 0
        self._reset_reroute_state()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: Callable[[SessionEvent], None]) -> Callable[[], None]:
        """Register a change listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: SessionEventKind, detail: str = "") -> None:
        event = SessionEvent(kind, self._session, detail)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Session listener failed on {kind.value}")

    # ------------------------------------------------------------------
    # Read-only properties
    # ------------------------------------------------------------------

    @property
    def session(self) -> NavigationSession:
        return self._session

    @property
    def status(self) -> SessionStatus:
        return self._session.status

    @property
    def reroute_in_flight(self) -> bool:
        return self._in_flight

    @property
    def reroute_exhausted(self) -> bool:
        return self._gave_up

    # ------------------------------------------------------------------
    # Route selection
    # ------------------------------------------------------------------

    def request_routes(self, origin: Coordinate, destination: Coordinate, motor: MotorProfile) -> RouteSet:
        """
        Fetch candidate routes and enter SELECTING.

        A finished session is replaced by a fresh one. On failure the
        session keeps its current state and the error propagates.

        Raises:
            RouteFetchError, InvalidMotorProfile, SessionStateError
        """
        if self._session.status.is_tracking:
            raise SessionStateError("Stop the active trip before requesting new routes.")
        if self._session.status.is_terminal:
            self._new_session()

        route_set = self._provider.fetch_routes(origin, destination, motor)
        self._session = sm.begin_selection(self._session, route_set, motor)
        logger.info(f"Routes ready: {len(route_set.alternatives)} candidates ({route_set.synthetic_count} synthetic).")
        self._emit(SessionEventKind.ROUTES_READY)
        return route_set

    def select_route(self, route_id: str) -> Route:
        self._session = sm.select_route(self._session, route_id)
        self._emit(SessionEventKind.ROUTE_SELECTED, route_id)
        return self._session.active_route

    def start(self, position: Coordinate, off_route_threshold_m: Optional[float] = None) -> NavigationSession:
        """
        Begin navigating the selected route from `position`.

        Raises:
            NoRouteSelectedError: no route picked yet.
            SessionStateError: not in SELECTING.
            ValueError: off_route_threshold_m is negative or not a number.
        """
        if off_route_threshold_m is not None and not off_route_threshold_m >= 0:
            raise ValueError(f"Off-route threshold must be >= 0 m, got {off_route_threshold_m}.")
        session = sm.start_navigation(self._session, position, self._clock())
        if off_route_threshold_m is not None:
            session = replace(session, off_route_threshold_m=off_route_threshold_m)
        self._session = session
        self._reset_reroute_state()
        logger.info(f"Navigation started on {session.active_route.id} (threshold {session.off_route_threshold_m} m).")
        self._emit(SessionEventKind.STARTED)
        return self._session

    # ------------------------------------------------------------------
    # Core method: call on every GPS update
    # ------------------------------------------------------------------

    def update(self, position: Coordinate, speed_kmh: Optional[float] = None) -> NavigationSession:
        """
        Process one position fix.

        Order: apply finished reroutes, record the point, then check
        arrival, deviation and pending retries.
        """
        if not self._session.status.is_tracking:
            return self._session

        self._drain_results()
        now = self._clock()
        session = sm.record_position(self._session, position, now, speed_kmh)
        self._session = session
        self._emit(SessionEventKind.POSITION)

        route = session.active_route.coordinates

        # 1. Arrival
        if has_arrived(position, route, self.config.arrival_threshold_m):
            self._session = sm.arrive(session, now)
            self._end_session()
            logger.info(f"Arrived after {session.reroute_count} reroute(s).")
            self._emit(SessionEventKind.ARRIVED)
            return self._session

        off_route = is_off_route(position, route, session.off_route_threshold_m)

        # 2. Deviation opens a reroute episode
        if session.status == SessionStatus.NAVIGATING and off_route:
            self._session = sm.enter_rerouting(session)
            self._reset_reroute_state(keep_in_flight=True)
            logger.info(f"Off route at {position.latitude:.6f},{position.longitude:.6f}; reroute #{self._session.reroute_count}.")
            self._emit(SessionEventKind.OFF_ROUTE)

        # 3. Back on the old route before a new one landed
        elif session.status == SessionStatus.REROUTING and not off_route:
            self._session = sm.rejoin_route(session)
            self._reset_reroute_state(keep_in_flight=True)
            logger.info("Rider rejoined the active route.")
            self._emit(SessionEventKind.REJOINED)

        # 4. Fetch (or retry) when nothing is in flight
        if self._session.status == SessionStatus.REROUTING:
            self._maybe_submit(position, now)

        return self._session

    def process_pending(self, timeout: float = 0.0) -> NavigationSession:
        """Apply finished reroute results, waiting up to `timeout` seconds for the first one."""
        self._drain_results(timeout)
        return self._session

    def stop(self) -> NavigationSession:
        """
        User cancelled. Pending reroutes are abandoned; their responses are
        discarded when they arrive.
        """
        self._session = sm.cancel(self._session, self._clock())
        self._end_session()
        logger.info("Navigation cancelled by user.")
        self._emit(SessionEventKind.CANCELLED)
        return self._session

    def close(self) -> None:
        """Shut down the reroute worker."""
        self._worker.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _new_session(self) -> None:
        self._session = NavigationSession.idle(self.config.off_route_threshold_m)
        self._generation += 1
        self._reset_reroute_state()

    def _end_session(self) -> None:
        # Bumping the generation makes any in-flight response stale.
        self._generation += 1
        self._reset_reroute_state()

    def _reset_reroute_state(self, keep_in_flight: bool = False) -> None:
        if not keep_in_flight:
            self._in_flight = False
        self._failed_attempts = 0
        self._next_retry_at: Optional[float] = None
        self._gave_up = False

    def _maybe_submit(self, position: Coordinate, now: float) -> None:
        if self._in_flight or self._gave_up:
            return
        if self._next_retry_at is not None and now < self._next_retry_at:
            return
        session = self._session
        self._in_flight = True
        self._worker.submit(_RerouteJob(
            generation=self._generation,
            episode=session.reroute_count,
            origin=position,
            destination=session.destination,
            motor=session.motor,
        ))

    def _drain_results(self, timeout: float = 0.0) -> None:
        block = timeout > 0
        while True:
            try:
                if block:
                    result = self._worker.results.get(timeout=timeout)
                    block = False
                else:
                    result = self._worker.results.get_nowait()
            except queue.Empty:
                return
            self._apply_result(result)

    def _apply_result(self, result: _RerouteResult) -> None:
        if result.generation != self._generation:
            logger.warning(f"Discarding stale reroute response (generation {result.generation}, current {self._generation}).")
            return

        self._in_flight = False
        session = self._session
        if session.status != SessionStatus.REROUTING or result.episode != session.reroute_count:
            logger.info(f"Discarding reroute response for finished episode {result.episode}.")
            return

        if result.error is None:
            self._session = sm.apply_reroute(session, result.route_set)
            self._reset_reroute_state()
            logger.info(f"Rerouted onto {self._session.active_route.id}.")
            self._emit(SessionEventKind.REROUTED)
            return

        self._failed_attempts += 1
        if self._failed_attempts >= self.config.max_reroute_retries:
            self._gave_up = True
            logger.warning(f"Unable to reroute after {self._failed_attempts} attempts: {result.error}")
            self._emit(SessionEventKind.REROUTE_FAILED, "Unable to reroute")
            return

        delay = self.config.reroute_backoff_s * 2 ** (self._failed_attempts - 1)
        self._next_retry_at = self._clock() + delay
        logger.warning(f"Reroute attempt {self._failed_attempts} failed ({result.error}); retrying in {delay:.1f}s.")
        self._emit(SessionEventKind.REROUTE_RETRY, str(result.error))
