# location_tracker.py
# Wraps the device location service as a cancellable stream of fixes.
#
# Usage:
#   tracker = LocationTracker(source, config)
#   first = tracker.start()
#   for fix in tracker.fixes():
#       ...
#   tracker.stop()

import logging
import queue
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional

from .errors import LocationError, LocationFailure
from .models import Coordinate, LocationFix
from .nav_config import NavConfig

logger = logging.getLogger(__name__)

_STOP = object()


# ---------------------------------------------------------------------------
# Location service boundary
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WatchOptions:
    accuracy: str = "high"
    interval_ms: int = 5000
    distance_filter_m: float = 10.0


class Subscription:
    """Handle returned by LocationSource.watch(); remove() is idempotent."""

    def __init__(self, cancel: Callable[[], None]) -> None:
        self._cancel = cancel
        self._removed = False

    @property
    def removed(self) -> bool:
        return self._removed

    def remove(self) -> None:
        if not self._removed:
            self._removed = True
            self._cancel()


class LocationSource(ABC):
    """
    Platform location service.

    watch() delivers LocationFix objects to `callback` from any thread.
    A source may deliver None once to signal that the stream has ended.
    """

    @abstractmethod
    def request_permission(self) -> bool:
        ...

    @abstractmethod
    def current_fix(self) -> LocationFix:
        ...

    @abstractmethod
    def watch(self, callback: Callable[[Optional[LocationFix]], None], options: WatchOptions) -> Subscription:
        ...


class SimulatedLocationSource(LocationSource):
    """Replays a fixed GPS trace on a background thread."""

    def __init__(self, fixes: List[LocationFix], interval_s: float = 0.0, granted: bool = True) -> None:
        self._fixes = list(fixes)
        self.interval_s = interval_s
        self.granted = granted

    def request_permission(self) -> bool:
        return self.granted

    def current_fix(self) -> LocationFix:
        if not self._fixes:
            raise LocationError(LocationFailure.UNAVAILABLE, "Simulated trace is empty.")
        return self._fixes[0]

    def watch(self, callback, options: WatchOptions) -> Subscription:
        stopped = threading.Event()

        def replay() -> None:
            for fix in self._fixes:
                if stopped.is_set():
                    return
                callback(fix)
                if stopped.wait(self.interval_s):
                    return
            callback(None)

        threading.Thread(target=replay, daemon=True, name="simulated-gps").start()
        return Subscription(stopped.set)


# ---------------------------------------------------------------------------
# Tracker
# ---------------------------------------------------------------------------

class LocationTracker:
    """
    Subscribes to position updates and exposes them as an iterator.

    Args:
        source: LocationSource implementation.
        config: NavConfig for accuracy / interval / distance filter.
    """

    def __init__(self, source: LocationSource, config: Optional[NavConfig] = None) -> None:
        self.config = config or NavConfig()
        self._source = source
        self._queue: "queue.Queue" = queue.Queue()
        self._subscription: Optional[Subscription] = None
        self._latest: Optional[LocationFix] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> LocationFix:
        """
        Request permission, read the current position and begin watching.

        Raises:
            LocationError: permission denied or no position available.
        """
        if self.is_running:
            return self._latest

        if not self._source.request_permission():
            logger.warning("Location permission denied.")
            raise LocationError(LocationFailure.PERMISSION_DENIED, "Location permission denied.")

        first = self._source.current_fix()
        if first is None:
            raise LocationError(LocationFailure.UNAVAILABLE, "No current position available.")
        self._latest = first

        options = WatchOptions(
            accuracy=self.config.location_accuracy,
            interval_ms=self.config.location_interval_ms,
            distance_filter_m=self.config.location_distance_filter_m,
        )
        self._queue = queue.Queue()
        self._subscription = self._source.watch(self._on_fix, options)
        logger.info(f"Location tracking started at {first.latitude:.6f},{first.longitude:.6f}")
        return first

    def stop(self) -> None:
        """Cancel the subscription and release any blocked iterator."""
        if self._subscription is None:
            return
        self._subscription.remove()
        self._subscription = None
        self._queue.put(_STOP)
        logger.info("Location tracking stopped.")

    # ------------------------------------------------------------------
    # Stream
    # ------------------------------------------------------------------

    def fixes(self, timeout: Optional[float] = None) -> Iterator[LocationFix]:
        """
        Yield fixes in arrival order until stop() or the source ends.

        Raises:
            LocationError: no fix arrived within `timeout` seconds.
        """
        while True:
            try:
                item = self._queue.get(timeout=timeout)
            except queue.Empty:
                raise LocationError(LocationFailure.UNAVAILABLE, f"No position fix within {timeout}s.")
            if item is _STOP:
                return
            yield item

    def _on_fix(self, fix: Optional[LocationFix]) -> None:
        if fix is None:
            self._queue.put(_STOP)
            return
        self._latest = fix
        self._queue.put(fix)

    # ------------------------------------------------------------------
    # Read-only properties
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._subscription is not None

    @property
    def latest(self) -> Optional[LocationFix]:
        return self._latest

    @property
    def position(self) -> Optional[Coordinate]:
        return self._latest.coordinate if self._latest else None

    @property
    def speed_kmh(self) -> Optional[float]:
        return self._latest.speed_kmh if self._latest else None
