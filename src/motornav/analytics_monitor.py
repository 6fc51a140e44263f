# analytics_monitor.py
# Periodic, observer-only checks on a running trip: fuel, maintenance,
# oil change, idling, riding style and distance milestones.
# The predicates are pure functions; AnalyticsMonitor schedules them and
# remembers what it already announced. It never touches session state.

import logging
import math
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set, Tuple

from .geo_utils import path_length_km
from .models import MotorProfile, NavigationSession, Notification, NotificationKind, SessionStatus
from .nav_config import NavConfig

logger = logging.getLogger(__name__)

SECONDS_PER_MONTH = 30 * 24 * 3600

OIL_CHANGE_MONTHS: Dict[str, float] = {
    "mineral": 2,
    "semi-synthetic": 3,
    "synthetic": 4,
}
DEFAULT_OIL_CHANGE_MONTHS = 3

MAINTENANCE_KM_OLD_MOTOR = 2000.0      # age > 5 years
MAINTENANCE_KM = 3000.0
MAINTENANCE_MONTHS = 3
OLD_MOTOR_YEARS = 5

FREQUENT_STOPS_COUNT = 3
FREQUENT_STOPS_WINDOW_S = 5 * 60
AGGRESSIVE_SPEED_KMH = 60.0
AGGRESSIVE_SAMPLES = 5


# ---------------------------------------------------------------------------
# Pure predicates
# ---------------------------------------------------------------------------

def months_since(when: Optional[datetime], now: datetime) -> Optional[float]:
    if when is None:
        return None
    return (now - when).total_seconds() / SECONDS_PER_MONTH


def is_low_fuel(motor: MotorProfile, threshold_percent: float = 20.0) -> bool:
    return motor.current_fuel_level <= threshold_percent


def estimated_range_km(motor: MotorProfile) -> Optional[float]:
    """Distance left in the tank, when the tank capacity is known."""
    if not motor.tank_capacity_liters:
        return None
    litres = motor.current_fuel_level / 100.0 * motor.tank_capacity_liters
    return litres * motor.fuel_efficiency_km_per_liter


def maintenance_threshold_km(motor: MotorProfile) -> float:
    return MAINTENANCE_KM_OLD_MOTOR if motor.age_years > OLD_MOTOR_YEARS else MAINTENANCE_KM


def is_maintenance_due(motor: MotorProfile, trip_km: float, now: datetime) -> bool:
    """Distance-based (age dependent) or time-based (3 months) service due."""
    if motor.total_distance + trip_km >= maintenance_threshold_km(motor):
        return True
    months = months_since(motor.last_maintenance_date, now)
    return months is not None and months >= MAINTENANCE_MONTHS


def oil_change_interval_months(oil_type: str) -> float:
    return OIL_CHANGE_MONTHS.get((oil_type or "").lower(), DEFAULT_OIL_CHANGE_MONTHS)


def is_oil_change_due(motor: MotorProfile, now: datetime) -> bool:
    months = months_since(motor.last_oil_change_date, now)
    return months is not None and months >= oil_change_interval_months(motor.oil_type)


def is_idle(session: NavigationSession, now: float, threshold_s: float = 30.0) -> bool:
    """No position change for longer than `threshold_s`."""
    if session.last_moved_at is None:
        return False
    return now - session.last_moved_at > threshold_s


def milestone_for(trip_km: float, step_km: float) -> float:
    """Largest completed step, e.g. 0.37 km with 0.1 km steps -> 0.3."""
    # Round first so 0.3 km does not land on 0.29999.
    return round(math.floor(round(trip_km / step_km, 9)) * step_km, 6)


def recent_events(timestamps: List[float], now: float, window_s: float) -> List[float]:
    return [t for t in timestamps if now - t < window_s]


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

class AnalyticsMonitor:
    """
    Runs the predicates on a fixed interval while the session is navigating.

    Args:
        snapshot: Callable returning the current NavigationSession (read only).
        config:   NavConfig for interval and thresholds.
        clock:    Time source in unix seconds.
    """

    def __init__(
        self,
        snapshot: Callable[[], NavigationSession],
        config: Optional[NavConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or NavConfig()
        self._snapshot = snapshot
        self._clock = clock
        self._listeners: List[Callable[[Notification], None]] = []
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._reset_memory(None)

    def subscribe(self, listener: Callable[[Notification], None]) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="analytics-monitor")
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.config.analytics_interval_s):
            try:
                self.evaluate(self._snapshot(), self._clock())
            except Exception:
                logger.exception("Analytics check failed")

    # ------------------------------------------------------------------
    # One evaluation pass
    # ------------------------------------------------------------------

    def evaluate(self, session: NavigationSession, now: float) -> List[Notification]:
        """Run every check once and deliver new notifications to listeners."""
        if session.status != SessionStatus.NAVIGATING or session.motor is None:
            return []
        if session.session_id != self._session_id:
            self._reset_memory(session.session_id)

        cfg = self.config
        motor = session.motor
        now_dt = datetime.fromtimestamp(now, tz=timezone.utc)
        trip_km = path_length_km(session.path_history)
        found: List[Tuple[NotificationKind, str, str]] = []

        # Motor condition: announced once per session
        if is_low_fuel(motor, cfg.low_fuel_percent):
            found.append((NotificationKind.LOW_FUEL, "Fuel Alert",
                          f"Fuel level is low ({motor.current_fuel_level:.0f}%). Consider refueling soon."))
        range_km = estimated_range_km(motor)
        if range_km is not None and range_km < cfg.low_range_km:
            found.append((NotificationKind.LOW_RANGE, "Range Warning", f"Estimated range: {round(range_km)} km"))
        if is_maintenance_due(motor, trip_km, now_dt):
            found.append((NotificationKind.MAINTENANCE_DUE, "Maintenance Reminder",
                          "Your motor is due for a general check-up."))
        if is_oil_change_due(motor, now_dt):
            months = months_since(motor.last_oil_change_date, now_dt)
            found.append((NotificationKind.OIL_CHANGE_DUE, "Oil Change Due",
                          f"It's been {round(months)} months since your last oil change."))
        found = [f for f in found if f[0] not in self._announced]
        self._announced.update(f[0] for f in found)

        # Idling: one alert per stationary stretch
        if is_idle(session, now, cfg.idle_threshold_s) and self._idle_anchor != session.last_moved_at:
            self._idle_anchor = session.last_moved_at
            self._idle_events.append(now)
            found.append((NotificationKind.IDLE, "Idle Alert",
                          f"Your motorcycle has been idle for {int(now - session.last_moved_at)} seconds."))
            self._idle_events = recent_events(self._idle_events, now, FREQUENT_STOPS_WINDOW_S)
            if len(self._idle_events) >= FREQUENT_STOPS_COUNT:
                self._idle_events = []
                found.append((NotificationKind.FREQUENT_STOPS, "Frequent Stops",
                              "You've stopped frequently in a short time."))

        # Riding style
        if session.speed_kmh is not None and session.speed_kmh > AGGRESSIVE_SPEED_KMH:
            self._fast_samples += 1
            if self._fast_samples >= AGGRESSIVE_SAMPLES:
                self._fast_samples = 0
                found.append((NotificationKind.AGGRESSIVE_RIDING, "Aggressive Riding Detected",
                              "You've had frequent high-speed bursts recently."))

        # Distance milestones
        milestone = milestone_for(trip_km, cfg.milestone_step_km)
        if milestone > 0 and milestone not in self._milestones:
            self._milestones.add(milestone)
            found.append((NotificationKind.MILESTONE, "Achievement", f"You've traveled {milestone:.1f} km"))

        notifications = [Notification(kind, title, message, now) for kind, title, message in found]
        for notification in notifications:
            logger.info(f"[Analytics] {notification.title}: {notification.message}")
            for listener in list(self._listeners):
                try:
                    listener(notification)
                except Exception:
                    logger.exception("Analytics listener failed")
        return notifications

    def _reset_memory(self, session_id: Optional[str]) -> None:
        self._session_id = session_id
        self._announced: Set[NotificationKind] = set()
        self._milestones: Set[float] = set()
        self._idle_anchor: Optional[float] = None
        self._idle_events: List[float] = []
        self._fast_samples = 0
