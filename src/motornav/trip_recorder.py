# trip_recorder.py
# Reconciles planned vs. actual trip metrics into a TripSummary.

import logging
import time
from datetime import datetime
from typing import Optional, Tuple

from .errors import SessionStateError
from .fuel_estimator import estimate_range
from .geo_utils import format_eta, path_length_km
from .models import Coordinate, NavigationSession, TripSummary

logger = logging.getLogger(__name__)

MIN_TRIP_MINUTES = 1.0
DEGENERATE_SIDE_DEG = 1e-5     # ~1.1 m


def closed_quadrilateral(point: Coordinate) -> Tuple[Coordinate, ...]:
    """Tiny closed square starting and ending at `point`."""
    d = DEGENERATE_SIDE_DEG
    lat, lon = point.latitude, point.longitude
    return (
        point,
        Coordinate(lat + d, lon),
        Coordinate(lat + d, lon + d),
        Coordinate(lat, lon + d),
        point,
    )


class TripRecorder:
    """
    Builds the trip record at session end.

    Args:
        user_id: Owner of the trip on the backend.
        clock:   Time source in unix seconds.
    """

    def __init__(self, user_id: str, clock=time.time) -> None:
        self.user_id = user_id
        self._clock = clock

    def finalize(self, session: NavigationSession, arrived: bool, now: Optional[float] = None) -> TripSummary:
        """
        Reconcile the session into a TripSummary.

        A path with fewer than two points (trip ended where it started) is
        replaced by a closed quadrilateral around the single point so the
        distance stays finite and non-zero.

        Raises:
            SessionStateError: the session never started navigating.
        """
        if session.active_route is None or session.start_timestamp is None or session.motor is None:
            raise SessionStateError("Cannot finalize a session that never started navigating.")

        now = now if now is not None else (session.end_timestamp or self._clock())
        path = session.path_history
        if len(path) < 2:
            anchor = path[0] if path else (session.last_position or session.origin)
            logger.info("Degenerate trip path; using closed quadrilateral around the start point.")
            path = closed_quadrilateral(anchor)

        efficiency = session.motor.fuel_efficiency_km_per_liter
        route = session.active_route
        planned_km = route.distance_km
        actual_km = path_length_km(path)
        duration_min = max(MIN_TRIP_MINUTES, round((now - session.start_timestamp) / 60.0, 2))

        start = session.path_history[0] if session.path_history else session.origin
        summary = TripSummary(
            user_id=self.user_id,
            motor_id=session.motor.id,
            destination_address=(session.destination.address if session.destination else None) or "Unknown",
            start_address=(start.address if start else None) or "Unknown",
            planned_distance_km=planned_km,
            actual_distance_km=actual_km,
            planned_fuel_range=estimate_range(planned_km, efficiency),
            actual_fuel_range=estimate_range(actual_km, efficiency),
            was_rerouted=session.reroute_count > 0,
            duration_minutes=duration_min,
            arrived=arrived,
            path=tuple(path),
            planned_path=route.coordinates,
            eta=format_eta(route.duration_seconds, datetime.fromtimestamp(session.start_timestamp)),
            time_arrived=datetime.fromtimestamp(now).strftime("%I:%M %p"),
        )
        logger.info(
            f"Trip finalized: planned {planned_km:.2f} km, actual {actual_km:.3f} km, "
            f"{duration_min} min, arrived={arrived}."
        )
        return summary
