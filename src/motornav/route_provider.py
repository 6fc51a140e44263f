# route_provider.py
# Directions API adapter.
# Talks to the provider over HTTP and returns normalized RouteSet values.
# Contains no navigation rules: thresholds and state live in the session engine.

import logging
from dataclasses import replace
from typing import List, Optional

import requests

from .errors import RouteFetchError, RouteFetchFailure
from .fuel_estimator import estimate_liters, validate_motor
from .geo_utils import decode_polyline, strip_html
from .models import Coordinate, MotorProfile, Route, RouteSet
from .nav_config import NavConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

# (upper bound of in-traffic / free-flow ratio, traffic rate)
_TRAFFIC_BUCKETS = ((1.10, 1), (1.25, 2), (1.50, 3), (2.00, 4))

_TRAFFIC_LABELS = {1: "Light", 2: "Light", 3: "Moderate", 4: "Heavy", 5: "Heavy"}


def traffic_rate_from(duration_s: float, duration_in_traffic_s: Optional[float], default: int = 1) -> int:
    """Bucket the provider's congestion signal into 1..5."""
    if not duration_in_traffic_s or not duration_s or duration_s <= 0:
        return default
    ratio = duration_in_traffic_s / duration_s
    for upper, rate in _TRAFFIC_BUCKETS:
        if ratio < upper:
            return rate
    return 5


def traffic_label(rate: int) -> str:
    return _TRAFFIC_LABELS.get(rate, "Unknown")


def format_latlng(coord: Coordinate) -> str:
    return f"{coord.latitude},{coord.longitude}"


def pad_alternatives(routes: List[Route], min_count: int, scale_step: float) -> List[Route]:
    """
    Pad the candidate list to `min_count` with tagged synthetic clones.

    Entry at index i clones the last real route, scaled by 1 + step * i.
    """
    padded = list(routes)
    last_real = routes[-1]
    while len(padded) < min_count:
        index = len(padded)
        factor = 1 + scale_step * index
        padded.append(replace(
            last_real,
            id=f"route-{index}",
            distance_meters=last_real.distance_meters * factor,
            duration_seconds=last_real.duration_seconds * factor,
            fuel_estimate_liters=last_real.fuel_estimate_liters * factor,
            synthetic=True,
        ))
    return padded


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

class RouteProvider:
    """
    Fetches and normalizes candidate routes from the directions API.

    Args:
        config:  NavConfig instance (endpoint, key, padding policy).
        session: Optional requests.Session (or compatible) for connection reuse.
    """

    def __init__(self, config: Optional[NavConfig] = None, session=None) -> None:
        self.config = config or NavConfig()
        self._http = session or requests.Session()

    def build_params(self, origin: Coordinate, destination: Coordinate) -> dict:
        return {
            "origin": format_latlng(origin),
            "destination": format_latlng(destination),
            "alternatives": "true",
            "departure_time": "now",
            "traffic_model": "best_guess",
            "key": self.config.api_key,
        }

    def fetch_routes(self, origin: Coordinate, destination: Coordinate, motor: MotorProfile) -> RouteSet:
        """
        Request all provider alternatives in a single call.

        Returns:
            RouteSet whose first route is the provider's best route.

        Raises:
            RouteFetchError: connectivity, provider or empty-result failure.
            InvalidMotorProfile: motor efficiency unusable for fuel estimates.
        """
        validate_motor(motor)
        data = self._request(origin, destination)

        status = data.get("status")
        if status == "ZERO_RESULTS":
            raise RouteFetchError(RouteFetchFailure.NO_ROUTES_FOUND, "Provider found no route.")
        if status != "OK":
            message = data.get("error_message") or f"Provider status {status}"
            logger.error(f"Directions request rejected: {message}")
            raise RouteFetchError(RouteFetchFailure.PROVIDER_ERROR, message)

        routes: List[Route] = []
        for raw in data.get("routes") or []:
            route = self._parse_route(raw, len(routes), motor)
            if route is not None:
                routes.append(route)

        if not routes:
            raise RouteFetchError(RouteFetchFailure.NO_ROUTES_FOUND, "No valid routes in provider response.")

        candidates = pad_alternatives(routes, self.config.min_alternatives, self.config.synthetic_scale_step)
        synthetic = len(candidates) - len(routes)
        if synthetic:
            logger.info(f"Provider returned {len(routes)} route(s); padded with {synthetic} synthetic.")

        return RouteSet(
            best_route=candidates[0],
            alternatives=tuple(candidates),
            origin=origin,
            destination=destination,
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _request(self, origin: Coordinate, destination: Coordinate) -> dict:
        logger.info(f"Fetching routes: {format_latlng(origin)} → {format_latlng(destination)}")
        try:
            response = self._http.get(
                self.config.directions_url,
                params=self.build_params(origin, destination),
                timeout=self.config.request_timeout_s,
            )
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise RouteFetchError(RouteFetchFailure.NO_CONNECTIVITY, f"Directions unreachable: {e}") from e
        except requests.exceptions.RequestException as e:
            raise RouteFetchError(RouteFetchFailure.PROVIDER_ERROR, f"Directions request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise RouteFetchError(
                RouteFetchFailure.PROVIDER_ERROR,
                f"Directions HTTP {response.status_code}",
            )
        try:
            return response.json()
        except ValueError as e:
            raise RouteFetchError(RouteFetchFailure.PROVIDER_ERROR, "Directions returned invalid JSON.") from e

    def _parse_route(self, raw: dict, index: int, motor: MotorProfile) -> Optional[Route]:
        """Provider route -> Route, or None if the entry is unusable."""
        try:
            legs = raw["legs"]
            if not legs:
                return None
            distance = sum(leg["distance"]["value"] for leg in legs)
            duration = sum(leg["duration"]["value"] for leg in legs)
            in_traffic = None
            if all("duration_in_traffic" in leg for leg in legs):
                in_traffic = sum(leg["duration_in_traffic"]["value"] for leg in legs)
            coordinates = decode_polyline(raw["overview_polyline"]["points"])
            instructions = [
                strip_html(step.get("html_instructions", ""))
                for leg in legs
                for step in leg.get("steps", [])
            ]
            return Route(
                id=f"route-{index}",
                distance_meters=float(distance),
                duration_seconds=float(duration),
                fuel_estimate_liters=estimate_liters(distance / 1000.0, motor),
                traffic_rate=traffic_rate_from(duration, in_traffic, self.config.default_traffic_rate),
                coordinates=tuple(coordinates),
                instructions=tuple(i for i in instructions if i),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed provider route #{index}: {e}")
            return None
