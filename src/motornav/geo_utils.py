# geo_utils.py
# Pure mathematical / geographic helper functions.
# No side effects, no imports from other project modules except models.

import re
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .models import Coordinate


METERS_PER_DEGREE = 111_139.0

_HTML_TAG = re.compile(r"<[^>]*>")


def planar_distance(a: Coordinate, b: Coordinate) -> float:
    """
    Equirectangular distance between two points in metres.

    Treats one degree of latitude and longitude alike (111 139 m). Good
    enough for the short hops between GPS fixes; not for long legs.
    """
    d_lat = a.latitude - b.latitude
    d_lon = a.longitude - b.longitude
    return float(np.hypot(d_lat, d_lon) * METERS_PER_DEGREE)


def _as_array(coords: Sequence[Coordinate]) -> np.ndarray:
    return np.array([(c.latitude, c.longitude) for c in coords], dtype=float).reshape(-1, 2)


def planar_distances(position: Coordinate, coords: Sequence[Coordinate]) -> np.ndarray:
    """Distance in metres from `position` to every coordinate in `coords`."""
    delta = _as_array(coords) - (position.latitude, position.longitude)
    return np.hypot(delta[:, 0], delta[:, 1]) * METERS_PER_DEGREE


def path_length_m(coords: Sequence[Coordinate]) -> float:
    """Sum of consecutive planar distances. Paths shorter than 2 points have length 0."""
    if len(coords) < 2:
        return 0.0
    steps = np.diff(_as_array(coords), axis=0)
    return float(np.hypot(steps[:, 0], steps[:, 1]).sum() * METERS_PER_DEGREE)


def path_length_km(coords: Sequence[Coordinate]) -> float:
    return path_length_m(coords) / 1000.0


def eta_seconds(distance_m: float, speed_kmh: float) -> Optional[float]:
    """Time to cover `distance_m` at a constant speed, None when standing still."""
    if speed_kmh is None or speed_kmh <= 0:
        return None
    return distance_m / (speed_kmh / 3.6)


def format_eta(duration_seconds: float, now: Optional[datetime] = None) -> str:
    """Clock time after `duration_seconds`, e.g. '03:45 PM'."""
    now = now or datetime.now()
    return (now + timedelta(seconds=duration_seconds)).strftime("%I:%M %p")


def strip_html(text: str) -> str:
    """Drop markup from provider step instructions."""
    return _HTML_TAG.sub("", text or "").strip()


# ---------------------------------------------------------------------------
# Encoded polyline (precision 5, Google format)
# ---------------------------------------------------------------------------

def decode_polyline(encoded: str, precision: int = 5) -> List[Coordinate]:
    """
    Decode an encoded polyline string into coordinates.

    Raises:
        ValueError: on a truncated string.
    """
    coordinates: List[Coordinate] = []
    index = 0
    lat = 0
    lng = 0
    factor = 10 ** -precision

    while index < len(encoded):
        lat_change, index = _decode_value(encoded, index)
        lng_change, index = _decode_value(encoded, index)
        lat += lat_change
        lng += lng_change
        coordinates.append(Coordinate(round(lat * factor, precision), round(lng * factor, precision)))

    return coordinates


def _decode_value(encoded: str, index: int) -> Tuple[int, int]:
    result = 0
    shift = 0

    while True:
        if index >= len(encoded):
            raise ValueError("Invalid polyline: buffer exhausted.")
        b = ord(encoded[index]) - 63
        index += 1
        result |= (b & 0x1F) << shift
        shift += 5
        if b < 0x20:
            break

    delta = ~(result >> 1) if (result & 1) else (result >> 1)
    return delta, index
