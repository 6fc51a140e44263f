# off_route.py
# Deviation and arrival tests against a route polyline.
# Vertex-proximity only: no projection onto segments, so sparse polylines
# need a looser threshold.

from typing import Sequence

from .geo_utils import planar_distance, planar_distances
from .models import Coordinate


def distance_to_route(position: Coordinate, route: Sequence[Coordinate]) -> float:
    """Metres from `position` to the nearest route vertex (inf for an empty route)."""
    if not route:
        return float("inf")
    return float(planar_distances(position, route).min())


def is_off_route(position: Coordinate, route: Sequence[Coordinate], threshold_m: float) -> bool:
    """
    True iff `position` is farther than `threshold_m` from every vertex.

    Args:
        position:    Current device position.
        route:       Active route polyline.
        threshold_m: Allowed deviation in metres.
    """
    if threshold_m < 0:
        raise ValueError(f"Threshold must be >= 0 m, got {threshold_m}.")
    return distance_to_route(position, route) > threshold_m


def has_arrived(position: Coordinate, route: Sequence[Coordinate], threshold_m: float) -> bool:
    """True when `position` is within `threshold_m` of the route's final vertex."""
    if not route:
        return False
    return planar_distance(position, route[-1]) < threshold_m
