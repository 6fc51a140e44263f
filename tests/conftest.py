import sys
import threading
from pathlib import Path
from typing import List

import numpy as np
import pytest
import requests

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from motornav.fuel_estimator import estimate_liters
from motornav.geo_utils import METERS_PER_DEGREE, path_length_m
from motornav.location_tracker import LocationSource, Subscription
from motornav.models import Coordinate, LocationFix, MotorProfile, Route, RouteSet
from motornav.route_provider import pad_alternatives

ORIGIN = Coordinate(14.7006, 120.9836)
# 2 km due north with the equirectangular metric
DESTINATION = Coordinate(14.7006 + 2000 / METERS_PER_DEGREE, 120.9836)


# ---------------------------------------------------------------------------
# Geometry helpers
# ---------------------------------------------------------------------------

def offset(coord: Coordinate, north_m: float = 0.0, east_m: float = 0.0) -> Coordinate:
    return Coordinate(coord.latitude + north_m / METERS_PER_DEGREE, coord.longitude + east_m / METERS_PER_DEGREE)


def line_between(start: Coordinate, end: Coordinate, step_m: float = 100.0) -> List[Coordinate]:
    length = max(path_length_m([start, end]), step_m)
    count = int(np.ceil(length / step_m)) + 1
    lats = np.linspace(start.latitude, end.latitude, count)
    lons = np.linspace(start.longitude, end.longitude, count)
    return [Coordinate(float(lat), float(lon)) for lat, lon in zip(lats, lons)]


def make_route(coords, route_id="route-0", motor=None, traffic_rate=1, duration_s=None) -> Route:
    motor = motor or make_motor()
    distance = path_length_m(coords)
    return Route(
        id=route_id,
        distance_meters=distance,
        duration_seconds=duration_s if duration_s is not None else distance / 10.0,
        fuel_estimate_liters=estimate_liters(distance / 1000.0, motor),
        traffic_rate=traffic_rate,
        coordinates=tuple(coords),
        instructions=("Head north",),
    )


def make_route_set(origin: Coordinate, destination: Coordinate, motor=None) -> RouteSet:
    best = make_route(line_between(origin, destination), motor=motor)
    candidates = pad_alternatives([best], 3, 0.1)
    return RouteSet(best_route=best, alternatives=tuple(candidates), origin=origin, destination=destination)


def make_motor(**overrides) -> MotorProfile:
    values = dict(id="motor-1", fuel_efficiency_km_per_liter=40.0, current_fuel_level=80.0)
    values.update(overrides)
    return MotorProfile(**values)


# ---------------------------------------------------------------------------
# Polyline encoding (tests only build provider payloads)
# ---------------------------------------------------------------------------

def _encode_value(value: int) -> str:
    value = ~(value << 1) if value < 0 else (value << 1)
    chunks = []
    while value >= 0x20:
        chunks.append(chr((0x20 | (value & 0x1F)) + 63))
        value >>= 5
    chunks.append(chr(value + 63))
    return "".join(chunks)


def encode_polyline(coords) -> str:
    out = []
    prev_lat = prev_lng = 0
    for c in coords:
        lat = int(round(c.latitude * 1e5))
        lng = int(round(c.longitude * 1e5))
        out.append(_encode_value(lat - prev_lat))
        out.append(_encode_value(lng - prev_lng))
        prev_lat, prev_lng = lat, lng
    return "".join(out)


def provider_route(coords, distance_m, duration_s, in_traffic_s=None, steps=("Head <b>north</b>",)) -> dict:
    leg = {
        "distance": {"value": distance_m},
        "duration": {"value": duration_s},
        "steps": [{"html_instructions": s} for s in steps],
    }
    if in_traffic_s is not None:
        leg["duration_in_traffic"] = {"value": in_traffic_s}
    return {"legs": [leg], "overview_polyline": {"points": encode_polyline(coords)}}


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    def raise_for_status(self):
        if not 200 <= self.status_code < 300:
            raise requests.exceptions.HTTPError(f"HTTP {self.status_code}")


class FakeHttp:
    """Stands in for requests.Session: records calls, replays canned responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def _next(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item

    def get(self, url, **kwargs):
        return self._next("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._next("POST", url, **kwargs)


class FakeProvider:
    """
    Directions provider double.

    Responses are consumed in order (RouteSet or Exception); once exhausted a
    straight-line route set is generated. `gate` blocks fetches until set.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.gate = threading.Event()
        self.gate.set()
        self.started = threading.Event()
        self._lock = threading.Lock()

    def fetch_routes(self, origin, destination, motor):
        with self._lock:
            self.calls.append((origin, destination))
        self.started.set()
        if not self.gate.wait(timeout=5):
            raise RuntimeError("FakeProvider gate never opened")
        if self.responses:
            item = self.responses.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return make_route_set(origin, destination, motor)


class ManualLocationSource(LocationSource):
    """Location service double whose fixes are pushed by the test through `callback`."""

    def __init__(self, first: LocationFix = LocationFix(ORIGIN.latitude, ORIGIN.longitude, speed=0.0), granted=True):
        self.first = first
        self.granted = granted
        self.callback = None
        self.options = None
        self.cancelled = threading.Event()

    def request_permission(self):
        return self.granted

    def current_fix(self):
        return self.first

    def watch(self, callback, options):
        self.callback = callback
        self.options = options
        return Subscription(self.cancelled.set)


class FakeClock:
    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def motor():
    return make_motor()
