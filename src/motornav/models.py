# models.py
# Shared data structures and enums used across all modules.

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# ---------------------------------------------------------------------------
# Coordinate
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Coordinate:
    """Immutable geographic coordinate. Equality ignores the address."""
    latitude: float
    longitude: float
    address: Optional[str] = field(default=None, compare=False)

    def with_address(self, address: str) -> "Coordinate":
        return replace(self, address=address)

    def to_dict(self) -> dict:
        d = {"latitude": self.latitude, "longitude": self.longitude}
        if self.address is not None:
            d["address"] = self.address
        return d

    @staticmethod
    def from_dict(d: dict) -> "Coordinate":
        return Coordinate(
            latitude=float(d["latitude"]),
            longitude=float(d["longitude"]),
            address=d.get("address"),
        )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Route:
    """
    One candidate path returned by the directions provider.

    Never mutated; re-fetching produces new Route instances. Synthetic
    routes are padding clones, not provider data.
    """
    id: str
    distance_meters: float
    duration_seconds: float
    fuel_estimate_liters: float
    traffic_rate: int                        # 1 (light) .. 5 (heavy)
    coordinates: Tuple[Coordinate, ...]
    instructions: Tuple[str, ...] = ()
    synthetic: bool = False

    def __post_init__(self) -> None:
        if len(self.coordinates) < 2:
            raise ValueError(f"Route {self.id} needs at least 2 coordinates.")
        if self.distance_meters < 0:
            raise ValueError(f"Route {self.id} has negative distance.")
        if not 1 <= self.traffic_rate <= 5:
            raise ValueError(f"Route {self.id} traffic rate {self.traffic_rate} outside 1..5.")

    @property
    def distance_km(self) -> float:
        return self.distance_meters / 1000.0

    @property
    def end(self) -> Coordinate:
        return self.coordinates[-1]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "distance_meters": self.distance_meters,
            "duration_seconds": self.duration_seconds,
            "fuel_estimate_liters": self.fuel_estimate_liters,
            "traffic_rate": self.traffic_rate,
            "synthetic": self.synthetic,
            "instructions": list(self.instructions),
            "coordinates": [c.to_dict() for c in self.coordinates],
        }


SORT_KEYS = {
    "distance": lambda r: r.distance_meters,
    "fuel":     lambda r: r.fuel_estimate_liters,
    "traffic":  lambda r: r.traffic_rate,
}


@dataclass(frozen=True)
class RouteSet:
    """
    Best route plus provider-ranked alternatives for one origin/destination.

    `alternatives` starts with the best route and is padded with synthetic
    clones up to the configured minimum.
    """
    best_route: Route
    alternatives: Tuple[Route, ...]
    origin: Coordinate
    destination: Coordinate

    def find(self, route_id: str) -> Optional[Route]:
        if self.best_route.id == route_id:
            return self.best_route
        for route in self.alternatives:
            if route.id == route_id:
                return route
        return None

    @property
    def synthetic_count(self) -> int:
        return sum(1 for r in self.alternatives if r.synthetic)

    def sorted_alternatives(self, criteria: str = "distance") -> List[Route]:
        """Alternatives ordered by distance, fuel or traffic. Ties keep provider order."""
        try:
            key = SORT_KEYS[criteria]
        except KeyError:
            raise ValueError(f"Unknown sort criteria '{criteria}'. Use one of {sorted(SORT_KEYS)}.")
        return sorted(self.alternatives, key=key)

    def to_dict(self) -> dict:
        return {
            "origin": self.origin.to_dict(),
            "destination": self.destination.to_dict(),
            "best_route": self.best_route.id,
            "alternatives": [r.to_dict() for r in self.alternatives],
        }


@dataclass(frozen=True)
class FuelRange:
    min: float
    max: float
    avg: float

    def to_dict(self) -> Dict[str, float]:
        return {"min": self.min, "max": self.max, "avg": self.avg}


# ---------------------------------------------------------------------------
# Motor profile (owned by the backend motor registry, read-only here)
# ---------------------------------------------------------------------------

def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 string / datetime -> timezone-aware datetime (UTC if naive)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True)
class MotorProfile:
    id: str
    fuel_efficiency_km_per_liter: float
    fuel_type: str = "Regular"               # Regular | Diesel | Premium
    oil_type: str = "Semi-Synthetic"         # Mineral | Semi-Synthetic | Synthetic
    current_fuel_level: float = 100.0        # percent of tank
    total_distance: float = 0.0              # km
    last_maintenance_date: Optional[datetime] = None
    last_oil_change_date: Optional[datetime] = None
    age_years: float = 0.0
    tank_capacity_liters: Optional[float] = None
    name: str = ""

    @staticmethod
    def from_api(d: dict) -> "MotorProfile":
        """Build a profile from a motor registry JSON entry."""
        tank = d.get("tankCapacity")
        return MotorProfile(
            id=str(d.get("_id") or d["id"]),
            fuel_efficiency_km_per_liter=float(d["fuelEfficiency"]),
            fuel_type=d.get("fuelType", "Regular"),
            oil_type=d.get("oilType", "Semi-Synthetic"),
            current_fuel_level=float(d.get("currentFuelLevel", 100.0)),
            total_distance=float(d.get("totalDistance", 0.0)),
            last_maintenance_date=parse_timestamp(d.get("lastMaintenanceDate")),
            last_oil_change_date=parse_timestamp(d.get("lastOilChange")),
            age_years=float(d.get("age", 0.0)),
            tank_capacity_liters=float(tank) if tank is not None else None,
            name=d.get("nickname") or d.get("name", ""),
        )


# ---------------------------------------------------------------------------
# Location samples
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LocationFix:
    """Single position sample delivered by the location service."""
    latitude: float
    longitude: float
    speed: Optional[float] = None            # m/s, None when the device has no estimate
    timestamp: Optional[float] = None        # unix seconds

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    @property
    def speed_kmh(self) -> Optional[float]:
        if self.speed is None or self.speed < 0:
            return None
        return self.speed * 3.6


# ---------------------------------------------------------------------------
# Navigation session
# ---------------------------------------------------------------------------

class SessionStatus(Enum):
    IDLE       = "idle"
    SELECTING  = "selecting"
    NAVIGATING = "navigating"
    REROUTING  = "rerouting"
    ARRIVED    = "arrived"
    CANCELLED  = "cancelled"

    @property
    def is_tracking(self) -> bool:
        return self in (SessionStatus.NAVIGATING, SessionStatus.REROUTING)

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.ARRIVED, SessionStatus.CANCELLED)


@dataclass(frozen=True)
class NavigationSession:
    """
    Snapshot of one navigation session.

    Replaced wholesale by the transition functions in state_machine.py;
    readers always hold a consistent, immutable view.
    """
    session_id: str
    status: SessionStatus = SessionStatus.IDLE
    origin: Optional[Coordinate] = None
    destination: Optional[Coordinate] = None
    motor: Optional[MotorProfile] = None
    route_set: Optional[RouteSet] = None
    active_route: Optional[Route] = None
    path_history: Tuple[Coordinate, ...] = ()
    start_timestamp: Optional[float] = None
    end_timestamp: Optional[float] = None
    reroute_count: int = 0
    off_route_threshold_m: float = 50.0
    last_position: Optional[Coordinate] = None
    last_moved_at: Optional[float] = None
    speed_kmh: Optional[float] = None

    @classmethod
    def idle(cls, off_route_threshold_m: float = 50.0) -> "NavigationSession":
        return cls(session_id=uuid.uuid4().hex, off_route_threshold_m=off_route_threshold_m)


# ---------------------------------------------------------------------------
# Trip summary
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TripSummary:
    """Reconciled planned-vs-actual record, created once at session end."""
    user_id: str
    motor_id: str
    destination_address: str
    start_address: str
    planned_distance_km: float
    actual_distance_km: float
    planned_fuel_range: FuelRange
    actual_fuel_range: FuelRange
    was_rerouted: bool
    duration_minutes: float
    arrived: bool
    path: Tuple[Coordinate, ...] = ()
    planned_path: Tuple[Coordinate, ...] = ()
    eta: str = ""
    time_arrived: str = ""

    def to_payload(self) -> dict:
        """Request body for POST /api/trips."""
        start = self.path[0] if self.path else None
        end = self.path[-1] if self.path else None
        return {
            "userId": self.user_id,
            "motorId": self.motor_id,
            "destination": self.destination_address,
            "startAddress": self.start_address,
            "distance": round(self.planned_distance_km, 2),
            "actualDistance": round(self.actual_distance_km, 3),
            "fuelUsedMin": self.planned_fuel_range.min,
            "fuelUsedMax": self.planned_fuel_range.max,
            "actualFuelUsedMin": self.actual_fuel_range.min,
            "actualFuelUsedMax": self.actual_fuel_range.max,
            "wasRerouted": self.was_rerouted,
            "durationInMinutes": self.duration_minutes,
            "isSuccessful": self.arrived,
            "status": "completed" if self.arrived else "cancelled",
            "eta": self.eta,
            "timeArrived": self.time_arrived,
            "startLocation": {"lat": start.latitude, "lng": start.longitude} if start else None,
            "endLocation": {"lat": end.latitude, "lng": end.longitude} if end else None,
            "path": [{"latitude": c.latitude, "longitude": c.longitude} for c in self.path],
            "plannedPath": [{"latitude": c.latitude, "longitude": c.longitude} for c in self.planned_path],
        }


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------

class MaintenanceType(Enum):
    REFUEL     = "refuel"
    OIL_CHANGE = "oil_change"
    TUNE_UP    = "tune_up"


@dataclass(frozen=True)
class MaintenanceAction:
    type: MaintenanceType
    timestamp: datetime
    location: Coordinate
    cost: float
    quantity: Optional[float] = None         # litres, refuels only
    notes: Optional[str] = None

    def to_payload(self, user_id: str, motor_id: str) -> dict:
        """Request body for POST /api/maintenance-records."""
        details: Dict[str, Any] = {"cost": self.cost}
        if self.quantity is not None:
            details["quantity"] = self.quantity
        if self.notes:
            details["notes"] = self.notes
        return {
            "userId": user_id,
            "motorId": motor_id,
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
            "location": {"latitude": self.location.latitude, "longitude": self.location.longitude},
            "details": details,
        }


# ---------------------------------------------------------------------------
# Analytics notifications
# ---------------------------------------------------------------------------

class NotificationKind(Enum):
    LOW_FUEL         = "low_fuel"
    LOW_RANGE        = "low_range"
    MAINTENANCE_DUE  = "maintenance_due"
    OIL_CHANGE_DUE   = "oil_change_due"
    IDLE             = "idle"
    FREQUENT_STOPS   = "frequent_stops"
    AGGRESSIVE_RIDING = "aggressive_riding"
    MILESTONE        = "milestone"


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    title: str
    message: str
    timestamp: float
