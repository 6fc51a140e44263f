# nav_config.py
# All tuneable constants in one place.
# Pass a NavConfig instance to every module that needs settings.

import os
from dataclasses import dataclass, fields
from typing import Any, Optional

from dotenv import load_dotenv


# ---------------------------------------------------------------------------
# Provider / backend endpoints
# ---------------------------------------------------------------------------

DIRECTIONS_URL: str = "https://maps.googleapis.com/maps/api/directions/json"
GEOCODE_URL: str = "https://maps.googleapis.com/maps/api/geocode/json"
BACKEND_URL: str = "http://localhost:5000"


# Environment variable -> NavConfig field
_ENV_FIELDS = {
    "DIRECTIONS_API_KEY": "api_key",
    "DIRECTIONS_URL": "directions_url",
    "GEOCODE_URL": "geocode_url",
    "BACKEND_URL": "backend_url",
    "NAV_LOG_DIR": "log_dir",
}


# ---------------------------------------------------------------------------
# Main config
# ---------------------------------------------------------------------------

@dataclass
class NavConfig:
    # Directions provider
    api_key: str = ""
    directions_url: str = DIRECTIONS_URL
    geocode_url: str = GEOCODE_URL
    request_timeout_s: float = 10.0

    # Route set policy
    min_alternatives: int = 3
    synthetic_scale_step: float = 0.1      # factor = 1 + step * index
    default_traffic_rate: int = 1

    # Progress tracking
    off_route_threshold_m: float = 50.0    # farther than this from every vertex → off-route
    arrival_threshold_m: float = 50.0      # closer than this to the last vertex → arrived

    # Rerouting
    max_reroute_retries: int = 3
    reroute_backoff_s: float = 2.0         # doubles after every failed attempt

    # Location subscription
    location_accuracy: str = "high"
    location_interval_ms: int = 5000
    location_distance_filter_m: float = 10.0

    # Analytics
    analytics_interval_s: float = 60.0
    idle_threshold_s: float = 30.0
    low_fuel_percent: float = 20.0
    low_range_km: float = 50.0
    milestone_step_km: float = 0.1

    # Backend
    backend_url: str = BACKEND_URL

    # Logging
    log_dir: str = "."                     # directory for saved JSON files
    route_filename: str = "active_route.json"
    event_filename: str = "nav_session.jsonl"
    pending_filename: str = "pending_trips.jsonl"

    @property
    def route_filepath(self) -> str:
        return os.path.join(self.log_dir, self.route_filename)

    @property
    def event_filepath(self) -> str:
        return os.path.join(self.log_dir, self.event_filename)

    @property
    def pending_filepath(self) -> str:
        return os.path.join(self.log_dir, self.pending_filename)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None, **overrides: Any) -> "NavConfig":
        """
        Build a config from a .env file / process environment.

        Explicit keyword overrides win over environment values.
        """
        load_dotenv(dotenv_path)
        values = {}
        for env_name, field_name in _ENV_FIELDS.items():
            value = os.getenv(env_name)
            if value:
                values[field_name] = value

        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown NavConfig fields: {sorted(unknown)}")
        values.update(overrides)
        return cls(**values)
