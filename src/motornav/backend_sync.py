# backend_sync.py
# The engine's only egress to the backend: trip summaries and maintenance
# records out, motor profiles in.

import logging
from typing import List, Optional

import requests

from .errors import InvalidMotorProfile, PersistenceError, PersistenceFailure
from .models import MaintenanceAction, MotorProfile, TripSummary
from .nav_config import NavConfig

logger = logging.getLogger(__name__)


class BackendSync:
    """
    Thin HTTP client for the trip, maintenance and motor registry endpoints.

    Args:
        config:  NavConfig (backend_url, request_timeout_s).
        session: Optional requests.Session (or compatible).
    """

    def __init__(self, config: Optional[NavConfig] = None, session=None) -> None:
        self.config = config or NavConfig()
        self._http = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.config.backend_url.rstrip('/')}{path}"

    def _post(self, path: str, payload: dict, failure: PersistenceFailure) -> dict:
        try:
            response = self._http.post(self._url(path), json=payload, timeout=self.config.request_timeout_s)
        except requests.exceptions.RequestException as e:
            logger.warning(f"POST {path} failed: {e}")
            raise PersistenceError(failure, f"Backend unreachable: {e}") from e

        if not 200 <= response.status_code < 300:
            logger.warning(f"POST {path} returned HTTP {response.status_code}")
            raise PersistenceError(failure, f"Backend returned HTTP {response.status_code}", response.status_code)
        try:
            return response.json()
        except ValueError:
            return {}

    # ------------------------------------------------------------------
    # Egress
    # ------------------------------------------------------------------

    def save_trip(self, summary: TripSummary) -> dict:
        """POST /api/trips. Raises PersistenceError(TRIP_SAVE_FAILED) on non-2xx."""
        return self.save_trip_payload(summary.to_payload())

    def save_trip_payload(self, payload: dict) -> dict:
        result = self._post("/api/trips", payload, PersistenceFailure.TRIP_SAVE_FAILED)
        logger.info(f"Trip saved for motor {payload.get('motorId')}.")
        return result

    def save_maintenance(self, user_id: str, motor_id: str, action: MaintenanceAction) -> dict:
        """POST /api/maintenance-records. Raises PersistenceError(MAINTENANCE_SAVE_FAILED)."""
        result = self._post(
            "/api/maintenance-records",
            action.to_payload(user_id, motor_id),
            PersistenceFailure.MAINTENANCE_SAVE_FAILED,
        )
        logger.info(f"Maintenance '{action.type.value}' saved for motor {motor_id}.")
        return result

    # ------------------------------------------------------------------
    # Motor registry
    # ------------------------------------------------------------------

    def fetch_motors(self, user_id: str) -> List[MotorProfile]:
        """
        GET /api/user-motors/user/:id.

        Raises:
            requests.exceptions.RequestException: transport or HTTP failure.
            InvalidMotorProfile: an entry lacks required fields.
        """
        response = self._http.get(
            self._url(f"/api/user-motors/user/{user_id}"),
            timeout=self.config.request_timeout_s,
        )
        response.raise_for_status()
        motors = []
        for entry in response.json() or []:
            try:
                motors.append(MotorProfile.from_api(entry))
            except (KeyError, TypeError, ValueError) as e:
                raise InvalidMotorProfile(f"Malformed motor registry entry: {e}") from e
        logger.info(f"Loaded {len(motors)} motor(s) for user {user_id}.")
        return motors
