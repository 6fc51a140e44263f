# geocoder.py
# Reverse geocoding, coordinate to a readable address.
# Failures never propagate; the address simply becomes "Unknown".

import logging
from typing import Optional

import requests

from .models import Coordinate
from .nav_config import NavConfig

logger = logging.getLogger(__name__)

UNKNOWN_ADDRESS = "Unknown"


class ReverseGeocoder:
    def __init__(self, config: Optional[NavConfig] = None, session=None) -> None:
        self.config = config or NavConfig()
        self._http = session or requests.Session()

    def lookup(self, coord: Coordinate) -> str:
        """First formatted address for `coord`, or "Unknown"."""
        try:
            response = self._http.get(
                self.config.geocode_url,
                params={"latlng": f"{coord.latitude},{coord.longitude}", "key": self.config.api_key},
                timeout=self.config.request_timeout_s,
            )
            if not 200 <= response.status_code < 300:
                logger.warning(f"Reverse geocoding HTTP {response.status_code}")
                return UNKNOWN_ADDRESS
            results = response.json().get("results") or []
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"Reverse geocoding failed: {e}")
            return UNKNOWN_ADDRESS

        if not results:
            return UNKNOWN_ADDRESS
        return results[0].get("formatted_address") or UNKNOWN_ADDRESS

    def annotate(self, coord: Coordinate) -> Coordinate:
        """Attach an address unless the coordinate already carries one."""
        if coord.address:
            return coord
        return coord.with_address(self.lookup(coord))
