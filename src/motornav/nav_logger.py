# nav_logger.py
# Handles all file I/O for the navigation engine.
# Saves route sets, navigation events and unsent trips as JSON.

import json
import logging
import os
from datetime import datetime
from typing import List, Optional

from .models import NavigationSession, RouteSet
from .nav_config import NavConfig

# Standard Python logger, configured at the app entry point
logger = logging.getLogger(__name__)


class NavLogger:
    """
    Persists route data, navigation events and pending trip saves.

    Args:
        config: NavConfig instance for file paths and directories.
    """

    def __init__(self, config: Optional[NavConfig] = None) -> None:
        self.config = config or NavConfig()
        os.makedirs(self.config.log_dir, exist_ok=True)

    # ------------------------------------------------------------------
    # Route persistence
    # ------------------------------------------------------------------

    def save_route_set(self, route_set: RouteSet, selected_id: Optional[str] = None) -> bool:
        """
        Serialize a route set to JSON.

        Returns:
            True on success, False on failure.
        """
        filepath = self.config.route_filepath
        try:
            data = {
                "saved_at": datetime.now().isoformat(),
                "selected": selected_id,
                "route_count": len(route_set.alternatives),
                "synthetic_count": route_set.synthetic_count,
                "route_set": route_set.to_dict(),
            }
            with open(filepath, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            logger.info(f"Route set saved to {filepath} ({len(route_set.alternatives)} routes).")
            return True
        except (IOError, TypeError, ValueError) as e:
            logger.error(f"Failed to save route set to {filepath}: {e}")
            return False

    # ------------------------------------------------------------------
    # Session event logging
    # ------------------------------------------------------------------

    def log_event(self, session: NavigationSession, event: str = "position") -> None:
        """
        Append a single navigation event to the session log file.

        Args:
            session: Snapshot after the event.
            event:   Event name, e.g. "position" or "rerouted".
        """
        position = session.last_position
        entry = {
            "timestamp": datetime.now().isoformat(),
            "session_id": session.session_id,
            "event": event,
            "status": session.status.value,
            "lat": position.latitude if position else None,
            "lon": position.longitude if position else None,
            "route_id": session.active_route.id if session.active_route else None,
            "reroute_count": session.reroute_count,
            "path_points": len(session.path_history),
        }
        try:
            with open(self.config.event_filepath, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except IOError as e:
            logger.error(f"Failed to write event log: {e}")

    # ------------------------------------------------------------------
    # Trips the backend did not accept yet
    # ------------------------------------------------------------------

    def queue_pending_trip(self, payload: dict) -> bool:
        try:
            with open(self.config.pending_filepath, "a", encoding="utf-8") as f:
                f.write(json.dumps(payload, ensure_ascii=False) + "\n")
            logger.info(f"Trip queued for retry in {self.config.pending_filepath}.")
            return True
        except (IOError, TypeError, ValueError) as e:
            logger.error(f"Failed to queue pending trip: {e}")
            return False

    def load_pending_trips(self) -> List[dict]:
        path = self.config.pending_filepath
        if not os.path.exists(path):
            return []
        payloads = []
        try:
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if line:
                        payloads.append(json.loads(line))
        except (IOError, ValueError) as e:
            logger.error(f"Failed to read pending trips from {path}: {e}")
        return payloads

    def replace_pending_trips(self, payloads: List[dict]) -> bool:
        """Rewrite the pending file with only `payloads` (delete it when empty)."""
        path = self.config.pending_filepath
        try:
            if not payloads:
                if os.path.exists(path):
                    os.remove(path)
                return True
            with open(path, "w", encoding="utf-8") as f:
                for payload in payloads:
                    f.write(json.dumps(payload, ensure_ascii=False) + "\n")
            return True
        except (IOError, TypeError, ValueError) as e:
            logger.error(f"Failed to rewrite pending trips in {path}: {e}")
            return False
