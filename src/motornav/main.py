# main.py
# Entry point. Simulates a GPS loop feeding positions into NavigationSystem.
# In production, replace SimulatedLocationSource with the device location service.
#
# Needs DIRECTIONS_API_KEY (and optionally BACKEND_URL) in the environment or a .env file.

import logging

from motornav.location_tracker import SimulatedLocationSource
from motornav.models import Coordinate, LocationFix, MotorProfile
from motornav.nav_config import NavConfig
from motornav.navigator import NavigationSystem
from motornav.session_engine import SessionEventKind

# ------------------------------------------------------------------
# Logging setup: configure once here, all modules inherit
# ------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

# ------------------------------------------------------------------
# Config: tweak thresholds or paths here, not inside the modules
# ------------------------------------------------------------------
config = NavConfig.from_env(
    off_route_threshold_m=50.0,
    arrival_threshold_m=50.0,
    log_dir="logs",
)

# ------------------------------------------------------------------
# Simulation trace (Valenzuela, heading north ~2 km)
# ------------------------------------------------------------------
test_locations = [
    LocationFix(14.7006, 120.9836, speed=0.0),
    LocationFix(14.7024, 120.9837, speed=8.3),
    LocationFix(14.7051, 120.9839, speed=9.7),
    LocationFix(14.7079, 120.9842, speed=11.1),
    LocationFix(14.7108, 120.9845, speed=10.5),
    LocationFix(14.7137, 120.9848, speed=9.2),
    LocationFix(14.7165, 120.9851, speed=6.0),
    LocationFix(14.7186, 120.9853, speed=2.1),
]

DESTINATION = Coordinate(14.7186, 120.9853)

MOTOR = MotorProfile(
    id="demo-motor",
    fuel_efficiency_km_per_liter=45.0,
    fuel_type="Regular",
    oil_type="Semi-Synthetic",
    current_fuel_level=65.0,
    tank_capacity_liters=4.2,
)


def print_event(event) -> None:
    if event.kind != SessionEventKind.POSITION:
        print(f"  [{event.kind.name}] {event.detail}")


def main() -> None:
    # 1. Boot system with a replayed GPS trace
    source = SimulatedLocationSource(test_locations, interval_s=0.05)
    nav = NavigationSystem("demo-user", source, config=config)
    nav.subscribe(print_event)
    nav.on_notification(lambda n: print(f"  ⚠  {n.title}: {n.message}"))

    # 2. Request routes and pick the provider's best one
    route_set = nav.plan_route(DESTINATION, MOTOR)
    for route in route_set.alternatives:
        tag = " (synthetic)" if route.synthetic else ""
        print(f"[Main] {route.id}: {route.distance_km:.2f} km, {route.fuel_estimate_liters:.3f} L{tag}")
    nav.select_route(route_set.best_route.id)

    # 3. GPS loop
    nav.start_navigation()
    print("\n--- GPS Loop Active ---")
    result = nav.run(timeout=30)
    if nav.is_active:
        result = nav.stop_navigation()

    print("\n--- Session complete ---")
    if result:
        s = result.summary
        print(f"    Planned {s.planned_distance_km:.2f} km / actual {s.actual_distance_km:.2f} km")
        print(f"    Fuel {s.actual_fuel_range.min:.3f}–{s.actual_fuel_range.max:.3f} L, {s.duration_minutes} min")
        print(f"    Saved to backend: {result.saved}")
    print(f"    Log files written to: {config.log_dir}/")
    nav.close()


if __name__ == "__main__":
    main()
