# fuel_estimator.py
# Distance + per-motor efficiency -> fuel consumption range.

import math

from .errors import InvalidMotorProfile
from .models import FuelRange, MotorProfile

LOW_FACTOR = 0.9
HIGH_FACTOR = 1.1


def _usable_efficiency(efficiency_km_per_liter) -> bool:
    # NaN and inf are unusable too
    if efficiency_km_per_liter is None or not math.isfinite(efficiency_km_per_liter):
        return False
    return efficiency_km_per_liter > 0


def estimate_range(distance_km: float, efficiency_km_per_liter: float) -> FuelRange:
    """
    Litres needed to cover `distance_km`, as a +/-10% band around the average.

    Raises:
        InvalidMotorProfile: efficiency is not a finite positive number.
        ValueError: distance is negative.
    """
    if not _usable_efficiency(efficiency_km_per_liter):
        raise InvalidMotorProfile(f"Fuel efficiency must be > 0 km/L, got {efficiency_km_per_liter}.")
    if distance_km < 0:
        raise ValueError(f"Distance must be >= 0 km, got {distance_km}.")

    avg = distance_km / efficiency_km_per_liter
    return FuelRange(min=avg * LOW_FACTOR, max=avg * HIGH_FACTOR, avg=avg)


def estimate_liters(distance_km: float, motor: MotorProfile) -> float:
    """Average litres for `distance_km` on this motor."""
    return estimate_range(distance_km, motor.fuel_efficiency_km_per_liter).avg


def validate_motor(motor: MotorProfile) -> MotorProfile:
    if motor is None:
        raise InvalidMotorProfile("A motor profile is required.")
    if not _usable_efficiency(motor.fuel_efficiency_km_per_liter):
        raise InvalidMotorProfile(
            f"Motor {motor.id} has invalid fuel efficiency {motor.fuel_efficiency_km_per_liter}."
        )
    return motor
