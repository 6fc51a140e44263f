from datetime import datetime, timezone

import pytest
import requests

from conftest import ORIGIN, FakeHttp, FakeResponse
from motornav.backend_sync import BackendSync
from motornav.errors import InvalidMotorProfile, PersistenceError, PersistenceFailure
from motornav.models import FuelRange, MaintenanceAction, MaintenanceType, TripSummary
from motornav.nav_config import NavConfig

CONFIG = NavConfig(backend_url="http://backend.test/")


def _summary():
    return TripSummary(
        user_id="user-1",
        motor_id="motor-1",
        destination_address="Malabon",
        start_address="Valenzuela",
        planned_distance_km=2.0,
        actual_distance_km=2.1,
        planned_fuel_range=FuelRange(0.045, 0.055, 0.05),
        actual_fuel_range=FuelRange(0.04725, 0.05775, 0.0525),
        was_rerouted=False,
        duration_minutes=6.5,
        arrived=True,
        path=(ORIGIN,),
    )


def test_save_trip_posts_payload():
    http = FakeHttp(FakeResponse(201, {"_id": "trip-9"}))
    result = BackendSync(CONFIG, session=http).save_trip(_summary())

    assert result == {"_id": "trip-9"}
    method, url, kwargs = http.calls[0]
    assert method == "POST"
    assert url == "http://backend.test/api/trips"
    assert kwargs["json"]["motorId"] == "motor-1"
    assert kwargs["json"]["status"] == "completed"
    assert kwargs["json"]["actualDistance"] == 2.1


def test_save_trip_rejected_raises_trip_save_failed():
    http = FakeHttp(FakeResponse(500, {"message": "db down"}))
    with pytest.raises(PersistenceError) as err:
        BackendSync(CONFIG, session=http).save_trip(_summary())
    assert err.value.kind == PersistenceFailure.TRIP_SAVE_FAILED
    assert err.value.status_code == 500


def test_unreachable_backend_raises_persistence_error():
    http = FakeHttp(requests.exceptions.ConnectionError("refused"))
    with pytest.raises(PersistenceError) as err:
        BackendSync(CONFIG, session=http).save_trip(_summary())
    assert err.value.kind == PersistenceFailure.TRIP_SAVE_FAILED
    assert err.value.status_code is None


def test_empty_success_body_is_accepted():
    http = FakeHttp(FakeResponse(204, ValueError("no body")))
    assert BackendSync(CONFIG, session=http).save_trip(_summary()) == {}


def test_save_maintenance_payload():
    http = FakeHttp(FakeResponse(201, {}))
    action = MaintenanceAction(
        type=MaintenanceType.REFUEL,
        timestamp=datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc),
        location=ORIGIN,
        cost=250.0,
        quantity=3.5,
    )
    BackendSync(CONFIG, session=http).save_maintenance("user-1", "motor-1", action)

    _, url, kwargs = http.calls[0]
    assert url == "http://backend.test/api/maintenance-records"
    assert kwargs["json"] == {
        "userId": "user-1",
        "motorId": "motor-1",
        "type": "refuel",
        "timestamp": "2024-05-01T08:00:00+00:00",
        "location": {"latitude": ORIGIN.latitude, "longitude": ORIGIN.longitude},
        "details": {"cost": 250.0, "quantity": 3.5},
    }


def test_save_maintenance_rejected():
    http = FakeHttp(FakeResponse(400, {}))
    action = MaintenanceAction(MaintenanceType.OIL_CHANGE, datetime.now(timezone.utc), ORIGIN, cost=400.0)
    with pytest.raises(PersistenceError) as err:
        BackendSync(CONFIG, session=http).save_maintenance("user-1", "motor-1", action)
    assert err.value.kind == PersistenceFailure.MAINTENANCE_SAVE_FAILED


def test_fetch_motors_parses_registry_entries():
    http = FakeHttp(FakeResponse(200, [
        {
            "_id": "m-1",
            "nickname": "Daily",
            "fuelEfficiency": 45,
            "oilType": "Synthetic",
            "currentFuelLevel": 60,
            "totalDistance": 1234.5,
            "lastOilChange": "2024-02-01T00:00:00Z",
            "age": 3,
        },
        {"id": "m-2", "fuelEfficiency": "38.5"},
    ]))
    motors = BackendSync(CONFIG, session=http).fetch_motors("user-1")

    assert http.calls[0][1] == "http://backend.test/api/user-motors/user/user-1"
    assert [m.id for m in motors] == ["m-1", "m-2"]
    first, second = motors
    assert first.name == "Daily"
    assert first.fuel_efficiency_km_per_liter == 45.0
    assert first.last_oil_change_date == datetime(2024, 2, 1, tzinfo=timezone.utc)
    assert second.fuel_efficiency_km_per_liter == 38.5
    assert second.oil_type == "Semi-Synthetic"
    assert second.last_oil_change_date is None


def test_fetch_motors_rejects_malformed_entries():
    http = FakeHttp(FakeResponse(200, [{"_id": "m-1"}]))
    with pytest.raises(InvalidMotorProfile):
        BackendSync(CONFIG, session=http).fetch_motors("user-1")


def test_fetch_motors_http_error_propagates():
    http = FakeHttp(FakeResponse(404, {}))
    with pytest.raises(requests.exceptions.HTTPError):
        BackendSync(CONFIG, session=http).fetch_motors("user-1")
