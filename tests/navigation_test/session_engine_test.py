import pytest

from conftest import DESTINATION, ORIGIN, FakeProvider, make_motor, offset
from motornav.errors import NoRouteSelectedError, RouteFetchError, RouteFetchFailure, SessionStateError
from motornav.models import SessionStatus
from motornav.nav_config import NavConfig
from motornav.session_engine import SessionEngine, SessionEventKind


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def engine(provider, clock):
    engine = SessionEngine(provider, NavConfig(), clock)
    yield engine
    provider.gate.set()
    engine.close()


@pytest.fixture
def events(engine):
    seen = []
    engine.subscribe(lambda e: seen.append(e.kind))
    return seen


def _start(engine, position=ORIGIN):
    route_set = engine.request_routes(ORIGIN, DESTINATION, make_motor())
    engine.select_route(route_set.best_route.id)
    return engine.start(position)


def _drift(metres_north=100.0, metres_east=80.0):
    return offset(ORIGIN, north_m=metres_north, east_m=metres_east)


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def test_request_routes_enters_selecting(engine, events):
    route_set = engine.request_routes(ORIGIN, DESTINATION, make_motor())
    assert engine.status == SessionStatus.SELECTING
    assert engine.session.route_set is route_set
    assert len(route_set.alternatives) == 3
    assert events == [SessionEventKind.ROUTES_READY]


def test_failed_fetch_leaves_session_idle(clock):
    provider = FakeProvider(RouteFetchError(RouteFetchFailure.NO_CONNECTIVITY, "offline"))
    engine = SessionEngine(provider, NavConfig(), clock)
    with pytest.raises(RouteFetchError):
        engine.request_routes(ORIGIN, DESTINATION, make_motor())
    assert engine.status == SessionStatus.IDLE
    assert engine.session.route_set is None


def test_start_requires_selected_route(engine):
    engine.request_routes(ORIGIN, DESTINATION, make_motor())
    with pytest.raises(NoRouteSelectedError):
        engine.start(ORIGIN)
    assert engine.status == SessionStatus.SELECTING


def test_start_from_idle_raises(engine):
    with pytest.raises(SessionStateError):
        engine.start(ORIGIN)


def test_custom_threshold_applies_to_session(engine):
    engine.request_routes(ORIGIN, DESTINATION, make_motor())
    engine.select_route("route-0")
    session = engine.start(ORIGIN, off_route_threshold_m=120.0)
    assert session.off_route_threshold_m == 120.0
    # 80 m drift is within the looser threshold
    assert engine.update(_drift()).status == SessionStatus.NAVIGATING


@pytest.mark.parametrize("threshold", [-5.0, float("nan")])
def test_bad_threshold_is_rejected_at_start(engine, provider, threshold):
    engine.request_routes(ORIGIN, DESTINATION, make_motor())
    engine.select_route("route-0")
    with pytest.raises(ValueError):
        engine.start(ORIGIN, off_route_threshold_m=threshold)
    assert engine.status == SessionStatus.SELECTING

    # the selection survives, so a valid start still works
    engine.start(ORIGIN, off_route_threshold_m=50.0)
    session = engine.update(offset(ORIGIN, north_m=100))
    assert session.status == SessionStatus.NAVIGATING
    assert len(provider.calls) == 1


def test_cannot_request_routes_while_tracking(engine):
    _start(engine)
    with pytest.raises(SessionStateError):
        engine.request_routes(ORIGIN, DESTINATION, make_motor())


def test_new_session_after_terminal(engine):
    first = _start(engine)
    engine.stop()
    engine.request_routes(ORIGIN, DESTINATION, make_motor())
    assert engine.status == SessionStatus.SELECTING
    assert engine.session.session_id != first.session_id
    assert engine.session.path_history == ()


# ---------------------------------------------------------------------------
# Tracking
# ---------------------------------------------------------------------------

def test_positions_are_recorded_without_duplicates(engine, clock):
    _start(engine)
    a = offset(ORIGIN, north_m=100)
    clock.advance(5)
    engine.update(a, speed_kmh=30.0)
    clock.advance(5)
    session = engine.update(a, speed_kmh=0.0)
    assert session.path_history == (ORIGIN, a)
    assert session.speed_kmh == 0.0


def test_reroute_fetches_once_while_in_flight(engine, provider, events):
    _start(engine)
    provider.gate.clear()
    provider.started.clear()

    first = engine.update(_drift(100))
    assert first.status == SessionStatus.REROUTING
    assert first.reroute_count == 1
    assert provider.started.wait(timeout=2)

    second = engine.update(_drift(110))
    assert second.status == SessionStatus.REROUTING
    assert engine.reroute_in_flight

    provider.gate.set()
    session = engine.process_pending(timeout=2)

    # 1 initial fetch + 1 reroute
    assert len(provider.calls) == 2
    assert session.status == SessionStatus.NAVIGATING
    assert session.reroute_count == 1
    assert session.active_route.coordinates[0] == _drift(100)
    assert session.active_route is session.route_set.best_route
    assert events.count(SessionEventKind.OFF_ROUTE) == 1
    assert events.count(SessionEventKind.REROUTED) == 1


def test_reroute_origin_is_current_position(engine, provider):
    _start(engine)
    engine.update(_drift())
    engine.process_pending(timeout=2)
    origin, destination = provider.calls[-1]
    assert origin == _drift()
    assert destination == DESTINATION


def test_rejoin_discards_late_reroute(engine, provider, events):
    session = _start(engine)
    original = session.active_route
    provider.gate.clear()
    provider.started.clear()

    engine.update(_drift())
    assert provider.started.wait(timeout=2)
    back = engine.update(offset(ORIGIN, north_m=200))
    assert back.status == SessionStatus.NAVIGATING
    assert SessionEventKind.REJOINED in events

    provider.gate.set()
    session = engine.process_pending(timeout=2)
    assert session.status == SessionStatus.NAVIGATING
    assert session.active_route is original
    assert SessionEventKind.REROUTED not in events
    assert not engine.reroute_in_flight


def test_response_after_stop_is_discarded(engine, provider, events):
    _start(engine)
    provider.gate.clear()
    provider.started.clear()
    engine.update(_drift())
    assert provider.started.wait(timeout=2)

    engine.stop()
    provider.gate.set()
    session = engine.process_pending(timeout=2)

    assert session.status == SessionStatus.CANCELLED
    assert SessionEventKind.REROUTED not in events
    assert events[-1] == SessionEventKind.CANCELLED


def test_failed_reroutes_back_off_then_give_up(clock):
    failure = RouteFetchError(RouteFetchFailure.NO_CONNECTIVITY, "offline")
    provider = FakeProvider()
    engine = SessionEngine(provider, NavConfig(max_reroute_retries=3, reroute_backoff_s=2.0), clock)
    seen = []
    engine.subscribe(lambda e: seen.append(e.kind))
    try:
        _start(engine)
        provider.responses = [failure, failure, failure]

        engine.update(_drift(100))
        engine.process_pending(timeout=2)
        assert len(provider.calls) == 2
        assert seen[-1] == SessionEventKind.REROUTE_RETRY

        # still inside the first 2 s backoff
        clock.advance(1)
        engine.update(_drift(105))
        assert len(provider.calls) == 2

        clock.advance(1)
        engine.update(_drift(110))
        engine.process_pending(timeout=2)
        assert len(provider.calls) == 3

        # second backoff is 4 s
        clock.advance(3)
        engine.update(_drift(115))
        assert len(provider.calls) == 3
        clock.advance(1)
        engine.update(_drift(120))
        engine.process_pending(timeout=2)
        assert len(provider.calls) == 4

        assert seen[-1] == SessionEventKind.REROUTE_FAILED
        assert engine.reroute_exhausted
        assert engine.status == SessionStatus.REROUTING

        # tracking continues without further fetches
        clock.advance(60)
        session = engine.update(_drift(130))
        assert len(provider.calls) == 4
        assert session.path_history[-1] == _drift(130)
    finally:
        provider.gate.set()
        engine.close()


def test_arrival_ends_session(engine, events):
    _start(engine)
    engine.update(offset(ORIGIN, north_m=1000))
    session = engine.update(offset(DESTINATION, north_m=-20))

    assert session.status == SessionStatus.ARRIVED
    assert session.end_timestamp is not None
    assert events[-1] == SessionEventKind.ARRIVED
    # terminal sessions ignore further fixes
    assert engine.update(DESTINATION) is session


def test_stop_during_selection_cancels(engine, events):
    engine.request_routes(ORIGIN, DESTINATION, make_motor())
    assert engine.stop().status == SessionStatus.CANCELLED
    assert events[-1] == SessionEventKind.CANCELLED


def test_stop_from_idle_raises(engine):
    with pytest.raises(SessionStateError):
        engine.stop()


def test_failing_listener_does_not_break_updates(engine):
    def boom(event):
        raise RuntimeError("listener bug")

    engine.subscribe(boom)
    _start(engine)
    assert engine.update(offset(ORIGIN, north_m=50)).status == SessionStatus.NAVIGATING


def test_unsubscribe(engine):
    seen = []
    unsubscribe = engine.subscribe(seen.append)
    engine.request_routes(ORIGIN, DESTINATION, make_motor())
    unsubscribe()
    engine.select_route("route-0")
    assert len(seen) == 1
