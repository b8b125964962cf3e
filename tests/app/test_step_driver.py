import pytest

from amod_dispatch.app.controllers.dispatch import SimulationStepDriver
from amod_dispatch.domain.entities.booking import Booking
from amod_dispatch.domain.entities.geography import Point
from amod_dispatch.domain.entities.station import Station
from amod_dispatch.domain.entities.vehicle import Vehicle, VehicleStatus
from amod_dispatch.domain.errors import (
    BookingIngestionFailure,
    DiscardReason,
    InvalidWorldState,
    NoSuitablePath,
)
from amod_dispatch.domain.mechanics.mechanics_core import Mechanics
from amod_dispatch.domain.mechanics.mechanics_routers import EuclidRoutePlanner
from amod_dispatch.domain.state import WorldState
from amod_dispatch.domain.stations import StationIndex
from amod_dispatch.io.recorder import MemorySink, Recorder
from amod_dispatch.policy.matching import CostParams, MatchingEngine, MatchMethod
from amod_dispatch.policy.rebalancing import RebalancingEngine
from amod_dispatch.services.demand import FixedDemandEstimator, HistoricalDemandEstimator
from amod_dispatch.services.solvers import ScipyAssignmentSolver, ScipyTransportationSolver

STATIONS = [Station(1, Point(0.0, 0.0)), Station(2, Point(1000.0, 0.0))]


class _PathlessWorld(WorldState):
    def dispatch_booking(self, vehicle_id, booking):
        raise NoSuitablePath(booking.id, "road closed")


class _FlakyEstimator:
    def predict(self, station_id, horizon, *, use_queue_hint=False, queued=0):
        if station_id == 2:
            raise RuntimeError("model offline")
        return 0.0


def _world(cls=WorldState) -> WorldState:
    return cls(mechanics=Mechanics(EuclidRoutePlanner(), speed_mps=10.0))


def _driver(estimator=None, sink=None, **kw) -> SimulationStepDriver:
    planner = EuclidRoutePlanner()
    return SimulationStepDriver(
        index=StationIndex(STATIONS),
        matching=MatchingEngine(planner, ScipyAssignmentSolver(), MatchMethod.OPTIMAL),
        rebalancing=RebalancingEngine(planner, ScipyTransportationSolver()),
        estimator=estimator or FixedDemandEstimator(),
        recorder=Recorder(sink) if sink is not None else None,
        run_id="test",
        **kw,
    )


def _booking(bid, cid, pickup, t=0.0, dropoff=Point(500.0, 0.0)) -> Booking:
    return Booking(id=bid, pickup=pickup, dropoff=dropoff, booking_t=t, customer_id=cid)


def _run(driver, world, until, step=1.0):
    t = world.now
    reports = []
    while t <= until:
        world.advance(t)
        reports.append(driver.step(world))
        t += step
    return reports


def test_matching_and_rebalancing_keep_their_own_cadence():
    world = _world()
    world.add_vehicle(Vehicle(id=1, loc=Point(0.0, 0.0)))
    driver = _driver(matching_interval=60, rebalancing_interval=300)
    reports = _run(driver, world, 300.0)
    assert driver.stats.matching_runs >= 5
    assert driver.stats.rebalancing_runs == 1
    assert [r.t for r in reports if r.rebalancing_ran] == [300.0]
    assert [r.t for r in reports if r.matching_ran] == [60.0, 120.0, 180.0, 240.0, 300.0]


def test_coarse_ticks_do_not_queue_up_passes():
    world = _world()
    driver = _driver(matching_interval=60, rebalancing_interval=300)
    _run(driver, world, 1000.0, step=250.0)
    # ticks at 0, 250, 500, 750, 1000: matching due at all but the first
    assert driver.stats.matching_runs == 4
    assert driver.next_matching_t > 1000.0


def test_booking_is_matched_and_dispatched():
    sink = MemorySink()
    world = _world()
    world.add_vehicle(Vehicle(id=1, loc=Point(0.0, 0.0)))
    world.place_customer(100, Point(10.0, 0.0))
    driver = _driver(sink=sink, matching_interval=10)
    driver.submit(_booking(1, 100, Point(10.0, 0.0), t=2.0))

    _run(driver, world, 10.0)
    assert driver.stats.admitted == 1
    assert driver.stats.matched == 1
    assert driver.num_waiting_customers == 0
    assert world.get_vehicle(1).status == VehicleStatus.TO_PICKUP
    assert driver.availability.en_route("booking") == {1}
    trip = sink.named("trip_dispatched")[0]
    assert (trip.booking_id, trip.vehicle_id) == (1, 1)
    assert trip.wait_s == pytest.approx(8.0)


def test_booking_at_wrong_location_is_discarded_and_never_matched():
    world = _world()
    world.add_vehicle(Vehicle(id=1, loc=Point(0.0, 0.0)))
    world.place_customer(100, Point(10.0, 0.0))
    driver = _driver(matching_interval=5)
    driver.submit(_booking(1, 100, Point(200.0, 0.0)))
    _run(driver, world, 30.0)
    assert driver.stats.discards[DiscardReason.CUSTOMER_NOT_AT_LOCATION] == 1
    assert driver.stats.matched == 0
    assert world.get_vehicle(1).status == VehicleStatus.FREE


def test_world_rejection_discards_the_booking_not_the_vehicle():
    sink = MemorySink()
    world = _world(_PathlessWorld)
    world.add_vehicle(Vehicle(id=1, loc=Point(0.0, 0.0)))
    world.place_customer(100, Point(10.0, 0.0))
    driver = _driver(sink=sink, matching_interval=5)
    driver.submit(_booking(1, 100, Point(10.0, 0.0)))
    _run(driver, world, 5.0)
    assert driver.stats.discards[DiscardReason.NO_SUITABLE_PATH] == 1
    assert driver.num_waiting_customers == 0
    assert 1 in driver.availability
    assert sink.named("booking_discarded")[0].reason == "no_suitable_path"


def test_duplicate_submissions_are_logged_not_fatal():
    world = _world()
    world.place_customer(100, Point(10.0, 0.0))
    driver = _driver()
    b = _booking(1, 100, Point(10.0, 0.0))
    driver.load_bookings([b, b])
    driver.step(world)
    assert driver.stats.admitted == 1
    assert driver.stats.duplicates == 1


def test_rebalancing_sends_surplus_to_the_busy_station():
    world = _world()
    for vid in range(1, 6):
        world.add_vehicle(Vehicle(id=vid, loc=Point(0.0, 0.0), status=VehicleStatus.PARKED))
    est = FixedDemandEstimator(rates={1: 1 / 300, 2: 4 / 300})
    driver = _driver(estimator=est, matching_interval=60, rebalancing_interval=300)
    _run(driver, world, 300.0)
    assert driver.stats.rebalance_moves == 4
    assert driver.availability.vehicles_at(1) == (5,)
    assert driver.availability.en_route("rebalance") == {1, 2, 3, 4}
    assert all(world.get_vehicle(v).status == VehicleStatus.REBALANCING for v in (1, 2, 3, 4))


def test_queue_hint_feeds_the_forecast():
    world = _world()
    world.place_customer(100, Point(990.0, 0.0))
    driver = _driver(use_current_queue=True)
    driver.submit(_booking(1, 100, Point(990.0, 0.0)))
    driver.step(world)
    assert driver.forecast(300.0) == {1: 0.0, 2: 1.0}
    driver.use_current_queue_for_estimation(False)
    assert driver.forecast(300.0) == {1: 0.0, 2: 0.0}


def test_failing_estimator_station_is_left_out():
    driver = _driver(estimator=_FlakyEstimator())
    assert driver.forecast(300.0) == {1: 0.0}
    assert driver.stats.estimator_failures == 1


def test_admitted_bookings_are_observed_by_the_estimator():
    world = _world()
    world.place_customer(100, Point(10.0, 0.0))
    est = HistoricalDemandEstimator(window_s=600.0)
    driver = _driver(estimator=est)
    driver.submit(_booking(1, 100, Point(10.0, 0.0), t=0.0))
    driver.step(world)
    assert est.predict(1, 600.0) == pytest.approx(1.0)


def test_historical_forecast_decays_once_bookings_stop():
    world = _world()
    world.place_customer(100, Point(10.0, 0.0))
    est = HistoricalDemandEstimator(window_s=600.0)
    driver = _driver(estimator=est, rebalancing_interval=300)
    driver.submit(_booking(1, 100, Point(10.0, 0.0), t=0.0))
    driver.step(world)
    assert driver.forecast(600.0)[1] == pytest.approx(1.0)
    world.advance(601.0)
    driver.step(world)
    assert driver.forecast(600.0) == {1: 0.0, 2: 0.0}


def test_missing_world_is_invalid():
    driver = _driver()
    with pytest.raises(InvalidWorldState):
        driver.step(None)
    with pytest.raises(InvalidWorldState):
        driver.step(object())


def test_setters():
    driver = _driver()
    driver.set_match_method("greedy")
    assert driver.matching.method == MatchMethod.GREEDY
    driver.set_cost_factors(2.0, 0.5)
    assert driver.cost == CostParams(2.0, 0.5)
    with pytest.raises(ValueError):
        driver.matching_interval = 0
    driver.rebalancing_interval = 0
    assert driver.next_rebalancing_t == float("inf")
    assert driver.closest_station(Point(900.0, 5.0)) == 2


def test_rebalancing_can_be_disabled_and_re_enabled():
    world = _world()
    driver = _driver(rebalancing_interval=0)
    _run(driver, world, 400.0, step=100.0)
    assert driver.stats.rebalancing_runs == 0
    driver.rebalancing_interval = 100
    assert driver.next_rebalancing_t == 500.0


def test_load_stations_rebuilds_the_index():
    world = _world()
    world.add_vehicle(Vehicle(id=1, loc=Point(400.0, 0.0)))
    driver = _driver()
    driver.step(world)
    assert driver.availability.station_of[1] == 1
    driver.load_stations([Station(7, Point(500.0, 0.0))])
    assert driver.availability.station_vehicles() == {7: (1,)}


def test_load_bookings_from_file(tmp_path):
    p = tmp_path / "b.csv"
    p.write_text(
        "id,booking_t,customer_id,pickup_x,pickup_y,dropoff_x,dropoff_y\n"
        "1,0,100,10,0,500,0\n"
        "2,50,101,20,0,500,0\n"
    )
    driver = _driver()
    assert driver.load_bookings_from_file(str(p)) == 2
    assert driver.pending_intake == 2
    with pytest.raises(BookingIngestionFailure):
        driver.load_bookings_from_file(str(tmp_path / "missing.csv"))
