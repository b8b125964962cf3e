from types import SimpleNamespace

import pytest

from amod_dispatch.app.controllers.fleet import AvailabilityTracker
from amod_dispatch.domain.entities.geography import Point
from amod_dispatch.domain.entities.station import Station
from amod_dispatch.domain.entities.vehicle import Vehicle, VehicleStatus
from amod_dispatch.domain.errors import InvalidWorldState
from amod_dispatch.domain.stations import StationIndex


class _World:
    def __init__(self, vehicles):
        self.fleet = {v.id: v for v in vehicles}

    def vehicles(self):
        return list(self.fleet.values())


@pytest.fixture
def index() -> StationIndex:
    return StationIndex([Station(1, Point(0.0, 0.0)), Station(2, Point(100.0, 0.0))])


def test_refresh_homes_idle_vehicles_at_nearest_station(index):
    world = _World(
        [
            Vehicle(id=10, loc=Point(1.0, 1.0)),
            Vehicle(id=11, loc=Point(90.0, 0.0), status=VehicleStatus.PARKED),
            Vehicle(id=12, loc=Point(50.0, 0.0), status=VehicleStatus.TO_PICKUP),
        ]
    )
    t = AvailabilityTracker(index)
    t.refresh(world)
    assert t.available == {10, 11}
    assert t.station_vehicles() == {1: (10,), 2: (11,)}
    assert t.occupancy() == {1: 1, 2: 1}
    assert [v.id for v in t.snapshot()] == [10, 11]
    assert t.snapshot()[0].station_id == 1


def test_dispatched_vehicle_leaves_station_until_it_reports_back(index):
    v = Vehicle(id=10, loc=Point(1.0, 1.0))
    world = _World([v])
    t = AvailabilityTracker(index)
    t.refresh(world)
    t.mark_dispatched(10, "rebalance")
    assert 10 not in t
    assert t.vehicles_at(1) == ()
    assert t.en_route("rebalance") == {10}

    # still driving: stays in flight
    v.status = VehicleStatus.REBALANCING
    t.refresh(world)
    assert t.en_route() == {10}

    v.status, v.loc = VehicleStatus.PARKED, Point(99.0, 0.0)
    t.refresh(world)
    assert t.en_route() == set()
    assert t.vehicles_at(2) == (10,)


def test_available_and_in_flight_are_disjoint(index):
    world = _World([Vehicle(id=i, loc=Point(float(i), 0.0)) for i in range(5)])
    t = AvailabilityTracker(index)
    t.refresh(world)
    t.mark_dispatched(1, "booking")
    t.mark_dispatched(3, "rebalance")
    assert t.available.isdisjoint(t.in_flight)
    counted = {vid for vids in t.station_vehicles().values() for vid in vids}
    assert counted <= t.available


def test_dispatching_unavailable_vehicle_raises(index):
    t = AvailabilityTracker(index)
    with pytest.raises(KeyError):
        t.mark_dispatched(42, "booking")


@pytest.mark.parametrize(
    "bad",
    [
        SimpleNamespace(id="x", status=VehicleStatus.FREE, position=Point(0, 0)),
        SimpleNamespace(id=7, status="free", position=Point(0, 0)),
        SimpleNamespace(id=7, status=VehicleStatus.FREE, position=None),
    ],
)
def test_malformed_world_leaves_tracker_untouched(index, bad):
    good = Vehicle(id=1, loc=Point(0.0, 0.0))
    t = AvailabilityTracker(index)
    t.refresh(_World([good]))
    before = (set(t.available), dict(t.station_of), t.station_vehicles())

    world = _World([Vehicle(id=2, loc=Point(100.0, 0.0))])
    world.fleet["bad"] = bad
    with pytest.raises(InvalidWorldState):
        t.refresh(world)
    assert (t.available, t.station_of, t.station_vehicles()) == before


def test_rebuild_rehomes_vehicles(index):
    world = _World([Vehicle(id=1, loc=Point(60.0, 0.0))])
    t = AvailabilityTracker(index)
    t.refresh(world)
    assert t.station_of[1] == 2
    t.rebuild(StationIndex([Station(5, Point(50.0, 0.0))]))
    assert t.station_vehicles() == {5: (1,)}
