import numpy as np
import pytest

from amod_dispatch.domain.entities.geography import Point
from amod_dispatch.domain.entities.station import Station
from amod_dispatch.domain.errors import SolverError
from amod_dispatch.domain.mechanics.mechanics_routers import EuclidRoutePlanner
from amod_dispatch.domain.stations import StationIndex
from amod_dispatch.policy.rebalancing import RebalancingEngine, round_flows
from amod_dispatch.services.solvers import ScipyTransportationSolver


class _BrokenLP:
    def solve(self, cost, supply, demand, *, ship_all=True):
        raise SolverError("simplex blew up")


def _engine(solver=None) -> RebalancingEngine:
    return RebalancingEngine(EuclidRoutePlanner(), solver or ScipyTransportationSolver())


@pytest.fixture
def two_stations() -> StationIndex:
    return StationIndex([Station(1, Point(0.0, 0.0)), Station(2, Point(10.0, 10.0))])


def test_surplus_moves_to_the_deficit_station(two_stations):
    idle = {1: (11, 12, 13, 14, 15), 2: ()}
    flow = _engine().run(idle, {1: 1.0, 2: 4.0}, two_stations)
    assert [(f.source, f.dest, f.count) for f in flow.flows] == [(1, 2, 4)]
    # lowest vehicle ids leave first, one stays behind
    assert [m.vehicle_id for m in flow.moves] == [11, 12, 13, 14]
    assert all(m.dest == 2 for m in flow.moves)


def test_equilibrium_produces_no_flow(two_stations):
    flow = _engine().run({1: (1, 2), 2: (3,)}, {1: 2.0, 2: 1.0}, two_stations)
    assert not flow
    assert flow.moves == ()
    assert not flow.skipped


def test_stations_without_forecast_are_inert(two_stations):
    flow = _engine().run({1: (1, 2, 3), 2: ()}, {1: 0.0}, two_stations)
    assert not flow


def test_invalid_forecast_is_ignored(two_stations):
    flow = _engine().run({1: (1, 2, 3), 2: ()}, {1: 0.0, 2: float("nan")}, two_stations)
    assert not flow


def test_solver_failure_skips_the_cycle(two_stations):
    flow = _engine(_BrokenLP()).run({1: (1, 2, 3), 2: ()}, {1: 0.0, 2: 3.0}, two_stations)
    assert flow.skipped
    assert "simplex" in flow.reason
    assert flow.moves == ()


def test_cheapest_destinations_are_used():
    index = StationIndex(
        [
            Station(1, Point(0.0, 0.0)),
            Station(2, Point(100.0, 0.0)),
            Station(3, Point(5.0, 0.0)),
            Station(4, Point(105.0, 0.0)),
        ]
    )
    idle = {1: (1, 2), 2: (3, 4), 3: (), 4: ()}
    flow = _engine().run(idle, {1: 0.0, 2: 0.0, 3: 2.0, 4: 2.0}, index)
    assert sorted((f.source, f.dest, f.count) for f in flow.flows) == [(1, 3, 2), (2, 4, 2)]


def test_flow_conservation_on_random_instances():
    rng = np.random.default_rng(3)
    for _ in range(15):
        n = int(rng.integers(2, 8))
        index = StationIndex([Station(i, Point(*rng.uniform(0, 1000, 2))) for i in range(n)])
        next_vid = iter(range(10_000))
        idle = {i: tuple(next(next_vid) for _ in range(int(rng.integers(0, 6)))) for i in range(n)}
        forecast = {i: float(rng.uniform(0, 5)) for i in range(n)}

        flow = _engine().run(idle, forecast, index)

        out_total = in_total = 0
        for sid in range(n):
            surplus = len(idle[sid]) - forecast[sid]
            out, inn = flow.outflow(sid), flow.inflow(sid)
            assert out <= max(0.0, surplus) + 1e-9
            assert inn <= max(0.0, -surplus) + 1e-9
            assert out <= len(idle[sid])
            out_total += out
            in_total += inn
        assert out_total == in_total == flow.total == len(flow.moves)
        moved = [m.vehicle_id for m in flow.moves]
        assert len(moved) == len(set(moved))


def test_round_flows_floors_and_respects_capacity():
    x = np.array([[1.9999999999, 0.5], [0.0, 2.6]])
    counts = round_flows(x, supply=np.array([2.0, 2.6]), demand=np.array([2.0, 2.0]))
    assert counts.tolist() == [[2, 0], [0, 2]]


def test_transportation_lp_ships_the_smaller_side():
    solver = ScipyTransportationSolver()
    x = solver.solve(np.array([[1.0, 2.0]]), np.array([3.0]), np.array([2.0, 2.0]))
    assert x.sum() == pytest.approx(3.0)
    assert x[0, 0] == pytest.approx(2.0)
