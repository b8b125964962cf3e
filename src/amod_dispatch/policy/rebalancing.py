# amod_dispatch/policy/rebalancing.py
import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import numpy as np

from amod_dispatch.app.protocols import RoutePlanner, TransportationSolver
from amod_dispatch.domain.errors import SolverError, SolverInfeasible
from amod_dispatch.domain.stations import StationIndex

log = logging.getLogger(__name__)

_ROUND_EPS = 1e-7


@dataclass(frozen=True)
class StationFlow:
    source: int
    dest: int
    count: int


@dataclass(frozen=True)
class RebalanceMove:
    vehicle_id: int
    source: int
    dest: int


@dataclass(frozen=True)
class RebalanceFlow:
    flows: tuple[StationFlow, ...] = ()
    moves: tuple[RebalanceMove, ...] = ()
    skipped: bool = False  # solver failed; nothing moves this cycle
    reason: str | None = None

    def __bool__(self) -> bool:
        return bool(self.flows)

    @property
    def total(self) -> int:
        return sum(f.count for f in self.flows)

    def outflow(self, station_id: int) -> int:
        return sum(f.count for f in self.flows if f.source == station_id)

    def inflow(self, station_id: int) -> int:
        return sum(f.count for f in self.flows if f.dest == station_id)


def round_flows(x: np.ndarray, supply: np.ndarray, demand: np.ndarray) -> np.ndarray:
    """Floor LP flows to whole vehicles without exceeding any row or column capacity."""
    counts = np.floor(np.asarray(x, dtype=float) + _ROUND_EPS).astype(int)
    counts[counts < 0] = 0
    row_cap = np.floor(supply + _ROUND_EPS).astype(int)
    col_cap = np.floor(demand + _ROUND_EPS).astype(int)
    for i in range(counts.shape[0]):
        while counts[i].sum() > row_cap[i]:
            counts[i, int(np.argmax(counts[i]))] -= 1
    for j in range(counts.shape[1]):
        while counts[:, j].sum() > col_cap[j]:
            counts[int(np.argmax(counts[:, j])), j] -= 1
    return counts


class RebalancingEngine:
    """
    Moves surplus idle vehicles toward stations whose forecast demand exceeds
    their idle count, via a transportation LP over inter-station distances.
    """

    def __init__(self, planner: RoutePlanner, solver: TransportationSolver):
        self.planner = planner
        self.solver = solver

    @staticmethod
    def surplus(
        station_vehicles: Mapping[int, Sequence[int]],
        forecast: Mapping[int, float],
        station_ids: Sequence[int],
    ) -> dict[int, float]:
        """idle - forecast per station; stations without a forecast are left out (inert)."""
        out: dict[int, float] = {}
        for sid in station_ids:
            if sid not in forecast:
                continue
            demand = forecast[sid]
            if not math.isfinite(demand) or demand < 0:
                log.warning(
                    "ignoring invalid forecast",
                    extra={"extra": {"station_id": sid, "forecast": demand}},
                )
                continue
            out[sid] = len(station_vehicles.get(sid, ())) - demand
        return out

    def run(
        self,
        station_vehicles: Mapping[int, Sequence[int]],
        forecast: Mapping[int, float],
        index: StationIndex,
    ) -> RebalanceFlow:
        surplus = self.surplus(station_vehicles, forecast, index.station_ids)
        sources = sorted(s for s, v in surplus.items() if v > 0)
        sinks = sorted(s for s, v in surplus.items() if v < 0)
        if not sources or not sinks:
            return RebalanceFlow()

        supply = np.array([surplus[s] for s in sources], dtype=float)
        demand = np.array([-surplus[s] for s in sinks], dtype=float)
        cost = np.array(
            [
                [self.planner.distance_m(index.location(i), index.location(j)) for j in sinks]
                for i in sources
            ],
            dtype=float,
        )

        try:
            x = self.solver.solve(cost, supply, demand, ship_all=True)
        except (SolverInfeasible, SolverError) as exc:
            log.warning(
                "rebalancing LP failed; skipping this cycle",
                extra={"extra": {"error": str(exc), "sources": sources, "sinks": sinks}},
            )
            return RebalanceFlow(skipped=True, reason=str(exc))

        counts = round_flows(x, supply, demand)

        flows: list[StationFlow] = []
        moves: list[RebalanceMove] = []
        for i, src in enumerate(sources):
            # lowest vehicle ids leave first
            pool = iter(sorted(station_vehicles.get(src, ())))
            for j, dst in enumerate(sinks):
                n = int(counts[i, j])
                if n <= 0:
                    continue
                flows.append(StationFlow(source=src, dest=dst, count=n))
                for _ in range(n):
                    moves.append(RebalanceMove(vehicle_id=next(pool), source=src, dest=dst))
        return RebalanceFlow(flows=tuple(flows), moves=tuple(moves))
