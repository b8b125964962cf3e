# amod_dispatch/policy/matching.py
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import assert_never

import numpy as np

from amod_dispatch.app.protocols import AssignmentSolver, RoutePlanner
from amod_dispatch.domain.entities.booking import Booking
from amod_dispatch.domain.entities.vehicle import IdleVehicle
from amod_dispatch.domain.errors import SolverError, SolverInfeasible

log = logging.getLogger(__name__)


class MatchMethod(Enum):
    OPTIMAL = "optimal"
    GREEDY = "greedy"


@dataclass(frozen=True)
class CostParams:
    distance_weight: float = 1.0
    waiting_weight: float = 1.0

    def __post_init__(self):
        if self.distance_weight < 0 or self.waiting_weight < 0:
            raise ValueError("cost weights must be >= 0")


@dataclass(frozen=True)
class MatchAssignment:
    pairs: tuple[tuple[int, int], ...]  # (booking_id, vehicle_id)
    method: MatchMethod  # strategy that actually produced the pairs
    total_cost: float = 0.0
    degraded: bool = False  # optimal solve failed; greedy result returned

    def __len__(self) -> int:
        return len(self.pairs)

    def vehicle_for(self, booking_id: int) -> int | None:
        return dict(self.pairs).get(booking_id)

    @property
    def booking_ids(self) -> tuple[int, ...]:
        return tuple(b for b, _ in self.pairs)

    @property
    def vehicle_ids(self) -> tuple[int, ...]:
        return tuple(v for _, v in self.pairs)


def pair_cost(
    planner: RoutePlanner, v: IdleVehicle, b: Booking, cost: CostParams, now: float
) -> float:
    dist = planner.distance_m(v.position, b.pickup)
    return cost.distance_weight * dist + cost.waiting_weight * (now - b.booking_t)


class GreedyMatching:
    """Oldest booking first, each takes the nearest remaining vehicle."""

    def __init__(self, planner: RoutePlanner):
        self.planner = planner

    def run(
        self,
        vehicles: Sequence[IdleVehicle],
        bookings: Sequence[Booking],
        cost: CostParams,
        now: float,
    ) -> MatchAssignment:
        free = sorted(vehicles, key=lambda v: v.id)
        pairs: list[tuple[int, int]] = []
        total = 0.0
        # stable sort keeps admission order for equal booking times
        for b in sorted(bookings, key=lambda b: b.booking_t):
            if not free:
                break
            dists = [self.planner.distance_m(v.position, b.pickup) for v in free]
            # ties go to the lowest vehicle id since free is sorted by id
            v = free.pop(int(np.argmin(dists)))
            pairs.append((b.id, v.id))
            total += pair_cost(self.planner, v, b, cost, now)
        return MatchAssignment(pairs=tuple(pairs), method=MatchMethod.GREEDY, total_cost=total)


class OptimalMatching:
    """Minimum total cost one-to-one matching over the complete vehicle x booking matrix."""

    def __init__(self, planner: RoutePlanner, solver: AssignmentSolver):
        self.planner = planner
        self.solver = solver

    def cost_matrix(
        self,
        vehicles: Sequence[IdleVehicle],
        bookings: Sequence[Booking],
        cost: CostParams,
        now: float,
    ) -> np.ndarray:
        C = np.empty((len(vehicles), len(bookings)), dtype=float)
        for i, v in enumerate(vehicles):
            for j, b in enumerate(bookings):
                C[i, j] = pair_cost(self.planner, v, b, cost, now)
        return C

    def run(
        self,
        vehicles: Sequence[IdleVehicle],
        bookings: Sequence[Booking],
        cost: CostParams,
        now: float,
    ) -> MatchAssignment:
        C = self.cost_matrix(vehicles, bookings, cost, now)
        rows, cols = self.solver.solve(C)
        rows = [int(r) for r in rows]
        cols = [int(c) for c in cols]

        expected = min(len(vehicles), len(bookings))
        if len(rows) != expected or len(cols) != expected:
            raise SolverError(f"solver returned {len(rows)} pairs, expected {expected}")
        if len(set(rows)) != len(rows) or len(set(cols)) != len(cols):
            raise SolverError("solver reused a vehicle or booking")
        if any(not 0 <= r < len(vehicles) for r in rows) or any(
            not 0 <= c < len(bookings) for c in cols
        ):
            raise SolverError("solver returned out-of-range indices")

        order = sorted(zip(rows, cols), key=lambda rc: rc[1])
        pairs = tuple((bookings[c].id, vehicles[r].id) for r, c in order)
        total = float(sum(C[r, c] for r, c in order))
        return MatchAssignment(pairs=pairs, method=MatchMethod.OPTIMAL, total_cost=total)


class MatchingEngine:
    """
    Booking -> vehicle matching over a consistent snapshot.
    Inputs are never mutated; the caller applies the returned assignment.
    """

    def __init__(
        self,
        planner: RoutePlanner,
        solver: AssignmentSolver,
        method: MatchMethod = MatchMethod.OPTIMAL,
    ):
        self.method = method
        self.planner = planner
        self.greedy = GreedyMatching(planner)
        self.optimal = OptimalMatching(planner, solver)

    def run(
        self,
        vehicles: Sequence[IdleVehicle],
        bookings: Sequence[Booking],
        cost: CostParams,
        now: float,
    ) -> MatchAssignment:
        vehicles, bookings = tuple(vehicles), tuple(bookings)
        if not vehicles or not bookings:
            return MatchAssignment(pairs=(), method=self.method)

        match self.method:
            case MatchMethod.GREEDY:
                return self.greedy.run(vehicles, bookings, cost, now)
            case MatchMethod.OPTIMAL:
                try:
                    return self.optimal.run(vehicles, bookings, cost, now)
                except (SolverInfeasible, SolverError) as exc:
                    log.warning(
                        "assignment solve failed; falling back to greedy",
                        extra={
                            "extra": {
                                "t": now,
                                "error": str(exc),
                                "vehicles": len(vehicles),
                                "bookings": len(bookings),
                            }
                        },
                    )
                    fallback = self.greedy.run(vehicles, bookings, cost, now)
                    return MatchAssignment(
                        pairs=fallback.pairs,
                        method=MatchMethod.GREEDY,
                        total_cost=fallback.total_cost,
                        degraded=True,
                    )
            case _:
                assert_never(self.method)
