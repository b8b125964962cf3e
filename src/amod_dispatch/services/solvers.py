# amod_dispatch/services/solvers.py
import logging

import numpy as np
from scipy.optimize import linear_sum_assignment, linprog

from amod_dispatch.app.protocols import AssignmentSolver, TransportationSolver
from amod_dispatch.domain.errors import SolverError, SolverInfeasible

log = logging.getLogger(__name__)


class ScipyAssignmentSolver(AssignmentSolver):
    """scipy.optimize.linear_sum_assignment (rectangular matrices allowed)."""

    def solve(self, cost: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        cost = np.asarray(cost, dtype=float)
        if cost.ndim != 2:
            raise SolverError(f"cost matrix must be 2-D, got shape {cost.shape}")
        if cost.size == 0:
            return np.empty(0, dtype=int), np.empty(0, dtype=int)
        if not np.isfinite(cost).all():
            raise SolverInfeasible("cost matrix has non-finite entries")
        try:
            rows, cols = linear_sum_assignment(cost)
        except ValueError as exc:
            raise SolverInfeasible(str(exc)) from exc
        return rows, cols


class ScipyTransportationSolver(TransportationSolver):
    """
    Transportation LP solved with HiGHS through scipy.optimize.linprog.

    min  sum_ij cost[i, j] * x[i, j]
    s.t. sum_j x[i, j] <= supply[i]
         sum_i x[i, j] <= demand[j]
         x >= 0

    With ship_all the smaller side is tightened to equality so the LP moves
    min(sum(supply), sum(demand)) units instead of the trivial zero flow.
    """

    def __init__(self, method: str = "highs"):
        self.method = method

    def solve(
        self,
        cost: np.ndarray,
        supply: np.ndarray,
        demand: np.ndarray,
        *,
        ship_all: bool = True,
    ) -> np.ndarray:
        cost = np.asarray(cost, dtype=float)
        supply = np.asarray(supply, dtype=float)
        demand = np.asarray(demand, dtype=float)
        n, m = len(supply), len(demand)
        if cost.shape != (n, m):
            raise SolverError(f"cost shape {cost.shape} does not match ({n}, {m})")
        if n == 0 or m == 0:
            return np.zeros((n, m))
        if (supply < 0).any() or (demand < 0).any():
            raise SolverInfeasible("supply and demand must be non-negative")
        if not np.isfinite(cost).all():
            raise SolverInfeasible("cost matrix has non-finite entries")

        # x is flattened row-major: x[i * m + j]
        rows = np.zeros((n, n * m))
        for i in range(n):
            rows[i, i * m : (i + 1) * m] = 1.0
        cols = np.zeros((m, n * m))
        for j in range(m):
            cols[j, j::m] = 1.0

        A_ub, b_ub, A_eq, b_eq = [rows, cols], [supply, demand], None, None
        if ship_all:
            if supply.sum() <= demand.sum():
                A_ub, b_ub, A_eq, b_eq = [cols], [demand], rows, supply
            else:
                A_ub, b_ub, A_eq, b_eq = [rows], [supply], cols, demand

        try:
            res = linprog(
                cost.ravel(),
                A_ub=np.vstack(A_ub),
                b_ub=np.concatenate(b_ub),
                A_eq=A_eq,
                b_eq=b_eq,
                bounds=(0, None),
                method=self.method,
            )
        except ValueError as exc:
            raise SolverError(str(exc)) from exc

        if res.status == 2:
            raise SolverInfeasible(res.message)
        if res.status != 0 or res.x is None:
            raise SolverError(f"linprog status {res.status}: {res.message}")
        log.debug("transportation LP solved", extra={"extra": {"n": n, "m": m, "obj": res.fun}})
        return np.clip(res.x.reshape(n, m), 0.0, None)
