from amod_dispatch.app.protocols import DemandEstimator, RoutePlanner
from amod_dispatch.config.models import (
    EstimatorFixedModel,
    EstimatorHistoricalModel,
    EstimatorUnion,
    MatchingModel,
)
from amod_dispatch.policy.matching import CostParams, MatchingEngine, MatchMethod
from amod_dispatch.policy.rebalancing import RebalancingEngine
from amod_dispatch.services.demand import FixedDemandEstimator, HistoricalDemandEstimator
from amod_dispatch.services.solvers import ScipyAssignmentSolver, ScipyTransportationSolver


def make_matching_engine(cfg: MatchingModel, *, planner: RoutePlanner) -> MatchingEngine:
    if isinstance(cfg, MatchingModel):
        return MatchingEngine(
            planner=planner,
            solver=ScipyAssignmentSolver(),
            method=MatchMethod(cfg.strategy),
        )
    else:
        raise TypeError(cfg)


def make_cost_params(cfg: MatchingModel) -> CostParams:
    return CostParams(distance_weight=cfg.distance_weight, waiting_weight=cfg.waiting_weight)


def make_rebalancing_engine(*, planner: RoutePlanner) -> RebalancingEngine:
    return RebalancingEngine(planner=planner, solver=ScipyTransportationSolver())


def make_demand_estimator(cfg: EstimatorUnion) -> DemandEstimator:
    if isinstance(cfg, EstimatorFixedModel):
        return FixedDemandEstimator(rates=cfg.rates, default_rate=cfg.default_rate)
    elif isinstance(cfg, EstimatorHistoricalModel):
        return HistoricalDemandEstimator(window_s=cfg.window_s)
    else:
        raise TypeError(cfg)
