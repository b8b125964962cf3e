# runtime/registries.py
from collections.abc import Callable

from amod_dispatch.app.protocols import BookingSource, RoutePlanner
from amod_dispatch.config.models import (
    BookingSourceCsvModel,
    BookingSourceNoneModel,
    BookingSourceSampledModel,
    BookingSourceUnion,
    RoutePlannerEuclideanModel,
    RoutePlannerManhattanModel,
    RoutePlannerUnion,
)
from amod_dispatch.domain.mechanics.mechanics_od_samplers import IdealizedODSampler
from amod_dispatch.domain.mechanics.mechanics_routers import (
    EuclidRoutePlanner,
    ManhattanRoutePlanner,
)
from amod_dispatch.io.bookings import CsvBookingSource, SampledBookingSource

RoutePlannerFactory = Callable[[RoutePlannerUnion, dict], RoutePlanner]
BookingSourceFactory = Callable[[BookingSourceUnion, dict], BookingSource | None]

_route_planner_registry: dict[str, RoutePlannerFactory] = {}
_booking_source_registry: dict[str, BookingSourceFactory] = {}


# --------------------- Route Planners  ---------------------
def register_route_planner(kind: str):
    def deco(fn: RoutePlannerFactory):
        _route_planner_registry[kind] = fn
        return fn

    return deco


def make_route_planner(cfg: RoutePlannerUnion, *, deps: dict | None = None) -> RoutePlanner:
    try:
        factory = _route_planner_registry[cfg.kind]
    except KeyError:
        raise ValueError(f"Unknown route planner kind {cfg.kind!r}")
    return factory(cfg, deps or {})


@register_route_planner("euclidean")
def _make_euclidean(cfg: RoutePlannerEuclideanModel, deps):
    return EuclidRoutePlanner()


@register_route_planner("manhattan")
def _make_manhattan(cfg: RoutePlannerManhattanModel, deps):
    return ManhattanRoutePlanner()


# --------------------- Booking Sources ---------------------


def register_booking_source(kind: str):
    def deco(fn: BookingSourceFactory):
        _booking_source_registry[kind] = fn
        return fn

    return deco


def make_booking_source(cfg: BookingSourceUnion, *, deps: dict) -> BookingSource | None:
    """
    deps can include:
      - 'rng': numpy Generator for sampled arrivals
      - 'until': last booking time for sampled arrivals
    """
    try:
        factory = _booking_source_registry[cfg.kind]
    except KeyError:
        raise ValueError(f"Unknown booking source kind {cfg.kind!r}")
    return factory(cfg, deps)


@register_booking_source("none")
def _make_no_source(cfg: BookingSourceNoneModel, deps):
    return None


@register_booking_source("csv")
def _make_csv_source(cfg: BookingSourceCsvModel, deps):
    return CsvBookingSource(cfg.file)


@register_booking_source("sampled")
def _make_sampled_source(cfg: BookingSourceSampledModel, deps):
    rng = deps["rng"]
    sampler = IdealizedODSampler(zones=cfg.zones, weights=cfg.weights, rng=rng)
    return SampledBookingSource(
        sampler=sampler, rng=rng, rate_per_s=cfg.rate_per_s, until=deps["until"]
    )
