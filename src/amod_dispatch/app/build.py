# amod_dispatch/app/build.py
from collections.abc import Mapping
from dataclasses import dataclass

from amod_dispatch.app.controllers.dispatch import SimulationStepDriver
from amod_dispatch.app.controllers.ticks import TickHandler
from amod_dispatch.app.events import Tick
from amod_dispatch.app.wiring import wire
from amod_dispatch.config.models import ScenarioModel
from amod_dispatch.domain.entities.geography import Point
from amod_dispatch.domain.entities.station import Station
from amod_dispatch.domain.entities.vehicle import Vehicle, VehicleStatus
from amod_dispatch.domain.mechanics.mechanics_core import Mechanics
from amod_dispatch.domain.mechanics.mechanics_factory import build_mechanics
from amod_dispatch.domain.state import WorldState
from amod_dispatch.domain.stations import StationIndex
from amod_dispatch.io.bookings import BookingFeed
from amod_dispatch.io.kernel_logging import KernelLogging  # JSON logs
from amod_dispatch.io.recorder import JsonlSink, Recorder
from amod_dispatch.runtime.policy_factory import (
    make_cost_params,
    make_demand_estimator,
    make_matching_engine,
    make_rebalancing_engine,
)
from amod_dispatch.runtime.registries import make_booking_source
from amod_dispatch.sim.clock import SimClock
from amod_dispatch.sim.hooks import NoopHooks
from amod_dispatch.sim.kernel import Kernel
from amod_dispatch.sim.rng import RNGRegistry


@dataclass
class App:
    kernel: Kernel
    clock: SimClock
    rng: RNGRegistry
    world: WorldState
    driver: SimulationStepDriver
    feed: BookingFeed
    ticks: TickHandler
    recorder: Recorder
    mechanics: Mechanics

    def run(self, until: float | None = None) -> int:
        return self.kernel.run(until=until)

    def close(self) -> None:
        """Flush and release the event sinks (closes an events_file)."""
        self.recorder.close()

    def __enter__(self) -> "App":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def _seed_fleet(model: ScenarioModel, world: WorldState, stations: list[Station]) -> None:
    for v in model.fleet.vehicles:
        world.add_vehicle(Vehicle(id=v.id, loc=Point(v.x, v.y), status=VehicleStatus.FREE))
    next_id = max((v.id for v in model.fleet.vehicles), default=0) + 1
    for s in sorted(stations, key=lambda s: s.id):
        for _ in range(model.fleet.per_station):
            world.add_vehicle(Vehicle(id=next_id, loc=s.loc, status=VehicleStatus.PARKED))
            next_id += 1


def build(
    cfg: ScenarioModel | Mapping,
    *,
    worker: int = 0,
    use_logging: bool = True,
    recorder: Recorder | None = None,
) -> App:
    # 0) Validate config
    model = cfg if isinstance(cfg, ScenarioModel) else ScenarioModel.model_validate(cfg)

    # 1) Clock & RNG
    clock = SimClock.utc_epoch(*model.sim.epoch)
    rng_registry = RNGRegistry(model.sim.seed, scenario=model.name, worker=worker)

    # 2) Recorder for analytics, kernel with hooks
    if recorder is None:
        sink = JsonlSink.open(model.log.events_file) if model.log.events_file else JsonlSink()
        recorder = Recorder(sink)

    hooks = (
        KernelLogging(
            run_id=model.run_id,
            clock=clock,
            level=model.log.level,
            debug=model.log.debug,
            sample_every=model.log.sample_every,
        )
        if use_logging
        else NoopHooks()
    )
    kernel = Kernel(hooks=hooks)

    # 3) World
    mechanics = build_mechanics(model.world)
    world = WorldState(mechanics=mechanics, bounds=model.world.bounds)
    stations = [Station(id=s.id, loc=Point(s.x, s.y)) for s in model.stations]
    _seed_fleet(model, world, stations)

    # 4) Dispatch core
    planner = mechanics.route_planner
    driver = SimulationStepDriver(
        index=StationIndex(stations),
        matching=make_matching_engine(model.matching, planner=planner),
        rebalancing=make_rebalancing_engine(planner=planner),
        estimator=make_demand_estimator(model.rebalancing.estimator),
        cost=make_cost_params(model.matching),
        matching_interval=model.matching.interval_s,
        rebalancing_interval=model.rebalancing.interval_s,
        use_current_queue=model.rebalancing.use_current_queue,
        location_tolerance=model.world.location_tolerance,
        recorder=recorder,
        run_id=model.run_id,
    )

    # 5) Booking intake
    source = make_booking_source(
        model.bookings,
        deps={"rng": rng_registry.stream("bookings"), "until": float(model.sim.duration)},
    )
    feed = BookingFeed(source)

    # 6) Wiring
    ticks = TickHandler(
        world, driver, feed, step_s=model.sim.step_s, until=float(model.sim.duration)
    )
    wire(kernel, ticks=ticks)

    # 7) Seed the first tick; the driver sets its interval watermarks from it
    driver.init(world)
    kernel.schedule(Tick(t=0.0, step=0))

    return App(kernel, clock, rng_registry, world, driver, feed, ticks, recorder, mechanics)
