# amod_dispatch/app/controllers/ticks.py
import logging

from amod_dispatch.app.controllers.dispatch import SimulationStepDriver, StepReport
from amod_dispatch.app.events import EndOfRun, Tick
from amod_dispatch.domain.state import WorldState
from amod_dispatch.io.bookings import BookingFeed

log = logging.getLogger(__name__)


class TickHandler:
    """Moves the reference world forward, feeds due bookings in and steps the driver."""

    def __init__(
        self,
        world: WorldState,
        driver: SimulationStepDriver,
        feed: BookingFeed,
        *,
        step_s: float = 1.0,
        until: float | None = None,
    ):
        self.world = world
        self.driver = driver
        self.feed = feed
        self.step_s = step_s
        self.until = until
        self.last: StepReport | None = None

    def on_tick(self, ev: Tick):
        self.world.advance(ev.t)
        for b in self.feed.pull(ev.t):
            # sampled and replayed customers appear where they book
            self.world.place_customer(b.customer_id, b.pickup)
            self.driver.submit(b)
        self.last = self.driver.step(self.world)

        nxt = ev.t + self.step_s
        if self.until is not None and nxt > self.until:
            return [EndOfRun(t=ev.t)]
        return [Tick(t=nxt, step=ev.step + 1)]

    def on_end_of_run(self, ev: EndOfRun):
        log.info(
            "dispatch_summary",
            extra={
                "extra": {
                    "t": ev.t,
                    "completed_trips": self.world.completed,
                    **self.driver.stats.summary(),
                }
            },
        )
