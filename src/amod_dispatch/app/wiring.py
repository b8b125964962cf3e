# amod_dispatch/app/wiring.py
from amod_dispatch.app.controllers.ticks import TickHandler
from amod_dispatch.app.events import EndOfRun, Tick
from amod_dispatch.sim.kernel import Kernel


def wire(kernel: Kernel, *, ticks: TickHandler) -> None:
    k = kernel

    # world advance -> booking intake -> matching / rebalancing
    k.on(Tick, ticks.on_tick)

    # final rollup
    k.on(EndOfRun, ticks.on_end_of_run)
