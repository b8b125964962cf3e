# app/events.py
from dataclasses import dataclass

from amod_dispatch.sim.event import BaseEvent


# Periodic heartbeat; every tick advances the world and runs one driver step
@dataclass(order=True)
class Tick(BaseEvent):
    step: int = 0


# logging
@dataclass(order=True)
class EndOfRun(BaseEvent):
    pass
