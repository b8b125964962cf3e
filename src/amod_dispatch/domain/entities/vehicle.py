# domain/entities/vehicle.py
from dataclasses import dataclass
from enum import Enum

from amod_dispatch.domain.entities.geography import Point
from amod_dispatch.domain.entities.motion import MovePlan


class VehicleStatus(Enum):
    FREE = "free"
    PARKED = "parked"
    TO_PICKUP = "to_pickup"
    TO_DROPOFF = "to_dropoff"
    REBALANCING = "rebalancing"

    @property
    def dispatchable(self) -> bool:
        return self in (VehicleStatus.FREE, VehicleStatus.PARKED)


@dataclass
class Vehicle:
    id: int
    loc: Point
    status: VehicleStatus = VehicleStatus.FREE
    motion: MovePlan | None = None
    booking_id: int | None = None  # booking being served, if any

    @property
    def position(self) -> Point:
        return self.loc

    def clear_motion(self) -> None:
        self.motion = None

    def snap_to_plan_end(self) -> None:
        self.loc = self.motion.tasks[-1].end if self.motion else self.loc

    def pos_at(self, t: float) -> Point:
        return self.motion.pos(t) if self.motion else self.loc


@dataclass(frozen=True)
class IdleVehicle:
    """Read-only view of an available vehicle handed to the engines."""

    id: int
    position: Point
    station_id: int | None = None
