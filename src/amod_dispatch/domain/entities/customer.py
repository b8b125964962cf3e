# domain/entities/customer.py
from dataclasses import dataclass
from enum import Enum

from amod_dispatch.domain.entities.geography import Point


class CustomerStatus(Enum):
    FREE = "free"
    WAITING_FOR_PICKUP = "waiting_for_pickup"
    IN_VEHICLE = "in_vehicle"


@dataclass
class Customer:
    id: int
    loc: Point
    status: CustomerStatus = CustomerStatus.FREE

    @property
    def position(self) -> Point:
        return self.loc
