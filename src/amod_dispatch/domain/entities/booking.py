# domain/entities/booking.py
from dataclasses import dataclass, field

from amod_dispatch.domain.entities.geography import Point


@dataclass(frozen=True)
class Booking:
    id: int
    pickup: Point
    dropoff: Point
    booking_t: float  # request time; wait cost accrues from here
    customer_id: int
    # set by BookingQueue on admission; 0 until queued
    admission_seq: int = field(default=0, compare=False, repr=False)
