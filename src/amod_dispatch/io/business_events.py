# amod_dispatch/io/business_events.py

from dataclasses import dataclass


# Base type for analytics events (not scheduled in the kernel!)
@dataclass
class BizEvent:
    run_id: str
    t: float  # simulation time
    seq: int  # emission sequence (for total ordering)
    name: str  # stable event name


@dataclass
class BookingAdmittedBiz(BizEvent):
    booking_id: int
    customer_id: int
    pickup: tuple[float, float]
    dropoff: tuple[float, float]
    booking_t: float


@dataclass
class BookingDiscardedBiz(BizEvent):
    booking_id: int
    customer_id: int
    reason: str  # DiscardReason.value


@dataclass
class TripDispatchedBiz(BizEvent):
    booking_id: int
    vehicle_id: int
    distance_m: float | None = None
    wait_s: float | None = None


@dataclass
class RebalanceMoveBiz(BizEvent):
    vehicle_id: int
    source_station: int
    dest_station: int


@dataclass
class MatchingPassBiz(BizEvent):
    method: str
    pending: int
    available: int
    matched: int
    total_cost: float
    degraded: bool = False


@dataclass
class RebalancingPassBiz(BizEvent):
    flows: list[tuple[int, int, int]]  # (source, dest, count)
    moves: int
    skipped: bool = False
    reason: str | None = None
