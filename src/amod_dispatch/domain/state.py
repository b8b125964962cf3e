# amod_dispatch/domain/state.py
from collections.abc import Iterator
from dataclasses import dataclass, field

from amod_dispatch.domain.entities.booking import Booking
from amod_dispatch.domain.entities.customer import Customer, CustomerStatus
from amod_dispatch.domain.entities.geography import Point
from amod_dispatch.domain.entities.vehicle import Vehicle, VehicleStatus
from amod_dispatch.domain.errors import NoSuitablePath, ServiceBookingFailure
from amod_dispatch.domain.mechanics.mechanics_core import Mechanics


@dataclass
class TripState:
    booking: Booking
    vehicle_id: int
    pickup_t: float  # scheduled arrival at pickup
    dropoff_t: float


@dataclass
class WorldState:
    """
    In-memory world used by the simulation harness and tests.
    Vehicles move on straight-segment plans; arrivals are resolved by advance().
    """

    mechanics: Mechanics
    bounds: tuple[float, float, float, float] | None = None
    fleet: dict[int, Vehicle] = field(default_factory=dict)
    customers: dict[int, Customer] = field(default_factory=dict)
    # vehicle_id -> trip being served
    trips: dict[int, TripState] = field(default_factory=dict)
    completed: int = 0
    _now: float = 0.0

    @property
    def now(self) -> float:
        return self._now

    # ---------------- entity store ----------------

    def add_vehicle(self, v: Vehicle) -> None:
        self.fleet[v.id] = v

    def place_customer(self, customer_id: int, loc: Point) -> Customer:
        """Create the customer at loc, or move them there if they are not mid-trip."""
        c = self.customers.get(customer_id)
        if c is None:
            c = Customer(id=customer_id, loc=loc)
            self.customers[customer_id] = c
        elif c.status == CustomerStatus.FREE:
            c.loc = loc
        return c

    def vehicles(self) -> Iterator[Vehicle]:
        for vid in sorted(self.fleet):
            yield self.fleet[vid]

    def get_vehicle(self, vehicle_id: int) -> Vehicle | None:
        return self.fleet.get(vehicle_id)

    def get_customer(self, customer_id: int) -> Customer | None:
        return self.customers.get(customer_id)

    def in_service_area(self, p: Point) -> bool:
        if self.bounds is None:
            return True
        x0, y0, x1, y1 = self.bounds
        return x0 <= p.x <= x1 and y0 <= p.y <= y1

    def has_path(self, a: Point, b: Point) -> bool:
        return self.in_service_area(a) and self.in_service_area(b)

    # ---------------- commands ----------------

    def _dispatchable(self, vehicle_id: int, booking_id: int | None = None) -> Vehicle:
        v = self.fleet.get(vehicle_id)
        if v is None:
            raise ServiceBookingFailure(booking_id, f"unknown vehicle {vehicle_id}")
        if not v.status.dispatchable:
            raise ServiceBookingFailure(booking_id, f"vehicle {vehicle_id} is {v.status.value}")
        return v

    def dispatch_booking(self, vehicle_id: int, booking: Booking) -> None:
        v = self._dispatchable(vehicle_id, booking.id)
        c = self.customers.get(booking.customer_id)
        if c is None or c.status != CustomerStatus.FREE:
            raise ServiceBookingFailure(booking.id, f"customer {booking.customer_id} unavailable")
        for p in (v.loc, booking.pickup, booking.dropoff):
            if not self.in_service_area(p):
                raise NoSuitablePath(booking.id, f"{p} outside service area")

        to_pickup = self.mechanics.move_plan(v.loc, booking.pickup, self._now)
        to_dropoff = self.mechanics.move_plan(booking.pickup, booking.dropoff, to_pickup.end_t)
        v.motion = to_pickup.then(to_dropoff)
        v.status = VehicleStatus.TO_PICKUP
        v.booking_id = booking.id
        c.status = CustomerStatus.WAITING_FOR_PICKUP
        self.trips[v.id] = TripState(
            booking=booking, vehicle_id=v.id, pickup_t=to_pickup.end_t, dropoff_t=to_dropoff.end_t
        )

    def dispatch_move(self, vehicle_id: int, destination: Point) -> None:
        v = self._dispatchable(vehicle_id)
        if not self.in_service_area(destination):
            raise NoSuitablePath(None, f"{destination} outside service area")
        v.motion = self.mechanics.move_plan(v.loc, destination, self._now)
        v.status = VehicleStatus.REBALANCING

    # ---------------- time ----------------

    def advance(self, t: float) -> None:
        """Move the clock to t and resolve every pickup/arrival that happened by then."""
        if t < self._now - 1e-9:
            raise RuntimeError(f"time went backwards: {t} < {self._now}")
        self._now = t
        for v in self.fleet.values():
            if v.motion is None:
                continue
            trip = self.trips.get(v.id)
            if trip is not None and v.status == VehicleStatus.TO_PICKUP and t >= trip.pickup_t:
                v.status = VehicleStatus.TO_DROPOFF
                self.customers[trip.booking.customer_id].status = CustomerStatus.IN_VEHICLE
            if t < v.motion.end_t:
                v.loc = v.pos_at(t)
                continue
            v.snap_to_plan_end()
            v.clear_motion()
            if trip is not None:
                c = self.customers[trip.booking.customer_id]
                c.loc = trip.booking.dropoff
                c.status = CustomerStatus.FREE
                del self.trips[v.id]
                v.booking_id = None
                v.status = VehicleStatus.FREE
                self.completed += 1
            else:
                v.status = VehicleStatus.PARKED
