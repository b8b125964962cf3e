from collections.abc import Iterable, Iterator
from typing import Protocol, runtime_checkable

import numpy as np

from amod_dispatch.domain.entities.booking import Booking
from amod_dispatch.domain.entities.customer import CustomerStatus
from amod_dispatch.domain.entities.geography import Path, Point
from amod_dispatch.domain.entities.vehicle import VehicleStatus


# ------------- Mechanics --------------------
@runtime_checkable
class RoutePlanner(Protocol):
    """
    Responsibilities:
      • Compute a path between two points.
      • Compute travel distance between points (the matching cost metric).
    """

    def route(self, a: Point, b: Point) -> Path: ...
    def distance_m(self, a: Point, b: Point) -> float: ...


@runtime_checkable
class OriginDestinationSampler(Protocol):
    def sample_origin(self) -> Point: ...
    def sample_destination(self) -> Point: ...


# ------------- World --------------------


class VehicleView(Protocol):
    id: int
    status: VehicleStatus

    @property
    def position(self) -> Point: ...


class CustomerView(Protocol):
    id: int
    status: CustomerStatus

    @property
    def position(self) -> Point: ...


@runtime_checkable
class WorldStateProvider(Protocol):
    """
    The simulated world as seen by the dispatch core.
    dispatch_booking raises ServiceBookingFailure / NoSuitablePath on rejection.
    """

    @property
    def now(self) -> float: ...
    def vehicles(self) -> Iterable[VehicleView]: ...
    def get_vehicle(self, vehicle_id: int) -> VehicleView | None: ...
    def get_customer(self, customer_id: int) -> CustomerView | None: ...
    def has_path(self, a: Point, b: Point) -> bool: ...
    def dispatch_booking(self, vehicle_id: int, booking: Booking) -> None: ...
    def dispatch_move(self, vehicle_id: int, destination: Point) -> None: ...


# --------------- Forecasting -------------------------


@runtime_checkable
class DemandEstimator(Protocol):
    def predict(
        self,
        station_id: int,
        horizon: float,
        *,
        use_queue_hint: bool = False,
        queued: int = 0,
    ) -> float:
        """Expected bookings originating near station_id over the next horizon seconds (>= 0)."""


# --------------- Solvers -------------------------


@runtime_checkable
class AssignmentSolver(Protocol):
    def solve(self, cost: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Min-cost one-to-one pairing; returns (row indices, col indices)."""


@runtime_checkable
class TransportationSolver(Protocol):
    def solve(
        self,
        cost: np.ndarray,
        supply: np.ndarray,
        demand: np.ndarray,
        *,
        ship_all: bool = True,
    ) -> np.ndarray:
        """Return a (len(supply), len(demand)) flow matrix."""


# --------------- Ingestion -------------------------


@runtime_checkable
class BookingSource(Protocol):
    """Yields bookings in non-decreasing booking_t; exhaustion marks end of source."""

    def __iter__(self) -> Iterator[Booking]: ...
