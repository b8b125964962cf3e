# amod_dispatch/domain/errors.py
from enum import Enum


class DiscardReason(Enum):
    CUSTOMER_NOT_AT_LOCATION = "customer_not_at_location"
    CUSTOMER_NOT_FREE = "customer_not_free"
    SERVICE_BOOKING_FAILURE = "service_booking_failure"
    NO_SUITABLE_PATH = "no_suitable_path"


class DispatchError(Exception):
    """Root of everything the dispatch core raises."""


class InvalidWorldState(DispatchError):
    """World handle absent or malformed. Raised before any state is touched."""


class BookingIngestionFailure(DispatchError):
    pass


class InvalidBooking(DispatchError):
    reason: DiscardReason

    def __init__(self, reason: DiscardReason, booking_id: int | None = None, detail: str = ""):
        self.reason = reason
        self.booking_id = booking_id
        msg = f"booking {booking_id}: {reason.value}"
        super().__init__(f"{msg} ({detail})" if detail else msg)


class ServiceBookingFailure(InvalidBooking):
    def __init__(self, booking_id: int | None = None, detail: str = ""):
        super().__init__(DiscardReason.SERVICE_BOOKING_FAILURE, booking_id, detail)


class NoSuitablePath(InvalidBooking):
    def __init__(self, booking_id: int | None = None, detail: str = ""):
        super().__init__(DiscardReason.NO_SUITABLE_PATH, booking_id, detail)


class SolverInfeasible(DispatchError):
    pass


class SolverError(DispatchError):
    pass
