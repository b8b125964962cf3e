# amod_dispatch/app/controllers/bookings.py
import bisect
import logging
from collections import Counter
from dataclasses import replace

from amod_dispatch.app.protocols import WorldStateProvider
from amod_dispatch.domain.entities.booking import Booking
from amod_dispatch.domain.entities.customer import CustomerStatus
from amod_dispatch.domain.errors import DiscardReason

log = logging.getLogger(__name__)


class BookingQueue:
    """
    Bookings waiting for a vehicle, ordered by booking time and then by
    admission order.
    """

    def __init__(self, location_tolerance: float = 1e-6):
        self.location_tolerance = location_tolerance
        self._order: list[tuple[float, int, int]] = []  # (booking_t, seq, booking_id)
        self._entries: dict[int, tuple[float, int, Booking]] = {}
        self._by_customer: dict[int, int] = {}  # customer_id -> queued booking_id
        self._seq = 0
        self.discards: Counter[DiscardReason] = Counter()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, booking_id: int) -> bool:
        return booking_id in self._entries

    def get(self, booking_id: int) -> Booking | None:
        e = self._entries.get(booking_id)
        return e[2] if e else None

    # ------------ validity --------------

    def validate(self, b: Booking, world: WorldStateProvider) -> DiscardReason | None:
        c = world.get_customer(b.customer_id)
        if c is None or c.position.dist(b.pickup) > self.location_tolerance:
            return DiscardReason.CUSTOMER_NOT_AT_LOCATION
        if c.status != CustomerStatus.FREE:
            return DiscardReason.CUSTOMER_NOT_FREE
        queued = self._by_customer.get(b.customer_id)
        if queued is not None and queued != b.id:
            return DiscardReason.CUSTOMER_NOT_FREE
        if not world.has_path(b.pickup, b.dropoff):
            return DiscardReason.NO_SUITABLE_PATH
        return None

    # ------------ mutation --------------

    def _insert(self, b: Booking, seq: int | None = None) -> None:
        if seq is None:
            self._seq += 1
            seq = self._seq
        b = replace(b, admission_seq=seq)
        bisect.insort(self._order, (b.booking_t, seq, b.id))
        self._entries[b.id] = (b.booking_t, seq, b)
        self._by_customer[b.customer_id] = b.id

    def admit(self, b: Booking, world: WorldStateProvider) -> DiscardReason | None:
        """Queue b if valid. Returns None when admitted, else the discard reason."""
        if b.id in self._entries:
            raise ValueError(f"booking {b.id} is already queued")
        reason = self.validate(b, world)
        if reason is not None:
            self._count_discard(b, reason)
            return reason
        self._insert(b)
        return None

    def requeue(self, b: Booking) -> None:
        """Put a booking back after a failed hand-off, in its original queue position."""
        if b.id in self._entries:
            return
        self._insert(b, b.admission_seq or None)

    def _remove(self, booking_id: int) -> Booking | None:
        e = self._entries.pop(booking_id, None)
        if e is None:
            return None
        t, seq, b = e
        i = bisect.bisect_left(self._order, (t, seq, booking_id))
        del self._order[i]
        if self._by_customer.get(b.customer_id) == booking_id:
            del self._by_customer[b.customer_id]
        return b

    def remove_if_matched(self, booking_id: int) -> Booking | None:
        return self._remove(booking_id)

    def discard(self, booking_id: int, reason: DiscardReason) -> Booking | None:
        b = self._remove(booking_id)
        if b is not None:
            self._count_discard(b, reason)
        return b

    def _count_discard(self, b: Booking, reason: DiscardReason) -> None:
        self.discards[reason] += 1
        log.info(
            "booking_discarded",
            extra={
                "extra": {
                    "booking_id": b.id,
                    "customer_id": b.customer_id,
                    "reason": reason.value,
                }
            },
        )

    def revalidate(self, world: WorldStateProvider) -> list[tuple[Booking, DiscardReason]]:
        """Drop queued bookings that stopped being valid (customer moved, got busy, ...)."""
        dropped = []
        for b in self.pending():
            reason = self.validate(b, world)
            if reason is not None:
                self.discard(b.id, reason)
                dropped.append((b, reason))
        return dropped

    # ------------ reads --------------

    def peek_oldest(self) -> Booking | None:
        if not self._order:
            return None
        return self._entries[self._order[0][2]][2]

    def pending(self) -> tuple[Booking, ...]:
        """Snapshot in queue order (oldest first)."""
        return tuple(self._entries[bid][2] for _, _, bid in self._order)
