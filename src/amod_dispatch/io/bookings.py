# amod_dispatch/io/bookings.py
import csv
import logging
from collections.abc import Iterable, Iterator

import numpy as np

from amod_dispatch.app.protocols import BookingSource, OriginDestinationSampler
from amod_dispatch.domain.entities.booking import Booking
from amod_dispatch.domain.entities.geography import Point
from amod_dispatch.domain.errors import BookingIngestionFailure

log = logging.getLogger(__name__)

CSV_COLUMNS = ("id", "booking_t", "customer_id", "pickup_x", "pickup_y", "dropoff_x", "dropoff_y")


def _parse_row(row: dict, line: int) -> Booking:
    try:
        return Booking(
            id=int(row["id"]),
            booking_t=float(row["booking_t"]),
            customer_id=int(row["customer_id"]),
            pickup=Point(float(row["pickup_x"]), float(row["pickup_y"])),
            dropoff=Point(float(row["dropoff_x"]), float(row["dropoff_y"])),
        )
    except (TypeError, ValueError) as exc:
        raise BookingIngestionFailure(f"line {line}: {exc}") from exc


def read_bookings_csv(path: str) -> list[Booking]:
    """
    Parse a bookings CSV with header
    id,booking_t,customer_id,pickup_x,pickup_y,dropoff_x,dropoff_y
    and return the bookings sorted by booking_t (file order kept on ties).
    """
    try:
        with open(path, newline="") as f:
            reader = csv.DictReader(f)
            missing = [c for c in CSV_COLUMNS if c not in (reader.fieldnames or ())]
            if missing:
                raise BookingIngestionFailure(f"{path}: missing columns {missing}")
            # header is line 1
            rows = [_parse_row(row, i) for i, row in enumerate(reader, start=2)]
    except OSError as exc:
        raise BookingIngestionFailure(f"cannot read {path}: {exc}") from exc
    except csv.Error as exc:
        raise BookingIngestionFailure(f"{path}: {exc}") from exc
    rows.sort(key=lambda b: b.booking_t)
    return rows


class CsvBookingSource(BookingSource):
    """Bookings replayed from a CSV file; the file is read lazily on first iteration."""

    def __init__(self, path: str):
        self.path = path

    def __iter__(self) -> Iterator[Booking]:
        yield from read_bookings_csv(self.path)


class SampledBookingSource(BookingSource):
    """
    Poisson arrivals at rate_per_s with OD pairs from an OriginDestinationSampler.
    Each booking gets a fresh customer id equal to its booking id.
    """

    def __init__(
        self,
        *,
        sampler: OriginDestinationSampler,
        rng: np.random.Generator,
        rate_per_s: float,
        until: float,
        start_t: float = 0.0,
        first_id: int = 1,
    ):
        if rate_per_s <= 0:
            raise ValueError("rate_per_s must be > 0")
        self.sampler = sampler
        self.rng = rng
        self.rate_per_s = rate_per_s
        self.until = until
        self.start_t = start_t
        self.first_id = first_id

    def __iter__(self) -> Iterator[Booking]:
        t = self.start_t
        bid = self.first_id
        while True:
            t += float(self.rng.exponential(1.0 / self.rate_per_s))
            if t > self.until:
                return
            yield Booking(
                id=bid,
                pickup=self.sampler.sample_origin(),
                dropoff=self.sampler.sample_destination(),
                booking_t=t,
                customer_id=bid,
            )
            bid += 1


class BookingFeed:
    """
    Peekable cursor over a BookingSource. pull(t) hands out every booking due
    by t. A failing source is logged once and treated as exhausted.
    """

    def __init__(self, source: Iterable[Booking] | None = None):
        self._it: Iterator[Booking] | None = iter(source) if source is not None else None
        self._head: Booking | None = None
        self.exhausted = source is None
        self.failed = False

    def _peek(self) -> Booking | None:
        if self._head is None and not self.exhausted:
            try:
                self._head = next(self._it)
            except StopIteration:
                self.exhausted = True
            except BookingIngestionFailure as exc:
                self.exhausted = True
                self.failed = True
                log.error("booking_ingestion_failed", extra={"extra": {"error": str(exc)}})
        return self._head

    def pull(self, t: float) -> list[Booking]:
        due: list[Booking] = []
        while (b := self._peek()) is not None and b.booking_t <= t:
            due.append(b)
            self._head = None
        return due

    def next_t(self) -> float | None:
        b = self._peek()
        return b.booking_t if b else None
