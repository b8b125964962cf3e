# amod_dispatch/app/controllers/dispatch.py
import heapq
import logging
import math
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field

from amod_dispatch.app.controllers.bookings import BookingQueue
from amod_dispatch.app.controllers.fleet import AvailabilityTracker
from amod_dispatch.app.protocols import DemandEstimator, WorldStateProvider
from amod_dispatch.domain.entities.booking import Booking
from amod_dispatch.domain.entities.geography import Point
from amod_dispatch.domain.entities.station import Station
from amod_dispatch.domain.errors import (
    DiscardReason,
    DispatchError,
    InvalidBooking,
    InvalidWorldState,
)
from amod_dispatch.domain.stations import StationIndex
from amod_dispatch.io.bookings import read_bookings_csv
from amod_dispatch.io.business_events import (
    BookingAdmittedBiz,
    BookingDiscardedBiz,
    MatchingPassBiz,
    RebalanceMoveBiz,
    RebalancingPassBiz,
    TripDispatchedBiz,
)
from amod_dispatch.io.recorder import Recorder
from amod_dispatch.policy.matching import CostParams, MatchingEngine, MatchMethod
from amod_dispatch.policy.rebalancing import RebalancingEngine

log = logging.getLogger(__name__)

_NEVER = math.inf


@dataclass
class DispatchStats:
    admitted: int = 0
    duplicates: int = 0
    matched: int = 0
    matching_runs: int = 0
    degraded_passes: int = 0
    rebalancing_runs: int = 0
    rebalancing_skipped: int = 0
    rebalance_moves: int = 0
    move_failures: int = 0
    estimator_failures: int = 0
    discards: Counter[DiscardReason] = field(default_factory=Counter)

    def summary(self) -> dict:
        out = {k: v for k, v in self.__dict__.items() if k != "discards"}
        out["discards"] = {r.value: n for r, n in self.discards.items()}
        return out


@dataclass(frozen=True)
class StepReport:
    t: float
    admitted: int = 0
    discarded: int = 0
    matched: int = 0
    moves: int = 0
    matching_ran: bool = False
    rebalancing_ran: bool = False
    degraded: bool = False
    queued: int = 0
    available: int = 0


class SimulationStepDriver:
    """
    Owns the booking queue and vehicle availability and, once per tick,
    decides whether matching and/or rebalancing are due. Engines get
    snapshots; this class applies their results to the world.
    """

    def __init__(
        self,
        *,
        index: StationIndex,
        matching: MatchingEngine,
        rebalancing: RebalancingEngine,
        estimator: DemandEstimator,
        cost: CostParams | None = None,
        matching_interval: float = 60.0,
        rebalancing_interval: float = 300.0,
        use_current_queue: bool = False,
        location_tolerance: float = 1e-6,
        recorder: Recorder | None = None,
        run_id: str = "local",
    ):
        if matching_interval <= 0:
            raise ValueError("matching_interval must be > 0")
        self.index = index
        self.matching = matching
        self.rebalancing = rebalancing
        self.estimator = estimator
        self.cost = cost or CostParams()
        self.use_current_queue = use_current_queue
        self.recorder = recorder
        self.run_id = run_id

        self.queue = BookingQueue(location_tolerance=location_tolerance)
        self.availability = AvailabilityTracker(index)
        self.stats = DispatchStats()

        self._matching_interval = matching_interval
        self._rebalancing_interval = rebalancing_interval
        self.next_matching_t = _NEVER
        self.next_rebalancing_t = _NEVER
        self._now = 0.0
        self._initialized = False

        self._intake: list[tuple[float, int, Booking]] = []
        self._intake_seq = 0
        self._biz_seq = 0

    # ------------ configuration --------------

    def set_match_method(self, method: MatchMethod | str) -> None:
        self.matching.method = MatchMethod(method)

    def set_cost_factors(self, distance_weight: float, waiting_weight: float) -> None:
        self.cost = CostParams(distance_weight=distance_weight, waiting_weight=waiting_weight)

    @property
    def matching_interval(self) -> float:
        return self._matching_interval

    @matching_interval.setter
    def matching_interval(self, value: float) -> None:
        if value <= 0:
            raise ValueError("matching_interval must be > 0")
        self._matching_interval = value

    @property
    def rebalancing_interval(self) -> float:
        return self._rebalancing_interval

    @rebalancing_interval.setter
    def rebalancing_interval(self, value: float) -> None:
        """<= 0 disables rebalancing; re-enabling schedules the next pass one interval out."""
        self._rebalancing_interval = value
        if value <= 0:
            self.next_rebalancing_t = _NEVER
        elif self._initialized and self.next_rebalancing_t == _NEVER:
            self.next_rebalancing_t = self._now + value

    def load_stations(self, stations: Iterable[Station]) -> None:
        self.index = StationIndex(stations)
        self.availability.rebuild(self.index)
        log.info("stations_loaded", extra={"extra": {"stations": len(self.index)}})

    def set_demand_estimator(self, estimator: DemandEstimator) -> None:
        self.estimator = estimator

    def use_current_queue_for_estimation(self, flag: bool = True) -> None:
        self.use_current_queue = flag

    def closest_station(self, p: Point) -> int | None:
        return self.index.nearest_station(p)

    @property
    def num_waiting_customers(self) -> int:
        return len(self.queue)

    @property
    def pending_intake(self) -> int:
        return len(self._intake)

    # ------------ ingestion --------------

    def submit(self, booking: Booking) -> None:
        """Hand over a booking; it is admitted at the first step with now >= booking_t."""
        self._intake_seq += 1
        heapq.heappush(self._intake, (booking.booking_t, self._intake_seq, booking))

    def load_bookings(self, bookings: Iterable[Booking]) -> int:
        n = 0
        for b in bookings:
            self.submit(b)
            n += 1
        return n

    def load_bookings_from_file(self, path: str) -> int:
        """Raises BookingIngestionFailure when the file is unreadable or malformed."""
        n = self.load_bookings(read_bookings_csv(path))
        log.info("bookings_loaded", extra={"extra": {"file": path, "count": n}})
        return n

    # ------------ lifecycle --------------

    @staticmethod
    def _now_of(world: WorldStateProvider | None) -> float:
        if world is None:
            raise InvalidWorldState("no world state")
        if not isinstance(world, WorldStateProvider):
            raise InvalidWorldState(f"{type(world).__name__} is not a world state provider")
        now = world.now
        if not isinstance(now, (int, float)) or not math.isfinite(now):
            raise InvalidWorldState(f"world clock is {now!r}")
        return float(now)

    def init(self, world: WorldStateProvider) -> None:
        now = self._now_of(world)
        self.availability.refresh(world)
        self._now = now
        self._advance_estimator(now)
        self.next_matching_t = now + self._matching_interval
        self.next_rebalancing_t = (
            now + self._rebalancing_interval if self._rebalancing_interval > 0 else _NEVER
        )
        self._initialized = True

    def step(self, world: WorldStateProvider) -> StepReport:
        if not self._initialized:
            self.init(world)
        now = self._now_of(world)
        self.availability.refresh(world)
        self._now = now
        self._advance_estimator(now)

        discarded = 0
        for b, reason in self.queue.revalidate(world):
            discarded += self._on_discard(b, reason, now)
        admitted, rejected = self._admit_due(world, now)
        discarded += rejected

        matched = moves = 0
        matching_ran = rebalancing_ran = degraded = False
        if now >= self.next_matching_t:
            matching_ran = True
            matched, dropped, degraded = self._run_matching(world, now)
            discarded += dropped
            while self.next_matching_t <= now:
                self.next_matching_t += self._matching_interval
        if now >= self.next_rebalancing_t:
            rebalancing_ran = True
            moves = self._run_rebalancing(world, now)
            while self.next_rebalancing_t <= now:
                self.next_rebalancing_t += self._rebalancing_interval

        return StepReport(
            t=now,
            admitted=admitted,
            discarded=discarded,
            matched=matched,
            moves=moves,
            matching_ran=matching_ran,
            rebalancing_ran=rebalancing_ran,
            degraded=degraded,
            queued=len(self.queue),
            available=len(self.availability),
        )

    # ------------ helpers --------------

    def _advance_estimator(self, now: float) -> None:
        # windowed estimators age their history against sim time
        advance = getattr(self.estimator, "advance", None)
        if advance is not None:
            advance(now)

    def _emit(self, cls, now: float, name: str, **fields) -> None:
        if self.recorder is None:
            return
        self._biz_seq += 1
        self.recorder.emit(cls(run_id=self.run_id, t=now, seq=self._biz_seq, name=name, **fields))

    def _on_discard(self, b: Booking, reason: DiscardReason, now: float) -> bool:
        self.stats.discards[reason] += 1
        self._emit(
            BookingDiscardedBiz,
            now,
            "booking_discarded",
            booking_id=b.id,
            customer_id=b.customer_id,
            reason=reason.value,
        )
        return True

    def _admit_due(self, world: WorldStateProvider, now: float) -> tuple[int, int]:
        admitted = rejected = 0
        observe = getattr(self.estimator, "observe", None)
        while self._intake and self._intake[0][0] <= now:
            _, _, b = heapq.heappop(self._intake)
            try:
                reason = self.queue.admit(b, world)
            except ValueError as exc:
                self.stats.duplicates += 1
                log.warning(
                    "duplicate_booking",
                    extra={"extra": {"booking_id": b.id, "error": str(exc)}},
                )
                continue
            if reason is not None:
                rejected += self._on_discard(b, reason, now)
                continue
            admitted += 1
            self.stats.admitted += 1
            sid = self.index.nearest_station(b.pickup)
            if observe is not None and sid is not None:
                observe(sid, b.booking_t)
            self._emit(
                BookingAdmittedBiz,
                now,
                "booking_admitted",
                booking_id=b.id,
                customer_id=b.customer_id,
                pickup=(b.pickup.x, b.pickup.y),
                dropoff=(b.dropoff.x, b.dropoff.y),
                booking_t=b.booking_t,
            )
        return admitted, rejected

    def _run_matching(self, world: WorldStateProvider, now: float) -> tuple[int, int, bool]:
        vehicles = self.availability.snapshot()
        bookings = self.queue.pending()
        result = self.matching.run(vehicles, bookings, self.cost, now)
        self.stats.matching_runs += 1
        if result.degraded:
            self.stats.degraded_passes += 1

        positions = {v.id: v.position for v in vehicles}
        matched = dropped = 0
        for booking_id, vehicle_id in result.pairs:
            b = self.queue.get(booking_id)
            try:
                world.dispatch_booking(vehicle_id, b)
            except InvalidBooking as exc:
                self.queue.discard(booking_id, exc.reason)
                dropped += self._on_discard(b, exc.reason, now)
                continue
            self.queue.remove_if_matched(booking_id)
            self.availability.mark_dispatched(vehicle_id, "booking")
            matched += 1
            self._emit(
                TripDispatchedBiz,
                now,
                "trip_dispatched",
                booking_id=booking_id,
                vehicle_id=vehicle_id,
                distance_m=self.matching.planner.distance_m(positions[vehicle_id], b.pickup),
                wait_s=now - b.booking_t,
            )
        self.stats.matched += matched
        self._emit(
            MatchingPassBiz,
            now,
            "matching_pass",
            method=result.method.value,
            pending=len(bookings),
            available=len(vehicles),
            matched=matched,
            total_cost=result.total_cost,
            degraded=result.degraded,
        )
        return matched, dropped, result.degraded

    def _queued_per_station(self) -> Counter[int]:
        counts: Counter[int] = Counter()
        for b in self.queue.pending():
            sid = self.index.nearest_station(b.pickup)
            if sid is not None:
                counts[sid] += 1
        return counts

    def forecast(self, horizon: float) -> dict[int, float]:
        """Per-station demand over horizon; stations whose estimator call fails are left out."""
        queued = self._queued_per_station() if self.use_current_queue else Counter()
        out: dict[int, float] = {}
        for sid in self.index.station_ids:
            try:
                out[sid] = float(
                    self.estimator.predict(
                        sid,
                        horizon,
                        use_queue_hint=self.use_current_queue,
                        queued=queued[sid],
                    )
                )
            except Exception:
                # pluggable estimator; one bad station must not stop the pass
                self.stats.estimator_failures += 1
                log.exception("demand_forecast_failed", extra={"extra": {"station_id": sid}})
        return out

    def _run_rebalancing(self, world: WorldStateProvider, now: float) -> int:
        station_vehicles = self.availability.station_vehicles()
        forecast = self.forecast(self._rebalancing_interval)
        flow = self.rebalancing.run(station_vehicles, forecast, self.index)
        self.stats.rebalancing_runs += 1
        if flow.skipped:
            self.stats.rebalancing_skipped += 1

        moved = 0
        for m in flow.moves:
            try:
                world.dispatch_move(m.vehicle_id, self.index.location(m.dest))
            except DispatchError as exc:
                self.stats.move_failures += 1
                log.warning(
                    "rebalance_move_failed",
                    extra={
                        "extra": {"vehicle_id": m.vehicle_id, "dest": m.dest, "error": str(exc)}
                    },
                )
                continue
            self.availability.mark_dispatched(m.vehicle_id, "rebalance")
            moved += 1
            self._emit(
                RebalanceMoveBiz,
                now,
                "rebalance_move",
                vehicle_id=m.vehicle_id,
                source_station=m.source,
                dest_station=m.dest,
            )
        self.stats.rebalance_moves += moved
        self._emit(
            RebalancingPassBiz,
            now,
            "rebalancing_pass",
            flows=[(f.source, f.dest, f.count) for f in flow.flows],
            moves=moved,
            skipped=flow.skipped,
            reason=flow.reason,
        )
        return moved
