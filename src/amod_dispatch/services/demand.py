# amod_dispatch/services/demand.py
from collections import deque

from amod_dispatch.app.protocols import DemandEstimator


class FixedDemandEstimator(DemandEstimator):
    """Constant per-station booking rate (bookings per second)."""

    def __init__(self, rates: dict[int, float] | None = None, default_rate: float = 0.0):
        self.rates = dict(rates or {})
        self.default_rate = default_rate

    def predict(
        self,
        station_id: int,
        horizon: float,
        *,
        use_queue_hint: bool = False,
        queued: int = 0,
    ) -> float:
        expected = self.rates.get(station_id, self.default_rate) * max(0.0, horizon)
        if use_queue_hint:
            expected += queued
        return max(0.0, expected)


class HistoricalDemandEstimator(DemandEstimator):
    """
    Empirical rate over a trailing window of observed bookings per station,
    scaled to the requested horizon. The window ends at the current sim time
    (see advance), so a quiet feed decays the forecast to zero.
    """

    def __init__(self, window_s: float = 3600.0):
        if window_s <= 0:
            raise ValueError("window_s must be > 0")
        self.window_s = window_s
        self._seen: dict[int, deque[float]] = {}
        self._now = 0.0

    def observe(self, station_id: int, t: float) -> None:
        self._seen.setdefault(station_id, deque()).append(t)
        self._now = max(self._now, t)

    def advance(self, now: float) -> None:
        self._now = max(self._now, now)

    def _count_recent(self, station_id: int) -> int:
        q = self._seen.get(station_id)
        if not q:
            return 0
        cutoff = self._now - self.window_s
        while q and q[0] < cutoff:
            q.popleft()
        return len(q)

    def predict(
        self,
        station_id: int,
        horizon: float,
        *,
        use_queue_hint: bool = False,
        queued: int = 0,
    ) -> float:
        rate = self._count_recent(station_id) / self.window_s
        expected = rate * max(0.0, horizon)
        if use_queue_hint:
            expected += queued
        return expected
