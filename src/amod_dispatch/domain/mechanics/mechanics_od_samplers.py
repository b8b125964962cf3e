import numpy as np

from amod_dispatch.app.protocols import OriginDestinationSampler
from amod_dispatch.domain.entities.geography import Point


class IdealizedODSampler(OriginDestinationSampler):
    """Uniform points inside weighted rectangular zones."""

    def __init__(
        self,
        *,
        zones: list[tuple[float, float, float, float]],
        weights: list[float] | None = None,
        rng,
    ):
        self.zones = list(zones)
        self.rng = rng
        self._p = self._normalize_weights(weights, len(self.zones))

    @staticmethod
    def _normalize_weights(weights, n):
        if not weights:
            return None  # uniform in Generator.choice
        w = np.asarray(weights, dtype=float)
        if w.shape != (n,):
            raise ValueError(f"zone weights must have length {n}, got {w.shape[0]}")
        if not np.isfinite(w).all():
            bad = np.where(~np.isfinite(w))[0]
            raise ValueError(f"zone weights must be finite; bad indices: {bad.tolist()}")
        s = w.sum()
        if s <= 0:
            raise ValueError("zone weights must sum to a positive value")
        return w / s

    def _pick(self):
        if self._p is None:
            idx = self.rng.integers(0, len(self.zones))
        else:
            idx = self.rng.choice(len(self.zones), p=self._p)
        return self.zones[int(idx)]

    def _uniform(self, rect):
        x0, y0, x1, y1 = rect
        return Point(float(self.rng.uniform(x0, x1)), float(self.rng.uniform(y0, y1)))

    def sample_origin(self) -> Point:
        return self._uniform(self._pick())

    def sample_destination(self) -> Point:
        return self._uniform(self._pick())
