# amod_dispatch/domain/stations.py
from collections.abc import Iterable

import numpy as np
from scipy.spatial import KDTree

from amod_dispatch.domain.entities.geography import Point
from amod_dispatch.domain.entities.station import Station

_TIE_EPS = 1e-9


class StationIndex:
    """
    Immutable nearest-station lookup over a fixed station set.
    Build a new index when the station set changes.
    """

    def __init__(self, stations: Iterable[Station]):
        by_id: dict[int, Station] = {}
        for s in stations:
            if s.id in by_id:
                raise ValueError(f"duplicate station id {s.id}")
            by_id[s.id] = s
        # sorted ids so tree index order doubles as id order
        self._ids: tuple[int, ...] = tuple(sorted(by_id))
        self._stations = by_id
        self._tree: KDTree | None = None
        if self._ids:
            pts = np.array([[by_id[i].loc.x, by_id[i].loc.y] for i in self._ids], dtype=float)
            self._tree = KDTree(pts)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, station_id: int) -> bool:
        return station_id in self._stations

    @property
    def station_ids(self) -> tuple[int, ...]:
        return self._ids

    def location(self, station_id: int) -> Point:
        return self._stations[station_id].loc

    def nearest_station(self, p: Point) -> int | None:
        """Closest station by Euclidean distance; equal distances resolve to the lowest id."""
        if self._tree is None:
            return None
        d, idx = self._tree.query([p.x, p.y], k=1)
        if not np.isfinite(d):
            return None
        ties = self._tree.query_ball_point([p.x, p.y], r=float(d) * (1 + 1e-12) + _TIE_EPS)
        if not ties:
            return self._ids[int(idx)]
        return self._ids[min(int(i) for i in ties)]
