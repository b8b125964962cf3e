# amod_dispatch/app/controllers/fleet.py
import logging
from typing import Literal

from amod_dispatch.app.protocols import WorldStateProvider
from amod_dispatch.domain.entities.geography import Point
from amod_dispatch.domain.entities.vehicle import IdleVehicle, VehicleStatus
from amod_dispatch.domain.errors import InvalidWorldState
from amod_dispatch.domain.stations import StationIndex

log = logging.getLogger(__name__)

InFlightKind = Literal["booking", "rebalance"]


class AvailabilityTracker:
    """
    Dispatchable vehicles and the station each one is parked at.

    A vehicle id is either available or in flight, never both. Every vehicle
    counted at a station is available.
    """

    def __init__(self, index: StationIndex):
        self.index = index
        self.available: set[int] = set()
        self.in_flight: dict[int, InFlightKind] = {}
        self.station_of: dict[int, int] = {}
        self._at_station: dict[int, set[int]] = {sid: set() for sid in index.station_ids}
        self._positions: dict[int, Point] = {}

    def __len__(self) -> int:
        return len(self.available)

    def __contains__(self, vehicle_id: int) -> bool:
        return vehicle_id in self.available

    # ------------ world sync --------------

    @staticmethod
    def _read(world: WorldStateProvider) -> dict[int, tuple[VehicleStatus, Point]]:
        seen: dict[int, tuple[VehicleStatus, Point]] = {}
        try:
            vehicles = list(world.vehicles())
        except Exception as exc:
            raise InvalidWorldState(f"cannot list vehicles: {exc}") from exc
        for v in vehicles:
            vid = getattr(v, "id", None)
            status = getattr(v, "status", None)
            pos = getattr(v, "position", None)
            if not isinstance(vid, int) or not isinstance(status, VehicleStatus):
                raise InvalidWorldState(f"malformed vehicle record {v!r}")
            if not isinstance(pos, Point):
                raise InvalidWorldState(f"vehicle {vid} has no position")
            if vid in seen:
                raise InvalidWorldState(f"duplicate vehicle id {vid}")
            seen[vid] = (status, pos)
        return seen

    def refresh(self, world: WorldStateProvider) -> None:
        """
        Re-read vehicle status from the world. Everything is validated before any
        tracker state changes, so a malformed world leaves the tracker untouched.
        """
        seen = self._read(world)

        available = {vid for vid, (status, _) in seen.items() if status.dispatchable}
        arrived = [vid for vid in self.in_flight if vid in available]
        in_flight = {
            vid: kind
            for vid, kind in self.in_flight.items()
            if vid in seen and vid not in available
        }

        station_of: dict[int, int] = {}
        for vid in available:
            keep = vid in self.available and vid in self.station_of
            sid = self.station_of[vid] if keep else self.index.nearest_station(seen[vid][1])
            if sid is not None:
                station_of[vid] = sid

        at_station: dict[int, set[int]] = {sid: set() for sid in self.index.station_ids}
        for vid, sid in station_of.items():
            at_station[sid].add(vid)

        self.available = available
        self.in_flight = in_flight
        self.station_of = station_of
        self._at_station = at_station
        self._positions = {vid: seen[vid][1] for vid in available}
        if arrived:
            log.debug("vehicles arrived", extra={"extra": {"vehicle_ids": sorted(arrived)}})

    def rebuild(self, index: StationIndex) -> None:
        """Swap in a new station index and re-home every available vehicle."""
        self.index = index
        self.station_of = {}
        self._at_station = {sid: set() for sid in index.station_ids}
        for vid in self.available:
            sid = index.nearest_station(self._positions[vid])
            if sid is not None:
                self.station_of[vid] = sid
                self._at_station[sid].add(vid)

    def mark_dispatched(self, vehicle_id: int, kind: InFlightKind) -> None:
        if vehicle_id not in self.available:
            raise KeyError(f"vehicle {vehicle_id} is not available")
        self.available.discard(vehicle_id)
        self._positions.pop(vehicle_id, None)
        sid = self.station_of.pop(vehicle_id, None)
        if sid is not None:
            self._at_station[sid].discard(vehicle_id)
        self.in_flight[vehicle_id] = kind

    # ------------ snapshots --------------

    def snapshot(self) -> tuple[IdleVehicle, ...]:
        return tuple(
            IdleVehicle(id=vid, position=self._positions[vid], station_id=self.station_of.get(vid))
            for vid in sorted(self.available)
        )

    def vehicles_at(self, station_id: int) -> tuple[int, ...]:
        return tuple(sorted(self._at_station.get(station_id, ())))

    def station_vehicles(self) -> dict[int, tuple[int, ...]]:
        return {sid: self.vehicles_at(sid) for sid in self.index.station_ids}

    def occupancy(self) -> dict[int, int]:
        return {sid: len(vids) for sid, vids in self._at_station.items()}

    def en_route(self, kind: InFlightKind | None = None) -> set[int]:
        return {vid for vid, k in self.in_flight.items() if kind is None or k == kind}
