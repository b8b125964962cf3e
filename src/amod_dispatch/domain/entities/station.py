# domain/entities/station.py
from dataclasses import dataclass

from amod_dispatch.domain.entities.geography import Point


@dataclass(frozen=True)
class Station:
    id: int
    loc: Point
