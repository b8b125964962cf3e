import math
from dataclasses import dataclass


# Core geometry types used by mechanics and the station index
@dataclass(frozen=True)
class Point:
    x: float  # meters in projected CRS
    y: float

    def dist(self, other: "Point") -> float:
        return math.hypot(other.x - self.x, other.y - self.y)


@dataclass(frozen=True)
class Segment:
    start: Point
    end: Point
    length_m: float


@dataclass
class Path:
    segments: list[Segment]
    total_length_m: float
