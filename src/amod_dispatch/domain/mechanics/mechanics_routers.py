import math

from amod_dispatch.app.protocols import RoutePlanner
from amod_dispatch.domain.entities.geography import Path, Point, Segment


class EuclidRoutePlanner(RoutePlanner):
    def route(self, a: Point, b: Point) -> Path:
        L = math.hypot(b.x - a.x, b.y - a.y)
        return Path([Segment(a, b, L)], L)

    def distance_m(self, a: Point, b: Point) -> float:
        return math.hypot(b.x - a.x, b.y - a.y)


class ManhattanRoutePlanner(RoutePlanner):
    def route(self, a: Point, b: Point) -> Path:
        dx, dy = b.x - a.x, b.y - a.y
        corner = Point(b.x, a.y)
        segs = [Segment(a, corner, abs(dx)), Segment(corner, b, abs(dy))]
        return Path(segs, abs(dx) + abs(dy))

    def distance_m(self, a: Point, b: Point) -> float:
        return abs(b.x - a.x) + abs(b.y - a.y)
