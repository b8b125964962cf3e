# amod_dispatch/domain/mechanics/mechanics_core.py
from dataclasses import dataclass

from amod_dispatch.app.protocols import RoutePlanner
from amod_dispatch.domain.entities.geography import Path, Point
from amod_dispatch.domain.entities.motion import MovePlan, MoveTask


@dataclass
class Mechanics:
    """Routing plus constant-speed motion. Distances in meters, times in seconds."""

    route_planner: RoutePlanner
    speed_mps: float = 8.94

    def route(self, a: Point, b: Point) -> Path:
        return self.route_planner.route(a, b)

    def distance_m(self, a: Point, b: Point) -> float:
        return self.route_planner.distance_m(a, b)

    def eta_s(self, a: Point, b: Point) -> float:
        return self.distance_m(a, b) / max(0.1, self.speed_mps)

    def move_plan(self, a: Point, b: Point, t0: float) -> MovePlan:
        path = self.route(a, b)
        v = max(0.1, self.speed_mps)
        t = t0
        tasks = []
        for seg in path.segments:
            dt = seg.length_m / v
            tasks.append(MoveTask(start=seg.start, end=seg.end, start_t=t, end_t=t + dt))
            t += dt
        return MovePlan(tasks=tasks, total_length_m=path.total_length_m, start_t=t0, end_t=t)
