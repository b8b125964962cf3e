from dataclasses import dataclass

from amod_dispatch.domain.entities.geography import Point


@dataclass
class MoveTask:
    start: Point
    end: Point
    start_t: float
    end_t: float

    def frac(self, t: float) -> float:
        if t <= self.start_t:
            return 0.0
        if t >= self.end_t:
            return 1.0
        return (t - self.start_t) / (self.end_t - self.start_t)

    def pos(self, t: float) -> Point:
        f = self.frac(t)
        return Point(
            self.start.x + f * (self.end.x - self.start.x),
            self.start.y + f * (self.end.y - self.start.y),
        )


@dataclass
class MovePlan:
    tasks: list[MoveTask]
    total_length_m: float
    start_t: float
    end_t: float

    def pos(self, t: float) -> Point:
        if t <= self.start_t:
            return self.tasks[0].start
        if t >= self.end_t:
            return self.tasks[-1].end
        # few segments per plan; linear scan is fine
        for m in self.tasks:
            if t <= m.end_t:
                return m.pos(t)
        return self.tasks[-1].end

    def then(self, other: "MovePlan") -> "MovePlan":
        """Concatenate a follow-on leg that starts where this one ends."""
        return MovePlan(
            tasks=self.tasks + other.tasks,
            total_length_m=self.total_length_m + other.total_length_m,
            start_t=self.start_t,
            end_t=other.end_t,
        )
