import os
from math import isfinite
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator


class SimModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    epoch: tuple[int, int, int, int, int, int]
    seed: int
    duration: int  # seconds
    step_s: float = 1.0  # tick length

    @field_validator("step_s")
    @classmethod
    def _positive_step(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("step_s must be > 0")
        return v


class LogModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False
    sample_every: int = 1
    events_file: str | None = None  # business events as JSONL; stdout when None


# ----------------- WORLD ---------------------


class RoutePlannerEuclideanModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: Literal["euclidean"] = "euclidean"


class RoutePlannerManhattanModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: Literal["manhattan"] = "manhattan"


RoutePlannerUnion = Annotated[
    RoutePlannerEuclideanModel | RoutePlannerManhattanModel,
    Field(discriminator="kind"),
]


class WorldModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    speed_mps: float = 8.94
    route_planner: RoutePlannerUnion = Field(default_factory=RoutePlannerEuclideanModel)
    # (x0, y0, x1, y1); points outside have no route
    bounds: tuple[float, float, float, float] | None = None
    location_tolerance: float = 1e-6

    @field_validator("speed_mps")
    @classmethod
    def _positive_speed(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("speed_mps must be > 0")
        return v


class StationModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    id: int
    x: float
    y: float


class VehicleModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    id: int
    x: float
    y: float


class FleetModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    vehicles: list[VehicleModel] = Field(default_factory=list)
    per_station: int = 0  # extra vehicles parked at every station at t=0

    @model_validator(mode="after")
    def _unique_ids(self):
        ids = [v.id for v in self.vehicles]
        if len(ids) != len(set(ids)):
            raise ValueError("vehicle ids must be unique")
        return self


# ------------------ MATCHING -----------------------------


class MatchingModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    strategy: Literal["optimal", "greedy"] = "optimal"
    distance_weight: float = 1.0
    waiting_weight: float = 1.0
    interval_s: float = 60.0

    @field_validator("distance_weight", "waiting_weight")
    @classmethod
    def _nonneg(cls, v: float, info: ValidationInfo) -> float:
        if v < 0 or not isfinite(v):
            raise ValueError(f"{info.field_name} must be finite and >= 0")
        return v


# ------------------ REBALANCING -----------------------------


class EstimatorFixedModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: Literal["fixed"] = "fixed"
    rates: dict[int, float] = Field(default_factory=dict)  # station_id -> bookings/s
    default_rate: float = 0.0


class EstimatorHistoricalModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: Literal["historical"] = "historical"
    window_s: float = 3600.0


EstimatorUnion = Annotated[
    EstimatorFixedModel | EstimatorHistoricalModel, Field(discriminator="kind")
]


class RebalancingModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    interval_s: float = 300.0  # <= 0 disables rebalancing
    use_current_queue: bool = False
    estimator: EstimatorUnion = Field(default_factory=EstimatorFixedModel)


# --------------------- BOOKINGS -------------------------


class BookingSourceNoneModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: Literal["none"] = "none"


class BookingSourceCsvModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: Literal["csv"] = "csv"
    file: str

    @field_validator("file")
    @classmethod
    def _expand(cls, v: str) -> str:
        return os.path.expandvars(os.path.expanduser(v))


class BookingSourceSampledModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: Literal["sampled"] = "sampled"
    rate_per_s: float = 0.01
    zones: list[tuple[float, float, float, float]] = Field(
        default_factory=lambda: [(0, 0, 10_000, 10_000)]
    )
    weights: list[float] | None = None

    @field_validator("weights", mode="before")
    @classmethod
    def _empty_to_none(cls, v):
        # [] or "" should mean "uniform"
        if v is None:
            return None
        if isinstance(v, (list, tuple, str)) and len(v) == 0:
            return None
        return v

    @model_validator(mode="after")
    def _check(self):
        if self.rate_per_s <= 0:
            raise ValueError("rate_per_s must be > 0")
        if self.weights is None:
            return self
        n = len(self.zones)
        w = self.weights
        if len(w) != n:
            raise ValueError(f"zone weights must have length {n}, got {len(w)}")
        if any(not isfinite(float(x)) for x in w):
            raise ValueError("zone weights must be finite")
        if sum(float(x) for x in w) <= 0:
            raise ValueError("zone weights must sum to a positive value")
        return self


BookingSourceUnion = Annotated[
    BookingSourceNoneModel | BookingSourceCsvModel | BookingSourceSampledModel,
    Field(discriminator="kind"),
]


# ------------------------------------------------------------------


class ScenarioModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    name: str
    run_id: str
    sim: SimModel
    log: LogModel = LogModel()
    world: WorldModel = WorldModel()
    stations: list[StationModel] = Field(default_factory=list)
    fleet: FleetModel = FleetModel()
    matching: MatchingModel = MatchingModel()
    rebalancing: RebalancingModel = RebalancingModel()
    bookings: BookingSourceUnion = Field(default_factory=BookingSourceNoneModel)

    @model_validator(mode="after")
    def _check_stations(self):
        ids = [s.id for s in self.stations]
        if len(ids) != len(set(ids)):
            raise ValueError("station ids must be unique")
        if self.fleet.per_station and not self.stations:
            raise ValueError("fleet.per_station needs at least one station")
        return self
