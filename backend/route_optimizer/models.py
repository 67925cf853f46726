from __future__ import annotations

import math
import re
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .settings import settings


class RoadType(str, Enum):
    HIGHWAY = "HIGHWAY"
    NORMAL = "NORMAL"
    RESIDENTIAL = "RESIDENTIAL"


class Density(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CONGESTED = "CONGESTED"


class TimeOfDay(str, Enum):
    MORNING = "MORNING"
    AFTERNOON = "AFTERNOON"
    EVENING = "EVENING"
    NIGHT = "NIGHT"


class DayType(str, Enum):
    WEEKDAY = "WEEKDAY"
    WEEKEND = "WEEKEND"
    HOLIDAY = "HOLIDAY"


class WeatherCondition(str, Enum):
    CLEAR = "CLEAR"
    RAIN = "RAIN"
    SNOW = "SNOW"
    FOG = "FOG"


class RoutingStrategy(str, Enum):
    SHORTEST_PATH = "SHORTEST_PATH"
    BALANCED = "BALANCED"
    AVOID_CONGESTION = "AVOID_CONGESTION"


class EventStatus(str, Enum):
    UPCOMING = "UPCOMING"
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ImpactLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


ALGORITHMS: tuple[str, ...] = ("dijkstra", "astar")

_LOCATION_RE = re.compile(r"^\s*\(?\s*(-?\d+(?:\.\d+)?)\s*[,;\s]\s*(-?\d+(?:\.\d+)?)\s*\)?\s*$")


def _is_finite_number(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(float(value))


def _upper_enum_value(value: object) -> object:
    if isinstance(value, str):
        return value.strip().upper()
    return value


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RoadSegment(_CamelModel):
    """One road as stored by the map owner. Read-only input to the engine."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: int
    start_x: float
    start_y: float
    end_x: float
    end_y: float
    road_type: RoadType = RoadType.NORMAL
    density: Density = Density.LOW

    @field_validator("road_type", "density", mode="before")
    @classmethod
    def upper_enums(cls, v: object) -> object:
        return _upper_enum_value(v)

    @field_validator("start_x", "start_y", "end_x", "end_y")
    @classmethod
    def finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("coordinate must be finite")
        return v

    @property
    def length(self) -> float:
        return math.hypot(self.end_x - self.start_x, self.end_y - self.start_y)


class SimulationContext(_CamelModel):
    """Contextual conditions. Missing or empty fields fall back to their defaults."""

    time_of_day: TimeOfDay = TimeOfDay.MORNING
    day_type: DayType = DayType.WEEKDAY
    weather_condition: WeatherCondition = WeatherCondition.CLEAR
    routing_strategy: RoutingStrategy = RoutingStrategy.SHORTEST_PATH

    @model_validator(mode="before")
    @classmethod
    def drop_empty_fields(cls, value: object) -> object:
        if not isinstance(value, dict):
            return value
        return {k: v for k, v in value.items() if v is not None and v != ""}

    @field_validator("time_of_day", "day_type", "weather_condition", "routing_strategy", mode="before")
    @classmethod
    def upper_enums(cls, v: object) -> object:
        return _upper_enum_value(v)


class ActiveEvent(_CamelModel):
    id: int
    name: str = ""
    status: EventStatus = EventStatus.UPCOMING
    impact_level: ImpactLevel = ImpactLevel.MEDIUM
    start_date: datetime | None = None
    end_date: datetime | None = None
    location: str = ""
    x: float | None = None
    y: float | None = None

    @field_validator("status", "impact_level", mode="before")
    @classmethod
    def upper_enums(cls, v: object) -> object:
        return _upper_enum_value(v)

    @field_validator("start_date", "end_date")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    def coordinates(self) -> tuple[float, float] | None:
        """Nominal event location, from explicit x/y or an "x,y" location string."""
        if self.x is not None and self.y is not None and _is_finite_number(self.x) and _is_finite_number(self.y):
            return (float(self.x), float(self.y))
        match = _LOCATION_RE.match(self.location or "")
        if match is None:
            return None
        return (float(match.group(1)), float(match.group(2)))

    def is_active(self, now: datetime) -> bool:
        if self.status not in (EventStatus.UPCOMING, EventStatus.ONGOING):
            return False
        # Open-ended events are never considered active.
        return self.end_date is not None and self.end_date >= now


class Coordinate(_CamelModel):
    x: float
    y: float


class RoadInfo(_CamelModel):
    """Road id in a path, decorated with the source segment when it is known."""

    id: int
    start_x: float | None = None
    start_y: float | None = None
    end_x: float | None = None
    end_y: float | None = None
    road_type: RoadType | None = None
    density: Density | None = None


class PathResult(_CamelModel):
    algorithm: str
    node_path: list[int]
    road_path: list[RoadInfo]
    coordinate_path: list[Coordinate]
    total_weight: float = Field(..., ge=0.0)
    estimated_time_minutes: int = Field(..., ge=0)


class PathComparison(_CamelModel):
    dijkstra: PathResult | None = None
    astar: PathResult | None = None


def _default_algorithm() -> str:
    return settings.default_algorithm


class PathQuery(_CamelModel):
    """Validated request configuration. Every recognised option and its default lives here."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    segments: list[RoadSegment] = Field(default_factory=list)
    start_x: float
    start_y: float
    end_x: float
    end_y: float
    algorithm: str = Field(default_factory=_default_algorithm)
    simulation_params: SimulationContext | None = None
    events: list[ActiveEvent] = Field(default_factory=list)
    map_id: int | None = None

    @field_validator("start_x", "start_y", "end_x", "end_y")
    @classmethod
    def finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("coordinate must be finite")
        return v

    @field_validator("algorithm", mode="before")
    @classmethod
    def known_algorithm(cls, v: object) -> object:
        if v is None or v == "":
            return settings.default_algorithm
        if not isinstance(v, str):
            raise ValueError("algorithm must be a string")
        algo = v.strip().lower()
        if algo not in ALGORITHMS:
            raise ValueError(f"unknown algorithm '{v}'")
        return algo
