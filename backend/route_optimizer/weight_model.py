from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import UTC, datetime

from .geometry import point_segment_distance
from .logging_utils import log_event
from .models import (
    ActiveEvent,
    DayType,
    Density,
    ImpactLevel,
    RoadSegment,
    RoutingStrategy,
    SimulationContext,
    TimeOfDay,
    WeatherCondition,
)
from .road_graph import DENSITY_FACTOR, Graph, GraphEdge
from .settings import settings

# Commute peaks sit above midday; night is the quietest band.
_TIME_OF_DAY_MULTIPLIER: dict[TimeOfDay, float] = {
    TimeOfDay.MORNING: 1.5,
    TimeOfDay.AFTERNOON: 1.2,
    TimeOfDay.EVENING: 1.7,
    TimeOfDay.NIGHT: 0.8,
}

_DAY_TYPE_MULTIPLIER: dict[DayType, float] = {
    DayType.WEEKDAY: 1.2,
    DayType.WEEKEND: 1.0,
    DayType.HOLIDAY: 1.3,
}

_WEATHER_MULTIPLIER: dict[WeatherCondition, float] = {
    WeatherCondition.CLEAR: 1.0,
    WeatherCondition.RAIN: 1.3,
    WeatherCondition.FOG: 1.5,
    WeatherCondition.SNOW: 1.8,
}

_EVENT_IMPACT_MULTIPLIER: dict[ImpactLevel, float] = {
    ImpactLevel.LOW: 1.2,
    ImpactLevel.MEDIUM: 1.5,
    ImpactLevel.HIGH: 2.0,
    ImpactLevel.CRITICAL: 3.0,
}

# BALANCED swaps the base density spread for this flatter one.
_BALANCED_DENSITY_FACTOR: dict[Density, float] = {
    Density.LOW: 1.0,
    Density.MEDIUM: 1.25,
    Density.HIGH: 1.5,
    Density.CONGESTED: 2.0,
}

_AVOID_CONGESTION_PENALTY: dict[Density, float] = {
    Density.LOW: 1.0,
    Density.MEDIUM: 1.0,
    Density.HIGH: 2.5,
    Density.CONGESTED: 5.0,
}

_CONGESTED_DENSITIES = frozenset({Density.HIGH, Density.CONGESTED})


def time_factor(time_of_day: TimeOfDay) -> float:
    return _TIME_OF_DAY_MULTIPLIER.get(time_of_day, 1.0)


def day_factor(day_type: DayType) -> float:
    return _DAY_TYPE_MULTIPLIER.get(day_type, 1.0)


def weather_factor(weather: WeatherCondition) -> float:
    return _WEATHER_MULTIPLIER.get(weather, 1.0)


def event_impact_factor(impact_level: ImpactLevel) -> float:
    return _EVENT_IMPACT_MULTIPLIER.get(impact_level, 1.0)


def strategy_factor(strategy: RoutingStrategy, segment: RoadSegment | None) -> float:
    if segment is None or strategy == RoutingStrategy.SHORTEST_PATH:
        return 1.0
    if strategy == RoutingStrategy.BALANCED:
        return _BALANCED_DENSITY_FACTOR[segment.density] / DENSITY_FACTOR[segment.density]
    if strategy == RoutingStrategy.AVOID_CONGESTION:
        return _AVOID_CONGESTION_PENALTY[segment.density]
    return 1.0


def context_factor(context: SimulationContext | None) -> float:
    """Network-wide multiplier shared by every edge."""
    if context is None:
        return 1.0
    return (
        time_factor(context.time_of_day)
        * day_factor(context.day_type)
        * weather_factor(context.weather_condition)
    )


def select_active_events(events: Sequence[ActiveEvent] | None, now: datetime | None = None) -> list[ActiveEvent]:
    if not events:
        return []
    ref = now or datetime.now(UTC)
    if ref.tzinfo is None:
        ref = ref.replace(tzinfo=UTC)
    return [event for event in events if event.is_active(ref)]


def _event_affects(event: ActiveEvent, segment: RoadSegment, radius: float) -> bool:
    location = event.coordinates()
    if location is None:
        # No usable location: fall back to penalising already-busy roads.
        return segment.density in _CONGESTED_DENSITIES
    distance = point_segment_distance(
        location[0],
        location[1],
        segment.start_x,
        segment.start_y,
        segment.end_x,
        segment.end_y,
    )
    return distance <= radius


def event_factor(segment: RoadSegment | None, events: Sequence[ActiveEvent], *, radius: float | None = None) -> float:
    if segment is None or not events:
        return 1.0
    r = float(settings.event_proximity_radius if radius is None else radius)
    factor = 1.0
    for event in events:
        if _event_affects(event, segment, r):
            factor *= event_impact_factor(event.impact_level)
    return factor


def adjust_weights(
    graph: Graph,
    segments: Sequence[RoadSegment],
    context: SimulationContext | None = None,
    events: Sequence[ActiveEvent] | None = None,
    *,
    now: datetime | None = None,
) -> Graph:
    """Return a copy of ``graph`` whose edges carry context-adjusted weights.

    Weights are always recomputed from ``base_weight``, so repeated calls with
    the same inputs give identical results. The input graph is not modified.
    """
    active = select_active_events(events, now)
    floor = float(settings.weight_floor)
    shared = max(0.0, context_factor(context))
    strategy = context.routing_strategy if context is not None else RoutingStrategy.SHORTEST_PATH
    by_id = {segment.id: segment for segment in segments}

    factor_by_road: dict[int, float] = {}
    affected_roads = 0
    for road_id in {edge.road_id for edge in graph.edges()}:
        segment = by_id.get(road_id)
        ev = event_factor(segment, active)
        if ev != 1.0:
            affected_roads += 1
        factor_by_road[road_id] = shared * max(0.0, ev) * max(0.0, strategy_factor(strategy, segment))

    def _adjust(edge: GraphEdge) -> GraphEdge:
        weight = edge.base_weight * factor_by_road.get(edge.road_id, shared)
        return replace(edge, adjusted_weight=max(floor, weight))

    adjusted = Graph(
        nodes=graph.nodes,
        adjacency={node_id: tuple(_adjust(edge) for edge in edges) for node_id, edges in graph.adjacency.items()},
        component_by_node=graph.component_by_node,
        component_count=graph.component_count,
        segment_count=graph.segment_count,
    )
    log_event(
        "weights_adjusted",
        context=context.model_dump(mode="json") if context is not None else None,
        context_factor=round(shared, 6),
        active_event_count=len(active),
        event_affected_roads=affected_roads,
    )
    return adjusted
