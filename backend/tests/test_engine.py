from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Any

import pytest
from pydantic import ValidationError

from route_optimizer.engine import compare_paths, find_path, load_query, run_query
from route_optimizer.graph_cache import clear_graph_cache
from route_optimizer.metrics_store import metrics_snapshot, reset_metrics
from route_optimizer.models import ActiveEvent, PathComparison, PathResult, RoadSegment, SimulationContext
from route_optimizer.path_search import SEARCH_ALGORITHMS
from route_optimizer.road_graph import Graph
from route_optimizer.routing_errors import (
    EmptyGraphError,
    InvalidAlgorithmError,
    InvalidCoordinatesError,
    NoPathError,
)

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)


def _segments() -> list[RoadSegment]:
    return [
        RoadSegment(id=1, start_x=0, start_y=0, end_x=10, end_y=0, road_type="HIGHWAY", density="LOW"),
        RoadSegment(id=2, start_x=10, start_y=0, end_x=10, end_y=10, road_type="NORMAL", density="MEDIUM"),
    ]


def _payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "segments": [
            {"id": 1, "startX": 0, "startY": 0, "endX": 10, "endY": 0, "roadType": "HIGHWAY", "density": "LOW"},
            {"id": 2, "startX": 10, "startY": 0, "endX": 10, "endY": 10, "roadType": "NORMAL", "density": "MEDIUM"},
        ],
        "startX": 0,
        "startY": 0,
        "endX": 10,
        "endY": 10,
    }
    payload.update(overrides)
    return payload


@pytest.fixture(autouse=True)
def _fresh_state():
    clear_graph_cache()
    reset_metrics()
    yield
    clear_graph_cache()


def test_find_path_end_to_end() -> None:
    result = find_path(_segments(), 0, 0, 10, 10)

    assert isinstance(result, PathResult)
    assert result.algorithm == "astar"
    assert result.node_path == [1, 2, 3]
    assert [road.id for road in result.road_path] == [1, 2]
    assert result.total_weight == pytest.approx(22.0)
    assert result.estimated_time_minutes == 44
    assert len(result.coordinate_path) == len(result.node_path)


def test_find_path_snaps_coordinates_to_nearest_nodes() -> None:
    result = find_path(_segments(), 0.3, -0.2, 11.0, 9.5, algorithm="dijkstra")

    assert result.node_path == [1, 2, 3]
    assert (result.coordinate_path[0].x, result.coordinate_path[0].y) == (0.0, 0.0)


@pytest.mark.parametrize("algorithm", ["DIJKSTRA", "Dijkstra", " dijkstra "])
def test_algorithm_name_is_case_insensitive(algorithm: str) -> None:
    result = find_path(_segments(), 0, 0, 10, 10, algorithm=algorithm)
    assert result.algorithm == "dijkstra"


def test_weather_context_increases_cost() -> None:
    clear = find_path(_segments(), 0, 0, 10, 10, simulation=SimulationContext(weather_condition="CLEAR"))
    snow = find_path(_segments(), 0, 0, 10, 10, simulation=SimulationContext(weather_condition="SNOW"))

    assert snow.total_weight > clear.total_weight
    assert snow.estimated_time_minutes > clear.estimated_time_minutes


def test_empty_context_uses_default_conditions() -> None:
    query = load_query(_payload(simulationParams={}))
    result = run_query(query)

    assert isinstance(result, PathResult)
    assert result.total_weight == pytest.approx(22.0 * 1.5 * 1.2)


def test_active_events_raise_cost_only_under_a_simulation_context() -> None:
    active = ActiveEvent(
        id=1,
        name="Parade",
        status="ONGOING",
        impact_level="HIGH",
        location="5,2",
        end_date=datetime(2026, 5, 2, tzinfo=UTC),
    )
    expired = ActiveEvent(
        id=2,
        name="Old fair",
        status="ONGOING",
        impact_level="CRITICAL",
        location="5,2",
        end_date=datetime(2026, 4, 1, tzinfo=UTC),
    )
    night = SimulationContext(time_of_day="NIGHT", day_type="WEEKEND")

    baseline = find_path(_segments(), 0, 0, 10, 10, simulation=night, now=NOW)
    with_events = find_path(_segments(), 0, 0, 10, 10, simulation=night, events=[active, expired], now=NOW)
    no_context = find_path(_segments(), 0, 0, 10, 10, events=[active, expired], now=NOW)

    assert baseline.total_weight == pytest.approx(22.0 * 0.8)
    assert with_events.total_weight == pytest.approx(22.0 * 0.8 * 2.0)
    assert no_context.total_weight == pytest.approx(22.0)
    assert no_context.estimated_time_minutes == 44


def test_compare_paths_ignores_events_without_simulation_context() -> None:
    event = ActiveEvent(
        id=1,
        name="Parade",
        status="ONGOING",
        impact_level="CRITICAL",
        location="5,2",
        end_date=datetime(2026, 5, 2, tzinfo=UTC),
    )

    comparison = compare_paths(_segments(), 0, 0, 10, 10, events=[event], now=NOW)

    assert comparison.dijkstra is not None and comparison.astar is not None
    assert comparison.dijkstra.total_weight == pytest.approx(22.0)
    assert comparison.astar.total_weight == pytest.approx(22.0)


def test_events_without_end_date_are_not_active() -> None:
    open_ended = ActiveEvent(id=3, name="Roadworks", status="ONGOING", impact_level="HIGH", location="5,2")

    result = find_path(_segments(), 0, 0, 10, 10, simulation=SimulationContext(), events=[open_ended], now=NOW)

    assert result.total_weight == pytest.approx(22.0 * 1.5 * 1.2)


def test_compare_paths_returns_both_algorithms() -> None:
    comparison = compare_paths(_segments(), 0, 0, 10, 10, simulation=SimulationContext(routing_strategy="BALANCED"))

    assert isinstance(comparison, PathComparison)
    assert comparison.dijkstra is not None and comparison.astar is not None
    assert comparison.dijkstra.algorithm == "dijkstra"
    assert comparison.astar.algorithm == "astar"
    assert comparison.dijkstra.total_weight == pytest.approx(comparison.astar.total_weight)


def test_compare_paths_keeps_surviving_side(monkeypatch: pytest.MonkeyPatch) -> None:
    def _no_path(graph: Graph, start: int, end: int):
        raise NoPathError(details={"start": start, "end": end})

    monkeypatch.setitem(SEARCH_ALGORITHMS, "dijkstra", _no_path)
    comparison = compare_paths(_segments(), 0, 0, 10, 10)

    assert comparison.dijkstra is None
    assert comparison.astar is not None
    assert comparison.astar.node_path == [1, 2, 3]


def test_compare_paths_raises_when_both_fail() -> None:
    segments = [
        RoadSegment(id=1, start_x=0, start_y=0, end_x=10, end_y=0),
        RoadSegment(id=2, start_x=100, start_y=100, end_x=110, end_y=100),
    ]

    with pytest.raises(NoPathError) as excinfo:
        compare_paths(segments, 0, 0, 110, 100)
    assert excinfo.value.details is not None
    assert set(excinfo.value.details["failures"]) == {"dijkstra", "astar"}


def test_find_path_error_kinds() -> None:
    with pytest.raises(EmptyGraphError):
        find_path([], 0, 0, 1, 1)
    with pytest.raises(InvalidCoordinatesError):
        find_path(_segments(), math.nan, 0, 10, 10)
    with pytest.raises(InvalidCoordinatesError):
        find_path(_segments(), "abc", 0, 10, 10)  # type: ignore[arg-type]
    with pytest.raises(InvalidCoordinatesError):
        compare_paths(_segments(), 0, 0, math.inf, 10)
    with pytest.raises(InvalidAlgorithmError) as excinfo:
        find_path(_segments(), 0, 0, 10, 10, algorithm="bfs")
    assert excinfo.value.reason_code == "invalid_algorithm"


def test_disconnected_endpoints_raise_no_path() -> None:
    segments = [
        RoadSegment(id=1, start_x=0, start_y=0, end_x=10, end_y=0),
        RoadSegment(id=2, start_x=100, start_y=100, end_x=110, end_y=100),
    ]

    with pytest.raises(NoPathError):
        find_path(segments, 0, 0, 110, 100, algorithm="astar")


def test_load_query_accepts_camel_case_and_defaults() -> None:
    query = load_query(_payload(mapId=7, extraField="ignored"))

    assert query.start_x == 0.0
    assert query.end_y == 10.0
    assert query.algorithm == "astar"
    assert query.map_id == 7
    assert query.simulation_params is None
    assert query.events == []
    assert [segment.id for segment in query.segments] == [1, 2]


def test_load_query_maps_validation_errors_to_routing_errors() -> None:
    payload = _payload()
    payload.pop("startX")
    with pytest.raises(InvalidCoordinatesError):
        load_query(payload)
    with pytest.raises(InvalidCoordinatesError):
        load_query(_payload(endY="abc"))
    with pytest.raises(InvalidCoordinatesError):
        load_query(_payload(startY=float("nan")))
    with pytest.raises(InvalidAlgorithmError):
        load_query(_payload(algorithm="bfs"))
    with pytest.raises(ValidationError):
        load_query(_payload(simulationParams={"weatherCondition": "HAIL"}))


def test_run_query_dispatches_compare_mode() -> None:
    query = load_query(_payload(algorithm="DIJKSTRA"))

    single = run_query(query)
    assert isinstance(single, PathResult)
    assert single.algorithm == "dijkstra"

    both = run_query(query, compare=True)
    assert isinstance(both, PathComparison)
    assert both.dijkstra is not None and both.astar is not None


def test_operations_are_recorded_in_metrics() -> None:
    find_path(_segments(), 0, 0, 10, 10)
    with pytest.raises(InvalidAlgorithmError):
        find_path(_segments(), 0, 0, 10, 10, algorithm="bfs")
    compare_paths(_segments(), 0, 0, 10, 10)

    snapshot = metrics_snapshot()
    operations = snapshot["operations"]
    assert isinstance(operations, dict)
    assert operations["find_path"]["call_count"] == 2
    assert operations["find_path"]["error_count"] == 1
    assert operations["find_path"]["errors_by_reason"] == {"invalid_algorithm": 1}
    assert operations["compare_paths"]["call_count"] == 1
    assert snapshot["total_errors"] == 1


def test_map_id_requests_share_cached_graph() -> None:
    first = find_path(_segments(), 0, 0, 10, 10, map_id=3)
    second = find_path(_segments(), 0, 0, 10, 10, map_id=3, simulation=SimulationContext(time_of_day="NIGHT"))
    third = find_path(_segments(), 0, 0, 10, 10, map_id=3)

    assert first.total_weight == pytest.approx(third.total_weight)
    assert second.total_weight == pytest.approx(22.0 * 0.8 * 1.2)
