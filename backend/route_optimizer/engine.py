from __future__ import annotations

import math
import time
import uuid
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from .geometry import nearest_node
from .graph_cache import cached_build_graph
from .logging_utils import log_event
from .metrics_store import record_operation
from .models import ALGORITHMS, ActiveEvent, PathComparison, PathQuery, PathResult, RoadSegment, SimulationContext
from .path_assembler import assemble
from .path_search import SEARCH_ALGORITHMS
from .road_graph import Graph
from .routing_errors import InvalidAlgorithmError, InvalidCoordinatesError, NoPathError, RoutingError
from .settings import settings
from .weight_model import adjust_weights, select_active_events

_COORDINATE_FIELDS = ("start_x", "start_y", "end_x", "end_y")


def _validate_coordinates(**coords: object) -> dict[str, float]:
    out: dict[str, float] = {}
    for name, value in coords.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(float(value)):
            raise InvalidCoordinatesError(
                f"{name} must be a finite number",
                details={"field": name, "value": repr(value)},
            )
        out[name] = float(value)
    return out


def normalise_algorithm(algorithm: str | None) -> str:
    if algorithm is None or algorithm == "":
        return settings.default_algorithm
    algo = str(algorithm).strip().lower()
    if algo not in ALGORITHMS:
        raise InvalidAlgorithmError(details={"algorithm": algorithm})
    return algo


def _prepare_graph(
    segments: Sequence[RoadSegment],
    *,
    simulation: SimulationContext | None,
    events: Sequence[ActiveEvent] | None,
    map_id: int | None,
    now: datetime | None,
) -> Graph:
    graph = cached_build_graph(segments, map_id=map_id)
    # Without a simulation context the map is routed on base weights; events are ignored.
    if simulation is None:
        return graph
    return adjust_weights(graph, segments, simulation, select_active_events(events, now), now=now)


def _search(graph: Graph, segments: Sequence[RoadSegment], start: int, end: int, algorithm: str) -> PathResult:
    raw = SEARCH_ALGORITHMS[algorithm](graph, start, end)
    result = assemble(raw, graph, segments, algorithm=algorithm)
    log_event(
        "path_search",
        algorithm=algorithm,
        start_node=start,
        end_node=end,
        explored_nodes=raw.explored,
        hops=len(raw.edges),
        total_weight=round(result.total_weight, 6),
    )
    return result


def _elapsed_ms(t0: float) -> float:
    return round((time.perf_counter() - t0) * 1000, 2)


def find_path(
    segments: Sequence[RoadSegment],
    start_x: float,
    start_y: float,
    end_x: float,
    end_y: float,
    *,
    algorithm: str | None = None,
    simulation: SimulationContext | None = None,
    events: Sequence[ActiveEvent] | None = None,
    map_id: int | None = None,
    now: datetime | None = None,
) -> PathResult:
    """Shortest path between two map coordinates.

    Raises a ``RoutingError`` subclass for every failure; no partial result is
    ever returned.
    """
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()
    algo = algorithm
    try:
        algo = normalise_algorithm(algorithm)
        coords = _validate_coordinates(start_x=start_x, start_y=start_y, end_x=end_x, end_y=end_y)
        graph = _prepare_graph(segments, simulation=simulation, events=events, map_id=map_id, now=now)
        start = nearest_node(graph, coords["start_x"], coords["start_y"])
        end = nearest_node(graph, coords["end_x"], coords["end_y"])
        result = _search(graph, segments, start, end, algo)
    except RoutingError as exc:
        duration_ms = _elapsed_ms(t0)
        record_operation("find_path", duration_ms=duration_ms, reason_code=exc.reason_code)
        log_event(
            "find_path_failed",
            request_id=request_id,
            map_id=map_id,
            algorithm=algo,
            reason_code=exc.reason_code,
            error=exc.message,
            details=exc.details,
            duration_ms=duration_ms,
        )
        raise

    duration_ms = _elapsed_ms(t0)
    record_operation("find_path", duration_ms=duration_ms)
    log_event(
        "find_path",
        request_id=request_id,
        map_id=map_id,
        algorithm=algo,
        segment_count=len(segments),
        simulation=simulation.model_dump(mode="json") if simulation is not None else None,
        node_count=len(result.node_path),
        road_count=len(result.road_path),
        total_weight=round(result.total_weight, 6),
        estimated_time_minutes=result.estimated_time_minutes,
        duration_ms=duration_ms,
    )
    return result


def compare_paths(
    segments: Sequence[RoadSegment],
    start_x: float,
    start_y: float,
    end_x: float,
    end_y: float,
    *,
    simulation: SimulationContext | None = None,
    events: Sequence[ActiveEvent] | None = None,
    map_id: int | None = None,
    now: datetime | None = None,
) -> PathComparison:
    """Run both algorithms over the same adjusted graph.

    Each side is ``None`` when that algorithm finds no path; ``NoPathError``
    is raised only when neither does.
    """
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()
    try:
        coords = _validate_coordinates(start_x=start_x, start_y=start_y, end_x=end_x, end_y=end_y)
        graph = _prepare_graph(segments, simulation=simulation, events=events, map_id=map_id, now=now)
        start = nearest_node(graph, coords["start_x"], coords["start_y"])
        end = nearest_node(graph, coords["end_x"], coords["end_y"])

        results: dict[str, PathResult | None] = {}
        failures: dict[str, str] = {}
        for algo in ALGORITHMS:
            try:
                results[algo] = _search(graph, segments, start, end, algo)
            except NoPathError as exc:
                results[algo] = None
                failures[algo] = exc.message
        if all(result is None for result in results.values()):
            raise NoPathError(details={"start_node": start, "end_node": end, "failures": failures})
    except RoutingError as exc:
        duration_ms = _elapsed_ms(t0)
        record_operation("compare_paths", duration_ms=duration_ms, reason_code=exc.reason_code)
        log_event(
            "compare_paths_failed",
            request_id=request_id,
            map_id=map_id,
            reason_code=exc.reason_code,
            error=exc.message,
            details=exc.details,
            duration_ms=duration_ms,
        )
        raise

    comparison = PathComparison(dijkstra=results["dijkstra"], astar=results["astar"])
    duration_ms = _elapsed_ms(t0)
    record_operation("compare_paths", duration_ms=duration_ms)
    log_event(
        "compare_paths",
        request_id=request_id,
        map_id=map_id,
        segment_count=len(segments),
        dijkstra_weight=round(comparison.dijkstra.total_weight, 6) if comparison.dijkstra else None,
        astar_weight=round(comparison.astar.total_weight, 6) if comparison.astar else None,
        failures=failures,
        duration_ms=duration_ms,
    )
    return comparison


def load_query(payload: Mapping[str, Any]) -> PathQuery:
    """Validate a loosely-typed request body into a ``PathQuery``.

    Coordinate and algorithm problems surface as typed routing errors; other
    schema problems propagate as pydantic ``ValidationError``.
    """
    try:
        return PathQuery.model_validate(dict(payload))
    except ValidationError as exc:
        for error in exc.errors():
            loc = error.get("loc", ())
            field = str(loc[0]) if loc else ""
            if field in _COORDINATE_FIELDS or field in {"startX", "startY", "endX", "endY"}:
                raise InvalidCoordinatesError(
                    f"{field} must be a finite number",
                    details={"field": field, "error": error.get("msg", "")},
                ) from exc
            if field == "algorithm":
                raise InvalidAlgorithmError(details={"algorithm": payload.get("algorithm")}) from exc
        raise


def run_query(query: PathQuery, *, compare: bool = False) -> PathResult | PathComparison:
    if compare:
        return compare_paths(
            query.segments,
            query.start_x,
            query.start_y,
            query.end_x,
            query.end_y,
            simulation=query.simulation_params,
            events=query.events,
            map_id=query.map_id,
        )
    return find_path(
        query.segments,
        query.start_x,
        query.start_y,
        query.end_x,
        query.end_y,
        algorithm=query.algorithm,
        simulation=query.simulation_params,
        events=query.events,
        map_id=query.map_id,
    )
