from __future__ import annotations

import math
from collections.abc import Sequence

from .logging_utils import log_warning
from .models import Coordinate, PathResult, RoadInfo, RoadSegment
from .path_search import RawPath
from .road_graph import Graph, GraphEdge
from .routing_errors import NoPathError
from .settings import settings


def estimated_time_minutes(total_weight: float) -> int:
    # Half-up rounding, so x.5 always rounds away from zero for non-negative weights.
    return int(math.floor(float(total_weight) * float(settings.estimated_minutes_per_weight) + 0.5))


def road_info(road_id: int, by_id: dict[int, RoadSegment]) -> RoadInfo:
    segment = by_id.get(road_id)
    if segment is None:
        log_warning("path_road_unknown", road_id=road_id)
        return RoadInfo(id=road_id)
    return RoadInfo(
        id=road_id,
        start_x=segment.start_x,
        start_y=segment.start_y,
        end_x=segment.end_x,
        end_y=segment.end_y,
        road_type=segment.road_type,
        density=segment.density,
    )


def _cheapest_edge(graph: Graph, source: int, target: int) -> GraphEdge | None:
    best: GraphEdge | None = None
    for edge in graph.adjacency.get(source, ()):
        if edge.target == target and (best is None or edge.adjusted_weight < best.adjusted_weight):
            best = edge
    return best


def _path_edges(raw: RawPath, graph: Graph) -> list[GraphEdge]:
    if raw.edges:
        edges = list(raw.edges)
    else:
        edges = []
        for source, target in zip(raw.nodes, raw.nodes[1:]):
            edge = _cheapest_edge(graph, source, target)
            if edge is None:
                raise NoPathError("path references a missing edge", details={"source": source, "target": target})
            edges.append(edge)
    if len(edges) != len(raw.nodes) - 1:
        raise NoPathError("path nodes and edges are misaligned", details={"nodes": len(raw.nodes), "edges": len(edges)})
    for (source, target), edge in zip(zip(raw.nodes, raw.nodes[1:]), edges):
        if edge.source != source or edge.target != target:
            raise NoPathError(
                "path nodes and edges are misaligned",
                details={"source": source, "target": target, "road_id": edge.road_id},
            )
    return edges


def assemble(raw: RawPath, graph: Graph, segments: Sequence[RoadSegment], *, algorithm: str) -> PathResult:
    """Turn a raw search result into the caller-facing path description."""
    if not raw.nodes:
        raise NoPathError("empty path")
    edges = _path_edges(raw, graph)
    by_id = {segment.id: segment for segment in segments}

    total_weight = 0.0
    for edge in edges:
        total_weight += edge.adjusted_weight

    coordinate_path = []
    for node_id in raw.nodes:
        node = graph.nodes.get(node_id)
        if node is None:
            raise NoPathError("path references a missing node", details={"node_id": node_id})
        coordinate_path.append(Coordinate(x=node.x, y=node.y))

    return PathResult(
        algorithm=algorithm,
        node_path=list(raw.nodes),
        road_path=[road_info(edge.road_id, by_id) for edge in edges],
        coordinate_path=coordinate_path,
        total_weight=total_weight,
        estimated_time_minutes=estimated_time_minutes(total_weight),
    )
