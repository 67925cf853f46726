from __future__ import annotations

import math
from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .logging_utils import log_event
from .models import Density, RoadSegment, RoadType
from .routing_errors import EmptyGraphError
from .settings import settings

# Highways are cheaper to traverse than residential streets.
ROAD_TYPE_FACTOR: dict[RoadType, float] = {
    RoadType.HIGHWAY: 0.7,
    RoadType.NORMAL: 1.0,
    RoadType.RESIDENTIAL: 1.3,
}

DENSITY_FACTOR: dict[Density, float] = {
    Density.LOW: 1.0,
    Density.MEDIUM: 1.5,
    Density.HIGH: 2.0,
    Density.CONGESTED: 3.0,
}


@dataclass(frozen=True)
class GraphNode:
    id: int
    x: float
    y: float


@dataclass(frozen=True)
class GraphEdge:
    source: int
    target: int
    road_id: int
    length: float
    base_weight: float
    adjusted_weight: float


@dataclass(frozen=True)
class Graph:
    """Node/edge view of one map. Ids are only meaningful within this build."""

    nodes: dict[int, GraphNode]
    adjacency: dict[int, tuple[GraphEdge, ...]]
    component_by_node: dict[int, int]
    component_count: int
    segment_count: int

    @property
    def edge_count(self) -> int:
        return sum(len(edges) for edges in self.adjacency.values())

    def edges(self) -> Iterable[GraphEdge]:
        for edges in self.adjacency.values():
            yield from edges

    def connected(self, a: int, b: int) -> bool:
        ca = self.component_by_node.get(a)
        return ca is not None and ca == self.component_by_node.get(b)


def base_weight(segment: RoadSegment, *, floor: float | None = None) -> float:
    weight = segment.length * ROAD_TYPE_FACTOR[segment.road_type] * DENSITY_FACTOR[segment.density]
    return max(float(settings.weight_floor if floor is None else floor), weight)


def _grid_key(x: float, y: float, bucket: float) -> tuple[int, int]:
    return (int(math.floor(x / bucket)), int(math.floor(y / bucket)))


class _NodeRegistry:
    """Allocates node ids, merging coordinates within ``tolerance`` on both axes."""

    def __init__(self, tolerance: float) -> None:
        self._tolerance = max(1e-12, float(tolerance))
        self._next_id = 1
        self.nodes: dict[int, GraphNode] = {}
        self._grid: dict[tuple[int, int], list[int]] = {}

    def resolve(self, x: float, y: float) -> int:
        gx, gy = _grid_key(x, y, self._tolerance)
        match: int | None = None
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                for node_id in self._grid.get((gx + dx, gy + dy), ()):
                    node = self.nodes[node_id]
                    if abs(node.x - x) < self._tolerance and abs(node.y - y) < self._tolerance:
                        # Earliest-created node wins, independent of bucket order.
                        if match is None or node_id < match:
                            match = node_id
        if match is not None:
            return match
        node_id = self._next_id
        self._next_id += 1
        self.nodes[node_id] = GraphNode(id=node_id, x=float(x), y=float(y))
        self._grid.setdefault((gx, gy), []).append(node_id)
        return node_id


def _compute_component_index(
    nodes: dict[int, GraphNode],
    adjacency: dict[int, list[GraphEdge]],
) -> tuple[dict[int, int], int]:
    # Edges are stored in both directions, so the adjacency is already undirected.
    component_by_node: dict[int, int] = {}
    component_idx = 0
    for node_id in nodes:
        if node_id in component_by_node:
            continue
        component_idx += 1
        q: deque[int] = deque([node_id])
        while q:
            current = q.popleft()
            if current in component_by_node:
                continue
            component_by_node[current] = component_idx
            for edge in adjacency.get(current, ()):
                if edge.target not in component_by_node:
                    q.append(edge.target)
    return component_by_node, component_idx


def build_graph(segments: Sequence[RoadSegment], *, tolerance: float | None = None) -> Graph:
    """Convert road segments into a graph with two directed edges per segment."""
    if not segments:
        raise EmptyGraphError()

    registry = _NodeRegistry(settings.node_merge_tolerance if tolerance is None else tolerance)
    adjacency_mut: dict[int, list[GraphEdge]] = {}

    for segment in segments:
        start_id = registry.resolve(segment.start_x, segment.start_y)
        end_id = registry.resolve(segment.end_x, segment.end_y)
        weight = base_weight(segment)
        length = segment.length
        adjacency_mut.setdefault(start_id, []).append(
            GraphEdge(
                source=start_id,
                target=end_id,
                road_id=segment.id,
                length=length,
                base_weight=weight,
                adjusted_weight=weight,
            )
        )
        adjacency_mut.setdefault(end_id, []).append(
            GraphEdge(
                source=end_id,
                target=start_id,
                road_id=segment.id,
                length=length,
                base_weight=weight,
                adjusted_weight=weight,
            )
        )

    component_by_node, component_count = _compute_component_index(registry.nodes, adjacency_mut)
    graph = Graph(
        nodes=registry.nodes,
        adjacency={node_id: tuple(adjacency_mut.get(node_id, ())) for node_id in registry.nodes},
        component_by_node=component_by_node,
        component_count=component_count,
        segment_count=len(segments),
    )
    log_event(
        "graph_built",
        segment_count=graph.segment_count,
        node_count=len(graph.nodes),
        edge_count=graph.edge_count,
        component_count=graph.component_count,
    )
    return graph
