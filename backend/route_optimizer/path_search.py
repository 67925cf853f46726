from __future__ import annotations

import heapq
from collections.abc import Callable
from dataclasses import dataclass
from math import inf

from .geometry import euclidean
from .road_graph import Graph, GraphEdge
from .routing_errors import NoPathError


@dataclass(frozen=True)
class RawPath:
    nodes: tuple[int, ...]
    edges: tuple[GraphEdge, ...]
    cost: float
    explored: int = 0


HeuristicFn = Callable[[int], float]
SearchFn = Callable[[Graph, int, int], RawPath]


def min_cost_ratio(graph: Graph) -> float:
    """Smallest adjusted cost per unit of straight-line node distance, capped at 1.

    Scaling the straight-line heuristic by this ratio keeps it admissible and
    consistent for any weight multipliers, including ones below 1.0.
    """
    ratio = 1.0
    for edge in graph.edges():
        a = graph.nodes[edge.source]
        b = graph.nodes[edge.target]
        distance = euclidean(a.x, a.y, b.x, b.y)
        if distance <= 0.0:
            continue
        ratio = min(ratio, edge.adjusted_weight / distance)
    return max(0.0, ratio)


def _trace(came_from: dict[int, GraphEdge], start: int, end: int) -> tuple[tuple[int, ...], tuple[GraphEdge, ...]]:
    edges: list[GraphEdge] = []
    node = end
    while node != start:
        edge = came_from[node]
        edges.append(edge)
        node = edge.source
    edges.reverse()
    nodes = (start, *(edge.target for edge in edges))
    return nodes, tuple(edges)


def _best_first_search(graph: Graph, start: int, end: int, heuristic: HeuristicFn | None) -> RawPath:
    if start not in graph.nodes or end not in graph.nodes:
        raise NoPathError("start or end node is not part of the graph", details={"start": start, "end": end})
    if start == end:
        return RawPath(nodes=(start,), edges=(), cost=0.0)
    if not graph.connected(start, end):
        raise NoPathError(
            "start and end lie in disconnected parts of the map",
            details={
                "start": start,
                "end": end,
                "start_component": graph.component_by_node.get(start),
                "end_component": graph.component_by_node.get(end),
            },
        )

    h = heuristic or (lambda _node: 0.0)
    best_cost: dict[int, float] = {start: 0.0}
    came_from: dict[int, GraphEdge] = {}
    closed: set[int] = set()
    seq = 0
    # (priority, insertion order, node): equal priorities pop in insertion order.
    heap: list[tuple[float, int, int]] = [(h(start), seq, start)]
    explored = 0

    while heap:
        _priority, _seq, node = heapq.heappop(heap)
        if node in closed:
            continue
        closed.add(node)
        explored += 1
        if node == end:
            nodes, edges = _trace(came_from, start, end)
            return RawPath(nodes=nodes, edges=edges, cost=best_cost[end], explored=explored)
        cost = best_cost[node]
        for edge in graph.adjacency.get(node, ()):
            nxt = edge.target
            if nxt in closed:
                continue
            new_cost = cost + edge.adjusted_weight
            if new_cost < best_cost.get(nxt, inf):
                best_cost[nxt] = new_cost
                came_from[nxt] = edge
                seq += 1
                heapq.heappush(heap, (new_cost + h(nxt), seq, nxt))

    raise NoPathError("no path", details={"start": start, "end": end, "explored": explored})


def dijkstra(graph: Graph, start: int, end: int) -> RawPath:
    return _best_first_search(graph, start, end, None)


def astar(graph: Graph, start: int, end: int) -> RawPath:
    goal = graph.nodes.get(end)
    if goal is None:
        return _best_first_search(graph, start, end, None)
    scale = min_cost_ratio(graph)

    def _heuristic(node_id: int) -> float:
        node = graph.nodes[node_id]
        return euclidean(node.x, node.y, goal.x, goal.y) * scale

    return _best_first_search(graph, start, end, _heuristic)


SEARCH_ALGORITHMS: dict[str, SearchFn] = {
    "dijkstra": dijkstra,
    "astar": astar,
}
