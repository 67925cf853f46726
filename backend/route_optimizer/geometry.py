from __future__ import annotations

import math
from typing import TYPE_CHECKING

from .logging_utils import log_debug
from .routing_errors import NodeNotFoundError

if TYPE_CHECKING:
    from .road_graph import Graph


def euclidean(ax: float, ay: float, bx: float, by: float) -> float:
    return math.hypot(bx - ax, by - ay)


def point_segment_distance(px: float, py: float, ax: float, ay: float, bx: float, by: float) -> float:
    """Shortest distance from point P to the closed segment AB."""
    dx = bx - ax
    dy = by - ay
    length_sq = dx * dx + dy * dy
    if length_sq <= 0.0:
        return euclidean(px, py, ax, ay)
    t = ((px - ax) * dx + (py - ay) * dy) / length_sq
    t = max(0.0, min(1.0, t))
    return euclidean(px, py, ax + t * dx, ay + t * dy)


def _finite(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(float(value))


def nearest_node(graph: Graph, x: float, y: float) -> int:
    """Id of the node closest to (x, y).

    Ties go to the node seen first in build order. Raises ``NodeNotFoundError``
    for an empty graph or non-finite coordinates; it never reports a
    zero-distance match in those cases.
    """
    if not _finite(x) or not _finite(y):
        raise NodeNotFoundError(
            "query coordinates are not finite numbers",
            details={"x": repr(x), "y": repr(y)},
        )
    if not graph.nodes:
        raise NodeNotFoundError("graph has no nodes", details={"x": x, "y": y})

    best_id: int | None = None
    best_distance = math.inf
    closest: list[tuple[float, int]] = []
    for node_id, node in graph.nodes.items():
        distance = euclidean(float(x), float(y), node.x, node.y)
        if distance < best_distance:
            best_distance = distance
            best_id = node_id
        # Top-3 candidates are only kept for the debug trace.
        closest.append((distance, node_id))
        if len(closest) > 3:
            closest.sort()
            closest.pop()

    if best_id is None:
        raise NodeNotFoundError("no node with usable coordinates", details={"x": x, "y": y})

    log_debug(
        "nearest_node",
        x=float(x),
        y=float(y),
        node_id=best_id,
        distance=round(best_distance, 6),
        candidates=[{"node_id": nid, "distance": round(d, 6)} for d, nid in sorted(closest)],
    )
    return best_id
