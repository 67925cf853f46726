from __future__ import annotations

from dataclasses import dataclass
from typing import Any

FROZEN_REASON_CODES: frozenset[str] = frozenset(
    {
        "empty_graph",
        "node_not_found",
        "no_path",
        "invalid_coordinates",
        "invalid_algorithm",
        "routing_failed",
    }
)


@dataclass
class RoutingError(ValueError):
    """Recoverable routing outcome. Callers map ``reason_code`` to a response."""

    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class EmptyGraphError(RoutingError):
    def __init__(self, message: str = "no traffic data for this map", details: dict[str, Any] | None = None) -> None:
        super().__init__(reason_code="empty_graph", message=message, details=details)


class NodeNotFoundError(RoutingError):
    def __init__(
        self,
        message: str = "could not locate a graph node for the given coordinates",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(reason_code="node_not_found", message=message, details=details)


class NoPathError(RoutingError):
    def __init__(
        self,
        message: str = "no valid path found between the specified points",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(reason_code="no_path", message=message, details=details)


class InvalidCoordinatesError(RoutingError):
    def __init__(self, message: str = "coordinates must be finite numbers", details: dict[str, Any] | None = None) -> None:
        super().__init__(reason_code="invalid_coordinates", message=message, details=details)


class InvalidAlgorithmError(RoutingError):
    def __init__(self, message: str = "algorithm must be 'dijkstra' or 'astar'", details: dict[str, Any] | None = None) -> None:
        super().__init__(reason_code="invalid_algorithm", message=message, details=details)


def normalize_reason_code(reason_code: str, *, default: str = "routing_failed") -> str:
    code = str(reason_code or "").strip()
    if code in FROZEN_REASON_CODES:
        return code
    return default
