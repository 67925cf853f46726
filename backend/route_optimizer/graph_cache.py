from __future__ import annotations

import hashlib
import json
import time
from collections import OrderedDict
from collections.abc import Callable, Sequence
from threading import Lock

from .logging_utils import log_debug
from .models import RoadSegment
from .road_graph import Graph, build_graph
from .settings import settings


class GraphCacheStore:
    """Base graphs per map, evicted by age and by least-recent use.

    Graphs are frozen and weight adjustment always builds a new one, so a cached
    graph is handed out as-is to every caller.
    """

    def __init__(self, *, ttl_s: int, max_entries: int) -> None:
        self._ttl_s = max(1, int(ttl_s))
        self._max_entries = max(1, int(max_entries))
        self._lock = Lock()
        # key -> (monotonic insert time, graph)
        self._graphs: OrderedDict[str, tuple[float, Graph]] = OrderedDict()
        self._stats = {"hits": 0, "misses": 0, "evictions": 0, "invalidations": 0}

    def _fresh(self, key: str) -> Graph | None:
        item = self._graphs.get(key)
        if item is None:
            return None
        inserted_at, graph = item
        if time.monotonic() - inserted_at > self._ttl_s:
            del self._graphs[key]
            return None
        self._graphs.move_to_end(key)
        return graph

    def _store(self, key: str, graph: Graph) -> None:
        self._graphs[key] = (time.monotonic(), graph)
        self._graphs.move_to_end(key)
        while len(self._graphs) > self._max_entries:
            self._graphs.popitem(last=False)
            self._stats["evictions"] += 1

    def get(self, key: str) -> Graph | None:
        with self._lock:
            graph = self._fresh(key)
            self._stats["hits" if graph is not None else "misses"] += 1
            return graph

    def set(self, key: str, graph: Graph) -> None:
        with self._lock:
            self._store(key, graph)

    def get_or_build(self, key: str, build: Callable[[], Graph]) -> tuple[Graph, bool]:
        """Cached graph for ``key``, building and storing it on a miss.

        The build runs outside the lock; when two callers race on the same key
        the first stored graph wins and both get it back.
        """
        cached = self.get(key)
        if cached is not None:
            return cached, True
        graph = build()
        with self._lock:
            existing = self._fresh(key)
            if existing is not None:
                return existing, False
            self._store(key, graph)
        return graph, False

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            stale = [key for key in self._graphs if key.startswith(prefix)]
            for key in stale:
                del self._graphs[key]
            self._stats["invalidations"] += len(stale)
            return len(stale)

    def clear(self) -> int:
        with self._lock:
            cleared = len(self._graphs)
            self._graphs.clear()
            return cleared

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._graphs),
                **self._stats,
                "ttl_s": self._ttl_s,
                "max_entries": self._max_entries,
            }


GRAPH_CACHE = GraphCacheStore(
    ttl_s=settings.graph_cache_ttl_s,
    max_entries=settings.graph_cache_max_entries,
)


def graph_cache_key(map_id: int, segments: Sequence[RoadSegment]) -> str:
    # Everything build_graph reads goes into the digest: segments, merge tolerance and weight floor.
    canonical = json.dumps(
        {
            "tolerance": settings.node_merge_tolerance,
            "weight_floor": settings.weight_floor,
            "segments": [segment.model_dump(mode="json") for segment in segments],
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    digest = hashlib.sha1(canonical.encode("utf-8")).hexdigest()
    return f"{map_id}:{digest}"


def cached_build_graph(segments: Sequence[RoadSegment], *, map_id: int | None = None) -> Graph:
    if map_id is None or not settings.graph_cache_enabled or not segments:
        return build_graph(segments)
    key = graph_cache_key(map_id, segments)
    graph, hit = GRAPH_CACHE.get_or_build(key, lambda: build_graph(segments))
    if hit:
        log_debug("graph_cache_hit", map_id=map_id, key=key)
    return graph


def invalidate_map(map_id: int) -> int:
    """Drop every cached graph for ``map_id``, whatever segment list built it."""
    return GRAPH_CACHE.invalidate_prefix(f"{map_id}:")


def clear_graph_cache() -> int:
    return GRAPH_CACHE.clear()


def graph_cache_stats() -> dict[str, int]:
    return GRAPH_CACHE.snapshot()
