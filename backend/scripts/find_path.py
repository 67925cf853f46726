from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Sequence

from route_optimizer.engine import load_query, run_query
from route_optimizer.logging_utils import configure_logging
from route_optimizer.models import PathComparison, PathResult
from route_optimizer.routing_errors import RoutingError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Find the optimal path between two points on a road-segment map."
    )
    parser.add_argument("--segments-json", required=True)
    parser.add_argument("--start", nargs=2, type=float, required=True, metavar=("X", "Y"))
    parser.add_argument("--end", nargs=2, type=float, required=True, metavar=("X", "Y"))
    parser.add_argument("--algorithm", default=None)
    parser.add_argument("--map-id", type=int, default=None)
    parser.add_argument("--time-of-day", default=None)
    parser.add_argument("--day-type", default=None)
    parser.add_argument("--weather", default=None)
    parser.add_argument("--strategy", default=None)
    parser.add_argument("--events-json", default=None)
    parser.add_argument("--compare", action="store_true")
    parser.add_argument("--output", default=None)
    parser.add_argument("--log-level", default=None)
    parser.add_argument("--no-log-file", action="store_true")
    return parser


def _load_list(path: str, key: str) -> list[dict[str, Any]]:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get(key)
    if not isinstance(payload, list):
        raise ValueError(f"JSON input must be a list or an object containing '{key}'")
    return payload


def build_payload(args: argparse.Namespace) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "segments": _load_list(args.segments_json, "segments"),
        "startX": args.start[0],
        "startY": args.start[1],
        "endX": args.end[0],
        "endY": args.end[1],
        "algorithm": args.algorithm,
        "mapId": args.map_id,
    }
    simulation = {
        "timeOfDay": args.time_of_day,
        "dayType": args.day_type,
        "weatherCondition": args.weather,
        "routingStrategy": args.strategy,
    }
    if any(value is not None for value in simulation.values()):
        payload["simulationParams"] = simulation
    if args.events_json:
        payload["events"] = _load_list(args.events_json, "events")
    return payload


def _dump(result: PathResult | None) -> dict[str, Any] | None:
    if result is None:
        return None
    return result.model_dump(mode="json", by_alias=True, exclude_none=True)


def execute(args: argparse.Namespace) -> tuple[int, dict[str, Any]]:
    try:
        query = load_query(build_payload(args))
        result = run_query(query, compare=bool(args.compare))
    except RoutingError as exc:
        return 2, {"error": exc.message, "reason_code": exc.reason_code}
    if isinstance(result, PathComparison):
        # Keep explicit nulls so callers can tell which algorithm failed.
        return 0, {"dijkstra": _dump(result.dijkstra), "astar": _dump(result.astar)}
    return 0, _dump(result)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    configure_logging(args.log_level, to_file=False if args.no_log_file else None)
    code, body = execute(args)
    text = json.dumps(body, indent=2)
    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text, encoding="utf-8")
    print(text)
    return code


if __name__ == "__main__":
    raise SystemExit(main())
