from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_out_dir() -> str:
    # Keep logs next to the backend by default to avoid polluting source dirs.
    return str(Path(__file__).resolve().parents[1] / "out")


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping tuning constants out of code."""

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    out_dir: str = Field(default_factory=_default_out_dir, alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_to_file: bool = Field(default=True, alias="LOG_TO_FILE")

    # Road endpoints authored with minor drift are merged into one node.
    node_merge_tolerance: float = Field(default=0.1, gt=0.0, le=100.0, alias="NODE_MERGE_TOLERANCE")
    weight_floor: float = Field(default=1e-6, gt=0.0, le=1.0, alias="WEIGHT_FLOOR")
    event_proximity_radius: float = Field(default=50.0, ge=0.0, alias="EVENT_PROXIMITY_RADIUS")
    # Fixed linear conversion kept for compatibility with existing dashboards.
    estimated_minutes_per_weight: float = Field(default=2.0, gt=0.0, alias="ESTIMATED_MINUTES_PER_WEIGHT")
    default_algorithm: str = Field(default="astar", alias="DEFAULT_ALGORITHM")

    graph_cache_enabled: bool = Field(default=True, alias="GRAPH_CACHE_ENABLED")
    graph_cache_ttl_s: int = Field(default=600, ge=1, alias="GRAPH_CACHE_TTL_S")
    graph_cache_max_entries: int = Field(default=64, ge=1, le=10_000, alias="GRAPH_CACHE_MAX_ENTRIES")

    @model_validator(mode="after")
    def _normalise_algorithm(self) -> "Settings":
        algo = str(self.default_algorithm or "astar").strip().lower()
        if algo not in {"astar", "dijkstra"}:
            algo = "astar"
        self.default_algorithm = algo
        return self


settings = Settings()
