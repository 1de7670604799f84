from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_out_dir() -> str:
    # Keep logs and downloaded tiles in backend/out by default to avoid polluting source assets.
    return str(Path(__file__).resolve().parents[1] / "out")


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping config out of code for easy extension."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" and "backend/.env" (local dev)
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    out_dir: str = Field(default_factory=_default_out_dir, alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    # Empty resolves to <out_dir>/logs/router.log.jsonl
    log_file: str = Field(default="", alias="LOG_FILE")
    log_to_file: bool = Field(default=True, alias="LOG_TO_FILE")

    # Tile coverage
    tile_cache_dir: str = Field(default="", alias="TILE_CACHE_DIR")
    tile_zoom: int = Field(default=15, ge=1, le=19, alias="TILE_ZOOM")
    tile_cache_hours: float = Field(default=120.0, ge=0.0, alias="TILE_CACHE_HOURS")
    tile_fetch_if_missing: bool = Field(default=True, alias="TILE_FETCH_IF_MISSING")
    osm_api_url: str = Field(
        default="https://api.openstreetmap.org/api/0.6/map",
        alias="OSM_API_URL",
    )
    tile_request_timeout_s: float = Field(default=30.0, ge=1.0, le=300.0, alias="TILE_REQUEST_TIMEOUT_S")

    # Search
    route_max_iterations: int = Field(default=100_000, ge=1, alias="ROUTE_MAX_ITERATIONS")
    default_travel_mode: str = Field(default="car", alias="DEFAULT_TRAVEL_MODE")

    @model_validator(mode="after")
    def _resolve_tile_cache_dir(self) -> "Settings":
        if not str(self.tile_cache_dir or "").strip():
            self.tile_cache_dir = str(Path(self.out_dir) / "tiles")
        self.default_travel_mode = str(self.default_travel_mode or "car").strip().lower()
        return self


settings = Settings()
