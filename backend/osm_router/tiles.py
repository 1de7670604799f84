from __future__ import annotations

import asyncio
import logging
import math
import time
import xml.etree.ElementTree as ET
from pathlib import Path

import httpx

from .geo import to_degrees, to_radians
from .logging_utils import log_event
from .models import AreaData
from .osm_xml import load_osm_file, parse_osm_xml
from .protocols import CoverageLoader, DataListener
from .settings import settings

__all__ = [
    "CoverageLoader",
    "DataListener",
    "OfflineCoverage",
    "TileStore",
    "tile_boundary",
    "tile_position",
]

TILE_EXTENSION = "osm"


def tiles_for_zoom(zoom: int) -> int:
    return 2**zoom


def _secant(x: float) -> float:
    return 1.0 / math.cos(x)


def _merc_to_lat(x: float) -> float:
    return to_degrees(math.atan(math.sinh(x)))


def tile_position(lat: float, lon: float, zoom: int | None = None) -> tuple[int, int]:
    """Slippy-map tile holding a coordinate.

    See https://wiki.openstreetmap.org/wiki/Mercator
    """
    n = tiles_for_zoom(settings.tile_zoom if zoom is None else zoom)
    rad_lat = to_radians(lat)
    x = (lon + 180.0) / 360.0
    y = (1.0 - math.log(math.tan(rad_lat) + _secant(rad_lat)) / math.pi) / 2.0
    return int(n * x), int(n * y)


def tile_boundary(x: int, y: int, zoom: int | None = None) -> tuple[float, float, float, float]:
    """Left, bottom, right and top of a tile, in degrees."""
    n = tiles_for_zoom(settings.tile_zoom if zoom is None else zoom)
    top = _merc_to_lat(math.pi * (1 - 2 * (y * (1 / n))))
    bottom = _merc_to_lat(math.pi * (1 - 2 * ((y + 1) * (1 / n))))
    left = x * (360 / n) - 180
    right = left + 360 / n
    return left, bottom, right, top


class TileStore:
    """Loads OSM map data one tile at a time.

    Raw API responses are kept in ``cache_dir`` and reused until they are
    older than ``cache_hours``. Each tile is handed to a listener at most
    once per store.
    """

    def __init__(
        self,
        *,
        cache_dir: Path | str | None = None,
        zoom: int | None = None,
        cache_hours: float | None = None,
        fetch_if_missing: bool | None = None,
        api_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.cache_dir = Path(cache_dir if cache_dir is not None else settings.tile_cache_dir)
        self.zoom = int(zoom if zoom is not None else settings.tile_zoom)
        self.cache_hours = float(cache_hours if cache_hours is not None else settings.tile_cache_hours)
        self.fetch_if_missing = bool(settings.tile_fetch_if_missing if fetch_if_missing is None else fetch_if_missing)
        self.api_url = api_url or settings.osm_api_url
        self._client = client
        self._owns_client = client is None
        self._loaded: set[str] = set()
        self._locks: dict[str, asyncio.Lock] = {}

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.tile_request_timeout_s, connect=10.0),
                headers={"accept": "application/xml", "user-agent": "osm-router/0.1"},
            )
        return self._client

    def tile_path(self, x: int, y: int) -> Path:
        return self.cache_dir / f"{x},{y}.{TILE_EXTENSION}"

    def _is_fresh(self, path: Path) -> bool:
        try:
            modified = path.stat().st_mtime
        except OSError:
            return False
        return (time.time() - modified) <= self.cache_hours * 3600.0

    async def _download(self, x: int, y: int) -> bytes:
        left, bottom, right, top = tile_boundary(x, y, self.zoom)
        resp = await self._http().get(self.api_url, params={"bbox": f"{left},{bottom},{right},{top}"})
        resp.raise_for_status()
        return resp.content

    async def ensure_coverage(
        self,
        lat: float,
        lon: float,
        listener: DataListener | None = None,
    ) -> bool:
        if not self.fetch_if_missing:
            return True
        x, y = tile_position(lat, lon, self.zoom)
        name = f"{x},{y}"
        if name in self._loaded:
            return True

        lock = self._locks.setdefault(name, asyncio.Lock())
        async with lock:
            if name in self._loaded:
                return True
            path = self.tile_path(x, y)
            try:
                if self._is_fresh(path):
                    source = "cache"
                    area = parse_osm_xml(path.read_bytes())
                else:
                    source = "download"
                    raw = await self._download(x, y)
                    # only well-formed responses are cached
                    area = parse_osm_xml(raw)
                    path.parent.mkdir(parents=True, exist_ok=True)
                    path.write_bytes(raw)
            except (httpx.HTTPError, OSError, ET.ParseError) as exc:
                log_event(
                    "tile_load_failed",
                    level=logging.WARNING,
                    tile=name,
                    zoom=self.zoom,
                    error_type=type(exc).__name__,
                    error_message=str(exc).strip() or type(exc).__name__,
                )
                return False

            self._loaded.add(name)
            log_event(
                "tile_loaded",
                tile=name,
                zoom=self.zoom,
                source=source,
                nodes=len(area.nodes),
                ways=len(area.ways),
                relations=len(area.relations),
            )
            if listener is not None:
                listener.add_data(area)
        return True


class OfflineCoverage:
    """Coverage loader over data that is already on hand.

    Hands every source to the first listener it sees and then reports every
    coordinate as covered.
    """

    def __init__(self, *sources: AreaData | Path | str) -> None:
        self._sources = list(sources)
        self._delivered = False

    async def ensure_coverage(
        self,
        lat: float,
        lon: float,
        listener: DataListener | None = None,
    ) -> bool:
        if listener is not None and not self._delivered:
            self._delivered = True
            for source in self._sources:
                listener.add_data(source if isinstance(source, AreaData) else load_osm_file(source))
        return True
