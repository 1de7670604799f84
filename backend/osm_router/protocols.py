from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import AreaData


@runtime_checkable
class DataListener(Protocol):
    """Receives map data as soon as a loader has parsed it, before the
    loader's ``ensure_coverage`` call returns."""

    def add_data(self, area: AreaData) -> None: ...


@runtime_checkable
class CoverageLoader(Protocol):
    """
    Responsibilities:
      • Guarantee map data around a coordinate is available.
      • Hand newly parsed data to the listener, if one is given.
    Returns False when the data cannot be loaded.
    """

    async def ensure_coverage(
        self,
        lat: float,
        lon: float,
        listener: DataListener | None = None,
    ) -> bool: ...
