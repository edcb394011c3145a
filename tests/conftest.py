"""Shared test fixtures for the cognicity test suite."""

from __future__ import annotations

from typing import Any

import pytest

from cognicity.cache import ResponseCache
from cognicity.config import Settings


class FakeClock:
    """Manually advanced stand-in for ``time.monotonic``."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeStore:
    """In-memory ReportStoreProtocol implementation that records every call.

    ``data`` is returned by every query; set ``error`` to make queries raise.
    """

    def __init__(self, data: Any = None) -> None:
        self.data = data
        self.error: BaseException | None = None
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def _answer(self, name: str, **kwargs: Any) -> Any:
        self.calls.append((name, kwargs))
        if self.error is not None:
            raise self.error
        return self.data

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def get_reports(self, *, start: int, end: int, limit: int) -> Any:
        return await self._answer("get_reports", start=start, end=end, limit=limit)

    async def get_report(self, *, report_id: int) -> Any:
        return await self._answer("get_report", report_id=report_id)

    async def get_reports_by_area(
        self,
        *,
        start: int,
        end: int,
        limit: int,
        polygon_table: str,
        area_name: str | None,
    ) -> Any:
        return await self._answer(
            "get_reports_by_area",
            start=start,
            end=end,
            limit=limit,
            polygon_table=polygon_table,
            area_name=area_name,
        )

    async def get_infrastructure(self, *, table: str) -> Any:
        return await self._answer("get_infrastructure", table=table)

    async def get_floodgauges(self, *, start: int, end: int, table: str) -> Any:
        return await self._answer("get_floodgauges", start=start, end=end, table=table)

    async def get_floodsensors(
        self,
        *,
        start: int,
        end: int,
        data_table: str,
        metadata_table: str,
    ) -> Any:
        return await self._answer(
            "get_floodsensors",
            start=start,
            end=end,
            data_table=data_table,
            metadata_table=metadata_table,
        )


@pytest.fixture()
def report_collection() -> dict[str, Any]:
    """Two confirmed reports as a GeoJSON FeatureCollection."""
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [106.8271, -6.1754]},
                "properties": {"pkey": 1, "source": "twitter", "text": "banjir di jalan"},
            },
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [106.8456, -6.2088]},
                "properties": {"pkey": 2, "source": "qlue", "text": "air setinggi lutut"},
            },
        ],
    }


@pytest.fixture()
def polygon_collection() -> dict[str, Any]:
    """Two adjacent squares sharing one edge."""
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {
                    "type": "Polygon",
                    "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]],
                },
                "properties": {"level_name": "Jakarta Pusat", "count": 3},
            },
            {
                "type": "Feature",
                "geometry": {
                    "type": "Polygon",
                    "coordinates": [[[1, 0], [2, 0], [2, 1], [1, 1], [1, 0]]],
                },
                "properties": {"level_name": "Jakarta Timur", "count": 5},
            },
        ],
    }


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cache(clock: FakeClock) -> ResponseCache:
    return ResponseCache(clock=clock)


@pytest.fixture()
def settings() -> Settings:
    return Settings(cache={"ttl_seconds": 60, "sweep_interval_seconds": 0})


@pytest.fixture()
def store() -> FakeStore:
    return FakeStore()
