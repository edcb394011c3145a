"""Protocol interfaces for swappable components.

Handlers and AppState reference these protocols, not the concrete
implementations, so tests can substitute lightweight in-memory stores.
"""

from __future__ import annotations

from typing import Protocol


class ReportStoreProtocol(Protocol):
    """Interface for the domain data backend."""

    async def get_reports(self, *, start: int, end: int, limit: int) -> dict | None: ...

    async def get_report(self, *, report_id: int) -> dict | None: ...

    async def get_reports_by_area(
        self,
        *,
        start: int,
        end: int,
        limit: int,
        polygon_table: str,
        area_name: str | None,
    ) -> dict | None: ...

    async def get_infrastructure(self, *, table: str) -> dict | None: ...

    async def get_floodgauges(self, *, start: int, end: int, table: str) -> dict | None: ...

    async def get_floodsensors(
        self,
        *,
        start: int,
        end: int,
        data_table: str,
        metadata_table: str,
    ) -> dict | None: ...
