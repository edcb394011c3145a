"""Handlers for confirmed flood reports."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from cognicity.errors import CognicityError, ErrorCode
from cognicity.handlers import time_window
from cognicity.validation import parse_report_id

if TYPE_CHECKING:
    from cognicity.state import AppState


async def confirmed(state: AppState) -> dict | None:
    """Reports confirmed within the configured time window, newest first."""
    settings = state.settings
    start, end = time_window(settings.api.time_window)
    return await state.store.get_reports(start=start, end=end, limit=settings.database.limit)


async def confirmed_by_id(raw_id: str, state: AppState) -> dict | None:
    report_id = parse_report_id(raw_id)
    log = structlog.get_logger().bind(handler="confirmed_by_id", report_id=report_id)
    log.debug("handler_called")
    return await state.store.get_report(report_id=report_id)


async def floodwatch(area_name: str | None, state: AppState) -> dict | None:
    """Report counts per city polygon, optionally limited to one area."""
    settings = state.settings
    polygon_table = settings.database.aggregate_levels.get("city")
    if polygon_table is None:
        raise CognicityError(ErrorCode.NOT_FOUND, "City aggregation level is not configured")
    start, end = time_window(settings.api.time_window)
    return await state.store.get_reports_by_area(
        start=start,
        end=end,
        limit=settings.database.limit,
        polygon_table=polygon_table,
        area_name=area_name or None,
    )
