"""Handlers for infrastructure layers and floodgauge readings."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cognicity.errors import CognicityError, ErrorCode
from cognicity.handlers import time_window

if TYPE_CHECKING:
    from cognicity.state import AppState


def _table_for(name: str, state: AppState) -> str:
    # Config-driven: a known name is trusted to map onto a real table.
    table = state.settings.database.infrastructure_tables.get(name)
    if table is None:
        raise CognicityError(ErrorCode.INVALID_PARAMETER, "Infrastructure type is not valid")
    return table


async def layer(name: str, state: AppState) -> dict | None:
    return await state.store.get_infrastructure(table=_table_for(name, state))


async def floodgauges(state: AppState) -> dict | None:
    """Floodgauge readings within the floodgauge time window."""
    table = _table_for("floodgauges", state)
    start, end = time_window(state.settings.api.floodgauges_time_window)
    return await state.store.get_floodgauges(start=start, end=end, table=table)
