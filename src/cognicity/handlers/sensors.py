"""Handler for IoT flood sensor readings."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cognicity.handlers import time_window

if TYPE_CHECKING:
    from cognicity.state import AppState


async def smartsensors(state: AppState) -> dict | None:
    database = state.settings.database
    start, end = time_window(state.settings.api.floodgauges_time_window)
    return await state.store.get_floodsensors(
        start=start,
        end=end,
        data_table=database.sensor_data_table,
        metadata_table=database.sensor_metadata_table,
    )
