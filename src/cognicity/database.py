"""PostgreSQL report store.

Owns the asyncpg pool that every data route queries through. The store is
also the source of connection-failure signals for ``ConnectionMonitor``:
each pooled connection registers a termination listener, and queries that
fail with a connection-class error report the loss before surfacing as
``STORE_UNAVAILABLE`` to the request.

Queries build GeoJSON FeatureCollections server-side (PostGIS) and return
the decoded collection, or ``None`` when nothing matched. Table names come
from validated settings, never from request input.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import asyncpg
import structlog

from cognicity.errors import CognicityError, ErrorCode

if TYPE_CHECKING:
    from collections.abc import Callable

    from cognicity.config import DatabaseSettings

log = structlog.get_logger()

CONNECTION_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    OSError,
)


def _feature_collection_sql(rows_sql: str, properties_sql: str) -> str:
    """Wrap a row query so it yields one FeatureCollection, or NULL for no rows."""
    return f"""
SELECT CASE WHEN count(*) = 0 THEN NULL ELSE json_build_object(
    'type', 'FeatureCollection',
    'features', json_agg(json_build_object(
        'type', 'Feature',
        'geometry', ST_AsGeoJSON(r.the_geom)::json,
        'properties', {properties_sql}
    ))
) END
FROM ({rows_sql}) AS r
"""


_REPORT_PROPERTIES = (
    "json_build_object('pkey', r.pkey, 'created_at', r.created_at, 'source', r.source, "
    "'status', r.status, 'url', r.url, 'image_url', r.image_url, 'title', r.title, "
    "'text', r.text)"
)


class ReportStore:
    """asyncpg-backed implementation of ``ReportStoreProtocol``."""

    def __init__(
        self,
        settings: DatabaseSettings,
        *,
        on_connection_lost: Callable[[str], None] | None = None,
    ) -> None:
        self._settings = settings
        self._pool: asyncpg.Pool | None = None
        # Bumped whenever a pool is discarded; listeners from older pools go quiet.
        self._generation = 0
        self._on_connection_lost = on_connection_lost

    def set_failure_listener(self, listener: Callable[[str], None]) -> None:
        self._on_connection_lost = listener

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Create the pool and verify the database answers. Raises on failure."""
        self._pool = await asyncpg.create_pool(
            self._settings.dsn,
            min_size=1,
            max_size=10,
            command_timeout=30,
            init=self._init_connection,
        )
        await self._pool.fetchval("SELECT 1")
        log.info("store_connected")

    async def reconnect(self) -> None:
        """Discard the current pool and open a fresh one. Raises on failure."""
        self._discard_pool()
        await self.open()

    async def close(self) -> None:
        self._discard_pool()
        log.info("store_closed")

    def _discard_pool(self) -> None:
        pool, self._pool = self._pool, None
        self._generation += 1
        if pool is not None:
            pool.terminate()

    async def _init_connection(self, conn: asyncpg.Connection) -> None:
        generation = self._generation

        def on_terminated(_conn: asyncpg.Connection) -> None:
            if generation == self._generation:
                self._signal_failure("connection_terminated")

        conn.add_termination_listener(on_terminated)

    def _signal_failure(self, reason: str) -> None:
        if self._on_connection_lost is not None:
            self._on_connection_lost(reason)

    # ------------------------------------------------------------------
    # Query plumbing
    # ------------------------------------------------------------------

    async def _fetch_collection(self, sql: str, *args: Any) -> dict | None:
        if self._pool is None:
            raise CognicityError(
                ErrorCode.STORE_UNAVAILABLE, "Database connection is being re-established."
            )
        try:
            value = await self._pool.fetchval(sql, *args)
        except CONNECTION_ERRORS as exc:
            self._signal_failure(f"query_failed: {exc}")
            raise CognicityError(
                ErrorCode.STORE_UNAVAILABLE, "Database connection unavailable."
            ) from exc
        if value is None:
            return None
        return json.loads(value) if isinstance(value, str) else value

    # ------------------------------------------------------------------
    # Domain queries
    # ------------------------------------------------------------------

    async def get_reports(self, *, start: int, end: int, limit: int) -> dict | None:
        rows = (
            f"SELECT * FROM {self._settings.tbl_reports} "
            "WHERE created_at >= to_timestamp($1) AND created_at <= to_timestamp($2) "
            "ORDER BY created_at DESC LIMIT $3"
        )
        return await self._fetch_collection(
            _feature_collection_sql(rows, _REPORT_PROPERTIES), start, end, limit
        )

    async def get_report(self, *, report_id: int) -> dict | None:
        rows = f"SELECT * FROM {self._settings.tbl_reports} WHERE pkey = $1"
        return await self._fetch_collection(
            _feature_collection_sql(rows, _REPORT_PROPERTIES), report_id
        )

    async def get_reports_by_area(
        self,
        *,
        start: int,
        end: int,
        limit: int,
        polygon_table: str,
        area_name: str | None,
    ) -> dict | None:
        rows = (
            "SELECT p.level_name, p.the_geom, count(c.pkey) AS count "
            f"FROM {polygon_table} AS p "
            f"LEFT JOIN (SELECT * FROM {self._settings.tbl_reports} "
            "  WHERE created_at >= to_timestamp($1) AND created_at <= to_timestamp($2) "
            "  ORDER BY created_at DESC LIMIT $3) AS c "
            "ON ST_Within(c.the_geom, p.the_geom) "
            "WHERE ($4::text IS NULL OR p.level_name = $4) "
            "GROUP BY p.level_name, p.the_geom"
        )
        properties = "json_build_object('level_name', r.level_name, 'count', r.count)"
        return await self._fetch_collection(
            _feature_collection_sql(rows, properties), start, end, limit, area_name
        )

    async def get_infrastructure(self, *, table: str) -> dict | None:
        rows = f"SELECT * FROM {table}"
        properties = "json_build_object('name', r.name)"
        return await self._fetch_collection(_feature_collection_sql(rows, properties))

    async def get_floodgauges(self, *, start: int, end: int, table: str) -> dict | None:
        rows = (
            f"SELECT * FROM {table} "
            "WHERE measuredatetime >= to_timestamp($1) AND measuredatetime <= to_timestamp($2) "
            "ORDER BY measuredatetime DESC"
        )
        properties = (
            "json_build_object('gaugeid', r.gaugeid, 'gaugenameid', r.gaugenameid, "
            "'depth', r.depth, 'warninglevel', r.warninglevel, "
            "'warningnameid', r.warningnameid, 'measuredatetime', r.measuredatetime)"
        )
        return await self._fetch_collection(
            _feature_collection_sql(rows, properties), start, end
        )

    async def get_floodsensors(
        self,
        *,
        start: int,
        end: int,
        data_table: str,
        metadata_table: str,
    ) -> dict | None:
        rows = (
            "SELECT m.id, m.location AS the_geom, "
            "json_agg(json_build_object('time', d.measurement_time, "
            "'height', d.computed_depth) ORDER BY d.measurement_time) AS measurements "
            f"FROM {metadata_table} AS m JOIN {data_table} AS d ON d.sensor_id = m.id "
            "WHERE d.measurement_time >= to_timestamp($1) "
            "AND d.measurement_time <= to_timestamp($2) "
            "GROUP BY m.id, m.location"
        )
        properties = "json_build_object('sensor_id', r.id, 'measurements', r.measurements)"
        return await self._fetch_collection(
            _feature_collection_sql(rows, properties), start, end
        )
