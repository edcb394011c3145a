"""Starlette application and request dispatcher.

Every data route goes through ``cached_endpoint``: look the request up in
the response cache, otherwise fetch the domain data, build the envelope in
the requested output format, cache it under the route's policy and write
it out. Errors are never cached and always answered with their real status.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware import Middleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.responses import FileResponse, JSONResponse, RedirectResponse, Response
from starlette.routing import Mount, Route
from starlette.staticfiles import StaticFiles

from cognicity.errors import CognicityError, ErrorCode
from cognicity.handlers import infrastructure, reports, sensors
from cognicity.responses import OutputFormat, prepare_response
from cognicity.schedulers import run_cache_sweep_scheduler
from cognicity.transport import AccessLogMiddleware, GatewayMiddleware

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable

    from starlette.requests import Request

    from cognicity.models.response import ResponseEnvelope
    from cognicity.state import AppState

    DataFetcher = Callable[[Request, AppState], Awaitable[Any]]

log = structlog.get_logger()


class CachePolicy(StrEnum):
    TEMPORARY = "temporary"  # expires after cache.ttl_seconds
    PERMANENT = "permanent"  # kept for the life of the process


def cache_key(request: Request) -> str:
    """Request path plus query string, exactly as received (still percent-encoded)."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        key = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        key = request.scope["path"]
    query = request.scope.get("query_string", b"")
    if query:
        key += "?" + query.decode("latin-1")
    return key


def write_response(envelope: ResponseEnvelope) -> Response:
    return Response(
        content=envelope.body,
        status_code=envelope.status_code,
        headers=envelope.headers,
    )


def error_response(error: CognicityError) -> JSONResponse:
    return JSONResponse(error.to_dict(), status_code=error.status_code)


def cached_endpoint(
    fetch: DataFetcher, policy: CachePolicy
) -> Callable[[Request], Awaitable[Response]]:
    async def endpoint(request: Request) -> Response:
        state: AppState = request.app.state.cognicity
        key = cache_key(request)

        cached = state.cache.get(key)
        if cached is not None:
            log.debug("cache_hit", key=key)
            return write_response(cached)

        try:
            data = await fetch(request, state)
            envelope = prepare_response(
                data, OutputFormat.from_query(request.query_params.get("format"))
            )
        except CognicityError as exc:
            log.warning(
                "request_error",
                path=request.url.path,
                code=exc.code,
                message=exc.message,
                status=exc.status_code,
            )
            return error_response(exc)
        except Exception:
            log.error("request_unexpected_error", path=request.url.path, exc_info=True)
            return error_response(
                CognicityError(ErrorCode.INTERNAL_ERROR, "Internal server error")
            )

        if policy is CachePolicy.PERMANENT:
            state.cache.cache_permanently(key, envelope)
        else:
            state.cache.cache_temporarily(key, envelope, state.settings.cache.ttl_seconds)
        return write_response(envelope)

    return endpoint


# ---------------------------------------------------------------------------
# Plain routes
# ---------------------------------------------------------------------------


def _accepts_language(header: str | None, locale: str) -> bool:
    """Minimal Accept-Language negotiation: no header accepts everything."""
    if not header:
        return True
    for part in header.split(","):
        tag, _, params = part.strip().partition(";")
        tag = tag.strip().lower()
        quality = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                quality = float(params[2:])
            except ValueError:
                quality = 0.0
        if quality <= 0:
            continue
        if tag == "*" or tag == locale.lower() or tag.split("-")[0] == locale.lower():
            return True
    return False


async def _language_redirect(request: Request) -> Response:
    settings = request.app.state.cognicity.settings
    languages = settings.languages
    language = (
        languages.locale
        if _accepts_language(request.headers.get("accept-language"), languages.locale)
        else languages.default
    )
    return RedirectResponse(f"/{settings.server.root_redirect}/{language}", status_code=302)


async def _deprecated_v1(request: Request) -> Response:
    settings = request.app.state.cognicity.settings
    url = f"/{settings.server.url_prefix}/data/api/v2{request.path_params['rest']}"
    if request.url.query:
        url += "?" + request.url.query
    return RedirectResponse(url, status_code=301, headers={"Cache-Control": "max-age=60"})


_HTTP_ERROR_CODES: dict[int, ErrorCode] = {
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.METHOD_NOT_ALLOWED,
}


async def _http_error(request: Request, exc: HTTPException) -> Response:
    default = ErrorCode.INTERNAL_ERROR if exc.status_code >= 500 else ErrorCode.INVALID_PARAMETER
    code = _HTTP_ERROR_CODES.get(exc.status_code, default)
    log.info("http_error", path=request.url.path, status=exc.status_code, detail=exc.detail)
    return JSONResponse(
        {"error": {"code": code, "message": exc.detail}},
        status_code=exc.status_code,
        headers=exc.headers,
    )


def _data_routes(state: AppState) -> list[Route]:
    settings = state.settings
    api = f"/{settings.server.url_prefix}/data/api"
    routes = [
        Route(f"{api}/v1{{rest:path}}", _deprecated_v1),
        Route(
            f"{api}/v2/reports/confirmed",
            cached_endpoint(lambda request, s: reports.confirmed(s), CachePolicy.TEMPORARY),
        ),
        Route(
            f"{api}/v2/reports/confirmed/{{id}}",
            cached_endpoint(
                lambda request, s: reports.confirmed_by_id(request.path_params["id"], s),
                CachePolicy.TEMPORARY,
            ),
        ),
        Route(
            f"{api}/v2/iot/smartsensors",
            cached_endpoint(lambda request, s: sensors.smartsensors(s), CachePolicy.TEMPORARY),
        ),
        # Must precede the generic infrastructure route
        Route(
            f"{api}/v2/infrastructure/floodgauges",
            cached_endpoint(
                lambda request, s: infrastructure.floodgauges(s), CachePolicy.TEMPORARY
            ),
        ),
        Route(
            f"{api}/v2/infrastructure/{{name}}",
            cached_endpoint(
                lambda request, s: infrastructure.layer(request.path_params["name"], s),
                CachePolicy.PERMANENT,
            ),
        ),
    ]
    if settings.api.floodwatch:
        routes.append(
            Route(
                f"{api}/v2/floodwatch/reports/",
                cached_endpoint(
                    lambda request, s: reports.floodwatch(
                        request.query_params.get("area_name"), s
                    ),
                    CachePolicy.TEMPORARY,
                ),
            )
        )
    return routes


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def _watch_monitor(state: AppState) -> Callable[[asyncio.Task[None]], None]:
    def on_done(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        log.critical("monitor_stopped_unexpectedly", exc_info=exc)
        if state.shutdown is not None:
            state.shutdown.request(1, "monitor_stopped_unexpectedly")

    return on_done


@asynccontextmanager
async def lifespan(app: Starlette) -> AsyncGenerator[None, None]:
    """Run the connection monitor and cache sweep for the app's lifetime."""
    state: AppState = app.state.cognicity
    tasks: list[asyncio.Task[None]] = []

    if state.monitor is not None:
        monitor_task = asyncio.create_task(state.monitor.run())
        monitor_task.add_done_callback(_watch_monitor(state))
        tasks.append(monitor_task)
    tasks.append(asyncio.create_task(run_cache_sweep_scheduler(state)))

    try:
        yield
    finally:
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        if state.monitor is not None:
            await state.monitor.stop()


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(state: AppState) -> Starlette:
    settings = state.settings
    server = settings.server

    routes: list[Route | Mount] = [
        Route("/", _language_redirect),
        Route(f"/{server.root_redirect}", _language_redirect),
    ]
    if settings.api.data:
        routes.extend(_data_routes(state))
    if server.robots:
        robots = server.robots

        async def robots_txt(request: Request) -> Response:
            return FileResponse(robots)

        routes.append(Route("/robots.txt", robots_txt))
    if server.public_dir:
        routes.append(
            Mount(
                f"/{server.url_prefix}",
                app=StaticFiles(directory=server.public_dir, html=True, check_dir=False),
            )
        )

    middleware = [
        Middleware(AccessLogMiddleware),
        Middleware(
            GatewayMiddleware,
            data_prefix=f"/{server.url_prefix}/data/",
            redirect_http=server.redirect_http,
        ),
    ]
    if server.compression:
        middleware.append(Middleware(GZipMiddleware))

    app = Starlette(
        routes=routes,
        middleware=middleware,
        exception_handlers={HTTPException: _http_error},
        lifespan=lifespan,
    )
    app.state.cognicity = state
    return app
