"""HTTP transport: gateway middleware and the uvicorn server wrapper."""

from __future__ import annotations

import signal
import time
from typing import TYPE_CHECKING

import structlog
import uvicorn
from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import RedirectResponse

if TYPE_CHECKING:
    from types import FrameType

    from starlette.types import ASGIApp, Message, Receive, Scope, Send

    from cognicity.config import Settings
    from cognicity.shutdown import ShutdownCoordinator

log = structlog.get_logger()

CORS_HEADERS: tuple[tuple[str, str], ...] = (
    ("Access-Control-Allow-Origin", "*"),
    ("Access-Control-Allow-Headers", "X-Requested-With"),
)


class GatewayMiddleware:
    """Pure ASGI middleware applied to every HTTP request.

    1. Redirects plain-HTTP requests (as reported by the load balancer via
       X-Forwarded-Proto) to HTTPS, when enabled.
    2. Adds CORS headers to every response under the data prefix.
    """

    def __init__(self, app: ASGIApp, *, data_prefix: str, redirect_http: bool = False) -> None:
        self.app = app
        self.data_prefix = data_prefix
        self.redirect_http = redirect_http

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)

        if self.redirect_http and headers.get("x-forwarded-proto", "").lower() == "http":
            url = f"https://{headers.get('host', '')}{scope['path']}"
            if scope.get("query_string"):
                url += "?" + scope["query_string"].decode("latin-1")
            await RedirectResponse(url, status_code=302)(scope, receive, send)
            return

        if not scope["path"].startswith(self.data_prefix):
            await self.app(scope, receive, send)
            return

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                response_headers = MutableHeaders(scope=message)
                for name, value in CORS_HEADERS:
                    response_headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_cors)


class AccessLogMiddleware:
    """Emits one ``http_request`` event per completed request."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = time.perf_counter()
        status_code = 500

        async def send_and_record(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_and_record)
        finally:
            log.info(
                "http_request",
                method=scope["method"],
                path=scope["path"],
                query=scope.get("query_string", b"").decode("latin-1"),
                status=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )


class GatewayServer(uvicorn.Server):
    """uvicorn server whose SIGINT/SIGTERM handling goes through the shutdown coordinator."""

    def __init__(self, config: uvicorn.Config, coordinator: ShutdownCoordinator) -> None:
        super().__init__(config)
        self._coordinator = coordinator
        coordinator.attach(self._request_exit)

    def _request_exit(self) -> None:
        self.should_exit = True

    def handle_exit(self, sig: int, frame: FrameType | None) -> None:
        if self.should_exit and sig == signal.SIGINT:
            # Second Ctrl+C skips the graceful wait.
            self.force_exit = True
            return
        self._coordinator.request(0, signal.Signals(sig).name)


def build_server(
    app: ASGIApp, settings: Settings, coordinator: ShutdownCoordinator
) -> GatewayServer:
    config = uvicorn.Config(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,  # Disable uvicorn's default logging; structlog handles it
        access_log=False,  # AccessLogMiddleware replaces it
        timeout_graceful_shutdown=settings.shutdown.graceful_timeout_seconds,
    )
    return GatewayServer(config, coordinator)
