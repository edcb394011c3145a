"""Tests for GatewayMiddleware and AccessLogMiddleware.

Each test exercises the middleware directly via httpx's ASGI transport so no
real server is started. The inner app is a trivial 200-OK responder that
never runs if the middleware short-circuits.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from cognicity.transport import AccessLogMiddleware, GatewayMiddleware

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Receive, Scope, Send


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _ok_app(scope: Scope, receive: Receive, send: Send) -> None:
    """Minimal ASGI app that always returns 200 OK."""
    await send(
        {
            "type": "http.response.start",
            "status": 200,
            "headers": [(b"content-type", b"text/plain")],
        }
    )
    await send({"type": "http.response.body", "body": b"ok"})


def _client(app: ASGIApp) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://localhost",
    )


def _gateway(redirect_http: bool = False) -> GatewayMiddleware:
    return GatewayMiddleware(_ok_app, data_prefix="/banjir/data/", redirect_http=redirect_http)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_cors_headers_on_data_paths() -> None:
    async with _client(_gateway()) as client:
        response = await client.get("/banjir/data/api/v2/reports/confirmed")
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
    assert response.headers["access-control-allow-headers"] == "X-Requested-With"
    assert response.headers["content-type"] == "text/plain"


@pytest.mark.parametrize("path", ["/banjir/index.html", "/robots.txt", "/banjir/datafile"])
@pytest.mark.asyncio
async def test_no_cors_headers_elsewhere(path: str) -> None:
    async with _client(_gateway()) as client:
        response = await client.get(path)
    assert "access-control-allow-origin" not in response.headers


# ---------------------------------------------------------------------------
# HTTP -> HTTPS redirect
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_forwarded_http_redirected_when_enabled() -> None:
    async with _client(_gateway(redirect_http=True)) as client:
        response = await client.get(
            "/banjir/data/api/v2/reports/confirmed?format=topojson",
            headers={"X-Forwarded-Proto": "HTTP", "Host": "petajakarta.org"},
        )
    assert response.status_code == 302
    assert (
        response.headers["location"]
        == "https://petajakarta.org/banjir/data/api/v2/reports/confirmed?format=topojson"
    )


@pytest.mark.asyncio
async def test_forwarded_https_passes_through() -> None:
    async with _client(_gateway(redirect_http=True)) as client:
        response = await client.get("/banjir/", headers={"X-Forwarded-Proto": "https"})
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_no_redirect_when_disabled() -> None:
    async with _client(_gateway(redirect_http=False)) as client:
        response = await client.get("/banjir/", headers={"X-Forwarded-Proto": "http"})
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_missing_forwarded_header_passes_through() -> None:
    """Direct connections without a load balancer are not redirected."""
    async with _client(_gateway(redirect_http=True)) as client:
        response = await client.get("/banjir/")
    assert response.status_code == 200


# ---------------------------------------------------------------------------
# Access log
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_access_log_does_not_alter_response() -> None:
    async with _client(AccessLogMiddleware(_ok_app)) as client:
        response = await client.get("/banjir/data/api/v2/iot/smartsensors")
    assert response.status_code == 200
    assert response.text == "ok"
