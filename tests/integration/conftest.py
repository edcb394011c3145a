"""Integration test fixtures.

Provides a fully wired AppState around the in-memory FakeStore, a cache
driven by FakeClock, and an httpx client speaking to the Starlette app over
ASGI. The lifespan is not run, so no background tasks are started here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from cognicity.app import create_app
from cognicity.state import AppState

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.applications import Starlette

    from cognicity.cache import ResponseCache
    from cognicity.config import Settings
    from tests.conftest import FakeStore


@pytest.fixture()
def app_state(settings: Settings, cache: ResponseCache, store: FakeStore) -> AppState:
    return AppState(settings=settings, cache=cache, store=store)


@pytest.fixture()
def app(app_state: AppState) -> Starlette:
    return create_app(app_state)


@pytest.fixture()
async def client(app: Starlette) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
