"""Shared pytest fixtures: fake clock, scripted randomness and an API client
wired to an in-memory mapping table."""

from collections.abc import Sequence
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from redirector.config import Settings
from redirector.dependencies import ServiceManager, get_service_manager
from redirector.main import app
from redirector.sheets import StaticTableProvider

HEADER = [
    "redirect_id",
    "active",
    "domain",
    "slug",
    "segment",
    "group1",
    "group2",
    "weights",
    "fallback_url",
]

SAMPLE_TABLE = [
    HEADER,
    ["5", "TRUE", "https://example.com", "/bar", "seg-a", "shoes|boots|sandals|heels", "hats", "1,1", ""],
    ["6", "FALSE", "inactive.example.com", "baz", "", "g1", "", "1", ""],
    ["7", "TRUE", "", "", "", "g1", "", "1", ""],
    ["8", "true", "plain.example.com", "landing", "", "", "", "", ""],
]

FALLBACK_TABLE = [
    HEADER,
    ["5", "TRUE", "example.com", "bar", "", "g1", "", "1", ""],
    ["9", "FALSE", "", "", "", "", "", "", "https://fallback.example.com/home?src=sheet"],
]


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedRandom:
    """Random source returning scripted draws and identity permutations."""

    def __init__(self, draws: Sequence[float] = (0.0,)):
        self._draws = list(draws)
        self._index = 0

    def random(self) -> float:
        value = self._draws[self._index % len(self._draws)]
        self._index += 1
        return value

    def sample(self, population: Sequence[str], k: int) -> list[str]:
        return list(population)[:k]


def make_settings(**overrides) -> Settings:
    values = {
        "CACHE_TTL_MS": 60_000,
        "SHEET_ID": "",
        "GOOGLE_SERVICE_ACCOUNT_EMAIL": "",
        "GOOGLE_PRIVATE_KEY": "",
        "STATIC_ROWS_JSON": "",
        "STATIC_FBID": "111",
        "STATIC_FBCLICK": "Purchase",
        "REDIRECT_KEY_PARAM": "rid",
        "MAX_KEYWORDS": 3,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture(scope="function")
async def manager(request: pytest.FixtureRequest, clock: FakeClock) -> AsyncGenerator[ServiceManager, None]:
    param = getattr(request, "param", SAMPLE_TABLE)
    provider = param if hasattr(param, "fetch_table") else StaticTableProvider(param)
    service_manager = ServiceManager(
        settings=make_settings(),
        provider=provider,
        clock=clock,
        rng=ScriptedRandom([0.0]),
    )
    await service_manager.initialize()
    yield service_manager
    await service_manager.cleanup()


@pytest_asyncio.fixture(scope="function")
async def client(manager: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_service_manager() -> ServiceManager:
        return manager

    app.dependency_overrides[get_service_manager] = override_get_service_manager

    # Unhandled errors are re-raised after the 500 handler has responded.
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
