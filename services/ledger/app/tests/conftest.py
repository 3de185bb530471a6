import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import fakeredis
import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from .. import ledger
from ..directory import LocationDirectory, ProjectDirectory
from ..schema import create_tables

LOCATIONS = {
    "wh-north": {"id": "wh-north", "name": "North Warehouse", "type": "warehouse"},
    "office-1": {"id": "office-1", "name": "Main Office", "type": "office"},
}

PROJECT_DAYS = {
    "jo-1001": [{"id": "day-1", "date": "2026-03-02"}, {"id": "day-2", "date": "2026-03-03"}],
    "jo-empty": [],
}


def directory_handler(request: httpx.Request) -> httpx.Response:
    parts = request.url.path.strip("/").split("/")
    if parts[0] == "locations" and parts[1] in LOCATIONS:
        return httpx.Response(200, json=LOCATIONS[parts[1]])
    if parts[0] == "projects" and parts[1] in PROJECT_DAYS and parts[-1] == "days":
        return httpx.Response(200, json=PROJECT_DAYS[parts[1]])
    return httpx.Response(404, json={"error": "not found"})


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def file_engine(tmp_path):
    """One connection per session, so concurrent sessions really interleave."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def file_session_factory(file_engine):
    return async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def redis():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    await client.flushall()
    yield client
    await client.aclose()


@pytest.fixture
async def directory_client():
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(directory_handler), base_url="http://directory"
    ) as client:
        yield client


@pytest.fixture
def location_directory(directory_client):
    return LocationDirectory(directory_client)


@pytest.fixture
def project_directory(directory_client):
    return ProjectDirectory(directory_client)


@pytest.fixture
def make_item(session, redis):
    async def _make(delivered=100, kind="product", name="Scaffold clamp", location_id=None):
        return await ledger.create_item(
            session, redis, name, kind, delivered, location_id, actor="tester"
        )

    return _make
