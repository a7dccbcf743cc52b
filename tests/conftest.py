"""
Shared fixtures: a file-backed SQLite database, an in-process Redis server
and in-memory fakes.
"""

import pytest
from fakeredis import FakeAsyncRedis, FakeServer

from market_ingress.core.database import Database
from market_ingress.pubsub.bus import ChangeBus

from fakes import FakeEnrichQueue, FakeJobQueue, RecordingBus


@pytest.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'market.db'}")
    await db.init()
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
async def bus():
    change_bus = ChangeBus()
    yield change_bus
    await change_bus.close()


@pytest.fixture
def recording_bus():
    return RecordingBus()


@pytest.fixture
def enrich_queue():
    return FakeEnrichQueue()


@pytest.fixture
def job_queue():
    return FakeJobQueue()


@pytest.fixture
def redis_server():
    return FakeServer()


@pytest.fixture
async def redis(redis_server):
    client = FakeAsyncRedis(server=redis_server, decode_responses=True)
    yield client
    await client.aclose()
