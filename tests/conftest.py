"""
Pytest configuration and fixtures for Allocation Crawler tests
"""

import os
from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis, FakeServer

# Set test environment before importing app modules
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["REDIS_KEY_PREFIX"] = ""
os.environ["COORDINATOR_LOCK_TTL_SECONDS"] = "300"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["LOG_FORMAT"] = "text"

from allocation_crawler.applications import ApplicationCoordinator  # noqa: E402
from allocation_crawler.core.store import KeyValueStore  # noqa: E402
from allocation_crawler.entities import EntityStore, NewJob  # noqa: E402
from allocation_crawler.queries import QueryService  # noqa: E402


@pytest.fixture
def fake_server() -> FakeServer:
    """Isolated in-memory Redis server per test"""
    return FakeServer()


@pytest_asyncio.fixture
async def redis_client(fake_server: FakeServer) -> AsyncGenerator[FakeAsyncRedis, None]:
    client = FakeAsyncRedis(server=fake_server, decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def store(redis_client: FakeAsyncRedis) -> KeyValueStore:
    return KeyValueStore(redis_client)


@pytest.fixture
def entities(store: KeyValueStore) -> EntityStore:
    return EntityStore(store)


@pytest.fixture
def coordinator(store: KeyValueStore, entities: EntityStore) -> ApplicationCoordinator:
    return ApplicationCoordinator(store, entities, lock_ttl_seconds=300)


@pytest.fixture
def queries(
    store: KeyValueStore,
    entities: EntityStore,
    coordinator: ApplicationCoordinator,
) -> QueryService:
    return QueryService(store, entities, coordinator)


@pytest.fixture
def make_job() -> Callable[..., NewJob]:
    """Factory for job submissions with sensible defaults"""

    def _make(job_id: str = "42", board: str = "ramp", **fields) -> NewJob:
        fields.setdefault("title", "Quant Trader")
        fields.setdefault("department", "Trading")
        fields.setdefault("url", f"https://jobs.example.com/{board}/{job_id}")
        fields.setdefault("location", "New York")
        return NewJob(job_id=job_id, board=board, **fields)

    return _make


@pytest_asyncio.fixture
async def ramp_board(entities: EntityStore):
    """A registered Ashby board"""
    return await entities.add_board("ramp", "Ramp", "ashby")


@pytest.fixture
def sample_greenhouse_payload() -> dict:
    return {
        "jobs": [
            {
                "id": 4012345,
                "title": "Senior Software Engineer",
                "absolute_url": "https://boards.greenhouse.io/vercel/jobs/4012345",
                "location": {"name": "Remote"},
                "departments": [{"name": "Engineering"}],
            },
            {
                "id": 4012346,
                "title": "Account Executive",
                "absolute_url": "https://boards.greenhouse.io/vercel/jobs/4012346",
                "location": None,
                "departments": [],
            },
        ]
    }


@pytest.fixture
def sample_lever_payload() -> list:
    return [
        {
            "id": "a1b2c3",
            "text": "Machine Learning Researcher",
            "hostedUrl": "https://jobs.lever.co/acme/a1b2c3",
            "categories": {"location": "San Francisco", "team": "Research"},
        },
        {
            "id": "d4e5f6",
            "text": "Office Manager",
            "hostedUrl": "https://jobs.lever.co/acme/d4e5f6",
            "categories": {},
        },
    ]


@pytest.fixture
def sample_ashby_payload() -> dict:
    return {
        "jobs": [
            {
                "id": "5f0c-quant",
                "title": "Quant Trader",
                "jobUrl": "https://jobs.ashbyhq.com/ramp/5f0c-quant",
                "location": "New York",
                "department": "Trading",
            },
            {
                "id": "7a1d-design",
                "title": "Product Designer",
                "jobUrl": "https://jobs.ashbyhq.com/ramp/7a1d-design",
                "team": "Design",
            },
        ]
    }


# Markers for test categorization
def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow-running tests")
    config.addinivalue_line("markers", "external: Tests requiring external services")
