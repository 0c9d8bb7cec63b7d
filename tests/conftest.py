"""
BidRadar Test Configuration and Fixtures
Shared pytest fixtures for all test modules.
"""
import fnmatch
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest
import pytest_asyncio
import redis

from agents.matching.models import CompanyProfile, ContactInfo, Opportunity
from backend.adapters.factory import BackendSelector
from backend.core.config import Settings

FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Settings Fixtures
# =============================================================================


def make_settings(**overrides: Any) -> Settings:
    """Settings isolated from any local .env file."""
    defaults = {
        "cache_provider": "memory",
        "vector_provider": "memory",
        "vector_dimension": 8,
        "openai_api_key": None,
        "notification_webhook_url": None,
        "environment": "test",
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


class FakeClock:
    """Controllable epoch-seconds clock for TTL tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def selector(settings):
    selector = BackendSelector(settings)
    yield selector
    await selector.reset()


# =============================================================================
# Redis Fixtures
# =============================================================================


class FakeRedis:
    """Fake async Redis implementation for testing."""

    def __init__(self):
        self.strings: dict[str, str] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.ttls: dict[str, int] = {}
        self.fail = False
        self.closed = False

    def _check(self) -> None:
        if self.fail:
            raise redis.ConnectionError("connection refused")

    async def ping(self) -> bool:
        self._check()
        return True

    async def get(self, key: str) -> Optional[str]:
        self._check()
        if key in self.hashes:
            raise redis.ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")
        return self.strings.get(key)

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self._check()
        self.strings[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        deleted = 0
        for key in keys:
            if self.strings.pop(key, None) is not None or self.hashes.pop(key, None) is not None:
                deleted += 1
            self.ttls.pop(key, None)
        return deleted

    async def scan_iter(self, match: str = "*"):
        self._check()
        for key in list(self.strings) + list(self.hashes):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def dbsize(self) -> int:
        self._check()
        return len(self.strings) + len(self.hashes)

    async def info(self, section: str = None) -> dict:
        self._check()
        return {"used_memory_human": "1.00M"}

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


# =============================================================================
# Domain Fixtures
# =============================================================================


@pytest.fixture
def sample_profile() -> CompanyProfile:
    return CompanyProfile(
        id="acme",
        entity_name="Acme Analytics LLC",
        description="Applied machine learning for federal agencies",
        naics_codes=["541511"],
        business_types=["Small Business"],
        capabilities=["AI Development"],
        contact_info=ContactInfo(state="VA", city="Arlington"),
    )


@pytest.fixture
def sample_opportunity(fixed_now) -> Opportunity:
    return Opportunity(
        id="opp-ai-001",
        title="AI Software Development",
        synopsis="The agency seeks AI development services for document triage.",
        naics_code="541511",
        set_aside="Small Business",
        state="MD",
        response_deadline=fixed_now + timedelta(days=10),
    )


def make_opportunity(opportunity_id: str, **overrides: Any) -> Opportunity:
    fields = {
        "id": opportunity_id,
        "title": f"Opportunity {opportunity_id}",
        "synopsis": "",
    }
    fields.update(overrides)
    return Opportunity(**fields)
