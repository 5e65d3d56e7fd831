"""
Shared test configuration and fixtures for the ENS profile cache tests.

Provides in-memory stand-ins for the registry and the profile store, a controllable clock,
and PostgreSQL database setup for the store tests.
"""

import asyncio
import contextlib
import os
import uuid
from typing import AsyncIterator, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from social.graze.enscache.model.base import Base
from social.graze.enscache.resolve.registry import ResolverFailure
from social.graze.enscache.service.cache import ProfileCacheService
from social.graze.enscache.service.types import ProfileRecord

VITALIK_ADDRESS = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"
ALICE_ADDRESS = "0x1111111111111111111111111111111111111111"
BOB_ADDRESS = "0x2222222222222222222222222222222222222222"

NOW = 1_700_000_000


class FakeClock:
    """Clock returning a settable number of seconds since the epoch."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResolver:
    """In-memory IdentityResolver that counts calls.

    Setting `failure` makes every call raise it. Setting `delay` makes every call sleep first.
    """

    def __init__(self) -> None:
        self.names: Dict[str, str] = {}
        self.addresses: Dict[str, str] = {}
        self.avatars: Dict[str, str] = {}
        self.texts: Dict[Tuple[str, str], str] = {}
        self.calls: List[Tuple[str, str]] = []
        self.failure: Optional[Exception] = None
        self.delay: float = 0.0

    def register(
        self,
        name: str,
        address: str,
        avatar: Optional[str] = None,
        primary: bool = True,
        **texts: str,
    ) -> None:
        self.addresses[name] = address
        if primary:
            self.names[address.lower()] = name
        if avatar is not None:
            self.avatars[name] = avatar
        for key, value in texts.items():
            self.texts[(name, key.replace("_", "."))] = value

    async def _call(self, operation: str, subject: str) -> None:
        self.calls.append((operation, subject))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failure is not None:
            raise self.failure

    def count(self, operation: Optional[str] = None) -> int:
        return len([c for c in self.calls if operation is None or c[0] == operation])

    async def reverse_lookup(self, address: str) -> Optional[str]:
        await self._call("reverse_lookup", address)
        return self.names.get(address.lower())

    async def forward_lookup(self, name: str) -> Optional[str]:
        await self._call("forward_lookup", name)
        return self.addresses.get(name)

    async def avatar(self, name: str) -> Optional[str]:
        await self._call("avatar", name)
        return self.avatars.get(name)

    async def text_record(self, name: str, key: str) -> Optional[str]:
        await self._call("text_record", f"{name}#{key}")
        return self.texts.get((name, key))


class InMemoryProfileStore:
    """ProfileStore backed by a dict, recording writes in order."""

    def __init__(self) -> None:
        self.rows: Dict[str, ProfileRecord] = {}
        self.writes: List[Tuple[str, ...]] = []
        self.transactions = 0

    @contextlib.asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        self.transactions += 1
        self.writes.append(("begin",))
        yield
        self.writes.append(("commit",))

    async def get_by_address(self, address: str) -> Optional[ProfileRecord]:
        return self.rows.get(address)

    async def get_by_name(self, name: str) -> Optional[ProfileRecord]:
        holders = [row for row in self.rows.values() if row.name == name]
        if not holders:
            return None
        return max(holders, key=lambda row: row.updated_at)

    async def upsert(self, profile: ProfileRecord) -> None:
        self.writes.append(("upsert", profile.address))
        existing = self.rows.get(profile.address)
        if existing is not None and existing.updated_at > profile.updated_at:
            return
        self.rows[profile.address] = profile.model_copy(deep=True)

    async def clear_name_except(self, name: str, keep_address: str) -> int:
        self.writes.append(("clear_name_except", name, keep_address))
        cleared = 0
        for address, row in self.rows.items():
            if row.name == name and address != keep_address:
                self.rows[address] = row.model_copy(update={"name": None})
                cleared += 1
        return cleared


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def store():
    return InMemoryProfileStore()


@pytest.fixture
def service(resolver, store, clock):
    return ProfileCacheService(resolver=resolver, store=store, clock=clock)


@pytest.fixture
def registry_outage():
    return ResolverFailure("forward_lookup", "example.eth", "connection refused")


# Test database configuration
TEST_DB_HOST = os.getenv("TEST_DB_HOST", "postgres")
TEST_DB_PORT = os.getenv("TEST_DB_PORT", "5432")
TEST_DB_USER = os.getenv("TEST_DB_USER", "postgres")
TEST_DB_PASSWORD = os.getenv("TEST_DB_PASSWORD", "password")

# Admin URL for database creation/deletion (connects to postgres database)
ADMIN_DATABASE_URL = f"postgresql+asyncpg://{TEST_DB_USER}:{TEST_DB_PASSWORD}@{TEST_DB_HOST}:{TEST_DB_PORT}/postgres"


async def check_postgres_available():
    """Check if PostgreSQL is available for testing."""
    try:
        admin_engine = create_async_engine(ADMIN_DATABASE_URL, echo=False)
        async with admin_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        await admin_engine.dispose()
        return True
    except Exception:
        return False


@pytest_asyncio.fixture(scope="function")
async def test_database():
    """Create and clean up test database for each test function."""
    if not await check_postgres_available():
        pytest.skip("PostgreSQL database not available for testing")

    # Use a unique database name for each test to avoid conflicts
    unique_db_name = f"enscache_test_{uuid.uuid4().hex[:8]}"
    unique_db_url = (
        f"postgresql+asyncpg://{TEST_DB_USER}:{TEST_DB_PASSWORD}@"
        f"{TEST_DB_HOST}:{TEST_DB_PORT}/{unique_db_name}"
    )

    admin_engine = create_async_engine(
        ADMIN_DATABASE_URL, echo=False, isolation_level="AUTOCOMMIT"
    )

    try:
        async with admin_engine.connect() as conn:
            await conn.execute(text(f"CREATE DATABASE {unique_db_name}"))

        yield unique_db_url

    finally:
        async with admin_engine.connect() as conn:
            await conn.execute(text(f"DROP DATABASE IF EXISTS {unique_db_name}"))
        await admin_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def engine(test_database):
    """Create async SQLAlchemy engine with the offchain schema and tables."""
    engine = create_async_engine(
        test_database,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.execute(text("CREATE SCHEMA IF NOT EXISTS offchain"))
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def session(session_maker):
    """Create async database session for testing."""
    async with session_maker() as session:
        yield session
