# tests/conftest.py
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from rate_engine.config import Settings
from rate_engine.database import custom_json_dumps, init_db
from rate_engine.services.cache_service import InMemoryCache, PricingCacheService


# =========================================
# One in-memory SQLite database per test
# =========================================
@pytest_asyncio.fixture(scope="function")
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        json_serializer=custom_json_dumps,
    )
    await init_db(bind=engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture(scope="function")
def async_session_maker(async_engine: AsyncEngine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def session(async_session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as sess:
        try:
            yield sess
        finally:
            if sess.in_transaction():
                await sess.rollback()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(REDIS_URL=None, CACHE_NAMESPACE="test")


@pytest.fixture
def cache(test_settings) -> PricingCacheService:
    return PricingCacheService(InMemoryCache(), config=test_settings)
