from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock

if TYPE_CHECKING:
    from cascade_engine.core.cache import CacheService

import pytest


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Return an ``AsyncMock`` that behaves like ``redis.asyncio.Redis``."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock()
    redis.setex = AsyncMock()
    redis.delete = AsyncMock()
    redis.incr = AsyncMock(return_value=1)
    redis.incrbyfloat = AsyncMock(return_value=1.0)
    redis.expire = AsyncMock()
    redis.rpush = AsyncMock(return_value=1)
    redis.ping = AsyncMock()
    return redis


@pytest.fixture
def mock_cache(mock_redis) -> "CacheService":
    """Return a ``CacheService`` backed by the mock Redis client."""
    from cascade_engine.core.cache import CacheService

    return CacheService(redis_client=mock_redis)


@pytest.fixture
def mock_session() -> AsyncMock:
    """An ``AsyncSession`` stand-in usable as ``async with session_factory()``."""
    session = AsyncMock()
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=False)
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.flush = AsyncMock()
    return session


@pytest.fixture
def session_factory(mock_session) -> MagicMock:
    """Callable returning ``mock_session`` – mirrors ``async_sessionmaker``."""
    return MagicMock(return_value=mock_session)
