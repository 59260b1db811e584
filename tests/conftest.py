import logging
from collections.abc import AsyncIterator, Iterator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import factories  # noqa: F401  (registers the sample models on Base.metadata)
from trailkeeper.context import _EMPTY, _audit_context
from trailkeeper.database import enable_sqlite_savepoints
from trailkeeper.models import Base


@pytest.fixture
async def session_factory() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def db(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def clean_audit_context() -> Iterator[None]:
    # Tests share one thread; make sure a failed test never leaks its scope.
    token = _audit_context.set(_EMPTY)
    yield
    _audit_context.reset(token)


@pytest.fixture
def isolated_loggers() -> Iterator[None]:
    names = ("trailkeeper", "sqlalchemy.engine")
    saved = {
        name: (logger.level, logger.propagate, list(logger.handlers))
        for name in names
        for logger in [logging.getLogger(name)]
    }
    yield
    for name, (level, propagate, handlers) in saved.items():
        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.propagate = propagate
        logger.handlers[:] = handlers
