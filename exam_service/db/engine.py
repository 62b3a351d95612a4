"""Database engine and the unit of work every write goes through.

A unit of work is one transaction: a submit (attempt + submission +
result), a release, a question edit with its recalculation batch.  It
commits when the block exits cleanly and rolls back when it raises.

Side effects that other readers can observe (statistics cache
invalidation, domain events) are registered with after_commit() and run
only once the commit has succeeded; a rollback discards them.  Without
DATABASE_URL there is no session and the in-memory store is used, but the
after-commit ordering is the same.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager, nullcontext

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from exam_service.core.config import SETTINGS

logger = logging.getLogger(__name__)

AfterCommit = Callable[[], Awaitable[None]]


class Base(DeclarativeBase):
    pass


if SETTINGS.database_url:
    engine = create_async_engine(
        SETTINGS.database_url,
        echo=SETTINGS.is_dev,
        pool_size=5,
        max_overflow=10,
    )
    async_session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
else:
    engine = None
    async_session_factory = None


class UnitOfWork:
    def __init__(self, session: AsyncSession | None = None) -> None:
        self.session = session
        self._after_commit: list[AfterCommit] = []

    def after_commit(self, callback: AfterCommit) -> None:
        self._after_commit.append(callback)

    async def commit(self) -> None:
        if self.session is not None:
            await self.session.commit()
        callbacks, self._after_commit = self._after_commit, []
        for callback in callbacks:
            try:
                await callback()
            except Exception:
                logger.exception("After-commit callback %r failed", callback)

    async def rollback(self) -> None:
        discarded, self._after_commit = len(self._after_commit), []
        if self.session is not None:
            await self.session.rollback()
        logger.info("Unit of work rolled back, %d after-commit callbacks dropped", discarded)


@asynccontextmanager
async def unit_of_work(
    session_factory: Callable[[], AsyncSession] | None = None,
) -> AsyncIterator[UnitOfWork]:
    factory = session_factory or async_session_factory
    async with (factory() if factory is not None else nullcontext()) as session:
        uow = UnitOfWork(session)
        try:
            yield uow
        except Exception:
            await uow.rollback()
            raise
        await uow.commit()


@asynccontextmanager
async def lifespan_db():
    if engine is None:
        logger.info("No DATABASE_URL configured; using in-memory store")
        yield
        return

    logger.info("Database engine created: %s", engine.url)
    yield
    await engine.dispose()
    logger.info("Database engine disposed")
