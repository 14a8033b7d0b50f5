"""Worker-safe database sessions for Celery tasks.

Creates a fresh async engine per job to avoid the 'Future attached
to a different loop' error when asyncpg connections are shared
across event loops in forked Celery workers.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings


@asynccontextmanager
async def worker_session_factory() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Provide a session factory bound to a per-job engine.

    Usage:
        async with worker_session_factory() as session_factory:
            engine = create_workflow_engine(session_factory=session_factory)
            await engine.process_workflow(execution_id)
    """
    settings = get_settings()
    kwargs = dict(echo=False, future=True)
    if not settings.is_sqlite:
        kwargs.update(pool_size=5, max_overflow=5, pool_recycle=300)
    engine = create_async_engine(settings.DATABASE_URL, **kwargs)
    try:
        yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    finally:
        await engine.dispose()
