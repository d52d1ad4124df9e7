"""Async SQLAlchemy engine, session factory and request-scoped session dependency."""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from donatehub.config import get_settings

settings = get_settings()

engine_kwargs = {"pool_pre_ping": True}
# aiosqlite connections are bound to the loop that opened them
if settings.DATABASE_URL.startswith("sqlite"):
    engine_kwargs = {"poolclass": NullPool}

engine = create_async_engine(settings.DATABASE_URL, **engine_kwargs)
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
