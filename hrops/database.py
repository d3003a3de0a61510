"""Async SQLAlchemy engine, session factory and declarative base.

Writes commit inside their own unit of work (``hrops.leave.lifecycle``);
the request-scoped session handed out by ``get_db`` only makes sure nothing
is left open when the request ends.
"""

from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from hrops.config import settings

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DATABASE_ECHO,
    pool_size=settings.DATABASE_POOL_SIZE,
    max_overflow=settings.DATABASE_MAX_OVERFLOW,
    pool_pre_ping=True,
)

# expire_on_commit=False: responses are built from rows after the commit
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one session per request, rolled back if left open."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            if session.in_transaction():
                await session.rollback()


async def ping(session: AsyncSession) -> bool:
    """True when the database answers a trivial query."""
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return False
    return True


def upsert_insert(session: AsyncSession, model):
    """Dialect-specific INSERT for ``model`` that supports ON CONFLICT.

    PostgreSQL in production, SQLite under test; both expose
    ``on_conflict_do_nothing`` / ``on_conflict_do_update``.
    """
    if session.get_bind().dialect.name == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)
