"""Database Module with Monadic Error Handling

Async engine/session factories and Result-returning query helpers.
The engine is built by the process entry point (see main.lifespan) and
handed to request handlers through FastAPI dependencies.
"""
from typing import AsyncIterator, TypeVar
from uuid import UUID as PyUUID

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator, CHAR
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

from core.errors import (
    AppError,
    Ok,
    Err,
    Result,
    not_found,
    DatabaseErrorMapper,
)
from core.logging import db_logger

T = TypeVar("T")


class GUID(TypeDecorator):
    """Platform-agnostic GUID type.

    Uses PostgreSQL's UUID type when available, otherwise stores as CHAR(32).
    """
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(32))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value
        if isinstance(value, PyUUID):
            return value.hex
        return PyUUID(value).hex

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, PyUUID):
            return value
        return PyUUID(value)


Base = declarative_base()

_db_mapper = DatabaseErrorMapper("database")
log = db_logger()


def build_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    """Create the async engine for a database URL.

    In-memory SQLite shares one connection so every session sees the same data.
    """
    engine_kwargs: dict = {"echo": echo}

    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+asyncpg://", 1)

    if "sqlite" in url:
        if ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"):
            engine_kwargs.update({
                "poolclass": StaticPool,
                "connect_args": {"check_same_thread": False},
            })
    else:
        engine_kwargs.update({
            "pool_pre_ping": True,
            "pool_size": 5,
            "max_overflow": 10,
        })

    return create_async_engine(url, **engine_kwargs)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables known to the declarative Base."""
    import models  # noqa: F401  (registers tables on Base.metadata)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Dependency that yields a database session from the app's sessionmaker."""
    sessionmaker = request.app.state.resources.sessionmaker
    async with sessionmaker() as session:
        try:
            yield session
        finally:
            await session.close()


async def fetch_one(
    session: AsyncSession,
    model: type[T],
    id: PyUUID,
    entity_name: str | None = None,
) -> Result[T, AppError]:
    """Fetch single entity by ID.

    Returns:
        Ok(entity) if found
        Err(not_found) if not found
        Err(db_error) on database failure
    """
    name = entity_name or model.__name__
    try:
        result = await session.execute(select(model).where(model.id == id))
        entity = result.scalar_one_or_none()
        if entity is None:
            return not_found(name, id, origin="database.fetch_one")
        return Ok(entity)
    except SQLAlchemyError as e:
        return Err(_db_mapper.map_exception(e))


async def commit_or_rollback(session: AsyncSession) -> Result[None, AppError]:
    """Commit the unit of work; roll everything back on failure."""
    try:
        await session.commit()
        return Ok(None)
    except SQLAlchemyError as e:
        await session.rollback()
        error = _db_mapper.map_exception(e)
        log.error("commit_failed", code=error.code.name, error=str(e))
        return Err(error)
