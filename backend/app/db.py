import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, AsyncEngine, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import NullPool, StaticPool


engine: Optional[AsyncEngine] = None
AsyncSessionLocal: Optional[sessionmaker] = None
Base = declarative_base()

ModelT = TypeVar("ModelT")


def get_engine() -> AsyncEngine:
    """Return a lazily created SQLAlchemy engine.

    The engine is created on first use using the ``DATABASE_URL`` environment
    variable. Importing this module has no side effects so tests can set the
    environment variable at runtime. A ``RuntimeError`` is raised only if the
    function is called without ``DATABASE_URL`` being configured.
    """

    global engine, AsyncSessionLocal

    if engine is None:
        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            raise RuntimeError("DATABASE_URL environment variable is required")

        if database_url.startswith("postgresql://"):
            database_url = database_url.replace(
                "postgresql://", "postgresql+asyncpg://", 1
            )

        engine_kwargs = {"echo": False}

        if database_url.startswith("sqlite+aiosqlite://"):
            # In-memory SQLite must reuse the same connection to persist schema/data.
            if ":memory:" in database_url:
                engine_kwargs["poolclass"] = StaticPool
            else:
                engine_kwargs["poolclass"] = NullPool
        else:
            engine_kwargs["pool_pre_ping"] = True

        engine = create_async_engine(database_url, **engine_kwargs)
        AsyncSessionLocal = sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )

    return engine


async def get_session() -> AsyncIterator[AsyncSession]:
    """Provide a database session for FastAPI dependencies."""

    if AsyncSessionLocal is None:
        get_engine()

    assert AsyncSessionLocal is not None  # for type checkers
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def atomic(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Run the enclosed reads and writes as one all-or-nothing unit of work.

    Everything flushed inside the block is committed together when the block
    exits normally. Any exception rolls the whole unit back before it
    propagates, so no partial state is ever visible to other sessions.
    """

    try:
        yield session
        await session.commit()
    except BaseException:
        if session.in_transaction():
            await session.rollback()
        raise


async def get_for_update(
    session: AsyncSession, model: type[ModelT], ident: object
) -> ModelT | None:
    """Re-read ``model`` by primary key holding a row lock for the transaction.

    ``populate_existing`` discards any stale copy held in the identity map so
    precondition checks always see the committed row. SQLite ignores the
    ``FOR UPDATE`` clause and serializes writers on its own. Pending changes
    are flushed first so the refresh cannot discard them.
    """

    await session.flush()
    return await session.get(
        model, ident, with_for_update=True, populate_existing=True
    )


def dialect_name(session: AsyncSession) -> str:
    bind = session.get_bind()
    return bind.dialect.name
