from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.orm.exc import StaleDataError
from fastapi import Depends

from seatplan.core.config import settings
from seatplan.core.errors import StaleStateError


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"echo": settings.DEBUG}
    return {
        "echo": settings.DEBUG,
        "pool_size": 20,
        "max_overflow": 10,
        "pool_pre_ping": True,
    }


# Async engine
engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

# Async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# Base class for all models
class Base(DeclarativeBase):
    pass


def get_session_factory() -> async_sessionmaker:
    """Session factory used by the core services; overridden in tests."""
    return async_session_factory


# Dependency for FastAPI (read-only endpoints)
async def get_db(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> AsyncSession:
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def transaction(session_factory: async_sessionmaker):
    """
    One core operation = one transaction. A lost optimistic-version race
    (another writer bumped the row first) surfaces as StaleStateError.
    """
    try:
        async with session_factory() as session, session.begin():
            yield session
    except StaleDataError as exc:
        raise StaleStateError("Record was modified concurrently, please retry", reason=str(exc)) from exc


async def init_db(bind=None) -> None:
    """Create every table known to the models (development and tests)."""
    import seatplan.models  # noqa: F401  registers the models on Base.metadata

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
