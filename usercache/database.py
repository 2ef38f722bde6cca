from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from usercache.config import settings
from usercache.middleware import install_query_counter

# Module-level engine variable allows tests to override with a test engine.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# Register the per-request SQL query counter on the production engine.
install_query_counter(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


@asynccontextmanager
async def transaction(db: AsyncSession):
    """
    Scope a unit of store work: commit when the block exits normally,
    roll back and re-raise on any exception.

    Services wrap only the store call in this scope so that cache side
    effects run after the commit has succeeded.
    """
    try:
        yield db
        await db.commit()
    except Exception:
        await db.rollback()
        raise


async def get_db():
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
