from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.settings import settings

engine = create_async_engine(settings.async_database_url, echo=False, pool_size=10, max_overflow=20)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncSession:
    async with async_session() as session:
        yield session


async def init_db():
    """Create the commits and releases tables on startup."""
    async with engine.begin() as conn:
        from models.base import Base
        import models.commit  # noqa: F401
        import models.release  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)
