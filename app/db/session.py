from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import settings

engine = create_async_engine(
    settings.database_url,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
    echo=False,
)

# Ledger services flush inside the caller's transaction; callers commit.
async_session_factory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)
