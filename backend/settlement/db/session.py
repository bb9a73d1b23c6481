from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from settlement.core.config import settings

db_engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

# Engine transitions return ORM rows after their session closes
async_session_factory = async_sessionmaker(
    bind=db_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)
