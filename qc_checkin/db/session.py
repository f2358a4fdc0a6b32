import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from qc_checkin.core.config import settings

logger = logging.getLogger(__name__)

_db_url = str(settings.DATABASE_URL)
if _db_url.startswith("postgresql://"):
    _db_url = _db_url.replace("postgresql://", "postgresql+asyncpg://", 1)
logger.info("Using DATABASE_URL: %s...", _db_url[:30])  # Log prefix only

engine = create_async_engine(
    _db_url,
    poolclass=NullPool,
    pool_pre_ping=True,
    echo=False,
)

SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

async def get_db():
    """
    Dependency that provides a database session.
    """
    async with SessionLocal() as session:
        await session.execute(text("SET search_path TO app, public"))
        yield session
