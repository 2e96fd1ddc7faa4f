"""Database connection utilities"""
from typing import AsyncGenerator, Optional, Sequence, Tuple
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool
from sqlalchemy import Select, select, func
from contextlib import asynccontextmanager
import logging
import sqlalchemy as sa

from .config import get_config

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models"""
    pass


class DatabaseManager:
    """Database connection manager"""

    def __init__(self):
        self.engine = None
        self.session_factory = None
        self._initialized = False

    async def initialize(self, database_url: Optional[str] = None):
        """Initialize database connection"""
        if self._initialized:
            return

        config = get_config()
        db_url = database_url or config.database_url

        engine_kwargs = {"echo": config.log_level == "DEBUG", "pool_pre_ping": True}
        if config.environment == "test":
            engine_kwargs["poolclass"] = NullPool
        else:
            engine_kwargs["pool_recycle"] = 3600

        self.engine = create_async_engine(db_url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        if config.auto_create_tables:
            await self.create_tables()

        self._initialized = True
        logger.info("Database connection initialized")

    async def create_tables(self):
        """Create every mapped table (development and tests; production uses Alembic)"""
        # Import for side effects so every model is registered on Base.metadata
        from . import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self):
        """Close database connections"""
        if self.engine:
            await self.engine.dispose()
            self._initialized = False
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session scope: commit on success, rollback on any error"""
        if not self._initialized:
            await self.initialize()

        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """Get database manager instance"""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session bound to the request"""
    async with get_db_manager().get_session() as session:
        yield session


class BaseRepository:
    """Common query helpers for a single model"""

    def __init__(self, session: AsyncSession, model_class):
        self.session = session
        self.model_class = model_class

    async def create(self, **kwargs):
        instance = self.model_class(**kwargs)
        self.session.add(instance)
        await self.session.flush()
        return instance

    async def get_by_id(self, id):
        return await self.session.get(self.model_class, id)

    async def update(self, instance, **kwargs):
        """Apply known attributes to an already loaded instance"""
        for key, value in kwargs.items():
            if hasattr(instance, key):
                setattr(instance, key, value)
        await self.session.flush()
        return instance

    async def delete(self, id) -> bool:
        instance = await self.get_by_id(id)
        if instance is None:
            return False
        await self.session.delete(instance)
        await self.session.flush()
        return True

    async def paginate(self, stmt: Select, limit: int, offset: int) -> Tuple[Sequence, int]:
        """Run ``stmt`` for one page and count the whole filtered result"""
        count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
        total = (await self.session.execute(count_stmt)).scalar_one()

        result = await self.session.execute(stmt.limit(limit).offset(offset))
        return result.scalars().all(), total


async def check_database_health() -> dict:
    """Check database connection health"""
    try:
        async with get_db_manager().get_session() as session:
            result = await session.execute(sa.text("SELECT 1"))
            result.scalar()

            return {
                "status": "healthy",
                "message": "Database connection successful"
            }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "message": f"Database connection failed: {str(e)}"
        }
