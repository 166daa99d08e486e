# backend/publisher/database.py
"""
🗄️ SCHEDULED PUBLISHER - Database Configuration
SQLAlchemy async setup with connection pooling
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool
from typing import AsyncGenerator
import logging

from .config import settings

logger = logging.getLogger(__name__)

# ============================================================================
# ENGINE CONFIGURATION
# ============================================================================

# Convert sync database URL to async
if settings.DATABASE_URL.startswith("postgresql://"):
    ASYNC_DATABASE_URL = settings.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")
else:
    ASYNC_DATABASE_URL = settings.DATABASE_URL


def build_engine(url: str, echo: bool = False):
    """Create an async engine; SQLite gets a single shared connection"""
    if url.startswith("sqlite"):
        return create_async_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_async_engine(
        url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,  # Validate connections before use
        pool_recycle=3600,   # Recycle connections after 1 hour
    )


engine = build_engine(ASYNC_DATABASE_URL, echo=settings.DEBUG)

# Session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# Base class for models
Base = declarative_base()

# ============================================================================
# DATABASE DEPENDENCY
# ============================================================================

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency for FastAPI routes
    Provides async database session with automatic cleanup
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

# ============================================================================
# DATABASE UTILITIES
# ============================================================================

async def init_db():
    """Initialize database tables"""
    async with engine.begin() as conn:
        # Import all models to ensure they're registered
        from . import models  # noqa
        await conn.run_sync(Base.metadata.create_all)
    logger.info("✅ Database tables created")


async def check_db_connection() -> bool:
    """Check if database is accessible"""
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
            return True
    except Exception as e:
        logger.error(f"💥 Database connection failed: {e}")
        return False
