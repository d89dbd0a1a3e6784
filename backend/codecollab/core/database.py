"""
CodeCollab - Database Configuration

Database connection and session management for SQLAlchemy with async support.
"""

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base
import structlog

from codecollab.core.config import settings

logger = structlog.get_logger(__name__)


def get_database_url() -> str:
    """Get the async driver URL for the configured database."""
    if settings.DATABASE_URL.startswith("sqlite:///"):
        # For SQLite, use aiosqlite for async support
        return settings.DATABASE_URL.replace("sqlite:///", "sqlite+aiosqlite:///")
    return settings.DATABASE_URL


if settings.DATABASE_URL.startswith("sqlite"):
    engine = create_async_engine(
        get_database_url(),
        echo=False,
        connect_args={"check_same_thread": False}
    )
else:
    engine = create_async_engine(get_database_url(), echo=False)

# Create async session factory
AsyncSessionLocal = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# Create declarative base
Base = declarative_base()


async def get_db():
    """
    Dependency to get database session.

    Yields:
        AsyncSession: Database session
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error("Database session error", error=str(e))
            await session.rollback()
            raise


async def init_db() -> None:
    """Initialize database tables."""
    try:
        async with engine.begin() as conn:
            # Import all models to ensure they are registered
            from codecollab.models import download  # noqa: F401

            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created successfully")
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))
        raise


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
    logger.info("Database connections closed")
