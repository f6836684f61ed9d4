"""
Database engine configuration and session management.

Current: SQLite (async with aiosqlite)
PostgreSQL works by pointing DATABASE_URL at postgresql+asyncpg://...

Grant pool fetches run concurrently, so each fetch opens its own session
from AsyncSessionLocal instead of sharing the request session.
"""
from collections.abc import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.core import config


def build_engine(url: str) -> AsyncEngine:
    """Create an async engine; SQLite gets NullPool to avoid pooled connection issues."""
    return create_async_engine(
        url,
        poolclass=NullPool if url.startswith("sqlite") else None,
        echo=False,  # Set to True for SQL query logging during development
        future=True,
    )


engine = build_engine(config.SQLALCHEMY_DATABASE_URL)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.

    Usage in FastAPI routes:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            result = await db.execute(select(Item))
            return result.scalars().all()
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


async def init_db(target: AsyncEngine | None = None):
    """
    Initialize database tables.
    Call this on application startup to create all tables.
    """
    from app.core.database.base import Base

    # Import all models to ensure they're registered with SQLAlchemy
    from app.features.users.models import User  # noqa: F401
    from app.features.organizations.models import (  # noqa: F401
        Organization, Project, Branch
    )
    from app.features.permissions.models import Role, RoleAssignment  # noqa: F401

    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
