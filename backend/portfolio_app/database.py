"""Database configuration and session management"""
from sqlmodel import SQLModel
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker


def create_engine_for(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine for a database URL"""
    return create_async_engine(
        database_url,
        echo=echo,
        future=True
    )


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    """Async session factory bound to an engine"""
    return sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database tables"""
    from .models import portfolio, stock  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
