import os
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from .config import SQL_ECHO

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable not set")


def sync_url(url: str) -> str:
    """Blocking-driver form of an async URL, used by Celery workers and Alembic."""
    return (
        url.replace("postgresql+asyncpg", "postgresql+psycopg2")
        .replace("sqlite+aiosqlite", "sqlite")
    )


# API handlers share the async engine, the worker gets its own blocking one
engine = create_async_engine(DATABASE_URL, echo=SQL_ECHO, pool_pre_ping=True)
sync_engine = create_engine(sync_url(DATABASE_URL), echo=SQL_ECHO, pool_pre_ping=True)

async_session_factory = async_sessionmaker(
    bind=engine,
    autoflush=False,
    expire_on_commit=False,
)
sync_session_factory = sessionmaker(bind=sync_engine, autoflush=False)


class Base(DeclarativeBase):
    pass


async def init_db():
    """Create any missing tables; schema changes go through Alembic."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    async with async_session_factory() as session:
        yield session


def get_db_sync():
    db = sync_session_factory()
    try:
        yield db
    finally:
        db.close()
