from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from pathlib import Path

from alembic import command
from alembic.config import Config
from loguru import logger
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from homeledger.core.config import get_settings
from homeledger.db.base import Base
from homeledger.db.seed import seed_default_categories

settings = get_settings()


def _ensure_sqlite_directory(database_url: str) -> None:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return
    Path(url.database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


_ensure_sqlite_directory(settings.database_url)
engine = create_async_engine(settings.database_url, echo=False)
AsyncSessionLocal = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


async def create_schema(bind: AsyncEngine) -> None:
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    """Bring the schema up to date and make sure default categories exist."""

    alembic_ini = Path(__file__).resolve().parents[2] / "alembic.ini"
    if settings.auto_run_migrations and alembic_ini.exists():
        config = Config(str(alembic_ini))
        config.set_main_option("sqlalchemy.url", settings.get_sync_database_url())
        try:
            await asyncio.to_thread(command.upgrade, config, "head")
            logger.info("Database migrations are up-to-date")
        except Exception:  # pragma: no cover - propagate for FastAPI startup failure
            logger.exception("Failed to apply database migrations")
            raise
    else:
        await create_schema(engine)
        logger.info("Database schema created from metadata")

    async with AsyncSessionLocal() as session:
        await seed_default_categories(session)
