from __future__ import annotations

import asyncio
import os
from collections.abc import Iterator
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Keep the application's module-level engine away from any real database.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["AUTO_RUN_MIGRATIONS"] = "false"

from homeledger.core.config import Settings, get_settings  # noqa: E402
from homeledger.db import models  # noqa: E402
from homeledger.db.seed import seed_default_categories  # noqa: E402
from homeledger.db.session import create_schema  # noqa: E402
from homeledger.services.aggregator import ExpenseAggregator  # noqa: E402

get_settings.cache_clear()

ROOT = Path(__file__).resolve().parents[1]


class LedgerDB:
    """Synchronous facade over a temporary SQLite database for tests."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.engine = create_async_engine(url, poolclass=NullPool)
        self.sessions = async_sessionmaker(bind=self.engine, class_=AsyncSession, expire_on_commit=False)
        self.settings = Settings(database_url=url, auto_run_migrations=False)
        self._user_id: int | None = None
        self._categories: dict[str, int] = {}

    def run(self, coro: Any) -> Any:
        return asyncio.run(coro)

    def setup(self, seed_defaults: bool = False) -> None:
        async def _setup() -> None:
            await create_schema(self.engine)
            if seed_defaults:
                async with self.sessions() as session:
                    await seed_default_categories(session)

        self.run(_setup())

    def _add(self, obj: Any) -> int:
        async def _insert() -> int:
            async with self.sessions() as session:
                session.add(obj)
                await session.commit()
                return obj.id

        return self.run(_insert())

    @property
    def user_id(self) -> int:
        if self._user_id is None:
            self._user_id = self.add_user("household")
        return self._user_id

    def add_user(self, username: str, display_name: str | None = None) -> int:
        return self._add(
            models.User(
                username=username,
                password_hash="x",
                display_name=display_name or username.title(),
            )
        )

    def add_category(
        self,
        name: str,
        group: str = "home",
        type: str = "expense",
        is_default: bool = True,
    ) -> int:
        return self._add(
            models.Category(
                name=name,
                type=type,
                category_group=group,
                icon="💰",
                color="#6366f1",
                is_default=is_default,
            )
        )

    def add_transaction(
        self,
        type: str,
        amount: float | str,
        category_id: int,
        tx_date: date | str,
        payment_mode: str = "cash",
        merchant: str | None = None,
    ) -> int:
        if isinstance(tx_date, str):
            tx_date = date.fromisoformat(tx_date)
        return self._add(
            models.Transaction(
                user_id=self.user_id,
                type=type,
                amount=Decimal(str(amount)),
                category_id=category_id,
                payment_mode=payment_mode,
                merchant=merchant,
                tx_date=tx_date,
            )
        )

    def ensure_category(self, name: str, group: str = "home", type: str = "expense") -> int:
        """Return the id of the named category, creating it on first use."""
        if name not in self._categories:

            async def _lookup() -> int | None:
                async with self.sessions() as session:
                    result = await session.execute(
                        select(models.Category.id).where(models.Category.name == name).limit(1)
                    )
                    return result.scalar_one_or_none()

            existing = self.run(_lookup())
            self._categories[name] = existing or self.add_category(name, group=group, type=type)
        return self._categories[name]

    def add_transactions(self, rows: list[dict[str, Any]]) -> None:
        user_id = self.user_id

        async def _insert() -> None:
            async with self.sessions() as session:
                for row in rows:
                    session.add(
                        models.Transaction(
                            user_id=user_id,
                            type=row["type"],
                            amount=Decimal(str(row["amount"])),
                            category_id=row["category_id"],
                            payment_mode=row.get("payment_mode", "cash"),
                            tx_date=row["tx_date"],
                        )
                    )
                await session.commit()

        self.run(_insert())

    def clear_transactions(self) -> None:
        async def _clear() -> None:
            async with self.sessions() as session:
                await session.execute(delete(models.Transaction))
                await session.commit()

        self.run(_clear())

    def _aggregate(self, method: str, *args: Any, today: date | None = None, **overrides: Any) -> Any:
        settings = self.settings.model_copy(update=overrides)

        async def _call() -> Any:
            async with self.sessions() as session:
                aggregator = ExpenseAggregator(session, settings=settings, today=today)
                return await getattr(aggregator, method)(*args)

        return self.run(_call())

    def summary(self, *args: Any, **kwargs: Any):
        return self._aggregate("compute_summary", *args, **kwargs)

    def monthly(self, *args: Any, **kwargs: Any):
        return self._aggregate("compute_monthly_summary", *args, **kwargs)

    def payment(self, **kwargs: Any):
        return self._aggregate("compute_payment_summary", **kwargs)

    def dispose(self) -> None:
        self.run(self.engine.dispose())


@pytest.fixture
def ledger(tmp_path: Path) -> Iterator[LedgerDB]:
    db = LedgerDB(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    db.setup()
    yield db
    db.dispose()


@pytest.fixture
def seeded_ledger(tmp_path: Path) -> Iterator[LedgerDB]:
    db = LedgerDB(f"sqlite+aiosqlite:///{tmp_path / 'seeded.db'}")
    db.setup(seed_defaults=True)
    yield db
    db.dispose()


@pytest.fixture
def migration_db_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'migrations.db'}"


@pytest.fixture
def alembic_config(migration_db_url: str) -> Config:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", migration_db_url)
    return cfg


@pytest.fixture
def migrated_engine(migration_db_url: str, alembic_config: Config) -> Iterator[Engine]:
    command.upgrade(alembic_config, "head")
    engine = create_engine(migration_db_url, future=True)
    yield engine
    engine.dispose()
