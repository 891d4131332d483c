from __future__ import annotations

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from homeledger.db import models

# (name, type, icon, color, group)
DEFAULT_CATEGORIES: list[tuple[str, str, str, str, str]] = [
    ("Food & Dining", "expense", "🍔", "#ef4444", "home"),
    ("Groceries", "expense", "🛒", "#f97316", "home"),
    ("Vegetables & Fruits", "expense", "🥬", "#16a34a", "home"),
    ("Drinking Water", "expense", "💧", "#0ea5e9", "home"),
    ("Transport", "expense", "🚗", "#eab308", "home"),
    ("Utilities", "expense", "💡", "#22c55e", "home"),
    ("Entertainment", "expense", "🎬", "#3b82f6", "home"),
    ("Shopping", "expense", "🛍️", "#8b5cf6", "home"),
    ("Health", "expense", "🏥", "#ec4899", "home"),
    ("Education", "expense", "📚", "#14b8a6", "home"),
    ("Bills", "expense", "📄", "#64748b", "home"),
    ("Other Expense", "expense", "📦", "#78716c", "home"),
    ("Office Expenses", "expense", "💼", "#6366f1", "office"),
    ("Office Supplies", "expense", "📎", "#8b5cf6", "office"),
    ("Office Travel", "expense", "🚌", "#f59e0b", "office"),
    ("ATM Withdrawal", "income", "🏧", "#10b981", "home"),
]


async def seed_default_categories(session: AsyncSession) -> int:
    """Insert any default category that is not present yet. Returns the number added."""

    result = await session.execute(
        select(models.Category.name).where(models.Category.is_default.is_(True))
    )
    existing = set(result.scalars().all())

    added = 0
    for name, type_, icon, color, group in DEFAULT_CATEGORIES:
        if name in existing:
            continue
        session.add(
            models.Category(
                name=name,
                type=type_,
                icon=icon,
                color=color,
                category_group=group,
                is_default=True,
            )
        )
        added += 1

    if added:
        await session.commit()
        logger.info("Seeded default categories", added=added)
    return added
