"""
Expense reporting over the household transaction table.

Everything here is read-only: each call issues a handful of grouped queries
and shapes the rows into the report schemas. Nothing is cached; the numbers
always reflect the table at call time.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy import desc, extract, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from homeledger.core.config import Settings, get_settings
from homeledger.core.errors import InvalidArgumentError, StorageError
from homeledger.db import models
from homeledger.schemas.reports import (
    AvailableMonth,
    CategoryBreakdown,
    CreditCardDue,
    DailySpending,
    GroupBreakdown,
    MonthlySummary,
    PaymentModeBreakdown,
    PaymentSummary,
    Summary,
)
from homeledger.services.periods import (
    billing_cycle,
    billing_due_date,
    first_of_month,
    month_bounds,
    month_display_name,
    parse_int_param,
    parse_iso_date,
    previous_month,
    today_in,
)

AVAILABLE_MONTHS_LIMIT = 12

T = models.Transaction
C = models.Category


def _money(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class ExpenseAggregator:
    """
    Computes summaries for a date range, a calendar month, and payment modes.

    ``today`` may be a fixed date or a callable; by default it is evaluated in
    the configured timezone on every call.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        today: date | Callable[[], date] | None = None,
    ) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self._today = today

    @property
    def strict(self) -> bool:
        return self.settings.strict_date_params

    def today(self) -> date:
        if self._today is None:
            return today_in(self.settings.timezone)
        if callable(self._today):
            return self._today()
        return self._today

    async def compute_summary(
        self,
        start_date: str | date | None = None,
        end_date: str | date | None = None,
    ) -> Summary:
        today = self.today()
        start = self._resolve_date(start_date, first_of_month(today), "startDate")
        end = self._resolve_date(end_date, today, "endDate")
        if self.strict and start > end:
            raise InvalidArgumentError("startDate must not be after endDate")

        window = (T.tx_date >= start, T.tx_date <= end)

        totals_rows = await self._fetch_all(
            select(T.type, func.sum(T.amount), func.count(T.id)).where(*window).group_by(T.type)
        )
        totals = {row[0]: (_money(row[1]), row[2]) for row in totals_rows}
        total_income, _ = totals.get("income", (Decimal("0"), 0))
        total_expense, expense_count = totals.get("expense", (Decimal("0"), 0))

        breakdown_rows = await self._fetch_all(
            select(
                C.id,
                C.name,
                C.icon,
                C.color,
                C.category_group,
                T.type,
                func.sum(T.amount).label("total"),
                func.count(T.id),
            )
            .join(C, T.category_id == C.id)
            .where(*window)
            .group_by(C.id, T.type)
            .order_by(desc("total"), C.name)
        )
        expense_rows = [self._category_row(row) for row in breakdown_rows if row[5] == "expense"]
        income_rows = [self._category_row(row) for row in breakdown_rows if row[5] == "income"]
        self._check_attribution(total_expense, breakdown_rows, start, end)

        return Summary(
            start_date=start,
            end_date=end,
            total_income=float(total_income),
            total_expense=float(total_expense),
            balance=float(total_income - total_expense),
            transaction_count=expense_count,
            category_breakdown=expense_rows,
            income_breakdown=income_rows,
            group_breakdown=await self._group_breakdown(start, end),
            daily_spending=await self._daily_spending(start, end),
        )

    async def compute_monthly_summary(
        self,
        year: str | int | None = None,
        month: str | int | None = None,
    ) -> MonthlySummary:
        # A fresh month rarely has data yet, so the default is last month.
        default_year, default_month = previous_month(self.today())
        target_year = self._resolve_int(year, default_year, "year", lambda v: 1 <= v <= 9999)
        target_month = self._resolve_int(month, default_month, "month", lambda v: 1 <= v <= 12)
        start, end = month_bounds(target_year, target_month)

        window = (T.type == "expense", T.tx_date >= start, T.tx_date <= end)
        totals_row = (
            await self._execute(
                select(func.coalesce(func.sum(T.amount), 0), func.count(T.id)).where(*window)
            )
        ).one()
        total_expense = _money(totals_row[0])

        breakdown_rows = await self._fetch_all(
            select(
                C.id,
                C.name,
                C.icon,
                C.color,
                C.category_group,
                T.type,
                func.sum(T.amount).label("total"),
                func.count(T.id),
            )
            .join(C, T.category_id == C.id)
            .where(*window)
            .group_by(C.id, T.type)
            .order_by(desc("total"), C.name)
        )
        self._check_attribution(total_expense, breakdown_rows, start, end)

        return MonthlySummary(
            year=target_year,
            month=target_month,
            month_name=month_display_name(target_year, target_month),
            start_date=start,
            end_date=end,
            total_expense=float(total_expense),
            transaction_count=totals_row[1],
            category_breakdown=[self._category_row(row) for row in breakdown_rows],
            group_breakdown=await self._group_breakdown(start, end),
            daily_spending=await self._daily_spending(start, end),
            available_months=await self._available_months(),
        )

    async def compute_payment_summary(self) -> PaymentSummary:
        today = self.today()
        cycle_day = self.settings.billing_cycle_day

        atm_category_id = (
            await self._execute(
                select(C.id)
                .where(C.name == self.settings.atm_category_name, C.is_default.is_(True))
                .limit(1)
            )
        ).scalar_one_or_none()

        withdrawals = Decimal("0")
        if atm_category_id is not None:
            withdrawals = _money(
                (
                    await self._execute(
                        select(func.coalesce(func.sum(T.amount), 0)).where(
                            T.category_id == atm_category_id, T.type == "income"
                        )
                    )
                ).scalar_one()
            )

        cash_spent = _money(
            (
                await self._execute(
                    select(func.coalesce(func.sum(T.amount), 0)).where(
                        T.type == "expense", T.payment_mode == "cash"
                    )
                )
            ).scalar_one()
        )
        cash_on_hand = max(Decimal("0"), withdrawals - cash_spent)

        billing_start, billing_end = billing_cycle(today, cycle_day)
        card_row = (
            await self._execute(
                select(func.coalesce(func.sum(T.amount), 0), func.count(T.id)).where(
                    T.type == "expense",
                    T.payment_mode == "credit_card",
                    T.tx_date >= billing_start,
                    T.tx_date <= billing_end,
                )
            )
        ).one()

        mode_rows = await self._fetch_all(
            select(T.payment_mode, func.sum(T.amount).label("total"), func.count(T.id))
            .where(T.type == "expense")
            .group_by(T.payment_mode)
            .order_by(desc("total"))
        )

        return PaymentSummary(
            cash_on_hand=float(cash_on_hand),
            credit_card=CreditCardDue(
                current_due=float(_money(card_row[0])),
                transaction_count=card_row[1],
                billing_start=billing_start,
                billing_end=billing_end,
                due_date=billing_due_date(today, cycle_day),
            ),
            payment_breakdown=[
                PaymentModeBreakdown(payment_mode=mode, total=float(_money(total)), count=count)
                for mode, total, count in mode_rows
            ],
        )

    async def _group_breakdown(self, start: date, end: date) -> list[GroupBreakdown]:
        rows = await self._fetch_all(
            select(C.category_group, func.sum(T.amount), func.count(T.id))
            .join(C, T.category_id == C.id)
            .where(T.type == "expense", T.tx_date >= start, T.tx_date <= end)
            .group_by(C.category_group)
            .order_by(C.category_group)
        )
        return [
            GroupBreakdown(group=group, total=float(_money(total)), count=count)
            for group, total, count in rows
        ]

    async def _daily_spending(self, start: date, end: date) -> list[DailySpending]:
        rows = await self._fetch_all(
            select(T.tx_date, func.sum(T.amount))
            .where(T.type == "expense", T.tx_date >= start, T.tx_date <= end)
            .group_by(T.tx_date)
            .order_by(T.tx_date)
        )
        return [DailySpending(date=day, total=float(_money(total))) for day, total in rows]

    async def _available_months(self) -> list[AvailableMonth]:
        year_col = extract("year", T.tx_date).label("year")
        month_col = extract("month", T.tx_date).label("month")
        rows = await self._fetch_all(
            select(year_col, month_col)
            .where(T.type == "expense")
            .distinct()
            .order_by(desc("year"), desc("month"))
            .limit(AVAILABLE_MONTHS_LIMIT)
        )
        return [AvailableMonth(year=int(year), month=int(month)) for year, month in rows]

    @staticmethod
    def _category_row(row: Any) -> CategoryBreakdown:
        category_id, name, icon, color, group, type_, total, count = row
        return CategoryBreakdown(
            category_id=category_id,
            name=name,
            icon=icon,
            color=color,
            group=group,
            type=type_,
            total=float(_money(total)),
            count=count,
        )

    @staticmethod
    def _check_attribution(total_expense: Decimal, rows: Any, start: date, end: date) -> None:
        attributed = sum((_money(row[6]) for row in rows if row[5] == "expense"), Decimal("0"))
        if attributed != total_expense:
            logger.warning(
                "Expenses reference missing categories and are left out of the breakdown",
                start=start.isoformat(),
                end=end.isoformat(),
                unattributed=float(total_expense - attributed),
            )

    def _resolve_date(self, value: str | date | None, default: date, name: str) -> date:
        try:
            parsed = parse_iso_date(value)
        except InvalidArgumentError:
            if self.strict:
                raise
            logger.warning(
                "Ignoring invalid date parameter", param=name, value=value, fallback=default.isoformat()
            )
            return default
        return default if parsed is None else parsed

    def _resolve_int(
        self,
        value: str | int | None,
        default: int,
        name: str,
        valid: Callable[[int], bool],
    ) -> int:
        try:
            parsed = parse_int_param(value, name)
            if parsed is not None and not valid(parsed):
                raise InvalidArgumentError(f"Invalid {name} {parsed}")
        except InvalidArgumentError:
            if self.strict:
                raise
            logger.warning("Ignoring invalid parameter", param=name, value=value, fallback=default)
            return default
        return default if parsed is None else parsed

    async def _execute(self, stmt: Any) -> Any:
        try:
            return await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.exception("Report query failed")
            raise StorageError("Failed to read transactions") from exc

    async def _fetch_all(self, stmt: Any) -> list[Any]:
        result = await self._execute(stmt)
        return list(result.all())
