"""
Tests for the expense aggregator.

Scenario tests pin down exact report shapes; the property tests check the
bookkeeping invariants (breakdowns add up to the total, month windows stay
inside the month, cash on hand never goes negative) over generated ledgers.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st
from sqlalchemy import text

from homeledger.core.errors import InvalidArgumentError, StorageError

PROPERTY_SETTINGS = settings(
    max_examples=20,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)

CATEGORY_SPECS = [("Groceries", "home"), ("Transport", "home"), ("Office Supplies", "office")]
PAYMENT_MODES = ["cash", "upi", "bank_transfer", "credit_card", "debit_card"]

amounts = st.decimals(min_value=Decimal("0.01"), max_value=Decimal("50000"), places=2)
q1_dates = st.dates(min_value=date(2024, 1, 1), max_value=date(2024, 3, 31))
generated_rows = st.lists(
    st.fixed_dictionaries(
        {
            "type": st.sampled_from(["expense", "expense", "income"]),
            "amount": amounts,
            "category": st.integers(min_value=0, max_value=len(CATEGORY_SPECS) - 1),
            "payment_mode": st.sampled_from(PAYMENT_MODES),
            "tx_date": q1_dates,
        }
    ),
    max_size=15,
)


def _load(ledger, rows):
    ledger.clear_transactions()
    ids = [ledger.ensure_category(name, group) for name, group in CATEGORY_SPECS]
    ledger.add_transactions(
        [
            {
                "type": row["type"],
                "amount": row["amount"],
                "category_id": ids[row["category"]],
                "payment_mode": row["payment_mode"],
                "tx_date": row["tx_date"],
            }
            for row in rows
        ]
    )


class TestSummary:
    def test_home_and_office_scenario(self, ledger):
        groceries = ledger.add_category("Groceries", group="home")
        supplies = ledger.add_category("Office Supplies", group="office")
        ledger.add_transaction("expense", 100, groceries, "2025-01-03", payment_mode="cash")
        ledger.add_transaction("expense", 50, supplies, "2025-01-10", payment_mode="credit_card")

        summary = ledger.summary("2025-01-01", "2025-01-31")

        assert summary.total_expense == 150
        assert summary.transaction_count == 2
        assert [(g.group, g.total, g.count) for g in summary.group_breakdown] == [
            ("home", 100, 1),
            ("office", 50, 1),
        ]
        assert [(c.name, c.total) for c in summary.category_breakdown] == [
            ("Groceries", 100),
            ("Office Supplies", 50),
        ]
        assert [(d.tx_date, d.total) for d in summary.daily_spending] == [
            (date(2025, 1, 3), 100),
            (date(2025, 1, 10), 50),
        ]

    def test_empty_range_returns_zeroes(self, ledger):
        groceries = ledger.add_category("Groceries")
        ledger.add_transaction("expense", 10, groceries, "2025-02-01")

        summary = ledger.summary("2025-01-01", "2025-01-31")

        assert summary.total_expense == 0
        assert summary.total_income == 0
        assert summary.balance == 0
        assert summary.transaction_count == 0
        assert summary.category_breakdown == []
        assert summary.group_breakdown == []
        assert summary.daily_spending == []

    def test_income_is_reported_separately(self, ledger):
        groceries = ledger.add_category("Groceries")
        atm = ledger.add_category("ATM Withdrawal", type="income")
        ledger.add_transaction("expense", 300, groceries, "2025-01-05")
        ledger.add_transaction("income", 1000, atm, "2025-01-06")

        summary = ledger.summary("2025-01-01", "2025-01-31")

        assert summary.total_income == 1000
        assert summary.total_expense == 300
        assert summary.balance == 700
        assert [c.name for c in summary.category_breakdown] == ["Groceries"]
        assert [(c.name, c.type, c.total) for c in summary.income_breakdown] == [
            ("ATM Withdrawal", "income", 1000)
        ]
        assert sum(g.total for g in summary.group_breakdown) == 300

    def test_bounds_are_inclusive(self, ledger):
        groceries = ledger.add_category("Groceries")
        for day in ("2024-12-31", "2025-01-01", "2025-01-31", "2025-02-01"):
            ledger.add_transaction("expense", 1, groceries, day)

        summary = ledger.summary("2025-01-01", "2025-01-31")

        assert summary.total_expense == 2
        assert [d.tx_date for d in summary.daily_spending] == [date(2025, 1, 1), date(2025, 1, 31)]

    def test_defaults_to_month_to_date(self, ledger):
        groceries = ledger.add_category("Groceries")
        ledger.add_transaction("expense", 40, groceries, "2025-01-01")
        ledger.add_transaction("expense", 60, groceries, "2025-01-20")
        ledger.add_transaction("expense", 99, groceries, "2025-01-21")

        summary = ledger.summary(today=date(2025, 1, 20))

        assert summary.start_date == date(2025, 1, 1)
        assert summary.end_date == date(2025, 1, 20)
        assert summary.total_expense == 100

    def test_breakdown_ordered_by_total_descending(self, ledger):
        small = ledger.add_category("Drinking Water")
        large = ledger.add_category("Utilities")
        ledger.add_transaction("expense", 20, small, "2025-01-02")
        ledger.add_transaction("expense", 500, large, "2025-01-02")
        ledger.add_transaction("expense", 30, small, "2025-01-03")

        summary = ledger.summary("2025-01-01", "2025-01-31")

        assert [(c.name, c.total, c.count) for c in summary.category_breakdown] == [
            ("Utilities", 500, 1),
            ("Drinking Water", 50, 2),
        ]

    def test_same_day_expenses_are_summed(self, ledger):
        groceries = ledger.add_category("Groceries")
        ledger.add_transaction("expense", "12.50", groceries, "2025-01-09")
        ledger.add_transaction("expense", "7.25", groceries, "2025-01-09")

        summary = ledger.summary("2025-01-01", "2025-01-31")

        assert len(summary.daily_spending) == 1
        assert summary.daily_spending[0].total == pytest.approx(19.75)

    def test_repeated_calls_are_identical(self, ledger):
        groceries = ledger.add_category("Groceries")
        ledger.add_transaction("expense", 100, groceries, "2025-01-03")

        first = ledger.summary("2025-01-01", "2025-01-31")
        second = ledger.summary("2025-01-01", "2025-01-31")

        assert first.model_dump() == second.model_dump()

    def test_database_failure_raises_storage_error(self, ledger):
        async def _drop() -> None:
            async with ledger.engine.begin() as conn:
                await conn.execute(text("DROP TABLE transactions"))

        ledger.run(_drop())

        with pytest.raises(StorageError) as exc_info:
            ledger.summary("2025-01-01", "2025-01-31")
        assert exc_info.value.status_code == 500

    def test_orphaned_expenses_count_in_total_only(self, ledger):
        groceries = ledger.add_category("Groceries")
        ledger.add_transaction("expense", 100, groceries, "2025-01-03")
        ledger.add_transaction("expense", 50, 9999, "2025-01-04")

        summary = ledger.summary("2025-01-01", "2025-01-31")

        assert summary.total_expense == 150
        assert sum(c.total for c in summary.category_breakdown) == 100
        assert sum(g.total for g in summary.group_breakdown) == 100

    @PROPERTY_SETTINGS
    @given(rows=generated_rows, start=q1_dates, span=st.integers(min_value=0, max_value=90))
    def test_breakdowns_add_up_to_total(self, ledger, rows, start, span):
        """Property: category and group breakdowns both sum to total expense."""
        _load(ledger, rows)
        end = start + timedelta(days=span)

        summary = ledger.summary(start.isoformat(), end.isoformat())

        expected = sum(
            (r["amount"] for r in rows if r["type"] == "expense" and start <= r["tx_date"] <= end),
            Decimal("0"),
        )
        assert summary.total_expense == pytest.approx(float(expected))
        assert sum(c.total for c in summary.category_breakdown) == pytest.approx(summary.total_expense)
        assert sum(g.total for g in summary.group_breakdown) == pytest.approx(summary.total_expense)
        assert sum(d.total for d in summary.daily_spending) == pytest.approx(summary.total_expense)
        assert all(start <= d.tx_date <= end for d in summary.daily_spending)


class TestInvalidDates:
    def test_lenient_mode_falls_back_to_defaults(self, ledger):
        groceries = ledger.add_category("Groceries")
        ledger.add_transaction("expense", 10, groceries, "2025-03-02")

        summary = ledger.summary("not-a-date", "2025-13-45", today=date(2025, 3, 15))

        assert summary.start_date == date(2025, 3, 1)
        assert summary.end_date == date(2025, 3, 15)
        assert summary.total_expense == 10

    def test_strict_mode_rejects_malformed_dates(self, ledger):
        with pytest.raises(InvalidArgumentError):
            ledger.summary("2025-02-30", "2025-03-01", strict_date_params=True)

    def test_strict_mode_rejects_inverted_range(self, ledger):
        with pytest.raises(InvalidArgumentError):
            ledger.summary("2025-03-01", "2025-02-01", strict_date_params=True)

    def test_lenient_mode_allows_inverted_range(self, ledger):
        summary = ledger.summary("2025-03-01", "2025-02-01")
        assert summary.total_expense == 0


class TestMonthlySummary:
    def test_leap_february_includes_the_29th(self, ledger):
        groceries = ledger.add_category("Groceries")
        ledger.add_transaction("expense", 10, groceries, "2024-01-31")
        ledger.add_transaction("expense", 20, groceries, "2024-02-01")
        ledger.add_transaction("expense", 30, groceries, "2024-02-29")
        ledger.add_transaction("expense", 40, groceries, "2024-03-01")

        monthly = ledger.monthly(2024, 2)

        assert monthly.start_date == date(2024, 2, 1)
        assert monthly.end_date == date(2024, 2, 29)
        assert monthly.total_expense == 50
        assert monthly.transaction_count == 2
        assert [d.tx_date for d in monthly.daily_spending] == [date(2024, 2, 1), date(2024, 2, 29)]
        assert monthly.month_name == "February 2024"

    def test_common_february_ends_on_the_28th(self, ledger):
        groceries = ledger.add_category("Groceries")
        ledger.add_transaction("expense", 20, groceries, "2023-02-28")
        ledger.add_transaction("expense", 40, groceries, "2023-03-01")

        monthly = ledger.monthly("2023", "2")

        assert monthly.end_date == date(2023, 2, 28)
        assert monthly.total_expense == 20

    def test_defaults_to_previous_month(self, ledger):
        groceries = ledger.add_category("Groceries")
        ledger.add_transaction("expense", 75, groceries, "2024-12-24")
        ledger.add_transaction("expense", 5, groceries, "2025-01-02")

        monthly = ledger.monthly(today=date(2025, 1, 15))

        assert (monthly.year, monthly.month) == (2024, 12)
        assert monthly.month_name == "December 2024"
        assert monthly.total_expense == 75

    def test_income_is_excluded(self, ledger):
        groceries = ledger.add_category("Groceries")
        salary = ledger.add_category("Salary", type="income")
        ledger.add_transaction("expense", 25, groceries, "2025-05-10")
        ledger.add_transaction("income", 1000, salary, "2025-05-11")

        monthly = ledger.monthly(2025, 5)

        assert monthly.total_expense == 25
        assert monthly.transaction_count == 1
        assert [c.name for c in monthly.category_breakdown] == ["Groceries"]
        assert [d.tx_date for d in monthly.daily_spending] == [date(2025, 5, 10)]

    def test_group_breakdown_sorted_by_group(self, ledger):
        travel = ledger.add_category("Office Travel", group="office")
        food = ledger.add_category("Food & Dining", group="home")
        ledger.add_transaction("expense", 900, travel, "2025-06-03")
        ledger.add_transaction("expense", 100, food, "2025-06-04")

        monthly = ledger.monthly(2025, 6)

        assert [(g.group, g.total) for g in monthly.group_breakdown] == [("home", 100), ("office", 900)]

    def test_available_months_most_recent_first_capped_at_twelve(self, ledger):
        groceries = ledger.add_category("Groceries")
        salary = ledger.add_category("Salary", type="income")
        for offset in range(14):
            year, month = divmod(2023 * 12 + offset, 12)
            ledger.add_transaction("expense", 1, groceries, date(year, month + 1, 10))
        ledger.add_transaction("income", 500, salary, "2026-06-01")

        monthly = ledger.monthly(2024, 1)

        pairs = [(m.year, m.month) for m in monthly.available_months]
        assert len(pairs) == 12
        assert pairs[0] == (2024, 2)
        assert pairs[-1] == (2023, 3)
        assert pairs == sorted(pairs, reverse=True)
        assert (2026, 6) not in pairs

    def test_invalid_month_falls_back_in_lenient_mode(self, ledger):
        monthly = ledger.monthly("2024", "13", today=date(2025, 3, 10))
        assert (monthly.year, monthly.month) == (2024, 2)

    def test_invalid_month_rejected_in_strict_mode(self, ledger):
        with pytest.raises(InvalidArgumentError):
            ledger.monthly("2024", "13", strict_date_params=True)
        with pytest.raises(InvalidArgumentError):
            ledger.monthly("twenty", "1", strict_date_params=True)

    @PROPERTY_SETTINGS
    @given(rows=generated_rows, month=st.integers(min_value=1, max_value=3))
    def test_month_window_stays_inside_month(self, ledger, rows, month):
        """Property: only transactions dated inside the month are reported."""
        _load(ledger, rows)

        monthly = ledger.monthly(2024, month)

        inside = [
            r for r in rows
            if r["type"] == "expense" and r["tx_date"].year == 2024 and r["tx_date"].month == month
        ]
        assert monthly.transaction_count == len(inside)
        assert monthly.total_expense == pytest.approx(float(sum((r["amount"] for r in inside), Decimal("0"))))
        assert sum(c.count for c in monthly.category_breakdown) == len(inside)
        assert all(d.tx_date.month == month for d in monthly.daily_spending)
        assert sum(g.total for g in monthly.group_breakdown) == pytest.approx(monthly.total_expense)


class TestPaymentSummary:
    def test_cash_on_hand_from_atm_withdrawals(self, seeded_ledger):
        ledger = seeded_ledger
        atm = ledger.ensure_category("ATM Withdrawal")
        groceries = ledger.add_category("Corner Shop")
        ledger.add_transaction("income", 5000, atm, "2025-01-01")
        ledger.add_transaction("expense", 1200, groceries, "2025-01-02", payment_mode="cash")
        ledger.add_transaction("expense", 800, groceries, "2025-01-02", payment_mode="upi")

        payment = ledger.payment(today=date(2025, 1, 10))

        assert payment.cash_on_hand == 3800

    def test_cash_on_hand_floors_at_zero(self, seeded_ledger):
        ledger = seeded_ledger
        atm = ledger.ensure_category("ATM Withdrawal")
        groceries = ledger.add_category("Corner Shop")
        ledger.add_transaction("income", 100, atm, "2025-01-01")
        ledger.add_transaction("expense", 900, groceries, "2025-01-02", payment_mode="cash")

        assert ledger.payment(today=date(2025, 1, 10)).cash_on_hand == 0

    def test_missing_atm_category_means_no_withdrawals(self, ledger):
        salary = ledger.add_category("Salary", type="income")
        groceries = ledger.add_category("Groceries")
        ledger.add_transaction("income", 5000, salary, "2025-01-01")
        ledger.add_transaction("expense", 100, groceries, "2025-01-02")

        assert ledger.payment(today=date(2025, 1, 10)).cash_on_hand == 0

    def test_user_category_with_atm_name_is_ignored(self, ledger):
        custom = ledger.add_category("ATM Withdrawal", type="income", is_default=False)
        ledger.add_transaction("income", 5000, custom, "2025-01-01")

        assert ledger.payment(today=date(2025, 1, 10)).cash_on_hand == 0

    def test_credit_card_due_uses_current_cycle(self, ledger):
        shopping = ledger.add_category("Shopping")
        for day, amount in (("2025-03-04", 1), ("2025-03-05", 10), ("2025-04-04", 100), ("2025-04-05", 1000)):
            ledger.add_transaction("expense", amount, shopping, day, payment_mode="credit_card")
        ledger.add_transaction("expense", 7, shopping, "2025-03-20", payment_mode="debit_card")

        card = ledger.payment(today=date(2025, 3, 10)).credit_card

        assert card.billing_start == date(2025, 3, 5)
        assert card.billing_end == date(2025, 4, 4)
        assert card.current_due == 110
        assert card.transaction_count == 2
        assert card.due_date == date(2025, 4, 5)

    def test_fourth_of_month_closes_the_previous_cycle(self, ledger):
        shopping = ledger.add_category("Shopping")
        ledger.add_transaction("expense", 40, shopping, "2025-03-04", payment_mode="credit_card")
        ledger.add_transaction("expense", 60, shopping, "2025-03-05", payment_mode="credit_card")

        card = ledger.payment(today=date(2025, 3, 4)).credit_card

        assert (card.billing_start, card.billing_end) == (date(2025, 2, 5), date(2025, 3, 4))
        assert card.current_due == 40
        assert card.due_date == date(2025, 3, 5)

    def test_payment_breakdown_sorted_by_total(self, ledger):
        bills = ledger.add_category("Bills")
        ledger.add_transaction("expense", 10, bills, "2025-01-01", payment_mode="cash")
        ledger.add_transaction("expense", 500, bills, "2025-01-01", payment_mode="upi")
        ledger.add_transaction("expense", 90, bills, "2025-01-02", payment_mode="upi")
        ledger.add_transaction("expense", 200, bills, "2025-01-03", payment_mode="credit_card")

        breakdown = ledger.payment(today=date(2025, 1, 10)).payment_breakdown

        assert [(b.payment_mode, b.total, b.count) for b in breakdown] == [
            ("upi", 590, 2),
            ("credit_card", 200, 1),
            ("cash", 10, 1),
        ]

    def test_configured_cycle_day(self, ledger):
        card = ledger.payment(today=date(2025, 3, 10), billing_cycle_day=15).credit_card
        assert (card.billing_start, card.billing_end) == (date(2025, 2, 15), date(2025, 3, 14))
        assert card.due_date == date(2025, 3, 15)

    @PROPERTY_SETTINGS
    @given(rows=generated_rows)
    def test_cash_on_hand_never_negative(self, seeded_ledger, rows):
        """Property: cash on hand is floored at zero whatever the history."""
        ledger = seeded_ledger
        ledger.clear_transactions()
        atm = ledger.ensure_category("ATM Withdrawal", type="income")
        ledger.add_transactions(
            [
                {
                    "type": r["type"],
                    "amount": r["amount"],
                    "category_id": atm,
                    "payment_mode": r["payment_mode"],
                    "tx_date": r["tx_date"],
                }
                for r in rows
            ]
        )

        payment = ledger.payment(today=date(2024, 2, 10))

        withdrawn = sum((r["amount"] for r in rows if r["type"] == "income"), Decimal("0"))
        spent = sum(
            (r["amount"] for r in rows if r["type"] == "expense" and r["payment_mode"] == "cash"),
            Decimal("0"),
        )
        assert payment.cash_on_hand >= 0
        assert payment.cash_on_hand == pytest.approx(float(max(Decimal("0"), withdrawn - spent)))
