from datetime import date

from pydantic import Field

from homeledger.schemas.common import CamelModel


class CategoryBreakdown(CamelModel):
    category_id: int
    name: str
    icon: str
    color: str
    group: str
    type: str
    total: float
    count: int


class GroupBreakdown(CamelModel):
    group: str
    total: float
    count: int


class DailySpending(CamelModel):
    tx_date: date = Field(..., alias="date")
    total: float


class AvailableMonth(CamelModel):
    year: int
    month: int


class Summary(CamelModel):
    start_date: date
    end_date: date
    total_income: float
    total_expense: float
    balance: float
    transaction_count: int
    category_breakdown: list[CategoryBreakdown]
    income_breakdown: list[CategoryBreakdown]
    group_breakdown: list[GroupBreakdown]
    daily_spending: list[DailySpending]


class MonthlySummary(CamelModel):
    year: int
    month: int
    month_name: str
    start_date: date
    end_date: date
    total_expense: float
    transaction_count: int
    category_breakdown: list[CategoryBreakdown]
    group_breakdown: list[GroupBreakdown]
    daily_spending: list[DailySpending]
    available_months: list[AvailableMonth]


class CreditCardDue(CamelModel):
    current_due: float
    transaction_count: int
    billing_start: date
    billing_end: date
    due_date: date


class PaymentModeBreakdown(CamelModel):
    payment_mode: str
    total: float
    count: int


class PaymentSummary(CamelModel):
    cash_on_hand: float
    credit_card: CreditCardDue
    payment_breakdown: list[PaymentModeBreakdown]
