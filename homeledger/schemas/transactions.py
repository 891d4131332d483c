from datetime import date, datetime
from typing import Literal, Optional

from pydantic import Field, field_validator

from homeledger.db.models import PAYMENT_MODES
from homeledger.schemas.common import CamelModel

MAX_AMOUNT = 10_000_000


def sanitize_text(value: str | None, max_length: int) -> str | None:
    """Trim, truncate and strip angle brackets; blank input becomes ``None``."""
    if value is None:
        return None
    cleaned = str(value).strip()[:max_length].replace("<", "").replace(">", "")
    return cleaned or None


class TransactionCreate(CamelModel):
    type: Literal["expense", "income"]
    amount: float = Field(..., gt=0, le=MAX_AMOUNT)
    category_id: int
    merchant: Optional[str] = None
    payment_mode: str = "cash"
    note: Optional[str] = None
    tx_date: Optional[date] = Field(None, alias="date")

    @field_validator("payment_mode", mode="before")
    @classmethod
    def normalize_payment_mode(cls, v: str | None) -> str:
        """Unknown or missing payment modes are recorded as cash."""
        if v in PAYMENT_MODES:
            return v
        return "cash"

    @field_validator("merchant", mode="before")
    @classmethod
    def clean_merchant(cls, v: str | None) -> str | None:
        return sanitize_text(v, 100)

    @field_validator("note", mode="before")
    @classmethod
    def clean_note(cls, v: str | None) -> str | None:
        return sanitize_text(v, 300)


class TransactionCreated(CamelModel):
    id: int
    success: bool = True


class Transaction(CamelModel):
    id: int
    user_id: int
    type: str
    amount: float
    category_id: int
    category_name: str
    category_icon: str
    category_color: str
    merchant: Optional[str] = None
    payment_mode: str
    note: Optional[str] = None
    tx_date: date = Field(..., alias="date")
    created_at: datetime
    added_by: str
