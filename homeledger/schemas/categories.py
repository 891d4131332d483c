from datetime import date
from typing import Literal

from homeledger.schemas.common import CamelModel


class CategoryCreate(CamelModel):
    name: str
    type: Literal["expense", "income", "both"]
    icon: str | None = None
    color: str | None = None
    group: Literal["home", "office"] = "home"


class Category(CamelModel):
    id: int
    name: str
    type: str
    group: str
    icon: str
    color: str
    is_default: bool
    usage_count: int = 0


class MerchantSuggestion(CamelModel):
    merchant: str
    usage_count: int
    last_used: date
