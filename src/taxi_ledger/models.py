from dataclasses import dataclass, field
from decimal import Decimal
from typing import Literal, Optional, Tuple, Union

Amount = Union[int, float, Decimal]

DateRange = Literal["thisMonth", "lastMonth", "thisYear", "all"]
DATE_RANGES: Tuple[str, ...] = ("thisMonth", "lastMonth", "thisYear", "all")


@dataclass(frozen=True)
class Category:
    category_id: str
    title: str
    color: str
    icon: Optional[str] = None
    is_default: bool = False


@dataclass(frozen=True)
class ExpenseRecord:
    expense_id: str
    category_id: str
    amount: Amount
    date: str
    description: str = ""
    odometer: Optional[int] = None
    created_at: str = ""


@dataclass(frozen=True)
class LineItem:
    item_id: str
    description: str
    quantity: Amount
    rate: Amount


@dataclass(frozen=True)
class Customer:
    customer_id: str
    name: str
    phone: str
    email: str = ""
    address: str = ""
    notes: Optional[str] = None
    created_at: str = ""


@dataclass(frozen=True)
class CompanyInfo:
    name: str
    phone: str
    email: str = ""
    address: str = ""
    logo: Optional[str] = None


@dataclass(frozen=True)
class Invoice:
    invoice_number: str
    date: str
    due_date: str
    from_name: str = ""
    from_email: str = ""
    from_address: str = ""
    to_name: str = ""
    to_email: str = ""
    to_address: str = ""
    items: Tuple[LineItem, ...] = field(default_factory=tuple)
    notes: str = ""
    terms: str = ""
    currency: str = ""
    tax_rate: Amount = Decimal("0")
    discount_rate: Amount = Decimal("0")
