from __future__ import annotations

from dataclasses import asdict, replace
from datetime import date, datetime, timezone
import logging
import sqlite3
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Optional
from uuid import uuid4

from taxi_ledger.db import apply_migrations
from taxi_ledger.invoices import InvoiceTotals, compute_invoice_totals
from taxi_ledger.models import Category, CompanyInfo, Customer, ExpenseRecord, Invoice, LineItem
from taxi_ledger.reports import ExpenseReport, build_expense_report, search_expenses, sort_by_date_desc
from taxi_ledger.repositories import CategoryRepository, CompanyRepository, CustomerRepository, ExpenseRepository

logger = logging.getLogger(__name__)

BACKUP_VERSION = "1.0.0"

DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category("1", "Fuel & Energy", "#ef4444", "Fuel", True),
    Category("2", "Repairs & Service", "#f97316", "Wrench", True),
    Category("3", "Spare Parts", "#3b82f6", "Settings", True),
    Category("4", "Insurance & Tolls", "#8b5cf6", "FileText", True),
    Category("5", "Cleaning & Car Wash", "#06b6d4", "Droplets", True),
    Category("6", "Fines", "#64748b", "AlertTriangle", True),
    Category("7", "Other Expenses", "#94a3b8", "MoreHorizontal", True),
)


class LedgerValidationError(ValueError):
    """Raised when a record is missing mandatory data."""


class ProtectedCategoryError(ValueError):
    """Raised when deleting one of the seeded default categories."""


class RecordNotFoundError(LookupError):
    """Raised when a record id does not exist in the store."""


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return uuid4().hex


def _require(entity: str, values: dict[str, Any]) -> None:
    missing = [name for name, value in values.items() if value in (None, "")]
    if missing:
        raise LedgerValidationError(f"{entity} missing mandatory fields: {', '.join(missing)}")


class LedgerSetupService:
    """Prepares a fresh or existing store for use. Run once at startup."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.categories = CategoryRepository(conn)

    def initialize(self) -> None:
        apply_migrations(self.conn)
        with self.conn:
            if self.categories.count() == 0:
                for category in DEFAULT_CATEGORIES:
                    self.categories.save(category)
                logger.info("Seeded %d default expense categories", len(DEFAULT_CATEGORIES))


class CustomerService:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.customers = CustomerRepository(conn)

    def list(self) -> list[Customer]:
        return self.customers.get_all()

    def get(self, customer_id: str) -> Customer:
        customer = self.customers.get_by_id(customer_id)
        if customer is None:
            raise RecordNotFoundError(f"Customer {customer_id} not found")
        return customer

    def save(self, customer: Customer) -> Customer:
        _require("Customer", {"name": customer.name, "phone": customer.phone})
        if not customer.created_at:
            customer = replace(customer, created_at=utc_now())
        with self.conn:
            self.customers.save(customer)
        logger.info("Saved customer %s", customer.customer_id)
        return customer

    def delete(self, customer_id: str) -> None:
        with self.conn:
            if not self.customers.delete(customer_id):
                raise RecordNotFoundError(f"Customer {customer_id} not found")
        logger.info("Deleted customer %s", customer_id)


class CompanyService:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.company = CompanyRepository(conn)

    def get(self) -> Optional[CompanyInfo]:
        return self.company.get()

    def save(self, info: CompanyInfo) -> CompanyInfo:
        _require("Company", {"name": info.name, "phone": info.phone})
        with self.conn:
            self.company.save(info)
        logger.info("Saved company profile %r", info.name)
        return info


class CategoryService:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.categories = CategoryRepository(conn)

    def list(self) -> list[Category]:
        return self.categories.get_all()

    def save(self, category: Category) -> Category:
        _require("Category", {"title": category.title, "color": category.color})
        existing = self.categories.get_by_id(category.category_id)
        if existing is not None and existing.is_default != category.is_default:
            category = replace(category, is_default=existing.is_default)
        with self.conn:
            self.categories.save(category)
        logger.info("Saved category %s", category.category_id)
        return category

    def delete(self, category_id: str) -> None:
        category = self.categories.get_by_id(category_id)
        if category is None:
            raise RecordNotFoundError(f"Category {category_id} not found")
        if category.is_default:
            raise ProtectedCategoryError(f"Category {category_id} is a default category and cannot be deleted")
        with self.conn:
            self.categories.delete(category_id)
        logger.info("Deleted category %s", category_id)


class ExpenseService:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.expenses = ExpenseRepository(conn)

    def list(self, term: str = "", category_id: Optional[str] = None) -> list[ExpenseRecord]:
        """History view: newest first, optionally narrowed by search term and category."""
        return sort_by_date_desc(search_expenses(self.expenses.get_all(), term, category_id))

    def save(self, expense: ExpenseRecord) -> ExpenseRecord:
        _require("Expense", {"category_id": expense.category_id, "date": expense.date})
        if not expense.amount:
            raise LedgerValidationError("Expense missing mandatory fields: amount")
        if expense.odometer is not None and expense.odometer < 0:
            raise LedgerValidationError("Expense odometer reading cannot be negative")
        if not expense.created_at:
            expense = replace(expense, created_at=utc_now())
        with self.conn:
            self.expenses.save(expense)
        logger.info("Saved expense %s (%s)", expense.expense_id, expense.amount)
        return expense

    def delete(self, expense_id: str) -> None:
        with self.conn:
            if not self.expenses.delete(expense_id):
                raise RecordNotFoundError(f"Expense {expense_id} not found")
        logger.info("Deleted expense %s", expense_id)


class ReportService:
    """Loads the ledger once per request and hands it to the aggregator."""

    def __init__(self, conn: sqlite3.Connection, clock: Callable[[], Any] = date.today):
        self.expenses = ExpenseRepository(conn)
        self.categories = CategoryRepository(conn)
        self.clock = clock

    def expense_report(self, date_range: str = "thisMonth", now: Any = None) -> ExpenseReport:
        return build_expense_report(
            self.expenses.get_all(),
            self.categories.get_all(),
            date_range,
            now if now is not None else self.clock(),
        )


class InvoiceService:
    def __init__(self, conn: sqlite3.Connection):
        self.customers = CustomerRepository(conn)
        self.company = CompanyRepository(conn)

    def apply_customer(self, invoice: Invoice, customer_id: Optional[str]) -> Invoice:
        if not customer_id:
            return replace(invoice, to_name="", to_email="", to_address="")
        customer = self.customers.get_by_id(customer_id)
        if customer is None:
            raise RecordNotFoundError(f"Customer {customer_id} not found")
        return replace(invoice, to_name=customer.name, to_email=customer.email, to_address=customer.address)

    def apply_company(self, invoice: Invoice) -> Invoice:
        info = self.company.get()
        if info is None:
            return invoice
        return replace(invoice, from_name=info.name, from_email=info.email, from_address=info.address)

    def add_generated_items(self, invoice: Invoice, items: Iterable[LineItem]) -> Invoice:
        fresh = tuple(replace(item, item_id=new_id()) for item in items)
        return replace(invoice, items=invoice.items + fresh)

    def totals(self, invoice: Invoice) -> InvoiceTotals:
        return compute_invoice_totals(invoice)


class BackupService:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.customers = CustomerRepository(conn)
        self.company = CompanyRepository(conn)
        self.categories = CategoryRepository(conn)
        self.expenses = ExpenseRepository(conn)

    def create_backup(self) -> dict[str, Any]:
        company = self.company.get()
        return {
            "customers": [_as_json(customer) for customer in self.customers.get_all()],
            "company": _as_json(company) if company else None,
            "categories": [_as_json(category) for category in self.categories.get_all()],
            "expenses": [_as_json(expense) for expense in self.expenses.get_all()],
            "timestamp": utc_now(),
            "version": BACKUP_VERSION,
        }

    def restore_backup(self, payload: dict[str, Any]) -> None:
        """Replace the whole store with the backup contents in one transaction."""
        if payload.get("version") != BACKUP_VERSION:
            raise LedgerValidationError(f"Unsupported backup version: {payload.get('version')!r}")
        try:
            customers = [Customer(**raw) for raw in payload.get("customers") or []]
            company = CompanyInfo(**payload["company"]) if payload.get("company") else None
            categories = [Category(**raw) for raw in payload.get("categories") or []]
            expenses = [
                ExpenseRecord(**{**raw, "amount": _backup_amount(raw)})
                for raw in payload.get("expenses") or []
            ]
        except (TypeError, KeyError, InvalidOperation) as exc:
            raise LedgerValidationError(f"Malformed backup payload: {exc}") from exc

        with self.conn:
            for table in ("customer", "company", "expense_category", "expense"):
                self.conn.execute(f"DELETE FROM {table}")
            for customer in customers:
                self.customers.save(customer)
            if company is not None:
                self.company.save(company)
            for category in categories:
                self.categories.save(category)
            for expense in expenses:
                self.expenses.save(expense)
        logger.info(
            "Restored backup: %d customers, %d categories, %d expenses",
            len(customers),
            len(categories),
            len(expenses),
        )


def _backup_amount(raw: dict[str, Any]) -> Decimal:
    amount = Decimal(str(raw["amount"]))
    if not amount.is_finite():
        raise LedgerValidationError(f"Expense {raw.get('expense_id')!r} has a non-numeric amount: {raw['amount']!r}")
    return amount


def _as_json(record: Any) -> dict[str, Any]:
    return {
        key: str(value) if isinstance(value, Decimal) else value
        for key, value in asdict(record).items()
    }
