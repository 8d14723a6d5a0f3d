from .dates import LedgerDate, parse_ledger_date, previous_month
from .invoices import InvoiceTotals, compute_invoice_totals, discount_amount, subtotal, tax_amount, total
from .models import Category, CompanyInfo, Customer, DATE_RANGES, ExpenseRecord, Invoice, LineItem
from .reports import (
    CategoryBreakdown,
    ExpenseReport,
    Summary,
    breakdown_by_category,
    build_expense_report,
    filter_by_range,
    summarize,
    top_category,
)

__all__ = [
    "Category",
    "CategoryBreakdown",
    "CompanyInfo",
    "Customer",
    "DATE_RANGES",
    "ExpenseRecord",
    "ExpenseReport",
    "Invoice",
    "InvoiceTotals",
    "LedgerDate",
    "LineItem",
    "Summary",
    "breakdown_by_category",
    "build_expense_report",
    "compute_invoice_totals",
    "discount_amount",
    "filter_by_range",
    "parse_ledger_date",
    "previous_month",
    "subtotal",
    "summarize",
    "tax_amount",
    "top_category",
    "total",
]
