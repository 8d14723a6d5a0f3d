from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from taxi_ledger.models import Amount, Invoice, LineItem


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Amount
    discount_amount: Amount
    tax_amount: Amount
    total: Amount


def subtotal(items: Iterable[LineItem]) -> Amount:
    return sum((item.quantity * item.rate for item in items), 0)


def discount_amount(subtotal: Amount, discount_rate_percent: Amount) -> Amount:
    return subtotal * discount_rate_percent / 100


def tax_amount(subtotal: Amount, discount_amount: Amount, tax_rate_percent: Amount) -> Amount:
    # Tax is charged on the discounted base, never on the raw subtotal.
    return (subtotal - discount_amount) * tax_rate_percent / 100


def total(subtotal: Amount, discount_amount: Amount, tax_amount: Amount) -> Amount:
    return subtotal - discount_amount + tax_amount


def compute_invoice_totals(invoice: Invoice) -> InvoiceTotals:
    """Derive all invoice amounts. Rounding is left to whoever displays them."""
    gross = subtotal(invoice.items)
    discount = discount_amount(gross, invoice.discount_rate)
    tax = tax_amount(gross, discount, invoice.tax_rate)
    return InvoiceTotals(
        subtotal=gross,
        discount_amount=discount,
        tax_amount=tax,
        total=total(gross, discount, tax),
    )
