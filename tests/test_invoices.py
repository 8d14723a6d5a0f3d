from decimal import Decimal
import math

from taxi_ledger.invoices import compute_invoice_totals, discount_amount, subtotal, tax_amount, total
from taxi_ledger.models import Invoice, LineItem


def items(*pairs):
    return [LineItem(item_id=str(i), description=f"Trip {i}", quantity=q, rate=r) for i, (q, r) in enumerate(pairs)]


def test_totals_apply_tax_after_discount():
    gross = subtotal(items((2, 100), (1, 50)))
    discount = discount_amount(gross, 10)
    tax = tax_amount(gross, discount, 9)

    assert gross == 250
    assert discount == 25
    assert tax == 20.25
    assert total(gross, discount, tax) == 245.25


def test_zero_rates_are_a_no_op():
    gross = subtotal(items((Decimal("1"), Decimal("9500000")), (Decimal("1.5"), Decimal("2000000"))))
    discount = discount_amount(gross, 0)
    tax = tax_amount(gross, discount, 0)

    assert gross == Decimal("12500000")
    assert discount == 0
    assert tax == 0
    assert total(gross, discount, tax) == gross


def test_empty_invoice_is_zero():
    assert subtotal([]) == 0


def test_negative_lines_are_signed():
    assert subtotal(items((1, 100), (1, -30))) == 70


def test_nan_rate_propagates():
    assert math.isnan(subtotal(items((1, float("nan")), (1, 10))))


def test_compute_invoice_totals_uses_decimal_exactly():
    invoice = Invoice(
        invoice_number="TAX-1403-1001",
        date="1403/09/12",
        due_date="1403/09/12",
        items=tuple(items((Decimal("2"), Decimal("100")), (Decimal("1"), Decimal("50")))),
        tax_rate=Decimal("9"),
        discount_rate=Decimal("10"),
    )

    totals = compute_invoice_totals(invoice)

    assert totals.subtotal == Decimal("250")
    assert totals.discount_amount == Decimal("25")
    assert totals.tax_amount == Decimal("20.25")
    assert totals.total == Decimal("245.25")
