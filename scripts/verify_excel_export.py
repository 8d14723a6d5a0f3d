from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from backend.services.excel_export import ExcelReportExporter, read_cells
from taxi_ledger.dates import LedgerDate
from taxi_ledger.db import connect_sqlite
from taxi_ledger.models import ExpenseRecord
from taxi_ledger.services import ExpenseService, LedgerSetupService, ReportService


def seed_demo_ledger(conn) -> None:
    """Fill an empty store with a month of typical taxi expenses."""
    expenses = ExpenseService(conn)
    expenses.save(ExpenseRecord("demo-1", "1", Decimal("1200000"), "1403/09/02", "CNG refuel", odometer=120100))
    expenses.save(ExpenseRecord("demo-2", "2", Decimal("4500000"), "1403/09/10", "Brake service"))
    expenses.save(ExpenseRecord("demo-3", "5", Decimal("350000"), "1403/09/12", "Car wash"))
    expenses.save(ExpenseRecord("demo-4", "1", Decimal("950000"), "1403/09/18", "Petrol", odometer=120900))


def main() -> int:
    conn = connect_sqlite()
    LedgerSetupService(conn).initialize()
    seed_demo_ledger(conn)

    report = ReportService(conn).expense_report("thisMonth", now=LedgerDate(1403, 9, 20))
    exporter = ExcelReportExporter()
    output_path = exporter.generate_export(report, Path("exports/demo_expense_report.xlsx"), currency="IRR")

    summary_cells = [cells["value"] for cells in exporter.mapping["summary"].values()]
    values = read_cells(output_path, summary_cells, exporter.sheet_name)

    missing = [cell for cell, value in values.items() if value in (None, "")]
    if missing:
        print(f"Missing values in cells: {', '.join(missing)}")
        return 1

    print(f"Export created: {output_path}")
    for cell, value in values.items():
        print(f"  {cell}: {value}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
