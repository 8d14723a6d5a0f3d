from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.worksheet.worksheet import Worksheet

from taxi_ledger.reports import ExpenseReport


def _cell_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    return value


@dataclass
class ExcelReportExporter:
    """Write an expense report into a workbook laid out by a YAML mapping."""

    mapping_path: Path = Path("backend/config/excel_mapping.yaml")

    def __post_init__(self) -> None:
        self.mapping = self._load_mapping(Path(self.mapping_path))

    @staticmethod
    def _load_mapping(mapping_path: Path) -> dict[str, Any]:
        with mapping_path.open("r", encoding="utf-8") as mapping_file:
            loaded = yaml.safe_load(mapping_file)

        if not isinstance(loaded, dict):
            msg = f"Mapping file must contain a dictionary at root: {mapping_path}"
            raise ValueError(msg)

        return loaded

    @property
    def sheet_name(self) -> str:
        return self.mapping["workbook"]["sheet_name"]

    def generate_export(self, report: ExpenseReport, output_path: Path | str, currency: str = "") -> Path:
        workbook = Workbook()
        worksheet = workbook.active
        worksheet.title = self.sheet_name

        self._map_summary(worksheet, report, currency)
        self._map_breakdown(worksheet, report)

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        workbook.save(output_path)

        return output_path

    def _map_summary(self, sheet: Worksheet, report: ExpenseReport, currency: str) -> None:
        top = report.top_category
        values = {
            "date_range": report.date_range,
            "currency": currency,
            "total": report.summary.total,
            "count": report.summary.count,
            "average": report.summary.average,
            "top_category": top.title if top else None,
            "top_category_amount": top.amount if top else 0,
        }
        for field, cells in self.mapping["summary"].items():
            sheet[cells["label"]] = cells["title"]
            sheet[cells["label"]].font = Font(bold=True)
            sheet[cells["value"]] = _cell_value(values.get(field))

    def _map_breakdown(self, sheet: Worksheet, report: ExpenseReport) -> None:
        section = self.mapping["breakdown"]
        header_row = int(section["header_row"])
        columns = section["columns"]

        for column in columns.values():
            sheet[f"{column['column']}{header_row}"] = column["title"]
            sheet[f"{column['column']}{header_row}"].font = Font(bold=True)

        for offset, entry in enumerate(report.breakdown, start=1):
            row = header_row + offset
            for key, column in columns.items():
                sheet[f"{column['column']}{row}"] = _cell_value(getattr(entry, key))


def read_cells(path: Path | str, cells: list[str], sheet_name: str) -> dict[str, Any]:
    """Utility for validation/testing: read exact cell values from an exported workbook."""
    workbook: Workbook = load_workbook(path, data_only=False)
    sheet = workbook[sheet_name]
    return {cell: sheet[cell].value for cell in cells}
