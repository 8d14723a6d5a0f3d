from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
import logging
from pathlib import Path
import sqlite3
from typing import Any, Iterator, Literal, Optional
from uuid import uuid4

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, Field

from backend.services.excel_export import ExcelReportExporter
from backend.services.line_item_assistant import LineItemAssistant, LineItemAssistantError, OpenAILineItemProvider
from taxi_ledger.config import load_settings
from taxi_ledger.dates import LedgerDate, parse_ledger_date
from taxi_ledger.db import connect_sqlite
from taxi_ledger.models import Category, CompanyInfo, Customer, ExpenseRecord, Invoice, LineItem
from taxi_ledger.reports import summarize
from taxi_ledger.repositories import StoreError
from taxi_ledger.services import (
    BackupService,
    CategoryService,
    CompanyService,
    CustomerService,
    ExpenseService,
    InvoiceService,
    LedgerSetupService,
    LedgerValidationError,
    ProtectedCategoryError,
    RecordNotFoundError,
    ReportService,
    new_id,
)

settings = load_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    logging.basicConfig(level=settings.log_level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    conn = connect_sqlite(settings.database_path)
    try:
        LedgerSetupService(conn).initialize()
    finally:
        conn.close()
    logger.info("Ledger store ready at %s", settings.database_path)
    yield


app = FastAPI(title="Taxi Ledger API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_connection() -> Iterator[sqlite3.Connection]:
    conn = connect_sqlite(settings.database_path, check_same_thread=False)
    try:
        yield conn
    finally:
        conn.close()


def get_assistant() -> LineItemAssistant:
    return LineItemAssistant(OpenAILineItemProvider(settings.assistant))


def _error_handler(status_code: int):
    async def handler(_: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler


app.add_exception_handler(LedgerValidationError, _error_handler(422))
app.add_exception_handler(RecordNotFoundError, _error_handler(404))
app.add_exception_handler(ProtectedCategoryError, _error_handler(409))
app.add_exception_handler(LineItemAssistantError, _error_handler(502))
app.add_exception_handler(StoreError, _error_handler(500))


class CustomerIn(BaseModel):
    name: str
    phone: str
    email: str = ""
    address: str = ""
    notes: Optional[str] = None


class CompanyIn(BaseModel):
    name: str
    phone: str
    email: str = ""
    address: str = ""
    logo: Optional[str] = None


class CategoryIn(BaseModel):
    title: str
    color: str
    icon: Optional[str] = None


class ExpenseIn(BaseModel):
    category_id: str
    amount: Decimal
    date: str
    description: str = ""
    odometer: Optional[int] = Field(default=None, ge=0)


class LineItemIn(BaseModel):
    item_id: Optional[str] = None
    description: str = ""
    quantity: Decimal = Decimal("1")
    rate: Decimal = Decimal("0")


class InvoiceIn(BaseModel):
    invoice_number: str
    date: str
    due_date: str = ""
    customer_id: Optional[str] = None
    items: list[LineItemIn] = Field(default_factory=list)
    notes: str = ""
    terms: str = ""
    currency: str = ""
    tax_rate: Decimal = settings.default_tax_rate
    discount_rate: Decimal = settings.default_discount_rate


class LineItemPrompt(BaseModel):
    prompt: str
    invoice: Optional[InvoiceIn] = None


ReportRange = Literal["thisMonth", "lastMonth", "thisYear", "all"]


# -----------------------------
# Customers and company
# -----------------------------


@app.get("/customers")
def list_customers(conn: sqlite3.Connection = Depends(get_connection)):
    return CustomerService(conn).list()


@app.post("/customers", status_code=201)
def create_customer(payload: CustomerIn, conn: sqlite3.Connection = Depends(get_connection)):
    return CustomerService(conn).save(Customer(customer_id=new_id(), **payload.model_dump()))


@app.put("/customers/{customer_id}")
def update_customer(customer_id: str, payload: CustomerIn, conn: sqlite3.Connection = Depends(get_connection)):
    service = CustomerService(conn)
    existing = service.get(customer_id)
    return service.save(Customer(customer_id=customer_id, created_at=existing.created_at, **payload.model_dump()))


@app.delete("/customers/{customer_id}", status_code=204)
def delete_customer(customer_id: str, conn: sqlite3.Connection = Depends(get_connection)):
    CustomerService(conn).delete(customer_id)


@app.get("/company")
def get_company(conn: sqlite3.Connection = Depends(get_connection)):
    info = CompanyService(conn).get()
    if info is None:
        raise HTTPException(status_code=404, detail="Company profile not set")
    return info


@app.put("/company")
def save_company(payload: CompanyIn, conn: sqlite3.Connection = Depends(get_connection)):
    return CompanyService(conn).save(CompanyInfo(**payload.model_dump()))


# -----------------------------
# Categories and expenses
# -----------------------------


@app.get("/categories")
def list_categories(conn: sqlite3.Connection = Depends(get_connection)):
    return CategoryService(conn).list()


@app.post("/categories", status_code=201)
def create_category(payload: CategoryIn, conn: sqlite3.Connection = Depends(get_connection)):
    return CategoryService(conn).save(Category(category_id=new_id(), **payload.model_dump()))


@app.put("/categories/{category_id}")
def update_category(category_id: str, payload: CategoryIn, conn: sqlite3.Connection = Depends(get_connection)):
    return CategoryService(conn).save(Category(category_id=category_id, **payload.model_dump()))


@app.delete("/categories/{category_id}", status_code=204)
def delete_category(category_id: str, conn: sqlite3.Connection = Depends(get_connection)):
    CategoryService(conn).delete(category_id)


@app.get("/expenses")
def list_expenses(
    q: str = "",
    category_id: Optional[str] = None,
    conn: sqlite3.Connection = Depends(get_connection),
):
    records = ExpenseService(conn).list(q, category_id)
    return {"records": records, "summary": summarize(records)}


@app.post("/expenses", status_code=201)
def create_expense(payload: ExpenseIn, conn: sqlite3.Connection = Depends(get_connection)):
    return ExpenseService(conn).save(ExpenseRecord(expense_id=new_id(), **payload.model_dump()))


@app.delete("/expenses/{expense_id}", status_code=204)
def delete_expense(expense_id: str, conn: sqlite3.Connection = Depends(get_connection)):
    ExpenseService(conn).delete(expense_id)


# -----------------------------
# Reports
# -----------------------------


def _parse_now(raw: Optional[str]) -> Optional[LedgerDate]:
    if raw is None:
        return None
    parsed = parse_ledger_date(raw)
    if parsed is None:
        raise HTTPException(status_code=422, detail=f"Invalid 'now' date: {raw}")
    return parsed


@app.get("/reports/expenses")
def expense_report(
    date_range: ReportRange = Query(default="thisMonth", alias="range"),
    now: Optional[str] = None,
    conn: sqlite3.Connection = Depends(get_connection),
):
    report = ReportService(conn).expense_report(date_range, _parse_now(now))
    return {
        "date_range": report.date_range,
        "currency": settings.currency,
        "summary": report.summary,
        "breakdown": list(report.breakdown),
        "top_category": report.top_category,
        "records": list(report.records),
    }


@app.get("/reports/expenses.xlsx")
def export_expense_report(
    background_tasks: BackgroundTasks,
    date_range: ReportRange = Query(default="thisMonth", alias="range"),
    now: Optional[str] = None,
    conn: sqlite3.Connection = Depends(get_connection),
):
    report = ReportService(conn).expense_report(date_range, _parse_now(now))
    export_dir = Path(settings.export_dir)
    export_path = ExcelReportExporter(Path(settings.excel_mapping_path)).generate_export(
        report, export_dir / f"expenses-{date_range}-{uuid4().hex[:8]}.xlsx", settings.currency
    )
    # The file only lives until the download has been sent.
    background_tasks.add_task(export_path.unlink, missing_ok=True)
    return FileResponse(
        export_path,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        filename=f"expenses-{date_range}.xlsx",
    )


# -----------------------------
# Invoices
# -----------------------------


def _build_invoice(service: InvoiceService, payload: InvoiceIn) -> Invoice:
    invoice = Invoice(
        invoice_number=payload.invoice_number,
        date=payload.date,
        due_date=payload.due_date or payload.date,
        items=tuple(
            LineItem(item_id=item.item_id or new_id(), description=item.description, quantity=item.quantity, rate=item.rate)
            for item in payload.items
        ),
        notes=payload.notes,
        terms=payload.terms,
        currency=payload.currency or settings.currency,
        tax_rate=payload.tax_rate,
        discount_rate=payload.discount_rate,
    )
    return service.apply_customer(service.apply_company(invoice), payload.customer_id)


@app.post("/invoices/preview")
def invoice_preview(payload: InvoiceIn, conn: sqlite3.Connection = Depends(get_connection)):
    service = InvoiceService(conn)
    invoice = _build_invoice(service, payload)
    return {"invoice": invoice, "totals": service.totals(invoice)}


@app.post("/invoices/line-items")
def generate_line_items(
    payload: LineItemPrompt,
    assistant: LineItemAssistant = Depends(get_assistant),
    conn: sqlite3.Connection = Depends(get_connection),
):
    """Append assistant-generated items to the draft invoice and return it with fresh totals."""
    service = InvoiceService(conn)
    draft = payload.invoice or InvoiceIn(invoice_number="", date="")
    invoice = service.add_generated_items(_build_invoice(service, draft), assistant.generate(payload.prompt))
    return {"invoice": invoice, "totals": service.totals(invoice)}


# -----------------------------
# Backup
# -----------------------------


@app.get("/backup")
def download_backup(conn: sqlite3.Connection = Depends(get_connection)):
    backup = BackupService(conn).create_backup()
    filename = f"taxi_ledger_backup_{date.today().isoformat()}.json"
    return JSONResponse(backup, headers={"Content-Disposition": f'attachment; filename="{filename}"'})


@app.post("/backup/restore", status_code=204)
def restore_backup(payload: dict[str, Any], conn: sqlite3.Connection = Depends(get_connection)):
    BackupService(conn).restore_backup(payload)


@app.get("/health")
def health():
    return {"status": "ok"}
