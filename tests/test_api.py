from dataclasses import replace
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from backend.app import main
from backend.services.line_item_assistant import LineItemAssistant, MockLineItemProvider
from taxi_ledger.db import connect_sqlite
from taxi_ledger.services import LedgerSetupService

MAPPING_PATH = Path(__file__).resolve().parents[1] / "backend" / "config" / "excel_mapping.yaml"


@pytest.fixture
def client(tmp_path, monkeypatch):
    db_path = tmp_path / "ledger.sqlite3"
    setup_conn = connect_sqlite(db_path)
    LedgerSetupService(setup_conn).initialize()
    setup_conn.close()

    def override_connection():
        conn = connect_sqlite(db_path, check_same_thread=False)
        try:
            yield conn
        finally:
            conn.close()

    monkeypatch.setattr(
        main,
        "settings",
        replace(main.settings, export_dir=str(tmp_path / "exports"), excel_mapping_path=str(MAPPING_PATH)),
    )
    main.app.dependency_overrides[main.get_connection] = override_connection
    main.app.dependency_overrides[main.get_assistant] = lambda: LineItemAssistant(
        MockLineItemProvider('[{"description": "Airport transfer", "quantity": 1, "rate": 9500000}]')
    )
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_expense_report_flow(client):
    assert client.post("/expenses", json={"category_id": "1", "amount": 1200000, "date": "1403/09/02"}).status_code == 201
    client.post("/expenses", json={"category_id": "2", "amount": 4500000, "date": "1403/09/15", "odometer": 120500})
    client.post("/expenses", json={"category_id": "deleted", "amount": 300000, "date": "1403/08/30"})

    report = client.get("/reports/expenses", params={"range": "thisMonth", "now": "1403/09/20"}).json()
    assert report["summary"] == {"total": 5700000, "count": 2, "average": 2850000}
    assert [entry["category_id"] for entry in report["breakdown"]] == ["2", "1"]
    assert report["top_category"]["title"] == "Repairs & Service"

    last_month = client.get("/reports/expenses", params={"range": "lastMonth", "now": "1403/09/20"}).json()
    assert last_month["breakdown"][0]["category_id"] == "unknown"
    assert last_month["breakdown"][0]["percentage"] == 100

    assert client.get("/reports/expenses", params={"range": "lastWeek"}).status_code == 422
    assert client.get("/reports/expenses", params={"now": "yesterday"}).status_code == 422


def test_expense_validation_maps_to_422(client):
    response = client.post("/expenses", json={"category_id": "1", "amount": 0, "date": "1403/09/02"})
    assert response.status_code == 422
    assert "amount" in response.json()["detail"]


def test_expense_history_and_delete(client):
    created = client.post("/expenses", json={"category_id": "1", "amount": 500, "date": "1403/09/02", "description": "CNG"}).json()
    client.post("/expenses", json={"category_id": "1", "amount": 700, "date": "1403/09/05", "description": "Car wash"})

    history = client.get("/expenses").json()
    assert [e["description"] for e in history["records"]] == ["Car wash", "CNG"]
    assert history["summary"]["total"] == 1200
    assert history["summary"]["count"] == 2

    filtered = client.get("/expenses", params={"q": "cng"}).json()
    assert [e["description"] for e in filtered["records"]] == ["CNG"]
    assert filtered["summary"]["total"] == 500
    assert client.delete(f"/expenses/{created['expense_id']}").status_code == 204
    assert client.delete(f"/expenses/{created['expense_id']}").status_code == 404


def test_category_protection(client):
    assert client.delete("/categories/1").status_code == 409
    created = client.post("/categories", json={"title": "Parking", "color": "#000000"}).json()
    assert created["is_default"] is False
    assert client.delete(f"/categories/{created['category_id']}").status_code == 204


def test_invoice_preview_fills_parties_and_totals(client):
    client.put("/company", json={"name": "Royal Airport Taxi", "phone": "021-1", "email": "info@royal-taxi.ir"})
    customer = client.post("/customers", json={"name": "Ofogh Co.", "phone": "021-2", "address": "Africa Blvd"}).json()

    response = client.post(
        "/invoices/preview",
        json={
            "invoice_number": "TAX-1403-1001",
            "date": "1403/09/12",
            "customer_id": customer["customer_id"],
            "items": [{"quantity": 2, "rate": 100}, {"quantity": 1, "rate": 50}],
            "discount_rate": 10,
            "tax_rate": 9,
        },
    )
    body = response.json()

    assert response.status_code == 200
    assert body["invoice"]["from_name"] == "Royal Airport Taxi"
    assert body["invoice"]["to_address"] == "Africa Blvd"
    assert body["invoice"]["due_date"] == "1403/09/12"
    assert body["totals"] == {"subtotal": 250, "discount_amount": 25, "tax_amount": 20.25, "total": 245.25}


def test_invoice_preview_unknown_customer(client):
    response = client.post("/invoices/preview", json={"invoice_number": "X", "date": "1403/09/12", "customer_id": "nope"})
    assert response.status_code == 404


def test_customer_requires_phone(client):
    assert client.post("/customers", json={"name": "Walk-in", "phone": ""}).status_code == 422


def test_generate_line_items(client):
    body = client.post("/invoices/line-items", json={"prompt": "airport run from Vanak"}).json()
    assert body["invoice"]["items"][0]["description"] == "Airport transfer"
    assert body["invoice"]["items"][0]["rate"] == 9500000
    assert body["totals"]["subtotal"] == 9500000


def test_generated_line_items_extend_the_draft(client):
    draft = {
        "invoice_number": "TAX-1403-1002",
        "date": "1403/09/12",
        "items": [{"item_id": "kept", "description": "Waiting time", "quantity": 2, "rate": 250000}],
        "tax_rate": 0,
    }
    first = client.post("/invoices/line-items", json={"prompt": "airport run", "invoice": draft}).json()
    second = client.post("/invoices/line-items", json={"prompt": "airport run", "invoice": draft}).json()

    items = first["invoice"]["items"]
    assert [item["description"] for item in items] == ["Waiting time", "Airport transfer"]
    assert items[0]["item_id"] == "kept"
    assert items[1]["item_id"] != second["invoice"]["items"][1]["item_id"]
    assert first["totals"]["total"] == 10000000


def test_excel_export_and_backup(client, tmp_path):
    client.post("/expenses", json={"category_id": "1", "amount": 1000, "date": "1403/09/02"})

    export = client.get("/reports/expenses.xlsx", params={"range": "all", "now": "1403/09/20"})
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("application/vnd.openxmlformats")
    assert export.content.startswith(b"PK")

    backup = client.get("/backup")
    assert "attachment" in backup.headers["content-disposition"]
    payload = backup.json()
    assert payload["expenses"][0]["amount"] == "1000"
    assert client.post("/backup/restore", json=payload).status_code == 204


def test_excel_exports_do_not_accumulate_on_disk(client, tmp_path):
    client.post("/expenses", json={"category_id": "1", "amount": 1000, "date": "1403/09/02"})

    for _ in range(5):
        assert client.get("/reports/expenses.xlsx", params={"range": "all"}).status_code == 200

    assert list((tmp_path / "exports").glob("*.xlsx")) == []


def test_restore_with_unreadable_amount_is_rejected(client):
    client.post("/expenses", json={"category_id": "1", "amount": 1000, "date": "1403/09/02"})
    payload = client.get("/backup").json()
    payload["expenses"][0]["amount"] = "12,000"

    response = client.post("/backup/restore", json=payload)

    assert response.status_code == 422
    assert client.get("/expenses").json()["summary"]["total"] == 1000
