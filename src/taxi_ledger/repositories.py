from __future__ import annotations

import sqlite3
from decimal import Decimal
from typing import Any, Optional

from taxi_ledger.models import Category, CompanyInfo, Customer, ExpenseRecord


class StoreError(RuntimeError):
    """Raised when the underlying SQLite store rejects an operation."""


def _normalize_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    return value


def _next_position(conn: sqlite3.Connection, table: str) -> int:
    row = conn.execute(f"SELECT COALESCE(MAX(position), -1) + 1 FROM {table}").fetchone()
    return int(row[0])


class _Repository:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self.conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise StoreError(f"Store operation failed: {exc}") from exc


class CustomerRepository(_Repository):
    def get_all(self) -> list[Customer]:
        rows = self._execute("SELECT * FROM customer ORDER BY created_at, id").fetchall()
        return [_customer_from_row(row) for row in rows]

    def get_by_id(self, customer_id: str) -> Optional[Customer]:
        row = self._execute("SELECT * FROM customer WHERE id = ?", (customer_id,)).fetchone()
        return _customer_from_row(row) if row else None

    def save(self, customer: Customer) -> None:
        self._execute(
            """
            INSERT INTO customer(id, name, email, phone, address, notes, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name, email = excluded.email, phone = excluded.phone,
                address = excluded.address, notes = excluded.notes
            """,
            (
                customer.customer_id,
                customer.name,
                customer.email,
                customer.phone,
                customer.address,
                customer.notes,
                customer.created_at,
            ),
        )

    def delete(self, customer_id: str) -> bool:
        return self._execute("DELETE FROM customer WHERE id = ?", (customer_id,)).rowcount > 0


class CompanyRepository(_Repository):
    def get(self) -> Optional[CompanyInfo]:
        row = self._execute("SELECT * FROM company WHERE id = 1").fetchone()
        if row is None:
            return None
        return CompanyInfo(
            name=row["name"],
            phone=row["phone"],
            email=row["email"],
            address=row["address"],
            logo=row["logo"],
        )

    def save(self, info: CompanyInfo) -> None:
        self._execute(
            """
            INSERT INTO company(id, name, email, address, phone, logo) VALUES (1, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name, email = excluded.email, address = excluded.address,
                phone = excluded.phone, logo = excluded.logo
            """,
            (info.name, info.email, info.address, info.phone, info.logo),
        )


class CategoryRepository(_Repository):
    def count(self) -> int:
        return int(self._execute("SELECT COUNT(*) FROM expense_category").fetchone()[0])

    def get_all(self) -> list[Category]:
        rows = self._execute("SELECT * FROM expense_category ORDER BY position").fetchall()
        return [_category_from_row(row) for row in rows]

    def get_by_id(self, category_id: str) -> Optional[Category]:
        row = self._execute("SELECT * FROM expense_category WHERE id = ?", (category_id,)).fetchone()
        return _category_from_row(row) if row else None

    def save(self, category: Category) -> None:
        self._execute(
            """
            INSERT INTO expense_category(id, title, color, icon, is_default, position)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title, color = excluded.color, icon = excluded.icon,
                is_default = excluded.is_default
            """,
            (
                category.category_id,
                category.title,
                category.color,
                category.icon,
                int(category.is_default),
                _next_position(self.conn, "expense_category"),
            ),
        )

    def delete(self, category_id: str) -> bool:
        return self._execute("DELETE FROM expense_category WHERE id = ?", (category_id,)).rowcount > 0


class ExpenseRepository(_Repository):
    def get_all(self) -> list[ExpenseRecord]:
        rows = self._execute("SELECT * FROM expense ORDER BY position").fetchall()
        return [_expense_from_row(row) for row in rows]

    def get_by_id(self, expense_id: str) -> Optional[ExpenseRecord]:
        row = self._execute("SELECT * FROM expense WHERE id = ?", (expense_id,)).fetchone()
        return _expense_from_row(row) if row else None

    def save(self, expense: ExpenseRecord) -> None:
        self._execute(
            """
            INSERT INTO expense(id, category_id, amount, date, description, odometer, created_at, position)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                category_id = excluded.category_id, amount = excluded.amount, date = excluded.date,
                description = excluded.description, odometer = excluded.odometer
            """,
            (
                expense.expense_id,
                expense.category_id,
                _normalize_value(Decimal(str(expense.amount))),
                expense.date,
                expense.description,
                expense.odometer,
                expense.created_at,
                _next_position(self.conn, "expense"),
            ),
        )

    def delete(self, expense_id: str) -> bool:
        return self._execute("DELETE FROM expense WHERE id = ?", (expense_id,)).rowcount > 0


def _customer_from_row(row: sqlite3.Row) -> Customer:
    return Customer(
        customer_id=row["id"],
        name=row["name"],
        phone=row["phone"],
        email=row["email"],
        address=row["address"],
        notes=row["notes"],
        created_at=row["created_at"],
    )


def _category_from_row(row: sqlite3.Row) -> Category:
    return Category(
        category_id=row["id"],
        title=row["title"],
        color=row["color"],
        icon=row["icon"],
        is_default=bool(row["is_default"]),
    )


def _expense_from_row(row: sqlite3.Row) -> ExpenseRecord:
    return ExpenseRecord(
        expense_id=row["id"],
        category_id=row["category_id"],
        amount=Decimal(row["amount"]),
        date=row["date"],
        description=row["description"],
        odometer=row["odometer"],
        created_at=row["created_at"],
    )
