# medbill/tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - Every test gets its own file database under tmp_path (schema + seed
#   applied by get_connection, exactly like a first run)
# - conn.row_factory = sqlite3.Row, PRAGMA foreign_keys=ON
# - Provide handy ids (admin user, supplier, medicine, batch, customer)
# - pytest-qt owns QApplication for the message-box tests
# ---------------------------------------------------------------------

from __future__ import annotations

import os
import sqlite3
from typing import Optional

import pytest

from medbill.database import get_connection
from medbill.database.repositories.customers_repo import Customer, CustomersRepo
from medbill.database.repositories.inventory_repo import Batch, InventoryRepo
from medbill.database.repositories.medicines_repo import Medicine, MedicinesRepo
from medbill.database.repositories.suppliers_repo import Supplier, SuppliersRepo

# Headless runs: let Qt start without a display server.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

FAR_EXPIRY = "2099-12-31"


# ---------- helpers (usable from tests directly) ----------

def add_medicine(conn: sqlite3.Connection, name: str = "Paracetamol 500mg", gst_rate: float = 12,
                 *, is_schedule: bool = False, reorder_level: int = 10) -> int:
    return MedicinesRepo(conn).create(Medicine(
        medicine_id=None,
        name=name,
        gst_rate=gst_rate,
        generic_name="Paracetamol" if name.startswith("Paracetamol") else None,
        manufacturer="Acme Pharma",
        reorder_level=reorder_level,
        is_schedule=is_schedule,
    ))


def add_batch(conn: sqlite3.Connection, medicine_id: int, *, quantity: int = 100, batch_number: str = "B1",
              selling_price: float = 11.20, mrp: Optional[float] = None, price_type: str = "INCLUSIVE",
              expiry_date: str = FAR_EXPIRY, supplier_id: Optional[int] = None,
              rack: Optional[str] = None, box: Optional[str] = None) -> int:
    return InventoryRepo(conn).create_batch(Batch(
        batch_id=None,
        medicine_id=medicine_id,
        batch_number=batch_number,
        expiry_date=expiry_date,
        purchase_price=8.0,
        mrp=selling_price if mrp is None else mrp,
        selling_price=selling_price,
        quantity=quantity,
        price_type=price_type,
        rack=rack,
        box=box,
        supplier_id=supplier_id,
    ))


def add_customer(conn: sqlite3.Connection, name: str = "Ravi Kumar", phone: str = "9876543210") -> int:
    return CustomersRepo(conn).create(Customer(customer_id=None, name=name, phone=phone, credit_limit=5000))


def add_supplier(conn: sqlite3.Connection, name: str = "City Distributors") -> int:
    return SuppliersRepo(conn).create(Supplier(supplier_id=None, name=name, gstin="33ABCDE1234F1Z5"))


def batch_qty(conn: sqlite3.Connection, batch_id: int) -> int:
    return int(conn.execute("SELECT quantity FROM batches WHERE batch_id=?", (batch_id,)).fetchone()[0])


def count(conn: sqlite3.Connection, table: str) -> int:
    return int(conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])


# ---------- fixtures ----------

@pytest.fixture()
def conn(tmp_path):
    con = get_connection(tmp_path / "medbill.db")
    try:
        yield con
    finally:
        con.close()


@pytest.fixture()
def user_id(conn) -> int:
    return int(conn.execute("SELECT user_id FROM users WHERE username='admin'").fetchone()["user_id"])


@pytest.fixture()
def supplier_id(conn) -> int:
    return add_supplier(conn)


@pytest.fixture()
def medicine_id(conn) -> int:
    return add_medicine(conn)


@pytest.fixture()
def batch_id(conn, medicine_id, supplier_id) -> int:
    """100 units at 11.20 (GST 12% inclusive), supplied by `supplier_id`."""
    return add_batch(conn, medicine_id, supplier_id=supplier_id)


@pytest.fixture()
def customer_id(conn) -> int:
    return add_customer(conn)


@pytest.fixture()
def scheduled_batch_id(conn) -> int:
    mid = add_medicine(conn, "Alprazolam 0.25mg", 12, is_schedule=True)
    return add_batch(conn, mid, quantity=50, batch_number="H1", selling_price=22.40)
