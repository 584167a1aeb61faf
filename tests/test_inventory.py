# medbill/tests/test_inventory.py
from __future__ import annotations

from datetime import date, timedelta

import pytest

from conftest import add_batch, add_medicine, batch_qty
from medbill.database.errors import NotFoundError, ValidationError
from medbill.database.repositories.bills_repo import BillInput, BillsRepo, CartLine
from medbill.database.repositories.inventory_repo import Batch, InventoryRepo
from medbill.database.repositories.medicines_repo import Medicine, MedicinesRepo


def _soon(days: int) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


def test_adjust_quantity_never_goes_negative(conn, batch_id):
    inv = InventoryRepo(conn)
    assert inv.adjust_quantity(batch_id, -40) == 60
    with pytest.raises(ValidationError, match="Insufficient stock for Paracetamol 500mg. Available: 60"):
        inv.adjust_quantity(batch_id, -61)
    assert batch_qty(conn, batch_id) == 60
    assert inv.restore_stock(batch_id, 5) == 65
    with pytest.raises(NotFoundError):
        inv.adjust_quantity(12345, 1)
    with pytest.raises(ValidationError):
        inv.deduct_stock(batch_id, 0)


def test_duplicate_batch_number_is_rejected(conn, medicine_id, batch_id):
    with pytest.raises(ValidationError, match="already exists"):
        add_batch(conn, medicine_id, batch_number="B1")


def test_batch_validation(conn, medicine_id):
    inv = InventoryRepo(conn)
    base = dict(batch_id=None, medicine_id=medicine_id, batch_number="V1", expiry_date="2030-01-31",
                purchase_price=1, mrp=2, selling_price=2)
    with pytest.raises(ValidationError, match="Invalid expiry date"):
        inv.create_batch(Batch(**{**base, "expiry_date": "31/01/2030"}))
    with pytest.raises(ValidationError, match="MRP cannot be negative"):
        inv.create_batch(Batch(**{**base, "mrp": -1}))
    with pytest.raises(ValidationError, match="price type"):
        inv.create_batch(Batch(**{**base, "price_type": "NET"}))
    with pytest.raises(NotFoundError):
        inv.create_batch(Batch(**{**base, "medicine_id": 999}))


def test_update_batch_keeps_quantity(conn, medicine_id, batch_id):
    inv = InventoryRepo(conn)
    b = inv.require_batch(batch_id)
    inv.update_batch(Batch(batch_id=batch_id, medicine_id=medicine_id, batch_number="B1", expiry_date="2031-06-30",
                           purchase_price=9, mrp=12, selling_price=12, quantity=0, rack="A1", box="3"))
    after = inv.require_batch(batch_id)
    assert after["quantity"] == b["quantity"] == 100
    assert after["expiry_date"] == "2031-06-30"
    assert after["rack"] == "A1"


def test_stock_item_status(conn, medicine_id):
    inv = InventoryRepo(conn, expiry_alert_days=30)
    soon = add_batch(conn, medicine_id, batch_number="S1", quantity=5, expiry_date=_soon(10))
    item = inv.get_stock_item(soon)
    assert item["expiry_status"] == "EXPIRING_SOON"
    assert item["stock_status"] == "LOW_STOCK"
    assert item["days_to_expiry"] == 10
    assert item["medicine_name"] == "Paracetamol 500mg"
    assert inv.get_stock_item(4242) is None


def test_expiring_items(conn, medicine_id, batch_id):
    soon = add_batch(conn, medicine_id, batch_number="S1", expiry_date=_soon(10))
    gone = add_batch(conn, medicine_id, batch_number="S0", expiry_date=_soon(-3))
    add_batch(conn, medicine_id, batch_number="S2", quantity=0, expiry_date=_soon(5))
    inv = InventoryRepo(conn)
    assert [r["batch_id"] for r in inv.expiring_items(30)] == [gone, soon]
    assert [r["batch_id"] for r in inv.expiring_items(0)] == [gone]


def test_search_for_billing_skips_expired_and_empty(conn, medicine_id, batch_id):
    add_batch(conn, medicine_id, batch_number="EXP", expiry_date="2001-01-31")
    add_batch(conn, medicine_id, batch_number="NIL", quantity=0)
    other = add_medicine(conn, "Cetirizine 10mg", 5)
    add_batch(conn, other, batch_number="C1")
    inv = InventoryRepo(conn)
    assert [r["batch_id"] for r in inv.search_for_billing("para")] == [batch_id]
    assert [r["batch_number"] for r in inv.search_for_billing("")] == ["C1", "B1"]


def test_low_stock_is_per_medicine(conn, medicine_id):
    add_batch(conn, medicine_id, batch_number="L1", quantity=4)
    add_batch(conn, medicine_id, batch_number="L2", quantity=4)
    plenty = add_medicine(conn, "Cetirizine 10mg", 5)
    add_batch(conn, plenty, batch_number="C1", quantity=50)
    empty = add_medicine(conn, "Ranitidine 150mg", 12)

    rows = InventoryRepo(conn).low_stock_items()
    assert {r["medicine_id"]: r["total_quantity"] for r in rows} == {empty: 0, medicine_id: 8}


def test_non_moving_items(conn, user_id, medicine_id, batch_id):
    idle = add_batch(conn, medicine_id, batch_number="IDLE")
    BillsRepo(conn).create_bill(BillInput(items=[CartLine(batch_id, 1)]), user_id)
    assert [r["batch_id"] for r in InventoryRepo(conn).non_moving_items(30)] == [idle]


def test_location_scheduled_and_value(conn, medicine_id, scheduled_batch_id):
    a1 = add_batch(conn, medicine_id, batch_number="R1", quantity=10, rack="A1", box="1")
    add_batch(conn, medicine_id, batch_number="R2", quantity=10, rack="B2", box="1")
    inv = InventoryRepo(conn)
    assert [r["batch_id"] for r in inv.stock_by_location(rack="A1")] == [a1]
    assert len(inv.stock_by_location(box="1")) == 2
    assert [r["batch_id"] for r in inv.scheduled_stock()] == [scheduled_batch_id]

    value = inv.stock_value()
    assert value["batches"] == 3
    assert value["units"] == 70
    assert value["purchase_value"] == pytest.approx(560.0)


def test_medicine_master(conn):
    repo = MedicinesRepo(conn)
    mid = repo.create(Medicine(medicine_id=None, name=" Dolo 650 ", gst_rate=12, generic_name="Paracetamol"))
    m = repo.require(mid)
    assert m["name"] == "Dolo 650"
    assert m["hsn_code"] == "3004"
    assert not repo.is_scheduled(mid)

    repo.update(Medicine(medicine_id=mid, name="Dolo 650", gst_rate=0, is_schedule=True))
    m = repo.require(mid)
    assert m["gst_rate"] == 0
    assert m["hsn_code"] == "3002"
    assert repo.is_scheduled(mid)
    assert [r["medicine_id"] for r in repo.search("paracet")] == [mid]

    repo.delete(mid)
    assert repo.search("Dolo") == []
    assert repo.list_medicines(active_only=False)[0]["is_active"] == 0

    with pytest.raises(ValidationError, match="GST rate"):
        repo.create(Medicine(medicine_id=None, name="Bad", gst_rate=28))
    with pytest.raises(ValidationError, match="Medicine name is required"):
        repo.create(Medicine(medicine_id=None, name="", gst_rate=5))
