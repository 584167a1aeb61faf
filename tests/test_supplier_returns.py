# medbill/tests/test_supplier_returns.py
from __future__ import annotations

import pytest

from conftest import add_batch, add_supplier, batch_qty
from medbill.database.errors import NotFoundError, ValidationError
from medbill.database.repositories.supplier_returns_repo import SupplierReturnLine, SupplierReturnsRepo
from medbill.database.repositories.suppliers_repo import SuppliersRepo


def test_return_to_supplier_deducts_stock(conn, user_id, supplier_id, batch_id):
    repo = SupplierReturnsRepo(conn)
    return_id = repo.create_return(supplier_id, [SupplierReturnLine(batch_id, 10)], "EXPIRY", user_id)

    assert batch_qty(conn, batch_id) == 90
    ret = repo.get_return(return_id)
    assert ret["status"] == "PENDING"
    assert ret["return_number"].startswith("PR")
    assert ret["supplier_name"] == "City Distributors"
    assert float(ret["total_amount"]) == pytest.approx(112.0)
    assert float(ret["total_gst"]) == pytest.approx(12.0)
    (line,) = ret["items"]
    assert line["medicine_name"] == "Paracetamol 500mg"
    assert line["quantity"] == 10


def test_batch_must_belong_to_supplier(conn, user_id, batch_id):
    other = add_supplier(conn, "Other Pharma")
    repo = SupplierReturnsRepo(conn)
    with pytest.raises(ValidationError, match="not supplied by this supplier"):
        repo.create_return(other, [SupplierReturnLine(batch_id, 1)], "DAMAGE", user_id)
    assert batch_qty(conn, batch_id) == 100


def test_return_guards(conn, user_id, supplier_id, batch_id):
    repo = SupplierReturnsRepo(conn)
    with pytest.raises(NotFoundError):
        repo.create_return(999, [SupplierReturnLine(batch_id, 1)], "EXPIRY", user_id)
    with pytest.raises(ValidationError, match="Invalid return reason"):
        repo.create_return(supplier_id, [SupplierReturnLine(batch_id, 1)], "BORED", user_id)
    with pytest.raises(ValidationError, match="Insufficient stock"):
        repo.create_return(supplier_id, [SupplierReturnLine(batch_id, 101)], "OVERSTOCK", user_id)
    with pytest.raises(NotFoundError, match="Batch not found"):
        repo.create_return(supplier_id, [SupplierReturnLine(5555, 1)], "OTHER", user_id)
    with pytest.raises(ValidationError, match="at least one batch"):
        repo.create_return(supplier_id, [], "OTHER", user_id)
    assert batch_qty(conn, batch_id) == 100


def test_status_transitions(conn, user_id, supplier_id, batch_id):
    repo = SupplierReturnsRepo(conn)
    rid = repo.create_return(supplier_id, [SupplierReturnLine(batch_id, 5)], "DAMAGE", user_id)

    repo.update_status(rid, "APPROVED")
    with pytest.raises(ValidationError, match="Cannot change a APPROVED return to PENDING"):
        repo.update_status(rid, "PENDING")
    repo.update_status(rid, "COMPLETED")
    assert repo.get_return(rid)["status"] == "COMPLETED"

    for target in ("REJECTED", "APPROVED", "PENDING"):
        with pytest.raises(ValidationError):
            repo.update_status(rid, target)
    with pytest.raises(ValidationError, match="Invalid status"):
        repo.update_status(rid, "LOST")
    with pytest.raises(NotFoundError):
        repo.update_status(9999, "APPROVED")


def test_rejected_return_keeps_the_deduction(conn, user_id, supplier_id, batch_id):
    repo = SupplierReturnsRepo(conn)
    rid = repo.create_return(supplier_id, [SupplierReturnLine(batch_id, 7)], "OVERSTOCK", user_id)
    repo.update_status(rid, "REJECTED")
    assert repo.get_return(rid)["status"] == "REJECTED"
    assert batch_qty(conn, batch_id) == 93
    assert [r["return_id"] for r in repo.list_returns(status="REJECTED")] == [rid]
    assert repo.list_returns(status="PENDING") == []


def test_returnable_batches_for_supplier(conn, supplier_id, medicine_id, batch_id):
    add_batch(conn, medicine_id, batch_number="EMPTY", quantity=0, supplier_id=supplier_id)
    add_batch(conn, medicine_id, batch_number="ELSE", quantity=5)
    rows = SuppliersRepo(conn).list_batches(supplier_id)
    assert [r["batch_number"] for r in rows] == ["B1"]
