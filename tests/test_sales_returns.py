# medbill/tests/test_sales_returns.py
from __future__ import annotations

from datetime import date

import pytest

from conftest import add_batch, add_medicine, batch_qty, count
from medbill.database.errors import NotFoundError, ValidationError
from medbill.database.repositories.bills_repo import BillInput, BillsRepo, CartLine
from medbill.database.repositories.customers_repo import CustomersRepo
from medbill.database.repositories.sales_returns_helpers import get_returnable_quantities, next_document_number
from medbill.database.repositories.sales_returns_repo import ReturnLine, SalesReturnsRepo


def _sell(conn, user_id, batch_id, qty=30, **kw) -> tuple[int, int]:
    bills = BillsRepo(conn)
    bill_id = bills.create_bill(BillInput(items=[CartLine(batch_id, qty)], **kw), user_id)
    return bill_id, bills.list_items(bill_id)[0]["item_id"]


def test_return_restores_stock_once(conn, user_id, batch_id):
    """S1: returning 10 of 30 sold puts exactly 10 back."""
    bill_id, item_id = _sell(conn, user_id, batch_id)
    assert batch_qty(conn, batch_id) == 70

    repo = SalesReturnsRepo(conn)
    return_id = repo.create_return(bill_id, [ReturnLine(item_id, 10)], "CASH", user_id, reason="Not needed")

    assert batch_qty(conn, batch_id) == 80
    assert get_returnable_quantities(conn, bill_id) == {item_id: 20}

    ret = repo.get_return(return_id)
    assert ret["return_number"].startswith("SR")
    assert float(ret["total_amount"]) == 112.0
    assert float(ret["total_gst"]) == 12.0
    (line,) = ret["items"]
    assert line["quantity"] == 10
    assert line["batch_id"] == batch_id
    assert BillsRepo(conn).require_bill(bill_id)["status"] == "COMPLETED"


def test_over_return_is_rejected(conn, user_id, batch_id):
    """S2: cumulative returns can never exceed what was sold."""
    bill_id, item_id = _sell(conn, user_id, batch_id)
    repo = SalesReturnsRepo(conn)
    repo.create_return(bill_id, [ReturnLine(item_id, 20)], "CASH", user_id)

    with pytest.raises(ValidationError, match=r"Return qty exceeds remaining for Paracetamol 500mg \(remaining 10\)"):
        repo.create_return(bill_id, [ReturnLine(item_id, 11)], "CASH", user_id)
    with pytest.raises(ValidationError, match="exceeds remaining"):
        repo.create_return(bill_id, [ReturnLine(item_id, 6), ReturnLine(item_id, 5)], "CASH", user_id)

    assert batch_qty(conn, batch_id) == 90
    assert count(conn, "sales_returns") == 1


def test_full_return_marks_bill_returned(conn, user_id, batch_id):
    bill_id, item_id = _sell(conn, user_id, batch_id)
    repo = SalesReturnsRepo(conn)
    repo.create_return(bill_id, [ReturnLine(item_id, 25)], "CASH", user_id)
    repo.create_return(bill_id, [ReturnLine(item_id, 5)], "CASH", user_id)

    assert BillsRepo(conn).require_bill(bill_id)["status"] == "RETURNED"
    assert batch_qty(conn, batch_id) == 100
    assert repo.return_totals(bill_id) == {"returns": 2, "qty": 30, "amount": 336.0}
    with pytest.raises(ValidationError, match="remaining 0"):
        repo.create_return(bill_id, [ReturnLine(item_id, 1)], "CASH", user_id)


def test_return_guards(conn, user_id, batch_id):
    bill_id, item_id = _sell(conn, user_id, batch_id)
    repo = SalesReturnsRepo(conn)
    with pytest.raises(NotFoundError):
        repo.create_return(777, [ReturnLine(item_id, 1)], "CASH", user_id)
    with pytest.raises(NotFoundError, match="not part of bill"):
        repo.create_return(bill_id, [ReturnLine(item_id + 100, 1)], "CASH", user_id)
    with pytest.raises(ValidationError, match="Invalid refund mode"):
        repo.create_return(bill_id, [ReturnLine(item_id, 1)], "UPI", user_id)
    with pytest.raises(ValidationError, match="need a customer"):
        repo.create_return(bill_id, [ReturnLine(item_id, 1)], "CREDIT_NOTE", user_id)
    with pytest.raises(ValidationError, match="whole number"):
        repo.create_return(bill_id, [ReturnLine(item_id, 0)], "CASH", user_id)
    with pytest.raises(ValidationError, match="at least one item"):
        repo.create_return(bill_id, [], "CASH", user_id)

    BillsRepo(conn).cancel_bill(bill_id, user_id)
    with pytest.raises(ValidationError, match="cancelled bill"):
        repo.create_return(bill_id, [ReturnLine(item_id, 1)], "CASH", user_id)
    assert count(conn, "sales_returns") == 0


def test_credit_note_reduces_customer_balance(conn, user_id, batch_id, customer_id):
    bill_id, item_id = _sell(conn, user_id, batch_id, payment_mode="CREDIT", customer_id=customer_id)
    customers = CustomersRepo(conn)
    assert float(customers.require(customer_id)["current_balance"]) == 336.0

    SalesReturnsRepo(conn).create_return(bill_id, [ReturnLine(item_id, 10)], "CREDIT_NOTE", user_id)

    assert float(customers.require(customer_id)["current_balance"]) == 224.0
    last = customers.credit_history(customer_id)[-1]
    assert last["transaction_type"] == "RETURN"
    assert last["balance_after"] == 224.0
    assert customers.reconcile_balance(customer_id)["ok"]


def test_cancel_after_partial_return(conn, user_id, batch_id, customer_id):
    """Cancelling restores only the unreturned units and reverses only the unsettled credit."""
    bill_id, item_id = _sell(conn, user_id, batch_id, payment_mode="CREDIT", customer_id=customer_id)
    SalesReturnsRepo(conn).create_return(bill_id, [ReturnLine(item_id, 10)], "ADJUSTMENT", user_id)
    assert batch_qty(conn, batch_id) == 80

    BillsRepo(conn).cancel_bill(bill_id, user_id)

    assert batch_qty(conn, batch_id) == 100
    customers = CustomersRepo(conn)
    assert float(customers.require(customer_id)["current_balance"]) == 0.0
    assert [r["transaction_type"] for r in customers.credit_history(customer_id)] == ["SALE", "ADJUSTMENT", "ADJUSTMENT"]
    assert customers.reconcile_balance(customer_id)["ok"]


def test_unit_by_unit_credit_returns_settle_to_zero(conn, user_id, customer_id):
    """Refunds stop at what the bill charged, round-off included."""
    batch = add_batch(conn, add_medicine(conn, "ORS Sachet"), batch_number="R1", selling_price=6.67)
    bill_id, item_id = _sell(conn, user_id, batch, qty=3, payment_mode="CREDIT", customer_id=customer_id)
    bill = BillsRepo(conn).require_bill(bill_id)
    assert float(bill["grand_total"]) == 20.0
    assert float(bill["round_off"]) == -0.01

    repo = SalesReturnsRepo(conn)
    amounts = []
    for _ in range(3):
        rid = repo.create_return(bill_id, [ReturnLine(item_id, 1)], "CREDIT_NOTE", user_id)
        amounts.append(float(repo.get_return(rid)["total_amount"]))

    assert amounts == [6.67, 6.67, 6.66]
    assert repo.return_totals(bill_id)["amount"] == 20.0
    customers = CustomersRepo(conn)
    assert float(customers.require(customer_id)["current_balance"]) == 0.0
    assert customers.reconcile_balance(customer_id)["ok"]
    assert BillsRepo(conn).require_bill(bill_id)["status"] == "RETURNED"
    assert batch_qty(conn, batch) == 100


def test_return_numbers_are_sequential_per_month(conn, user_id, batch_id):
    bill_id, item_id = _sell(conn, user_id, batch_id)
    repo = SalesReturnsRepo(conn)
    on = date(2025, 9, 15)
    r1 = repo.create_return(bill_id, [ReturnLine(item_id, 1)], "CASH", user_id, on_date=on)
    r2 = repo.create_return(bill_id, [ReturnLine(item_id, 1)], "CASH", user_id, on_date=on)
    assert repo.get_return(r1)["return_number"] == "SR25090001"
    assert repo.get_return(r2)["return_number"] == "SR25090002"
    assert next_document_number(conn, "sales_returns", "SR", date(2025, 10, 1)) == "SR25100001"
    assert [r["return_id"] for r in repo.list_returns(bill_id=bill_id)] == [r2, r1]
