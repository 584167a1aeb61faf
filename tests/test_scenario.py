# medbill/tests/test_scenario.py
"""
End-to-end counter day: stock in, sell, refuse an oversell, take a return.
"""
from __future__ import annotations

import pytest

from conftest import batch_qty
from medbill.database.errors import ValidationError
from medbill.database.repositories.bills_repo import BillInput, BillsRepo, CartLine
from medbill.database.repositories.sales_returns_repo import ReturnLine, SalesReturnsRepo


def test_sell_reject_return(conn, user_id, batch_id):
    bills = BillsRepo(conn)
    assert batch_qty(conn, batch_id) == 100

    first = bills.create_bill(BillInput(items=[CartLine(batch_id, 30)]), user_id)
    assert batch_qty(conn, batch_id) == 70

    with pytest.raises(ValidationError, match="Available: 70"):
        bills.create_bill(BillInput(items=[CartLine(batch_id, 80)]), user_id)
    assert batch_qty(conn, batch_id) == 70

    item_id = bills.list_items(first)[0]["item_id"]
    SalesReturnsRepo(conn).create_return(first, [ReturnLine(item_id, 10)], "CASH", user_id)
    assert batch_qty(conn, batch_id) == 80
