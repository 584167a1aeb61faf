# medbill/tests/test_app_context.py
from __future__ import annotations

import sys

import pytest

from medbill.app_context import AppContext
from medbill.database.errors import NotFoundError, ValidationError
from medbill.database.repositories.bills_repo import BillInput, CartLine
from medbill.database.repositories.login_repo import LoginRepo
from medbill.database.repositories.running_bills_repo import RunningBillItem
from medbill.printing.invoice import PdfExportUnavailable, export_bill_pdf, render_bill_html


@pytest.fixture()
def ctx(conn):
    return AppContext(conn)


def test_require_user_before_and_after_login(ctx):
    with pytest.raises(ValidationError, match="Please sign in first"):
        ctx.require_user()
    assert ctx.login("admin", "wrong") is None
    assert ctx.last_login_error
    session = ctx.login("admin", "admin123")
    assert ctx.require_user("settings:edit") is session
    ctx.logout()
    assert ctx.session is None


def test_staff_cannot_change_settings(ctx, conn):
    LoginRepo(conn).create_user("priya", "counter-1", "Priya N")
    ctx.login("priya", "counter-1")
    ctx.require_user("billing:create")
    with pytest.raises(ValidationError, match="permission"):
        ctx.set_setting("shop_name", "Hacked")
    assert ctx.setting("shop_name") == "Medical Store"


def test_settings_cache_refreshes_on_write(ctx):
    ctx.login("admin", "admin123")
    assert ctx.setting("shop_name") == "Medical Store"
    ctx.set_setting("shop_name", "Sri Balaji Medicals")
    assert ctx.setting("shop_name") == "Sri Balaji Medicals"
    assert ctx.setting("missing", "fallback") == "fallback"


def test_repositories_share_the_connection(ctx, conn):
    assert ctx.bills.conn is conn
    assert ctx.inventory is ctx.inventory
    assert ctx.inventory.expiry_alert_days == 30


def test_bill_html_includes_shop_items_and_pending_lines(ctx, batch_id):
    ctx.login("admin", "admin123")
    ctx.set_setting("shop_gstin", "33AAAAA0000A1Z5")
    bill_id = ctx.bills.create_bill(BillInput(items=[CartLine(batch_id, 2)], customer_name="<Ravi>"),
                                    ctx.session.user_id)
    html = ctx.bill_html(bill_id)
    bill = ctx.bills.get_bill(bill_id)
    assert bill["bill_number"] in html
    assert "Medical Store" in html
    assert "GSTIN: 33AAAAA0000A1Z5" in html
    assert "Paracetamol 500mg" in html
    assert "&lt;Ravi&gt;" in html
    assert "22.40" in html

    rb_bill = ctx.running_bills.create_running_bill([RunningBillItem("Vicks 25ml", 1, 100.0, 18)],
                                                    ctx.session.user_id)
    rb_html = ctx.bill_html(rb_bill)
    assert "Vicks 25ml" in rb_html
    assert "84.75" in rb_html
    assert "118.00" not in rb_html

    with pytest.raises(NotFoundError):
        ctx.bill_html(9999)


def test_render_tax_summary_groups_by_rate():
    bill = {"bill_number": "INV/2025-26/00009", "bill_date": "2025-09-01 10:00:00", "status": "COMPLETED",
            "taxable_total": 150, "total_cgst": 9, "total_sgst": 9, "grand_total": 168, "payment_mode": "CASH",
            "round_off": 0, "discount_amount": 0}
    items = [
        {"medicine_name": "A", "hsn_code": "3004", "batch_number": "X", "expiry_date": "2030-01-31", "quantity": 1,
         "unit_price": 112, "gst_rate": 12, "taxable_value": 100, "cgst": 6, "sgst": 6, "total": 112},
        {"medicine_name": "B", "hsn_code": "3004", "batch_number": "Y", "expiry_date": "2030-01-31", "quantity": 1,
         "unit_price": 56, "gst_rate": 12, "taxable_value": 50, "cgst": 3, "sgst": 3, "total": 56},
    ]
    html = render_bill_html(bill, {"shop_name": "Test Chemist"}, items=items)
    assert "150.00" in html
    assert html.count("<td>12</td>") == 1
    assert "Status:" not in html


def test_pdf_export_without_weasyprint(monkeypatch, tmp_path):
    monkeypatch.setitem(sys.modules, "weasyprint", None)
    with pytest.raises(PdfExportUnavailable, match="pip install weasyprint"):
        export_bill_pdf("<html></html>", tmp_path / "bill.pdf")
    assert issubclass(PdfExportUnavailable, ValidationError)


def test_open_creates_database(tmp_path):
    ctx = AppContext.open(tmp_path / "shop" / "medbill.db", log_file=None)
    try:
        assert (tmp_path / "shop" / "medbill.db").exists()
        assert ctx.login("admin", "admin123") is not None
    finally:
        ctx.close()
