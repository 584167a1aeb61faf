from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
import sqlite3
from typing import Iterable, Optional

from ..errors import NotFoundError, ValidationError
from ..tx import immediate_tx
from .bill_numbers import next_bill_number
from .bills_repo import BillsRepo, PatientInfo
from ...constants import RUNNING_BILL_NOTE, RUNNING_BILL_STATUSES
from ...utils.gst import ItemCalculation, default_hsn_code, is_valid_gst_rate, round2, round_rupee, split_inclusive
from ...utils.loggers import log_event
from ...utils.validators import require_positive, require_text, validate_patient

_log = logging.getLogger(__name__)


@dataclass
class RunningBillItem:
    """A sale of stock that is not in the system yet; unit_price includes GST."""
    medicine_name: str
    quantity: int
    unit_price: float
    gst_rate: float = 12
    hsn_code: str | None = None
    notes: str | None = None


class RunningBillsRepo:
    """
    Running bills: the customer is billed now, stock is reconciled later.

    Each line is PENDING until it is either linked to a batch (STOCKED: stock
    is deducted and a real bill item is written) or CANCELLED (no stock
    effect). Both end states are terminal.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn
        self.bills = BillsRepo(conn)

    # ---------------------------------------------------------------------
    # Workflows
    # ---------------------------------------------------------------------
    def create_running_bill(self, items: Iterable[RunningBillItem], user_id: int,
                            customer_name: str | None = None, on_date: date | None = None) -> int:
        """Create the (CASH) bill and one PENDING row per item; returns bill_id."""
        items = list(items)
        if not items:
            raise ValidationError("Add at least one item")
        for it in items:
            require_text(it.medicine_name, "Medicine name")
            if int(it.quantity) != it.quantity or int(it.quantity) <= 0:
                raise ValidationError("Quantity must be a whole number greater than 0")
            require_positive(it.unit_price, "Unit price")
            if not is_valid_gst_rate(it.gst_rate):
                raise ValidationError("GST rate must be one of 0, 5, 12, 18")

        lines = [split_inclusive(float(it.unit_price) * int(it.quantity), float(it.gst_rate)) for it in items]
        taxable = round2(sum(g.taxable_value for g in lines))
        cgst = round2(sum(g.cgst for g in lines))
        sgst = round2(sum(g.sgst for g in lines))
        gst = round2(sum(g.total_gst for g in lines))
        items_total = round2(sum(g.total for g in lines))
        round_off = round2(round_rupee(items_total) - items_total) if self.bills.round_off else 0.0
        grand_total = round2(items_total + round_off)

        with immediate_tx(self.conn):
            bill_number = next_bill_number(self.conn, on_date)
            cur = self.conn.execute(
                """
                INSERT INTO bills(bill_number, customer_name, user_id, subtotal, taxable_total,
                                  total_cgst, total_sgst, total_gst, round_off, grand_total,
                                  payment_mode, cash_amount, notes, total_items)
                VALUES (?,?,?,?,?,?,?,?,?,?,'CASH',?,?,?)
                """,
                (bill_number, customer_name, user_id, items_total, taxable, cgst, sgst, gst, round_off,
                 grand_total, grand_total, RUNNING_BILL_NOTE, len(items)),
            )
            bill_id = int(cur.lastrowid)
            for it, g in zip(items, lines):
                self.conn.execute(
                    """
                    INSERT INTO running_bills(bill_id, medicine_name, quantity, unit_price, total_amount,
                                              gst_rate, hsn_code, notes, user_id, status)
                    VALUES (?,?,?,?,?,?,?,?,?,'PENDING')
                    """,
                    (
                        bill_id, it.medicine_name.strip(), int(it.quantity), float(it.unit_price), g.total,
                        float(it.gst_rate), (it.hsn_code or "").strip() or default_hsn_code(it.gst_rate),
                        it.notes, user_id,
                    ),
                )

        log_event(_log, "running_bill", "created", f"Running bill {bill_number} created",
                  {"bill_id": bill_id, "items": len(items), "grand_total": grand_total})
        return bill_id

    def link_to_batch(self, running_bill_id: int, batch_id: int, user_id: int,
                      patient: Optional[PatientInfo] = None) -> int:
        """
        Reconcile a PENDING line against a real batch: deduct its quantity,
        write the bill item at the running-bill price, mark STOCKED.
        Returns the new bill_item id.
        """
        rb = self.require(running_bill_id)
        if rb["status"] != "PENDING":
            raise ValidationError(f"Running bill is already {rb['status']}")

        batch = self.bills.inventory.get_stock_item(batch_id)
        if batch is None:
            raise NotFoundError(f"Batch not found: {batch_id}")
        qty = int(rb["quantity"])
        if batch["quantity"] < qty:
            raise ValidationError(f"Insufficient stock. Available: {batch['quantity']}, Required: {qty}")
        if batch["is_schedule"]:
            validate_patient(patient)

        # priced as billed: GST-inclusive unit price, tax extracted
        g = split_inclusive(float(rb["unit_price"]) * qty, float(rb["gst_rate"]))
        calc = ItemCalculation(
            unit_price=float(rb["unit_price"]), quantity=qty, gst_rate=float(rb["gst_rate"]),
            price_type="INCLUSIVE", gross_amount=g.total, discount_amount=0.0,
            bill_discount_share=0.0, taxable_value=g.taxable_value, cgst=g.cgst, sgst=g.sgst,
            total_gst=g.total_gst, total=g.total,
        )
        snapshot = dict(batch, medicine_name=rb["medicine_name"], hsn_code=rb["hsn_code"] or batch["hsn_code"])

        with immediate_tx(self.conn):
            self.bills.inventory.deduct_stock(batch_id, qty)
            item_id = self.bills.insert_bill_item(rb["bill_id"], snapshot, qty, calc)
            if batch["is_schedule"]:
                self.bills.insert_scheduled_record(rb["bill_id"], item_id, batch, qty, patient)
            cur = self.conn.execute(
                """
                UPDATE running_bills
                   SET status='STOCKED', bill_item_id=?, linked_batch_id=?, linked_medicine_id=?,
                       stocked_at=datetime('now','localtime'), stocked_by=?,
                       updated_at=datetime('now','localtime')
                 WHERE running_bill_id=? AND status='PENDING'
                """,
                (item_id, batch_id, batch["medicine_id"], user_id, running_bill_id),
            )
            if cur.rowcount != 1:
                raise ValidationError("Running bill is no longer pending")

        log_event(_log, "running_bill", "linked", f"Running bill line {running_bill_id} stocked",
                  {"running_bill_id": running_bill_id, "batch_id": batch_id, "quantity": qty})
        return item_id

    def cancel(self, running_bill_id: int) -> None:
        """PENDING -> CANCELLED; stock is untouched."""
        rb = self.require(running_bill_id)
        if rb["status"] != "PENDING":
            raise ValidationError(f"Running bill is already {rb['status']}")
        with immediate_tx(self.conn):
            self.conn.execute(
                """
                UPDATE running_bills SET status='CANCELLED', updated_at=datetime('now','localtime')
                 WHERE running_bill_id=? AND status='PENDING'
                """,
                (running_bill_id,),
            )
        log_event(_log, "running_bill", "cancelled", f"Running bill line {running_bill_id} cancelled",
                  {"running_bill_id": running_bill_id})

    # ---------------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------------
    def get(self, running_bill_id: int) -> dict | None:
        r = self.conn.execute(
            """
            SELECT rb.*,
                   b.bill_number, b.customer_name, b.bill_date
            FROM running_bills rb JOIN bills b ON b.bill_id = rb.bill_id
            WHERE rb.running_bill_id = ?
            """,
            (running_bill_id,),
        ).fetchone()
        return dict(r) if r else None

    def require(self, running_bill_id: int) -> dict:
        rb = self.get(running_bill_id)
        if rb is None:
            raise NotFoundError(f"Running bill #{running_bill_id} not found")
        return rb

    def list_running_bills(self, status: str | None = None, bill_id: int | None = None) -> list[dict]:
        if status is not None and status not in RUNNING_BILL_STATUSES:
            raise ValidationError(f"Invalid running bill status: {status!r}")
        rows = self.conn.execute(
            """
            SELECT rb.*,
                   b.bill_number, b.customer_name, b.bill_date
            FROM running_bills rb JOIN bills b ON b.bill_id = rb.bill_id
            WHERE (:st IS NULL OR rb.status = :st) AND (:bid IS NULL OR rb.bill_id = :bid)
            ORDER BY rb.created_at DESC, rb.running_bill_id DESC
            """,
            {"st": status, "bid": bill_id},
        ).fetchall()
        return [dict(r) for r in rows]

    def pending_count(self) -> int:
        return int(self.conn.execute("SELECT COUNT(*) FROM running_bills WHERE status='PENDING'").fetchone()[0])
