from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
import sqlite3
from typing import Iterable

from ..errors import NotFoundError, ValidationError
from ..tx import immediate_tx
from .inventory_repo import InventoryRepo
from .sales_returns_helpers import next_document_number
from ...constants import SUPPLIER_RETURN_REASONS, SUPPLIER_RETURN_STATUSES, SUPPLIER_RETURN_TRANSITIONS
from ...utils.gst import round2, split_inclusive
from ...utils.loggers import log_event

_log = logging.getLogger(__name__)


@dataclass
class SupplierReturnLine:
    batch_id: int
    quantity: int


class SupplierReturnsRepo:
    """
    Returns of stock to a supplier (expired, damaged, overstock).

    Stock leaves the batch when the return is raised (PENDING). The status
    then moves only by explicit action:
        PENDING  -> APPROVED | COMPLETED | REJECTED
        APPROVED -> COMPLETED | REJECTED
    REJECTED keeps the deduction; the goods are handled outside the system.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn
        self.inventory = InventoryRepo(conn)

    def _batch_for_supplier(self, batch_id: int, supplier_id: int) -> dict:
        r = self.conn.execute(
            """
            SELECT b.batch_id, b.quantity, b.batch_number, CAST(b.mrp AS REAL) AS mrp,
                   b.supplier_id, p.supplier_id AS purchase_supplier_id,
                   m.medicine_id, m.name AS medicine_name, CAST(m.gst_rate AS REAL) AS gst_rate
            FROM batches b
            JOIN medicines m ON m.medicine_id = b.medicine_id
            LEFT JOIN purchases p ON p.purchase_id = b.purchase_id
            WHERE b.batch_id = ?
            """,
            (batch_id,),
        ).fetchone()
        if r is None:
            raise NotFoundError(f"Batch not found: {batch_id}")
        if supplier_id not in (r["supplier_id"], r["purchase_supplier_id"]):
            raise ValidationError(f"Batch {r['batch_number']} was not supplied by this supplier")
        return dict(r)

    def create_return(
        self,
        supplier_id: int,
        lines: Iterable[SupplierReturnLine],
        reason: str,
        user_id: int,
        notes: str | None = None,
        on_date: date | None = None,
    ) -> int:
        if self.conn.execute("SELECT 1 FROM suppliers WHERE supplier_id=?", (supplier_id,)).fetchone() is None:
            raise NotFoundError(f"Supplier #{supplier_id} not found")
        if reason not in SUPPLIER_RETURN_REASONS:
            raise ValidationError(f"Invalid return reason: {reason!r}")

        wanted: dict[int, int] = {}
        for ln in lines:
            if ln.quantity is None or int(ln.quantity) != ln.quantity or int(ln.quantity) <= 0:
                raise ValidationError("Return quantity must be a whole number greater than 0")
            wanted[ln.batch_id] = wanted.get(ln.batch_id, 0) + int(ln.quantity)
        if not wanted:
            raise ValidationError("Select at least one batch to return")

        priced = []
        for batch_id, qty in wanted.items():
            b = self._batch_for_supplier(batch_id, supplier_id)
            if b["quantity"] < qty:
                raise ValidationError(f"Insufficient stock for {b['medicine_name']}. Available: {b['quantity']}")
            g = split_inclusive(b["mrp"] * qty, b["gst_rate"])
            priced.append((b, qty, g))

        total_amount = round2(sum(g.total for _, _, g in priced))
        total_gst = round2(sum(g.total_gst for _, _, g in priced))

        with immediate_tx(self.conn):
            return_number = next_document_number(self.conn, "supplier_returns", "PR", on_date)
            cur = self.conn.execute(
                """
                INSERT INTO supplier_returns(return_number, supplier_id, user_id, reason,
                                             total_amount, total_gst, status, notes)
                VALUES (?,?,?,?,?,?,'PENDING',?)
                """,
                (return_number, supplier_id, user_id, reason, total_amount, total_gst, notes),
            )
            return_id = int(cur.lastrowid)
            for b, qty, g in priced:
                self.conn.execute(
                    """
                    INSERT INTO supplier_return_items(return_id, batch_id, medicine_id, quantity,
                                                      unit_price, gst_rate, cgst, sgst, total)
                    VALUES (?,?,?,?,?,?,?,?,?)
                    """,
                    (return_id, b["batch_id"], b["medicine_id"], qty, b["mrp"], b["gst_rate"],
                     g.cgst, g.sgst, g.total),
                )
                self.inventory.adjust_quantity(b["batch_id"], -qty)

        log_event(_log, "supplier_return", "created", f"Supplier return {return_number} raised",
                  {"return_id": return_id, "supplier_id": supplier_id, "reason": reason,
                   "total_amount": total_amount})
        return return_id

    def update_status(self, return_id: int, new_status: str) -> None:
        r = self.get_return(return_id)
        if r is None:
            raise NotFoundError(f"Supplier return #{return_id} not found")
        if new_status not in SUPPLIER_RETURN_STATUSES:
            raise ValidationError(f"Invalid status: {new_status!r}")
        if new_status not in SUPPLIER_RETURN_TRANSITIONS[r["status"]]:
            raise ValidationError(f"Cannot change a {r['status']} return to {new_status}")
        with immediate_tx(self.conn):
            self.conn.execute(
                """
                UPDATE supplier_returns SET status=?, updated_at=datetime('now','localtime')
                 WHERE return_id=? AND status=?
                """,
                (new_status, return_id, r["status"]),
            )
        log_event(_log, "supplier_return", "status", f"Supplier return {r['return_number']} -> {new_status}",
                  {"return_id": return_id, "from": r["status"], "to": new_status})

    # ---- Queries ----------------------------------------------------------

    def get_return(self, return_id: int) -> dict | None:
        r = self.conn.execute(
            """
            SELECT sr.*, s.name AS supplier_name
            FROM supplier_returns sr JOIN suppliers s ON s.supplier_id = sr.supplier_id
            WHERE sr.return_id = ?
            """,
            (return_id,),
        ).fetchone()
        if r is None:
            return None
        out = dict(r)
        out["items"] = [
            dict(x) for x in self.conn.execute(
                """
                SELECT sri.*, m.name AS medicine_name, b.batch_number
                FROM supplier_return_items sri
                JOIN medicines m ON m.medicine_id = sri.medicine_id
                JOIN batches b ON b.batch_id = sri.batch_id
                WHERE sri.return_id = ? ORDER BY sri.item_id
                """,
                (return_id,),
            ).fetchall()
        ]
        return out

    def list_returns(self, status: str | None = None, supplier_id: int | None = None) -> list[dict]:
        rows = self.conn.execute(
            """
            SELECT sr.return_id, sr.return_number, sr.return_date, sr.supplier_id, s.name AS supplier_name,
                   sr.reason, sr.status, CAST(sr.total_amount AS REAL) AS total_amount
            FROM supplier_returns sr JOIN suppliers s ON s.supplier_id = sr.supplier_id
            WHERE (:st IS NULL OR sr.status = :st) AND (:sid IS NULL OR sr.supplier_id = :sid)
            ORDER BY sr.return_id DESC
            """,
            {"st": status, "sid": supplier_id},
        ).fetchall()
        return [dict(r) for r in rows]
