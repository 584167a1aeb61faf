from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
import sqlite3
from typing import Iterable

from ..errors import NotFoundError, ValidationError
from ..tx import immediate_tx
from .customers_repo import CustomersRepo
from .inventory_repo import InventoryRepo
from .sales_returns_helpers import get_returnable_quantities, next_document_number
from ...constants import REFUND_MODES
from ...utils.gst import round2
from ...utils.loggers import log_event

_log = logging.getLogger(__name__)


@dataclass
class ReturnLine:
    bill_item_id: int
    quantity: int


# refund mode -> ledger transaction type (CASH never touches the ledger)
_LEDGER_TYPE = {"CREDIT_NOTE": "RETURN", "ADJUSTMENT": "ADJUSTMENT"}


class SalesReturnsRepo:
    """
    Customer returns against a bill.

    Per bill item the cumulative returned quantity never exceeds what was
    sold. Returned units go back to the originating batch and are refunded at
    their sale-time value (line total per unit, GST split kept).
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn
        self.inventory = InventoryRepo(conn)
        self.customers = CustomersRepo(conn)

    def create_return(
        self,
        bill_id: int,
        lines: Iterable[ReturnLine],
        refund_mode: str,
        user_id: int,
        reason: str | None = None,
        notes: str | None = None,
        on_date: date | None = None,
    ) -> int:
        """Record a return; returns return_id."""
        bill = self.conn.execute("SELECT * FROM bills WHERE bill_id=?", (bill_id,)).fetchone()
        if bill is None:
            raise NotFoundError(f"Bill #{bill_id} not found")
        if bill["status"] == "CANCELLED":
            raise ValidationError("Cannot return items from a cancelled bill")
        if refund_mode not in REFUND_MODES:
            raise ValidationError(f"Invalid refund mode: {refund_mode!r}")
        if refund_mode in _LEDGER_TYPE and bill["customer_id"] is None:
            raise ValidationError("Credit note / adjustment refunds need a customer on the bill")

        # group per bill item so repeated lines count against the same cap
        wanted: dict[int, int] = {}
        for ln in lines:
            if ln.quantity is None or int(ln.quantity) != ln.quantity or int(ln.quantity) <= 0:
                raise ValidationError("Return quantity must be a whole number greater than 0")
            wanted[ln.bill_item_id] = wanted.get(ln.bill_item_id, 0) + int(ln.quantity)
        if not wanted:
            raise ValidationError("Select at least one item to return")

        items = {
            r["item_id"]: dict(r)
            for r in self.conn.execute("SELECT * FROM bill_items WHERE bill_id=?", (bill_id,)).fetchall()
        }
        remaining = get_returnable_quantities(self.conn, bill_id)
        for item_id, qty in wanted.items():
            if item_id not in items:
                raise NotFoundError(f"Bill item #{item_id} is not part of bill {bill['bill_number']}")
            if qty > remaining.get(item_id, 0):
                raise ValidationError(
                    f"Return qty exceeds remaining for {items[item_id]['medicine_name']} "
                    f"(remaining {remaining.get(item_id, 0)})"
                )

        refunded = self._refunded_so_far(bill_id)
        priced = []
        for item_id, qty in wanted.items():
            it = items[item_id]
            if qty == remaining[item_id]:
                # last units of the line take whatever of it is still unrefunded
                prior = refunded["items"].get(item_id, {})
                line = {k: round2(float(it[k]) - prior.get(k, 0.0)) for k in ("taxable_value", "cgst", "sgst", "total")}
            else:
                share = qty / int(it["quantity"])
                line = {k: round2(float(it[k]) * share) for k in ("taxable_value", "cgst", "sgst", "total")}
            priced.append(dict(line, item=it, quantity=qty, unit_price=float(it["unit_price"])))

        # never refund more than was charged; the return that empties the bill settles its round-off
        total_amount = round2(sum(p["total"] for p in priced))
        left_on_bill = round2(float(bill["grand_total"]) - refunded["amount"])
        empties_bill = all(remaining[i] == wanted.get(i, 0) for i in remaining)
        if empties_bill:
            pending = self.conn.execute(
                "SELECT COUNT(*) FROM running_bills WHERE bill_id=? AND status='PENDING'", (bill_id,)
            ).fetchone()[0]
            round_off = 0.0 if pending else float(bill["round_off"])
            target = round2(sum(float(i["total"]) for i in items.values()) + round_off - refunded["amount"])
        else:
            target = total_amount
        target = max(0.0, min(target, left_on_bill))
        if target != total_amount:
            diff = round2(target - total_amount)
            priced[-1]["total"] = round2(priced[-1]["total"] + diff)
            priced[-1]["taxable_value"] = round2(priced[-1]["taxable_value"] + diff)
            total_amount = target
        total_gst = round2(sum(p["cgst"] + p["sgst"] for p in priced))

        with immediate_tx(self.conn):
            return_number = next_document_number(self.conn, "sales_returns", "SR", on_date)
            cur = self.conn.execute(
                """
                INSERT INTO sales_returns(return_number, bill_id, customer_id, user_id, reason,
                                          refund_mode, total_amount, total_gst, notes)
                VALUES (?,?,?,?,?,?,?,?,?)
                """,
                (return_number, bill_id, bill["customer_id"], user_id, reason, refund_mode,
                 total_amount, total_gst, notes),
            )
            return_id = int(cur.lastrowid)

            for p in priced:
                it = p["item"]
                self.conn.execute(
                    """
                    INSERT INTO sales_return_items(return_id, bill_item_id, batch_id, quantity, unit_price,
                                                   gst_rate, taxable_value, cgst, sgst, total)
                    VALUES (?,?,?,?,?,?,?,?,?,?)
                    """,
                    (return_id, it["item_id"], it["batch_id"], p["quantity"], p["unit_price"],
                     float(it["gst_rate"]), p["taxable_value"], p["cgst"], p["sgst"], p["total"]),
                )
                self.inventory.restore_stock(it["batch_id"], p["quantity"])

            if refund_mode in _LEDGER_TYPE and total_amount > 0:
                self.customers.post_ledger_entry(
                    bill["customer_id"], _LEDGER_TYPE[refund_mode], total_amount, user_id,
                    bill_id=bill_id, reference=return_number, notes=reason,
                )

            if empties_bill:
                self.conn.execute(
                    "UPDATE bills SET status='RETURNED', updated_at=datetime('now','localtime') WHERE bill_id=?",
                    (bill_id,),
                )

        log_event(_log, "sales_return", "created", f"Return {return_number} against bill {bill['bill_number']}",
                  {"return_id": return_id, "bill_id": bill_id, "refund_mode": refund_mode,
                   "total_amount": total_amount})
        return return_id

    def _refunded_so_far(self, bill_id: int) -> dict:
        """Amounts already refunded on a bill, in total and per bill item."""
        rows = self.conn.execute(
            """
            SELECT sri.bill_item_id,
                   SUM(CAST(sri.taxable_value AS REAL)) AS taxable_value,
                   SUM(CAST(sri.cgst AS REAL))          AS cgst,
                   SUM(CAST(sri.sgst AS REAL))          AS sgst,
                   SUM(CAST(sri.total AS REAL))         AS total
            FROM sales_return_items sri
            JOIN sales_returns sr ON sr.return_id = sri.return_id
            WHERE sr.bill_id = ?
            GROUP BY sri.bill_item_id
            """,
            (bill_id,),
        ).fetchall()
        per_item = {
            int(r["bill_item_id"]): {k: round2(r[k]) for k in ("taxable_value", "cgst", "sgst", "total")}
            for r in rows
        }
        return {"items": per_item, "amount": round2(sum(v["total"] for v in per_item.values()))}

    # ---- Queries ----------------------------------------------------------

    def get_return(self, return_id: int) -> dict | None:
        r = self.conn.execute(
            """
            SELECT sr.*, b.bill_number, c.name AS customer_name
            FROM sales_returns sr
            JOIN bills b ON b.bill_id = sr.bill_id
            LEFT JOIN customers c ON c.customer_id = sr.customer_id
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
                SELECT sri.*, bi.medicine_name, bi.batch_number
                FROM sales_return_items sri
                JOIN bill_items bi ON bi.item_id = sri.bill_item_id
                WHERE sri.return_id = ? ORDER BY sri.item_id
                """,
                (return_id,),
            ).fetchall()
        ]
        return out

    def list_returns(self, bill_id: int | None = None, date_from: str | None = None,
                     date_to: str | None = None) -> list[dict]:
        rows = self.conn.execute(
            """
            SELECT sr.return_id, sr.return_number, sr.return_date, sr.bill_id, b.bill_number,
                   sr.refund_mode, CAST(sr.total_amount AS REAL) AS total_amount, sr.reason
            FROM sales_returns sr JOIN bills b ON b.bill_id = sr.bill_id
            WHERE (:bid IS NULL OR sr.bill_id = :bid)
              AND (:df IS NULL OR date(sr.return_date) >= :df)
              AND (:dt IS NULL OR date(sr.return_date) <= :dt)
            ORDER BY sr.return_id DESC
            """,
            {"bid": bill_id, "df": date_from, "dt": date_to},
        ).fetchall()
        return [dict(r) for r in rows]

    def return_totals(self, bill_id: int) -> dict:
        r = self.conn.execute(
            """
            SELECT COUNT(DISTINCT sr.return_id) AS returns,
                   COALESCE(SUM(sri.quantity), 0) AS qty,
                   COALESCE(SUM(CAST(sri.total AS REAL)), 0.0) AS amount
            FROM sales_returns sr
            JOIN sales_return_items sri ON sri.return_id = sr.return_id
            WHERE sr.bill_id = ?
            """,
            (bill_id,),
        ).fetchone()
        return {"returns": int(r["returns"]), "qty": int(r["qty"]), "amount": round2(r["amount"])}
