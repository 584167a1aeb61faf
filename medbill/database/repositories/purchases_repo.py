from __future__ import annotations

from dataclasses import dataclass, field
import logging
import sqlite3
from typing import Iterable

from ..errors import NotFoundError, ValidationError
from ..tx import immediate_tx
from .inventory_repo import Batch, InventoryRepo
from ...utils.gst import add_exclusive, round2
from ...utils.helpers import parse_date
from ...utils.loggers import log_event
from ...utils.validators import require_positive, require_text

_log = logging.getLogger(__name__)


@dataclass
class PurchaseItem:
    medicine_id: int
    batch_number: str
    expiry_date: str
    quantity: int
    purchase_price: float
    mrp: float
    selling_price: float
    free_quantity: int = 0
    rack: str | None = None
    box: str | None = None
    price_type: str = "INCLUSIVE"


@dataclass
class PurchaseHeader:
    supplier_id: int
    invoice_number: str
    invoice_date: str
    user_id: int
    paid_amount: float = 0.0
    due_date: str | None = None
    notes: str | None = None
    items: list[PurchaseItem] = field(default_factory=list)


def payment_status_for(paid: float, total: float) -> str:
    if paid <= 0:
        return "PENDING"
    if paid + 0.005 >= total:
        return "PAID"
    return "PARTIAL"


class PurchasesRepo:
    """
    Supplier purchase invoices.

    Each line lands in a batch: an existing batch of the same medicine and
    batch number is topped up (quantity + free quantity, prices refreshed),
    otherwise a new batch is created. Purchase prices are GST-exclusive.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn
        self.inventory = InventoryRepo(conn)

    def _validate(self, h: PurchaseHeader, items: list[PurchaseItem]) -> None:
        if self.conn.execute("SELECT 1 FROM suppliers WHERE supplier_id=?", (h.supplier_id,)).fetchone() is None:
            raise NotFoundError(f"Supplier #{h.supplier_id} not found")
        require_text(h.invoice_number, "Invoice number")
        require_text(h.invoice_date, "Invoice date")
        if not items:
            raise ValidationError("Add at least one item")
        for it in items:
            if self.conn.execute("SELECT 1 FROM medicines WHERE medicine_id=?", (it.medicine_id,)).fetchone() is None:
                raise NotFoundError(f"Medicine #{it.medicine_id} not found")
            require_text(it.batch_number, "Batch number")
            require_text(it.expiry_date, "Expiry date")
            require_positive(it.quantity, "Quantity")
            require_positive(it.purchase_price, "Purchase price")
            require_positive(it.mrp, "MRP")
            require_positive(it.selling_price, "Selling price")
            if int(it.free_quantity or 0) < 0:
                raise ValidationError("Free quantity cannot be negative")
        if float(h.paid_amount or 0) < 0:
            raise ValidationError("Paid amount cannot be negative")

    def _gst_rate(self, medicine_id: int) -> float:
        return float(self.conn.execute(
            "SELECT CAST(gst_rate AS REAL) FROM medicines WHERE medicine_id=?", (medicine_id,)
        ).fetchone()[0])

    def _receive_into_batch(self, purchase_id: int, supplier_id: int, it: PurchaseItem) -> int:
        received = int(it.quantity) + int(it.free_quantity or 0)
        existing = self.inventory.find_batch(it.medicine_id, it.batch_number)
        if existing is None:
            return self.inventory.insert_batch(Batch(
                batch_id=None,
                medicine_id=it.medicine_id,
                batch_number=it.batch_number,
                expiry_date=it.expiry_date,
                purchase_price=it.purchase_price,
                mrp=it.mrp,
                selling_price=it.selling_price,
                quantity=received,
                price_type=it.price_type,
                rack=it.rack,
                box=it.box,
                supplier_id=supplier_id,
                purchase_id=purchase_id,
            ))
        batch_id = int(existing["batch_id"])
        self.conn.execute(
            """
            UPDATE batches
               SET purchase_price=?, mrp=?, selling_price=?, expiry_date=?,
                   rack=COALESCE(?, rack), box=COALESCE(?, box),
                   purchase_id=?, supplier_id=?, is_active=1,
                   updated_at=datetime('now','localtime')
             WHERE batch_id=?
            """,
            (
                float(it.purchase_price), float(it.mrp), float(it.selling_price),
                str(parse_date(it.expiry_date)), it.rack, it.box, purchase_id, supplier_id, batch_id,
            ),
        )
        self.inventory.adjust_quantity(batch_id, received)
        return batch_id

    def create_purchase(self, header: PurchaseHeader, items: Iterable[PurchaseItem] | None = None) -> int:
        items = list(items if items is not None else header.items)
        self._validate(header, items)

        with immediate_tx(self.conn):
            cur = self.conn.execute(
                """
                INSERT INTO purchases(invoice_number, invoice_date, supplier_id, user_id, paid_amount, due_date, notes)
                VALUES (?,?,?,?,?,?,?)
                """,
                (
                    header.invoice_number.strip(), str(parse_date(header.invoice_date)), header.supplier_id,
                    header.user_id, float(header.paid_amount or 0), header.due_date, header.notes,
                ),
            )
            purchase_id = int(cur.lastrowid)

            subtotal = cgst = sgst = gst = total = 0.0
            for it in items:
                batch_id = self._receive_into_batch(purchase_id, header.supplier_id, it)
                rate = self._gst_rate(it.medicine_id)
                g = add_exclusive(float(it.purchase_price) * int(it.quantity), rate)
                self.conn.execute(
                    """
                    INSERT INTO purchase_items(purchase_id, medicine_id, batch_id, quantity, free_quantity,
                                               purchase_price, mrp, selling_price, gst_rate,
                                               cgst, sgst, total_gst, total)
                    VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?)
                    """,
                    (
                        purchase_id, it.medicine_id, batch_id, int(it.quantity), int(it.free_quantity or 0),
                        float(it.purchase_price), float(it.mrp), float(it.selling_price), rate,
                        g.cgst, g.sgst, g.total_gst, g.total,
                    ),
                )
                subtotal += g.taxable_value
                cgst += g.cgst
                sgst += g.sgst
                gst += g.total_gst
                total += g.total

            grand_total = round2(total)
            self.conn.execute(
                """
                UPDATE purchases
                   SET subtotal=?, total_cgst=?, total_sgst=?, total_gst=?, grand_total=?, payment_status=?
                 WHERE purchase_id=?
                """,
                (
                    round2(subtotal), round2(cgst), round2(sgst), round2(gst), grand_total,
                    payment_status_for(float(header.paid_amount or 0), grand_total), purchase_id,
                ),
            )

        log_event(_log, "purchase", "created", f"Purchase {header.invoice_number} saved",
                  {"purchase_id": purchase_id, "items": len(items), "grand_total": grand_total})
        return purchase_id

    # ---- Queries ----------------------------------------------------------

    def get_purchase(self, purchase_id: int) -> dict | None:
        r = self.conn.execute(
            """
            SELECT p.*, s.name AS supplier_name
            FROM purchases p JOIN suppliers s ON s.supplier_id = p.supplier_id
            WHERE p.purchase_id=?
            """,
            (purchase_id,),
        ).fetchone()
        if r is None:
            return None
        out = dict(r)
        out["items"] = [
            dict(x) for x in self.conn.execute(
                """
                SELECT pi.*, m.name AS medicine_name, b.batch_number
                FROM purchase_items pi
                JOIN medicines m ON m.medicine_id = pi.medicine_id
                JOIN batches b ON b.batch_id = pi.batch_id
                WHERE pi.purchase_id=? ORDER BY pi.item_id
                """,
                (purchase_id,),
            ).fetchall()
        ]
        return out

    def list_purchases(self, supplier_id: int | None = None, date_from: str | None = None,
                       date_to: str | None = None) -> list[dict]:
        rows = self.conn.execute(
            """
            SELECT p.purchase_id, p.invoice_number, p.invoice_date, p.supplier_id, s.name AS supplier_name,
                   CAST(p.grand_total AS REAL) AS grand_total, CAST(p.paid_amount AS REAL) AS paid_amount,
                   p.payment_status
            FROM purchases p JOIN suppliers s ON s.supplier_id = p.supplier_id
            WHERE (:sid IS NULL OR p.supplier_id = :sid)
              AND (:df IS NULL OR p.invoice_date >= :df)
              AND (:dt IS NULL OR p.invoice_date <= :dt)
            ORDER BY p.invoice_date DESC, p.purchase_id DESC
            """,
            {"sid": supplier_id, "df": date_from, "dt": date_to},
        ).fetchall()
        return [dict(r) for r in rows]
