from __future__ import annotations

from dataclasses import dataclass
import logging
import sqlite3

from ..errors import NotFoundError, ValidationError
from ..tx import immediate_tx
from ...constants import DEFAULT_EXPIRY_ALERT_DAYS, DEFAULT_NON_MOVING_DAYS, PRICE_TYPES
from ...utils.helpers import parse_date
from ...utils.validators import require_choice, require_non_negative, require_text

_log = logging.getLogger(__name__)


@dataclass
class Batch:
    batch_id: int | None
    medicine_id: int
    batch_number: str
    expiry_date: str
    purchase_price: float
    mrp: float
    selling_price: float
    quantity: int = 0
    price_type: str = "INCLUSIVE"
    tablets_per_strip: int = 10
    rack: str | None = None
    box: str | None = None
    supplier_id: int | None = None
    purchase_id: int | None = None


# batch joined with its medicine, plus derived stock / expiry status
_STOCK_SELECT = """
SELECT
    b.batch_id, b.batch_number, b.expiry_date,
    CAST(b.purchase_price AS REAL) AS purchase_price,
    CAST(b.mrp AS REAL)            AS mrp,
    CAST(b.selling_price AS REAL)  AS selling_price,
    b.price_type, b.quantity, b.tablets_per_strip, b.rack, b.box, b.last_sold_date,
    b.supplier_id, b.purchase_id,
    m.medicine_id, m.name AS medicine_name, m.generic_name, m.manufacturer, m.hsn_code,
    CAST(m.gst_rate AS REAL) AS gst_rate, m.category, m.unit, m.reorder_level, m.is_schedule,
    CASE
        WHEN b.quantity <= 0 THEN 'OUT_OF_STOCK'
        WHEN b.quantity <= m.reorder_level THEN 'LOW_STOCK'
        ELSE 'IN_STOCK'
    END AS stock_status,
    CASE
        WHEN b.expiry_date <= date('now','localtime') THEN 'EXPIRED'
        WHEN b.expiry_date <= date('now','localtime', '+' || :alert_days || ' days') THEN 'EXPIRING_SOON'
        ELSE 'OK'
    END AS expiry_status,
    CAST(julianday(b.expiry_date) - julianday(date('now','localtime')) AS INTEGER) AS days_to_expiry
FROM batches b
JOIN medicines m ON m.medicine_id = b.medicine_id
WHERE b.is_active = 1 AND m.is_active = 1
"""


class InventoryRepo:
    """
    Batch-wise stock.

    Every quantity change goes through adjust_quantity(), whose UPDATE is
    guarded so a batch can never be driven below zero.
    """

    def __init__(self, conn: sqlite3.Connection, expiry_alert_days: int = DEFAULT_EXPIRY_ALERT_DAYS):
        conn.row_factory = sqlite3.Row
        self.conn = conn
        self.expiry_alert_days = int(expiry_alert_days)

    # ---------------------------------------------------------------------
    # Batches
    # ---------------------------------------------------------------------
    def _validate(self, b: Batch) -> None:
        if self.conn.execute("SELECT 1 FROM medicines WHERE medicine_id=?", (b.medicine_id,)).fetchone() is None:
            raise NotFoundError(f"Medicine #{b.medicine_id} not found")
        require_text(b.batch_number, "Batch number")
        require_text(b.expiry_date, "Expiry date")
        try:
            parse_date(b.expiry_date)
        except ValueError as e:
            raise ValidationError(f"Invalid expiry date: {b.expiry_date!r}") from e
        require_non_negative(b.purchase_price, "Purchase price")
        require_non_negative(b.mrp, "MRP")
        require_non_negative(b.selling_price, "Selling price")
        if b.quantity is None or int(b.quantity) < 0:
            raise ValidationError("Quantity cannot be negative")
        require_choice(b.price_type, PRICE_TYPES, "price type")

    def insert_batch(self, b: Batch) -> int:
        """Insert without opening a transaction (callers own the boundary)."""
        self._validate(b)
        cur = self.conn.execute(
            """
            INSERT INTO batches(medicine_id, batch_number, expiry_date, purchase_price, mrp,
                                selling_price, price_type, quantity, tablets_per_strip, rack, box,
                                supplier_id, purchase_id)
            VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?)
            """,
            (
                b.medicine_id, b.batch_number.strip(), str(parse_date(b.expiry_date)),
                float(b.purchase_price), float(b.mrp), float(b.selling_price), b.price_type,
                int(b.quantity), int(b.tablets_per_strip or 10), b.rack, b.box,
                b.supplier_id, b.purchase_id,
            ),
        )
        return int(cur.lastrowid)

    def create_batch(self, b: Batch) -> int:
        dup = self.conn.execute(
            "SELECT 1 FROM batches WHERE medicine_id=? AND batch_number=?",
            (b.medicine_id, (b.batch_number or "").strip()),
        ).fetchone()
        if dup:
            raise ValidationError(f"Batch {b.batch_number} already exists for this medicine")
        with immediate_tx(self.conn):
            return self.insert_batch(b)

    def update_batch(self, b: Batch) -> None:
        """Edit prices/expiry/location; quantity changes go through adjust_quantity()."""
        if b.batch_id is None:
            raise ValidationError("batch_id is required for update")
        self.require_batch(b.batch_id)
        self._validate(b)
        with immediate_tx(self.conn):
            self.conn.execute(
                """
                UPDATE batches
                   SET batch_number=?, expiry_date=?, purchase_price=?, mrp=?, selling_price=?,
                       price_type=?, tablets_per_strip=?, rack=?, box=?, supplier_id=?,
                       updated_at=datetime('now','localtime')
                 WHERE batch_id=?
                """,
                (
                    b.batch_number.strip(), str(parse_date(b.expiry_date)), float(b.purchase_price),
                    float(b.mrp), float(b.selling_price), b.price_type, int(b.tablets_per_strip or 10),
                    b.rack, b.box, b.supplier_id, b.batch_id,
                ),
            )

    def get_batch(self, batch_id: int) -> dict | None:
        r = self.conn.execute("SELECT * FROM batches WHERE batch_id=?", (batch_id,)).fetchone()
        return dict(r) if r else None

    def require_batch(self, batch_id: int) -> dict:
        b = self.get_batch(batch_id)
        if b is None:
            raise NotFoundError(f"Batch #{batch_id} not found")
        return b

    def get_stock_item(self, batch_id: int) -> dict | None:
        r = self.conn.execute(
            _STOCK_SELECT + " AND b.batch_id = :batch_id",
            {"alert_days": self.expiry_alert_days, "batch_id": batch_id},
        ).fetchone()
        return dict(r) if r else None

    def find_batch(self, medicine_id: int, batch_number: str) -> dict | None:
        r = self.conn.execute(
            "SELECT * FROM batches WHERE medicine_id=? AND batch_number=?",
            (medicine_id, (batch_number or "").strip()),
        ).fetchone()
        return dict(r) if r else None

    # ---------------------------------------------------------------------
    # Quantity movements
    # ---------------------------------------------------------------------
    def adjust_quantity(self, batch_id: int, delta: int, *, mark_sold: bool = False) -> int:
        """
        Apply a signed quantity change; returns the new quantity.
        Refuses (ValidationError) any change that would leave quantity < 0.
        """
        delta = int(delta)
        cur = self.conn.execute(
            """
            UPDATE batches
               SET quantity = quantity + :delta,
                   last_sold_date = CASE WHEN :sold THEN date('now','localtime') ELSE last_sold_date END,
                   updated_at = datetime('now','localtime')
             WHERE batch_id = :id AND quantity + :delta >= 0
            """,
            {"delta": delta, "sold": 1 if mark_sold else 0, "id": batch_id},
        )
        if cur.rowcount == 0:
            row = self.conn.execute(
                """
                SELECT b.quantity, m.name FROM batches b
                JOIN medicines m ON m.medicine_id = b.medicine_id
                WHERE b.batch_id = ?
                """,
                (batch_id,),
            ).fetchone()
            if row is None:
                raise NotFoundError(f"Batch #{batch_id} not found")
            raise ValidationError(f"Insufficient stock for {row['name']}. Available: {row['quantity']}")
        return int(self.conn.execute("SELECT quantity FROM batches WHERE batch_id=?", (batch_id,)).fetchone()[0])

    def deduct_stock(self, batch_id: int, qty: int) -> int:
        if int(qty) <= 0:
            raise ValidationError("Quantity must be greater than 0")
        return self.adjust_quantity(batch_id, -int(qty), mark_sold=True)

    def restore_stock(self, batch_id: int, qty: int) -> int:
        if int(qty) <= 0:
            raise ValidationError("Quantity must be greater than 0")
        return self.adjust_quantity(batch_id, int(qty))

    # ---------------------------------------------------------------------
    # Stock queries
    # ---------------------------------------------------------------------
    def _stock(self, where: str = "", order: str = "m.name, b.expiry_date", **params) -> list[dict]:
        params.setdefault("alert_days", self.expiry_alert_days)
        sql = _STOCK_SELECT + (f" AND {where}" if where else "") + f" ORDER BY {order}"
        return [dict(r) for r in self.conn.execute(sql, params).fetchall()]

    def list_stock(self, in_stock_only: bool = False) -> list[dict]:
        return self._stock("b.quantity > 0" if in_stock_only else "")

    def search_for_billing(self, term: str, limit: int = 20) -> list[dict]:
        """Sellable batches (in stock, not expired), earliest expiry first."""
        return self._stock(
            "b.quantity > 0 AND b.expiry_date > date('now','localtime') "
            "AND (m.name LIKE :p OR m.generic_name LIKE :p OR b.batch_number LIKE :p)",
            order="m.name, b.expiry_date LIMIT :limit",
            p=f"%{(term or '').strip()}%",
            limit=int(limit),
        )

    def expiring_items(self, days: int | None = None) -> list[dict]:
        """Batches in stock that are expired or expire within `days`."""
        days = self.expiry_alert_days if days is None else int(days)
        return self._stock(
            "b.quantity > 0 AND b.expiry_date <= date('now','localtime', '+' || :days || ' days')",
            order="b.expiry_date",
            days=days,
        )

    def low_stock_items(self) -> list[dict]:
        """Medicines whose total on-hand quantity is at or below their reorder level."""
        rows = self.conn.execute(
            """
            SELECT m.medicine_id, m.name AS medicine_name, m.reorder_level,
                   COALESCE(SUM(CASE WHEN b.is_active = 1 THEN b.quantity END), 0) AS total_quantity
            FROM medicines m
            LEFT JOIN batches b ON b.medicine_id = m.medicine_id
            WHERE m.is_active = 1
            GROUP BY m.medicine_id
            HAVING total_quantity <= m.reorder_level
            ORDER BY total_quantity, m.name
            """
        ).fetchall()
        return [dict(r) for r in rows]

    def non_moving_items(self, days: int = DEFAULT_NON_MOVING_DAYS) -> list[dict]:
        """In-stock batches not sold within `days` (never-sold first)."""
        return self._stock(
            "b.quantity > 0 AND (b.last_sold_date IS NULL "
            "OR b.last_sold_date < date('now','localtime', '-' || :days || ' days'))",
            order="b.last_sold_date IS NOT NULL, b.last_sold_date",
            days=int(days),
        )

    def scheduled_stock(self) -> list[dict]:
        return self._stock("m.is_schedule = 1")

    def stock_by_location(self, rack: str | None = None, box: str | None = None) -> list[dict]:
        return self._stock(
            "(:rack IS NULL OR b.rack = :rack) AND (:box IS NULL OR b.box = :box)",
            order="b.rack, b.box, m.name",
            rack=rack,
            box=box,
        )

    def stock_value(self) -> dict:
        r = self.conn.execute(
            """
            SELECT COUNT(*) AS batches,
                   COALESCE(SUM(b.quantity), 0) AS units,
                   COALESCE(SUM(b.quantity * CAST(b.purchase_price AS REAL)), 0) AS purchase_value,
                   COALESCE(SUM(b.quantity * CAST(b.mrp AS REAL)), 0) AS mrp_value
            FROM batches b
            JOIN medicines m ON m.medicine_id = b.medicine_id
            WHERE b.is_active = 1 AND m.is_active = 1 AND b.quantity > 0
            """
        ).fetchone()
        return dict(r)
