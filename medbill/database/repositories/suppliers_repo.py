from __future__ import annotations

from dataclasses import dataclass
import sqlite3

from ..errors import NotFoundError, ValidationError
from ..tx import immediate_tx
from ...utils.validators import require_text


@dataclass
class Supplier:
    supplier_id: int | None
    name: str
    contact_person: str | None = None
    phone: str | None = None
    email: str | None = None
    gstin: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    pincode: str | None = None
    payment_terms: int = 30


_FIELDS = ("name", "contact_person", "phone", "email", "gstin", "address", "city", "state", "pincode", "payment_terms")


class SuppliersRepo:
    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    @staticmethod
    def _values(s: Supplier) -> tuple:
        require_text(s.name, "Supplier name")
        if s.payment_terms is None or int(s.payment_terms) < 0:
            raise ValidationError("Payment terms cannot be negative")
        return (
            s.name.strip(), s.contact_person, s.phone, s.email,
            (s.gstin or "").strip().upper() or None,
            s.address, s.city, s.state, s.pincode, int(s.payment_terms),
        )

    # ---- Queries ----------------------------------------------------------

    def get(self, supplier_id: int) -> dict | None:
        r = self.conn.execute("SELECT * FROM suppliers WHERE supplier_id=?", (supplier_id,)).fetchone()
        return dict(r) if r else None

    def require(self, supplier_id: int) -> dict:
        s = self.get(supplier_id)
        if s is None:
            raise NotFoundError(f"Supplier #{supplier_id} not found")
        return s

    def list_suppliers(self, active_only: bool = True) -> list[dict]:
        where = "WHERE is_active = 1" if active_only else ""
        return [dict(r) for r in self.conn.execute(f"SELECT * FROM suppliers {where} ORDER BY name").fetchall()]

    def search(self, term: str, active_only: bool = True) -> list[dict]:
        pattern = f"%{(term or '').strip()}%"
        rows = self.conn.execute(
            """
            SELECT * FROM suppliers
            WHERE (? = 0 OR is_active = 1)
              AND (name LIKE ? OR phone LIKE ? OR gstin LIKE ? OR city LIKE ?)
            ORDER BY name
            """,
            (1 if active_only else 0, pattern, pattern, pattern, pattern),
        ).fetchall()
        return [dict(r) for r in rows]

    def list_batches(self, supplier_id: int) -> list[dict]:
        """
        Batches that can be returned to this supplier: in stock and either
        supplied directly or received through one of its purchases.
        """
        self.require(supplier_id)
        rows = self.conn.execute(
            """
            SELECT b.batch_id, b.batch_number, b.expiry_date, b.quantity,
                   CAST(b.purchase_price AS REAL) AS purchase_price, CAST(b.mrp AS REAL) AS mrp,
                   m.medicine_id, m.name AS medicine_name, CAST(m.gst_rate AS REAL) AS gst_rate
            FROM batches b
            JOIN medicines m ON m.medicine_id = b.medicine_id
            LEFT JOIN purchases p ON p.purchase_id = b.purchase_id
            WHERE b.quantity > 0 AND b.is_active = 1
              AND (b.supplier_id = :sid OR p.supplier_id = :sid)
            ORDER BY b.expiry_date
            """,
            {"sid": supplier_id},
        ).fetchall()
        return [dict(r) for r in rows]

    # ---- Mutations --------------------------------------------------------

    def create(self, s: Supplier) -> int:
        vals = self._values(s)
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                f"INSERT INTO suppliers({', '.join(_FIELDS)}) VALUES ({', '.join('?' * len(_FIELDS))})",
                vals,
            )
        return int(cur.lastrowid)

    def update(self, s: Supplier) -> None:
        if s.supplier_id is None:
            raise ValidationError("supplier_id is required for update")
        self.require(s.supplier_id)
        vals = self._values(s)
        assignments = ", ".join(f"{f}=?" for f in _FIELDS)
        with immediate_tx(self.conn):
            self.conn.execute(
                f"UPDATE suppliers SET {assignments}, updated_at=datetime('now','localtime') WHERE supplier_id=?",
                (*vals, s.supplier_id),
            )

    def delete(self, supplier_id: int) -> None:
        """Soft delete."""
        self.require(supplier_id)
        with immediate_tx(self.conn):
            self.conn.execute("UPDATE suppliers SET is_active=0 WHERE supplier_id=?", (supplier_id,))
