from __future__ import annotations

from dataclasses import dataclass
import sqlite3

from ..errors import NotFoundError, ValidationError
from ..tx import immediate_tx
from ...utils.gst import default_hsn_code, is_valid_gst_rate
from ...utils.validators import require_text


@dataclass
class Medicine:
    medicine_id: int | None
    name: str
    gst_rate: float
    hsn_code: str | None = None
    generic_name: str | None = None
    manufacturer: str | None = None
    category: str | None = None
    drug_type: str | None = None
    unit: str = "PCS"
    reorder_level: int = 10
    is_schedule: bool = False


_COLS = (
    "medicine_id, name, generic_name, manufacturer, hsn_code, CAST(gst_rate AS REAL) AS gst_rate, "
    "category, drug_type, unit, reorder_level, is_schedule, is_active"
)


class MedicinesRepo:
    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    @staticmethod
    def _validate(m: Medicine) -> None:
        require_text(m.name, "Medicine name")
        if not is_valid_gst_rate(m.gst_rate):
            raise ValidationError("GST rate must be one of 0, 5, 12, 18")
        if m.reorder_level is None or int(m.reorder_level) < 0:
            raise ValidationError("Reorder level cannot be negative")

    # ---- Queries ----------------------------------------------------------

    def get(self, medicine_id: int) -> dict | None:
        r = self.conn.execute(f"SELECT {_COLS} FROM medicines WHERE medicine_id=?", (medicine_id,)).fetchone()
        return dict(r) if r else None

    def require(self, medicine_id: int) -> dict:
        m = self.get(medicine_id)
        if m is None:
            raise NotFoundError(f"Medicine #{medicine_id} not found")
        return m

    def list_medicines(self, active_only: bool = True) -> list[dict]:
        where = "WHERE is_active = 1" if active_only else ""
        rows = self.conn.execute(f"SELECT {_COLS} FROM medicines {where} ORDER BY name").fetchall()
        return [dict(r) for r in rows]

    def search(self, term: str, active_only: bool = True, limit: int = 50) -> list[dict]:
        """LIKE match over name / generic name / manufacturer."""
        pattern = f"%{(term or '').strip()}%"
        rows = self.conn.execute(
            f"""
            SELECT {_COLS} FROM medicines
            WHERE (? = 0 OR is_active = 1)
              AND (name LIKE ? OR generic_name LIKE ? OR manufacturer LIKE ?)
            ORDER BY name
            LIMIT ?
            """,
            (1 if active_only else 0, pattern, pattern, pattern, limit),
        ).fetchall()
        return [dict(r) for r in rows]

    def is_scheduled(self, medicine_id: int) -> bool:
        return bool(self.require(medicine_id)["is_schedule"])

    # ---- Mutations --------------------------------------------------------

    def create(self, m: Medicine) -> int:
        self._validate(m)
        hsn = (m.hsn_code or "").strip() or default_hsn_code(m.gst_rate)
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                """
                INSERT INTO medicines(name, generic_name, manufacturer, hsn_code, gst_rate,
                                      category, drug_type, unit, reorder_level, is_schedule)
                VALUES (?,?,?,?,?,?,?,?,?,?)
                """,
                (
                    m.name.strip(), m.generic_name, m.manufacturer, hsn, float(m.gst_rate),
                    m.category, m.drug_type, m.unit or "PCS", int(m.reorder_level),
                    1 if m.is_schedule else 0,
                ),
            )
        return int(cur.lastrowid)

    def update(self, m: Medicine) -> None:
        if m.medicine_id is None:
            raise ValidationError("medicine_id is required for update")
        self.require(m.medicine_id)
        self._validate(m)
        hsn = (m.hsn_code or "").strip() or default_hsn_code(m.gst_rate)
        with immediate_tx(self.conn):
            self.conn.execute(
                """
                UPDATE medicines
                   SET name=?, generic_name=?, manufacturer=?, hsn_code=?, gst_rate=?, category=?,
                       drug_type=?, unit=?, reorder_level=?, is_schedule=?,
                       updated_at=datetime('now','localtime')
                 WHERE medicine_id=?
                """,
                (
                    m.name.strip(), m.generic_name, m.manufacturer, hsn, float(m.gst_rate), m.category,
                    m.drug_type, m.unit or "PCS", int(m.reorder_level), 1 if m.is_schedule else 0,
                    m.medicine_id,
                ),
            )

    def delete(self, medicine_id: int) -> None:
        """Soft delete; bills keep their snapshots."""
        self.require(medicine_id)
        with immediate_tx(self.conn):
            self.conn.execute(
                "UPDATE medicines SET is_active=0, updated_at=datetime('now','localtime') WHERE medicine_id=?",
                (medicine_id,),
            )
