from __future__ import annotations

from datetime import date
from typing import Dict
import sqlite3


def get_returnable_quantities(conn: sqlite3.Connection, bill_id: int) -> Dict[int, int]:
    """
    Compute remaining returnable quantity per bill item for a given bill.

    Returns a dict mapping bill item_id -> remaining_qty (clamped to >= 0).
    """
    sql = """
    SELECT
      bi.item_id,
      bi.quantity AS sold_qty,
      COALESCE((
        SELECT SUM(sri.quantity)
        FROM sales_return_items sri
        WHERE sri.bill_item_id = bi.item_id
      ), 0) AS returned_so_far
    FROM bill_items bi
    WHERE bi.bill_id = ?
    """
    rows = conn.execute(sql, (bill_id,)).fetchall()
    out: Dict[int, int] = {}
    for r in rows:
        out[int(r["item_id"])] = max(0, int(r["sold_qty"]) - int(r["returned_so_far"]))
    return out


def next_document_number(conn: sqlite3.Connection, table: str, prefix: str, on_date: date | None = None) -> str:
    """
    Monthly document numbers: <prefix><yymm><nnnn>, e.g. SR25090001.
    `table` is one of the return tables (fixed names, never user input).
    """
    stem = f"{prefix}{(on_date or date.today()).strftime('%y%m')}"
    row = conn.execute(
        f"SELECT MAX(return_number) AS last FROM {table} WHERE return_number LIKE ?",
        (stem + "%",),
    ).fetchone()
    last = row["last"] if row else None
    seq = int(last[len(stem):]) + 1 if last else 1
    return f"{stem}{seq:04d}"
