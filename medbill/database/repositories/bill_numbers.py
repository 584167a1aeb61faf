from __future__ import annotations

from datetime import date
import sqlite3

from ..errors import PersistenceError
from ..tx import immediate_tx
from ...utils.helpers import financial_year


def format_bill_number(prefix: str, fy: str, number: int) -> str:
    """INV/2024-25/00001"""
    return f"{prefix}/{fy}/{int(number):05d}"


def next_bill_number(conn: sqlite3.Connection, on_date: date | None = None) -> str:
    """
    Claim the next number from the single-row bill_sequence.

    The counter restarts at 1 when the financial year (April-March) changes.
    The prefix comes from the `bill_prefix` setting when present.
    """
    fy = financial_year(on_date or date.today())
    with immediate_tx(conn):
        seq = conn.execute(
            "SELECT prefix, current_number, financial_year FROM bill_sequence WHERE id = 1"
        ).fetchone()
        if seq is None:
            raise PersistenceError("Bill sequence not initialized")
        setting = conn.execute("SELECT value FROM settings WHERE key = 'bill_prefix'").fetchone()
        prefix = (setting["value"] if setting and setting["value"].strip() else seq["prefix"]).strip()

        number = 1 if seq["financial_year"] != fy else int(seq["current_number"]) + 1
        conn.execute(
            """
            UPDATE bill_sequence
               SET prefix=?, current_number=?, financial_year=?, updated_at=datetime('now','localtime')
             WHERE id = 1
            """,
            (prefix, number, fy),
        )
    return format_bill_number(prefix, fy, number)
