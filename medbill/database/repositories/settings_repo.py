from __future__ import annotations

import sqlite3

from ..tx import immediate_tx


class SettingsRepo:
    """Key/value application settings (shop details, billing toggles, alert thresholds)."""

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def get(self, key: str, default: str | None = None) -> str | None:
        r = self.conn.execute("SELECT value FROM settings WHERE key=?", (key,)).fetchone()
        return r["value"] if r else default

    def get_bool(self, key: str, default: bool = False) -> bool:
        v = self.get(key)
        if v is None:
            return default
        return v.strip().lower() in ("1", "true", "yes", "on")

    def get_int(self, key: str, default: int = 0) -> int:
        v = self.get(key)
        try:
            return int(v) if v is not None else default
        except ValueError:
            return default

    def set(self, key: str, value, category: str = "general", description: str | None = None) -> None:
        with immediate_tx(self.conn):
            self.conn.execute(
                """
                INSERT INTO settings(key, value, category, description) VALUES (?,?,?,?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=datetime('now','localtime')
                """,
                (key, "" if value is None else str(value), category, description),
            )

    def all(self, category: str | None = None) -> dict[str, str]:
        rows = self.conn.execute(
            "SELECT key, value FROM settings WHERE (? IS NULL OR category = ?) ORDER BY key",
            (category, category),
        ).fetchall()
        return {r["key"]: r["value"] for r in rows}
