from __future__ import annotations

import sqlite3


class AuditRepo:
    """Append-only activity trail (bill cancellations, logins, user admin)."""

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def log(
        self,
        user_id: int | None,
        action: str,
        entity_type: str,
        entity_id: int | None = None,
        *,
        old_value: str | None = None,
        new_value: str | None = None,
        description: str | None = None,
    ) -> int:
        # no commit: joins the caller's transaction, or autocommits via the caller
        cur = self.conn.execute(
            """
            INSERT INTO audit_log(user_id, action, entity_type, entity_id, old_value, new_value, description)
            VALUES (?,?,?,?,?,?,?)
            """,
            (user_id, action, entity_type, entity_id, old_value, new_value, description),
        )
        return int(cur.lastrowid)

    def list_for(self, entity_type: str, entity_id: int | None = None) -> list[dict]:
        rows = self.conn.execute(
            """
            SELECT * FROM audit_log
            WHERE entity_type = ? AND (? IS NULL OR entity_id = ?)
            ORDER BY audit_id
            """,
            (entity_type, entity_id, entity_id),
        ).fetchall()
        return [dict(r) for r in rows]
