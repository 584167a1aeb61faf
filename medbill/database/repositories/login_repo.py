# medbill/database/repositories/login_repo.py
from __future__ import annotations

import sqlite3
from typing import Optional

from ..errors import NotFoundError, ValidationError
from ..tx import immediate_tx
from .audit_repo import AuditRepo
from ...constants import USER_ROLES
from ...utils.auth import hash_password
from ...utils.validators import require_text


class LoginRepo:
    """
    Data access for users and authentication.

    This repo does NOT verify passwords; LoginController does that with
    utils.auth before calling the "success" paths here. Passwords reach the
    database only as bcrypt hashes.
    """

    _USER_COLS = "user_id, username, password_hash, full_name, role, is_active, last_login, created_at"

    def __init__(self, conn: sqlite3.Connection) -> None:
        conn.row_factory = sqlite3.Row
        self.conn = conn
        self.audit = AuditRepo(conn)

    @staticmethod
    def _norm_username(username: str) -> str:
        return (username or "").strip()

    # ------------------------------- reads -------------------------------

    def get_user_by_username(self, username: str) -> Optional[dict]:
        """Case-insensitive lookup; returns the full row as a dict."""
        row = self.conn.execute(
            f"SELECT {self._USER_COLS} FROM users WHERE username = ? COLLATE NOCASE",
            (self._norm_username(username),),
        ).fetchone()
        return dict(row) if row else None

    def get_user(self, user_id: int) -> Optional[dict]:
        row = self.conn.execute(f"SELECT {self._USER_COLS} FROM users WHERE user_id = ?", (user_id,)).fetchone()
        return dict(row) if row else None

    def list_users(self, active_only: bool = False) -> list[dict]:
        where = "WHERE is_active = 1" if active_only else ""
        rows = self.conn.execute(
            f"SELECT user_id, username, full_name, role, is_active, last_login FROM users {where} ORDER BY username"
        ).fetchall()
        return [dict(r) for r in rows]

    # ------------------------------ writes -------------------------------

    def create_user(self, username: str, password: str, full_name: str, role: str = "staff") -> int:
        uname = require_text(username, "Username")
        require_text(password, "Password")
        require_text(full_name, "Full name")
        if role not in USER_ROLES:
            raise ValidationError(f"Invalid role: {role!r}")
        if self.get_user_by_username(uname) is not None:
            raise ValidationError(f"Username “{uname}” is already taken")
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                "INSERT INTO users(username, password_hash, full_name, role) VALUES (?,?,?,?)",
                (uname, hash_password(password), full_name.strip(), role),
            )
        return int(cur.lastrowid)

    def set_password_hash(self, user_id: int, new_hash: str) -> None:
        with immediate_tx(self.conn):
            self.conn.execute(
                "UPDATE users SET password_hash=?, updated_at=datetime('now','localtime') WHERE user_id=?",
                (new_hash, user_id),
            )

    def update_password(self, user_id: int, new_password: str) -> None:
        require_text(new_password, "Password")
        if self.get_user(user_id) is None:
            raise NotFoundError(f"User #{user_id} not found")
        self.set_password_hash(user_id, hash_password(new_password))

    def deactivate_user(self, user_id: int) -> None:
        u = self.get_user(user_id)
        if u is None:
            raise NotFoundError(f"User #{user_id} not found")
        if u["role"] == "admin":
            admins = self.conn.execute(
                "SELECT COUNT(*) FROM users WHERE role='admin' AND is_active=1"
            ).fetchone()[0]
            if admins <= 1:
                raise ValidationError("Cannot deactivate the last active admin")
        with immediate_tx(self.conn):
            self.conn.execute(
                "UPDATE users SET is_active=0, updated_at=datetime('now','localtime') WHERE user_id=?",
                (user_id,),
            )

    def touch_login(self, user_id: int) -> None:
        with immediate_tx(self.conn):
            self.conn.execute("UPDATE users SET last_login=datetime('now','localtime') WHERE user_id=?", (user_id,))

    def insert_auth_log(self, username: str, success: bool, reason: str) -> None:
        """
        Record the attempt in audit_log. user_id is resolved by username and
        stored as NULL for unknown users.
        """
        uname = self._norm_username(username)
        u = self.get_user_by_username(uname)
        details = f"success={1 if success else 0}; reason={reason or ''}; username={uname}"
        with immediate_tx(self.conn):
            self.audit.log(
                int(u["user_id"]) if u else None,
                "LOGIN" if success else "LOGIN_FAILED",
                "user",
                int(u["user_id"]) if u else None,
                description=details,
            )
