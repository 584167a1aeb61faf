# medbill/modules/login/controller.py
from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from ...database.repositories.login_repo import LoginRepo
from ...utils.auth import verify_and_maybe_upgrade
from .model import UserSession

_log = logging.getLogger(__name__)


class LoginController:
    """
    Login flow using LoginRepo for all DB I/O.

    Public attrs (set after each login()):
      - last_error_code: str | None
      - last_error_message: str | None
      - last_username: str | None
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self.repo = LoginRepo(conn)

        self.last_error_code: Optional[str] = None
        self.last_error_message: Optional[str] = None
        self.last_username: Optional[str] = None

    # ----------------------------- Public API -----------------------------

    def login(self, username: str, password: str) -> Optional[UserSession]:
        """
        Returns a UserSession on success, or None on failure; on failure
        last_error_code / last_error_message are set.
        """
        self._reset_last_error()
        self.last_username = (username or "").strip()

        if not self.last_username or not password:
            self._fail("empty_fields", "Please enter both username and password.", log=False)
            return None

        u = self.repo.get_user_by_username(self.last_username)
        if not u:
            self._fail("user_not_found", f"No account exists for username “{self.last_username}”.")
            return None

        if not u["is_active"]:
            self._fail("user_inactive", f"Account “{self.last_username}” is inactive. Contact an administrator.")
            return None

        ok, _new_hash, did_rehash = verify_and_maybe_upgrade(
            password,
            u["password_hash"],
            on_rehash=lambda h: self.repo.set_password_hash(int(u["user_id"]), h),
        )
        if not ok:
            self._fail("wrong_password", f"Incorrect password for “{self.last_username}”.")
            return None
        if did_rehash:
            _log.info("Upgraded password hash for user %s", u["user_id"])

        self.repo.touch_login(int(u["user_id"]))
        self.repo.insert_auth_log(self.last_username, True, "ok")
        return UserSession.from_mapping(self.repo.get_user(int(u["user_id"])))

    # ----------------------------- Internals -----------------------------

    def _reset_last_error(self) -> None:
        self.last_error_code = None
        self.last_error_message = None
        self.last_username = None

    def _fail(self, code: str, message: str, log: bool = True) -> None:
        self.last_error_code = code
        self.last_error_message = message
        _log.warning("Login failed for %r: %s", self.last_username, code)
        if log:
            self.repo.insert_auth_log(self.last_username or "", False, code)
