# medbill/tests/test_auth.py
from __future__ import annotations

import bcrypt
import pytest

from medbill.database.errors import NotFoundError, ValidationError
from medbill.database.repositories.audit_repo import AuditRepo
from medbill.database.repositories.login_repo import LoginRepo
from medbill.database.seeders.default_data import DEFAULT_ADMIN_PASSWORD, DEFAULT_ADMIN_USERNAME
from medbill.modules.login.controller import LoginController
from medbill.modules.login.model import UserSession, has_permission
from medbill.utils.auth import (
    hash_password,
    is_hash_strong_enough,
    needs_rehash,
    verify_and_maybe_upgrade,
    verify_password,
)


# --------------------------- hashing ---------------------------

def test_hash_and_verify_bcrypt():
    h = hash_password("s3cret")
    assert h.startswith("$2")
    assert verify_password("s3cret", h)
    assert not verify_password("S3cret", h)
    assert not needs_rehash(h)
    assert is_hash_strong_enough(h)


def test_empty_password_cannot_be_hashed():
    with pytest.raises(ValueError):
        hash_password("")


def test_legacy_pbkdf2_verifies_but_needs_rehash():
    h = hash_password("legacy-pw", scheme="pbkdf2")
    assert h.startswith("pbkdf2_sha256$")
    assert verify_password("legacy-pw", h)
    assert not verify_password("nope", h)
    assert needs_rehash(h)
    assert is_hash_strong_enough(h)


def test_weak_bcrypt_cost_needs_rehash():
    weak = bcrypt.hashpw(b"pw", bcrypt.gensalt(4)).decode()
    assert verify_password("pw", weak)
    assert needs_rehash(weak)
    assert not is_hash_strong_enough(weak)


def test_garbage_hashes_fail_closed():
    assert not verify_password("pw", None)
    assert not verify_password("pw", "")
    assert not verify_password("pw", "md5$abc")
    assert not verify_password("pw", "pbkdf2_sha256$notanumber$zz$zz")
    assert needs_rehash("md5$abc")


def test_verify_and_maybe_upgrade_calls_back():
    seen = []
    ok, new_hash, did = verify_and_maybe_upgrade("pw1", hash_password("pw1", scheme="pbkdf2"), on_rehash=seen.append)
    assert ok and did
    assert seen == [new_hash]
    assert new_hash.startswith("$2")

    assert verify_and_maybe_upgrade("pw1", new_hash) == (True, None, False)
    assert verify_and_maybe_upgrade("wrong", new_hash) == (False, None, False)


# --------------------------- login flow ---------------------------

def test_default_admin_can_sign_in(conn):
    ctl = LoginController(conn)
    session = ctl.login(DEFAULT_ADMIN_USERNAME, DEFAULT_ADMIN_PASSWORD)
    assert isinstance(session, UserSession)
    assert session.is_admin
    assert session.last_login
    assert ctl.last_error_code is None
    (row,) = AuditRepo(conn).list_for("user", session.user_id)
    assert row["action"] == "LOGIN"


def test_username_lookup_is_case_insensitive(conn):
    assert LoginController(conn).login("  ADMIN ", DEFAULT_ADMIN_PASSWORD) is not None


@pytest.mark.parametrize(
    "username,password,code",
    [
        ("", "x", "empty_fields"),
        ("admin", "", "empty_fields"),
        ("ghost", "x", "user_not_found"),
        ("admin", "wrong", "wrong_password"),
    ],
)
def test_failed_logins_set_error_code(conn, username, password, code):
    ctl = LoginController(conn)
    assert ctl.login(username, password) is None
    assert ctl.last_error_code == code
    assert ctl.last_error_message


def test_failed_attempts_are_audited(conn):
    ctl = LoginController(conn)
    ctl.login("ghost", "x")
    ctl.login("admin", "wrong")
    rows = conn.execute("SELECT user_id, action FROM audit_log ORDER BY audit_id").fetchall()
    assert [(r["user_id"], r["action"]) for r in rows] == [(None, "LOGIN_FAILED"), (1, "LOGIN_FAILED")]


def test_inactive_user_cannot_sign_in(conn):
    repo = LoginRepo(conn)
    uid = repo.create_user("priya", "counter-1", "Priya N", "staff")
    repo.deactivate_user(uid)
    ctl = LoginController(conn)
    assert ctl.login("priya", "counter-1") is None
    assert ctl.last_error_code == "user_inactive"


def test_legacy_hash_is_upgraded_on_login(conn):
    repo = LoginRepo(conn)
    uid = repo.create_user("old_timer", "pw-2019", "Old Timer")
    repo.set_password_hash(uid, hash_password("pw-2019", scheme="pbkdf2"))

    assert LoginController(conn).login("old_timer", "pw-2019") is not None
    stored = repo.get_user(uid)["password_hash"]
    assert stored.startswith("$2")
    assert verify_password("pw-2019", stored)


# --------------------------- users & permissions ---------------------------

def test_create_user_rules(conn):
    repo = LoginRepo(conn)
    uid = repo.create_user("priya", "counter-1", "Priya N")
    u = repo.get_user(uid)
    assert u["role"] == "staff"
    assert u["password_hash"] != "counter-1"

    with pytest.raises(ValidationError, match="already taken"):
        repo.create_user("PRIYA", "x", "Someone")
    with pytest.raises(ValidationError, match="Invalid role"):
        repo.create_user("ravi", "x", "Ravi", role="owner")
    with pytest.raises(ValidationError, match="Password is required"):
        repo.create_user("ravi", "", "Ravi")


def test_update_password(conn):
    repo = LoginRepo(conn)
    uid = repo.create_user("priya", "counter-1", "Priya N")
    repo.update_password(uid, "counter-2")
    assert LoginController(conn).login("priya", "counter-2") is not None
    with pytest.raises(NotFoundError):
        repo.update_password(999, "x")


def test_last_admin_cannot_be_deactivated(conn, user_id):
    repo = LoginRepo(conn)
    with pytest.raises(ValidationError, match="last active admin"):
        repo.deactivate_user(user_id)
    second = repo.create_user("boss2", "pw", "Second Admin", role="admin")
    repo.deactivate_user(user_id)
    assert [u["user_id"] for u in repo.list_users(active_only=True)] == [second]


def test_permissions():
    admin = UserSession(1, "admin", role="admin")
    staff = UserSession(2, "priya", role="staff")
    assert has_permission(admin, "settings:edit")
    assert has_permission(staff, "billing:create")
    assert not has_permission(staff, "settings:edit")
    assert not has_permission(staff, "returns:create")
    assert not has_permission(None, "billing:view")
