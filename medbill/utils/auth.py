# medbill/utils/auth.py
from __future__ import annotations

import hashlib
import hmac
import logging
import os
from typing import Callable, Optional, Tuple, Union

import bcrypt

_log = logging.getLogger(__name__)

# ---- PBKDF2 settings (legacy hashes from older installs) ----
_PBKDF2_PREFIX = "pbkdf2_sha256$"
_PBKDF2_DEFAULT_ITERS = 200_000
_PBKDF2_SALT_BYTES = 16

# ---- bcrypt defaults / policy ----
_BCRYPT_DEFAULT_ROUNDS = 12
_BCRYPT_MIN_ACCEPTABLE_ROUNDS = 12
_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


# --------------------------- PBKDF2 helpers ---------------------------

def _hash_pbkdf2(password: str, iterations: int = _PBKDF2_DEFAULT_ITERS) -> str:
    iterations = max(int(iterations), _PBKDF2_DEFAULT_ITERS)
    salt = os.urandom(_PBKDF2_SALT_BYTES)
    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return f"{_PBKDF2_PREFIX}{iterations}${salt.hex()}${dk.hex()}"


def _verify_pbkdf2(password: str, encoded: str) -> bool:
    # expected format: pbkdf2_sha256$<iters>$<salt_hex>$<digest_hex>
    try:
        _, rest = encoded.split(_PBKDF2_PREFIX, 1)
        iters_str, salt_hex, dk_hex = rest.split("$", 2)
        iters = int(iters_str)
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(dk_hex)
    except ValueError:
        _log.warning("Malformed PBKDF2 hash encountered")
        return False
    got = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iters)
    return hmac.compare_digest(got, expected)


def _pbkdf2_iterations(encoded: str) -> int | None:
    try:
        _, rest = encoded.split(_PBKDF2_PREFIX, 1)
        return int(rest.split("$", 1)[0])
    except ValueError:
        return None


# ---------------------------- bcrypt helpers ----------------------------

def _hash_bcrypt(password: str, rounds: int = _BCRYPT_DEFAULT_ROUNDS) -> str:
    rounds = max(int(rounds), _BCRYPT_MIN_ACCEPTABLE_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def _verify_bcrypt(password: str, encoded: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), encoded.encode("utf-8"))
    except ValueError:
        _log.warning("Malformed bcrypt hash encountered")
        return False


def _parse_bcrypt_cost(hash_str: str) -> int | None:
    """
    Extract the cost from a bcrypt hash: $2b$12$...
    Returns None if not parseable.
    """
    parts = hash_str.split("$")
    if len(parts) < 4:
        return None
    try:
        return int(parts[2])
    except ValueError:
        return None


def _normalize(stored_hash: Union[str, bytes, None]) -> str:
    if stored_hash is None:
        return ""
    if isinstance(stored_hash, bytes):
        try:
            stored_hash = stored_hash.decode("utf-8")
        except UnicodeDecodeError:
            return ""
    return stored_hash.strip()


# ------------------------------- Public API -------------------------------

def hash_password(
    password: str,
    scheme: str = "bcrypt",
    *,
    bcrypt_rounds: int = _BCRYPT_DEFAULT_ROUNDS,
    pbkdf2_iterations: int = _PBKDF2_DEFAULT_ITERS,
) -> str:
    """
    Hash `password` using the chosen scheme.

    - scheme="bcrypt" (default); cost is clamped to a minimum of 12.
    - scheme="pbkdf2" produces the legacy format (kept for migration tests).

    The produced hash is always compatible with verify_password().
    """
    if not isinstance(password, str) or password == "":
        raise ValueError("Password must be a non-empty string")

    scheme = (scheme or "bcrypt").lower().strip()
    if scheme == "pbkdf2":
        return _hash_pbkdf2(password, iterations=pbkdf2_iterations)
    return _hash_bcrypt(password, rounds=bcrypt_rounds)


def verify_password(password: str, stored_hash: Union[str, bytes, None]) -> bool:
    """
    Verify `password` against `stored_hash`.
    Supports:
      - PBKDF2: 'pbkdf2_sha256$...'
      - bcrypt: $2a$ / $2b$ / $2y$...
    """
    if password is None:
        return False
    h = _normalize(stored_hash)
    if not h:
        return False
    if h.startswith(_PBKDF2_PREFIX):
        return _verify_pbkdf2(password, h)
    if h.startswith(_BCRYPT_PREFIXES):
        return _verify_bcrypt(password, h)
    # Unknown scheme
    return False


def needs_rehash(
    stored_hash: Union[str, bytes, None],
    *,
    bcrypt_min_rounds: int = _BCRYPT_MIN_ACCEPTABLE_ROUNDS,
) -> bool:
    """
    True if the stored hash should be upgraded: any PBKDF2 hash, a bcrypt
    hash below the minimum cost, or anything unrecognised.
    """
    h = _normalize(stored_hash)
    if not h or h.startswith(_PBKDF2_PREFIX):
        return True
    if h.startswith(_BCRYPT_PREFIXES):
        cost = _parse_bcrypt_cost(h)
        return cost is None or cost < bcrypt_min_rounds
    return True


def is_hash_strong_enough(
    stored_hash: Union[str, bytes, None],
    *,
    bcrypt_min_rounds: int = _BCRYPT_MIN_ACCEPTABLE_ROUNDS,
    pbkdf2_min_iterations: int = _PBKDF2_DEFAULT_ITERS,
) -> bool:
    """
    Unlike needs_rehash(), this does NOT force PBKDF2 -> bcrypt migration;
    it only checks minimum strength.
    """
    h = _normalize(stored_hash)
    if h.startswith(_PBKDF2_PREFIX):
        iters = _pbkdf2_iterations(h)
        return iters is not None and iters >= pbkdf2_min_iterations
    if h.startswith(_BCRYPT_PREFIXES):
        cost = _parse_bcrypt_cost(h)
        return cost is not None and cost >= bcrypt_min_rounds
    return False


def verify_and_maybe_upgrade(
    password: str,
    stored_hash: Union[str, bytes, None],
    *,
    on_rehash: Optional[Callable[[str], None]] = None,
) -> Tuple[bool, Optional[str], bool]:
    """
    Verify the password and, if policy recommends, produce an upgraded hash.

    Returns: (ok, new_hash_or_None, did_rehash)

    - verification fails -> (False, None, False)
    - succeeds, rehash recommended -> (True, new_hash, True); on_rehash(new_hash) is called
    - succeeds, nothing to do -> (True, None, False)
    """
    if not verify_password(password, stored_hash):
        return False, None, False
    if not needs_rehash(stored_hash):
        return True, None, False

    new_hash = hash_password(password)
    if on_rehash is not None:
        on_rehash(new_hash)
    return True, new_hash, True
