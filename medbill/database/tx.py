# medbill/database/tx.py
from __future__ import annotations

import itertools
import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator

from .errors import PersistenceError

_log = logging.getLogger(__name__)
_savepoint_ids = itertools.count(1)


@contextmanager
def immediate_tx(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Run the enclosed statements as one unit of work.

    - No open transaction: BEGIN IMMEDIATE ... COMMIT (ROLLBACK on error).
    - Already inside a transaction: SAVEPOINT ... RELEASE (ROLLBACK TO on error),
      so workflows can call each other without breaking the outer boundary.

    sqlite3.Error is logged and re-raised as PersistenceError; domain errors
    propagate unchanged after the rollback.
    """
    if conn.in_transaction:
        name = f"sp_{next(_savepoint_ids)}"
        conn.execute(f"SAVEPOINT {name}")
        try:
            yield conn
            conn.execute(f"RELEASE SAVEPOINT {name}")
        except sqlite3.Error as e:
            conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
            conn.execute(f"RELEASE SAVEPOINT {name}")
            _log.exception("Database operation failed; rolled back to savepoint %s", name)
            raise PersistenceError("Failed to save, please try again.") from e
        except BaseException:
            conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
            conn.execute(f"RELEASE SAVEPOINT {name}")
            raise
        return

    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        _log.exception("Database operation failed; transaction rolled back")
        raise PersistenceError("Failed to save, please try again.") from e
    except BaseException:
        conn.rollback()
        raise
