# medbill/database/__init__.py
from __future__ import annotations

import logging
from pathlib import Path
import sqlite3

from ..config import DB_PATH
from ..constants import SCHEMA_VERSION
from . import schema as schema_module
from .seeders.default_data import seed as seed_default_data
from .versioning import ensure_version

_log = logging.getLogger(__name__)


def get_connection(db_path: Path | str | None = None) -> sqlite3.Connection:
    """
    Returns a sqlite3.Connection with:
      - WAL mode (file databases)
      - foreign_keys ON
      - row_factory = sqlite3.Row (so rows behave like dicts and tuples)
    Ensures schema, version row & seed data are applied idempotently.
    Pass ":memory:" for a throwaway database.
    """
    target = DB_PATH if db_path is None else db_path
    if str(target) != ":memory:":
        Path(target).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(target))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    if str(target) != ":memory:":
        conn.execute("PRAGMA journal_mode = WAL;")

    schema_module.init_schema(conn)
    version = ensure_version(conn, SCHEMA_VERSION)
    if version != SCHEMA_VERSION:
        _log.warning("Database schema version %s differs from application version %s", version, SCHEMA_VERSION)

    # Seeders are safe to run repeatedly (idempotent).
    seed_default_data(conn)

    conn.commit()
    _log.info("Opened database %s", target)
    return conn


__all__ = [
    "get_connection",
]
