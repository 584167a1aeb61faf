# medbill/utils/loggers.py
"""
Package logging.

Public API
----------
- get_logger(name="medbill", log_file=None) -> logging.Logger
- log_event(logger, op, phase, message, extra=None, level=INFO)

Modules log through logging.getLogger(__name__); those loggers propagate to
the "medbill" logger configured here, so handlers are attached exactly once.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

__all__ = ["get_logger", "log_event"]

_ROOT_NAME = "medbill"


def get_logger(name: str = _ROOT_NAME, log_file: Optional[str | Path] = None) -> logging.Logger:
    root = logging.getLogger(_ROOT_NAME)
    if not root.handlers:
        root.setLevel(logging.INFO)
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        root.addHandler(ch)

    if log_file is not None and not any(isinstance(h, logging.FileHandler) for h in root.handlers):
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(path), mode="a", encoding="utf-8", delay=True)
        fh.setFormatter(_JsonLineFormatter())
        root.addHandler(fh)

    return logging.getLogger(name)


class _JsonLineFormatter(logging.Formatter):
    """
    {"ts":"2025-09-16T12:00:01.123Z","level":"INFO","name":"medbill.x","msg":"...","extra":{...}}
    """
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if hasattr(record, "extra_payload") and isinstance(record.extra_payload, dict):
            payload["extra"] = record.extra_payload
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def log_event(
    logger: logging.Logger,
    op: str,
    phase: str,
    message: str,
    extra: Dict[str, object] | None = None,
    level: int = logging.INFO,
) -> None:
    """
    Log a structured workflow event.

    Args:
        op: Workflow name, e.g. "bill", "sales_return", "running_bill".
        phase: Step within the workflow, e.g. "created", "linked", "cancelled".
        extra: Additional key/values (ids, quantities, amounts).
    """
    extra_payload = {"op": op, "phase": phase}
    if extra:
        for k, v in extra.items():
            if k not in extra_payload:
                extra_payload[k] = v
    logger.log(level, message, extra={"extra_payload": extra_payload})
