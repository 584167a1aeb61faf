# medbill/utils/ui_helpers.py
"""
Message-box boundary between workflows and the Qt front end.

Validation and lookup problems are shown to the user as-is; anything else is
logged with its traceback and shown as a generic failure.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from PySide6.QtWidgets import QMessageBox, QWidget

from ..database.errors import NotFoundError, ValidationError

_log = logging.getLogger(__name__)

GENERIC_FAILURE = "Failed to save, please try again."


def info(parent: Optional[QWidget], title: str, text: str):
    QMessageBox.information(parent, title, text)


def warn(parent: Optional[QWidget], title: str, text: str):
    QMessageBox.warning(parent, title, text)


def error(parent: Optional[QWidget], title: str, text: str):
    QMessageBox.critical(parent, title, text)


def surface_error(parent: Optional[QWidget], exc: BaseException, title: str = "MedBill") -> str:
    """Show `exc` to the user; returns the text that was shown."""
    if isinstance(exc, (ValidationError, NotFoundError)):
        text = str(exc)
        warn(parent, title, text)
        return text
    _log.error("Unexpected error surfaced to the user", exc_info=(type(exc), exc, exc.__traceback__))
    error(parent, title, GENERIC_FAILURE)
    return GENERIC_FAILURE


def run_guarded(parent: Optional[QWidget], fn: Callable[..., Any], *args, success_message: str | None = None,
                **kwargs) -> Any:
    """
    Call a workflow from a UI slot. Returns its result, or None after the
    error has been shown.
    """
    try:
        result = fn(*args, **kwargs)
    except Exception as e:  # noqa: BLE001
        surface_error(parent, e)
        return None
    if success_message:
        info(parent, "MedBill", success_message)
    return result
