# medbill/tests/test_ui_helpers.py
from __future__ import annotations

import pytest
from PySide6.QtWidgets import QMessageBox

from medbill.database.errors import NotFoundError, PersistenceError, ValidationError
from medbill.utils import ui_helpers


@pytest.fixture()
def boxes(qapp, monkeypatch):
    """Capture message boxes instead of showing them."""
    shown = []
    for kind in ("information", "warning", "critical"):
        monkeypatch.setattr(QMessageBox, kind, lambda *args, _k=kind: shown.append((_k, args[1], args[2])))
    return shown


def test_validation_errors_are_shown_verbatim(boxes):
    text = ui_helpers.surface_error(None, ValidationError("Insufficient stock for X. Available: 3"))
    assert text == "Insufficient stock for X. Available: 3"
    assert boxes == [("warning", "MedBill", "Insufficient stock for X. Available: 3")]


def test_not_found_is_a_warning(boxes):
    ui_helpers.surface_error(None, NotFoundError("Batch not found: 9"))
    assert boxes == [("warning", "MedBill", "Batch not found: 9")]


@pytest.mark.parametrize("exc", [PersistenceError("disk I/O error"), RuntimeError("boom")])
def test_other_errors_get_the_generic_message(boxes, exc):
    assert ui_helpers.surface_error(None, exc) == ui_helpers.GENERIC_FAILURE
    assert boxes == [("critical", "MedBill", "Failed to save, please try again.")]


def test_run_guarded(boxes):
    def fail():
        raise ValidationError("Select a customer for a credit sale")

    assert ui_helpers.run_guarded(None, fail) is None
    assert ui_helpers.run_guarded(None, lambda a, b=0: a + b, 2, b=3, success_message="Saved") == 5
    assert boxes == [
        ("warning", "MedBill", "Select a customer for a credit sale"),
        ("information", "MedBill", "Saved"),
    ]
