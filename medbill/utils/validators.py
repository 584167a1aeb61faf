# medbill/utils/validators.py
from __future__ import annotations

from ..constants import PATIENT_GENDERS
from ..database.errors import ValidationError


def non_empty(text) -> bool:
    """
    True if `text` is not None/empty after stripping whitespace.
    """
    return bool(text and str(text).strip())


def try_parse_float(x):
    """
    Best-effort parse to float.

    Returns:
        (ok: bool, value: float|None)
    """
    try:
        return True, float(x)
    except (TypeError, ValueError):
        return False, None


def is_non_negative_number(x) -> bool:
    ok, val = try_parse_float(x)
    return bool(ok and val is not None and val >= 0)


def is_strictly_positive_number(x) -> bool:
    ok, val = try_parse_float(x)
    return bool(ok and val is not None and val > 0)


def require_text(value, label: str) -> str:
    if not non_empty(value):
        raise ValidationError(f"{label} is required")
    return str(value).strip()


def require_positive(value, label: str) -> float:
    if not is_strictly_positive_number(value):
        raise ValidationError(f"{label} must be greater than 0")
    return float(value)


def require_non_negative(value, label: str) -> float:
    if not is_non_negative_number(value):
        raise ValidationError(f"{label} cannot be negative")
    return float(value)


def require_choice(value, choices, label: str):
    if value not in choices:
        raise ValidationError(f"Invalid {label}: {value!r}")
    return value


def validate_patient(patient) -> None:
    """
    Schedule H/H1 sales need patient name, age and gender.
    `patient` is a PatientInfo (or None, which fails).
    """
    if patient is None or not non_empty(getattr(patient, "patient_name", None)):
        raise ValidationError("Patient name is required for Schedule H/H1 medicines")
    ok, age = try_parse_float(getattr(patient, "patient_age", None))
    if not ok or age is None or not age >= 1 or not age.is_integer():
        raise ValidationError("Patient age is required for Schedule H/H1 medicines (whole years, at least 1)")
    if getattr(patient, "patient_gender", None) not in PATIENT_GENDERS:
        raise ValidationError("Patient gender is required for Schedule H/H1 medicines")
