# medbill/utils/helpers.py
from datetime import date, datetime
import logging
from typing import Optional, Union

NumberLike = Union[float, int, str]

_log = logging.getLogger(__name__)


def parse_date(v: Union[str, date, None]) -> Optional[date]:
    """Accept a date or an ISO string (time part ignored); None stays None."""
    if v is None or v == "":
        return None
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    return date.fromisoformat(str(v)[:10])


def financial_year(d: Optional[date] = None) -> str:
    """Indian financial year label (April-March), e.g. 2024-25."""
    d = d or date.today()
    start = d.year if d.month >= 4 else d.year - 1
    return f"{start}-{str(start + 1)[-2:]}"


def fmt_money(
    v: NumberLike,
    places: int = 2,
    *,
    strict: bool = False,
    sentinel: Optional[str] = None,
) -> str:
    """
    Format a number as money with thousands separators and a fixed number of decimals.

    On parse failure returns str(v), or `sentinel` when given, or raises
    ValueError when strict=True.
    """
    try:
        x = float(v)
    except (TypeError, ValueError) as e:
        _log.debug("fmt_money: failed to parse %r as float: %s", v, e)
        if strict:
            raise ValueError(f"Could not parse {v!r} as a number.") from e
        return str(sentinel) if sentinel is not None else str(v)
    return f"{x:,.{places}f}"
