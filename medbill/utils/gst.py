# medbill/utils/gst.py
"""
GST arithmetic for pharmacy billing (intra-state: CGST = SGST = half).

Two pricing conventions:
  INCLUSIVE  selling price is the MRP; tax is extracted
             taxable = amount * 100 / (100 + rate)
  EXCLUSIVE  selling price is pre-tax; tax is added on top

All money values are rounded half-up to 2 places; the bill total is
optionally rounded to the nearest rupee.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence

from ..constants import GST_RATES, DEFAULT_HSN_CODE


def round2(x: float) -> float:
    return float(Decimal(str(x)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def round_rupee(x: float) -> float:
    return float(Decimal(str(x)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def is_valid_gst_rate(rate) -> bool:
    try:
        return float(rate) in GST_RATES
    except (TypeError, ValueError):
        return False


def default_hsn_code(gst_rate: float) -> str:
    """Common pharma HSN codes by GST slab."""
    return {0: "3002", 5: "3004", 12: "3004", 18: "2106"}.get(int(gst_rate or 0), DEFAULT_HSN_CODE)


@dataclass
class GstBreakup:
    taxable_value: float
    cgst: float
    sgst: float
    total_gst: float
    total: float


def _split(taxable: float, gst: float, total: float) -> GstBreakup:
    cgst = round2(gst / 2)
    sgst = round2(gst - cgst)
    return GstBreakup(taxable_value=taxable, cgst=cgst, sgst=sgst, total_gst=gst, total=total)


def split_inclusive(amount: float, rate: float) -> GstBreakup:
    """Extract GST from a tax-inclusive amount."""
    amount = round2(max(0.0, amount))
    if not rate:
        return _split(amount, 0.0, amount)
    taxable = round2(amount * 100 / (100 + rate))
    return _split(taxable, round2(amount - taxable), amount)


def add_exclusive(amount: float, rate: float) -> GstBreakup:
    """Add GST on top of a pre-tax amount."""
    taxable = round2(max(0.0, amount))
    if not rate:
        return _split(taxable, 0.0, taxable)
    gst = round2(taxable * rate / 100)
    return _split(taxable, gst, round2(taxable + gst))


def calculate_gst(price: float, qty: float, rate: float, price_type: str = "INCLUSIVE",
                  discount: float = 0.0) -> GstBreakup:
    amount = max(0.0, price * qty - discount)
    if price_type == "EXCLUSIVE":
        return add_exclusive(amount, rate)
    return split_inclusive(amount, rate)


def calculate_discount(amount: float, discount_type: Optional[str], value: float | None) -> float:
    """PERCENTAGE of amount, or FLAT capped at amount. Anything else is no discount."""
    value = float(value or 0)
    if not discount_type or value <= 0 or amount <= 0:
        return 0.0
    if discount_type == "PERCENTAGE":
        return round2(amount * min(value, 100.0) / 100)
    if discount_type == "FLAT":
        return round2(min(value, amount))
    return 0.0


@dataclass
class LineInput:
    unit_price: float
    quantity: float
    gst_rate: float
    price_type: str = "INCLUSIVE"
    discount_type: Optional[str] = None
    discount_value: float = 0.0


@dataclass
class ItemCalculation:
    unit_price: float
    quantity: float
    gst_rate: float
    price_type: str
    gross_amount: float
    discount_amount: float      # item-level discount
    bill_discount_share: float  # prorated part of the bill-level discount
    taxable_value: float
    cgst: float
    sgst: float
    total_gst: float
    total: float


@dataclass
class BillCalculation:
    items: List[ItemCalculation] = field(default_factory=list)
    subtotal: float = 0.0
    item_discount_total: float = 0.0
    bill_discount: float = 0.0
    taxable_total: float = 0.0
    total_cgst: float = 0.0
    total_sgst: float = 0.0
    total_gst: float = 0.0
    items_total: float = 0.0
    round_off: float = 0.0
    grand_total: float = 0.0

    @property
    def discount_total(self) -> float:
        return round2(self.item_discount_total + self.bill_discount)


def calculate_bill_item(line: LineInput, extra_discount: float = 0.0) -> ItemCalculation:
    gross = round2(line.unit_price * line.quantity)
    item_disc = calculate_discount(gross, line.discount_type, line.discount_value)
    extra = round2(min(max(0.0, extra_discount), gross - item_disc))
    g = calculate_gst(line.unit_price, line.quantity, line.gst_rate, line.price_type,
                      discount=item_disc + extra)
    return ItemCalculation(
        unit_price=line.unit_price,
        quantity=line.quantity,
        gst_rate=line.gst_rate,
        price_type=line.price_type,
        gross_amount=gross,
        discount_amount=item_disc,
        bill_discount_share=extra,
        taxable_value=g.taxable_value,
        cgst=g.cgst,
        sgst=g.sgst,
        total_gst=g.total_gst,
        total=g.total,
    )


def _prorate(total: float, weights: Sequence[float]) -> List[float]:
    base = sum(weights)
    if total <= 0 or base <= 0:
        return [0.0] * len(weights)
    shares = [round2(total * w / base) for w in weights]
    # last non-zero line absorbs the rounding residue
    for i in range(len(shares) - 1, -1, -1):
        if weights[i] > 0:
            shares[i] = round2(shares[i] + total - sum(shares))
            break
    return shares


def calculate_bill(
    lines: Sequence[LineInput],
    bill_discount_type: Optional[str] = None,
    bill_discount_value: float = 0.0,
    round_off: bool = True,
) -> BillCalculation:
    """
    Price a whole cart.

    The bill-level discount is computed on the post-item-discount gross and
    spread over the lines in proportion to it before tax, so for every bill
    taxable_total + total_gst == items_total and
    grand_total == items_total + round_off.
    """
    nets = []
    for ln in lines:
        gross = round2(ln.unit_price * ln.quantity)
        nets.append(round2(gross - calculate_discount(gross, ln.discount_type, ln.discount_value)))

    bill_disc = calculate_discount(round2(sum(nets)), bill_discount_type, bill_discount_value)
    shares = _prorate(bill_disc, nets)
    items = [calculate_bill_item(ln, s) for ln, s in zip(lines, shares)]

    calc = BillCalculation(items=items)
    calc.subtotal = round2(sum(i.gross_amount for i in items))
    calc.item_discount_total = round2(sum(i.discount_amount for i in items))
    calc.bill_discount = round2(sum(i.bill_discount_share for i in items))
    calc.taxable_total = round2(sum(i.taxable_value for i in items))
    calc.total_cgst = round2(sum(i.cgst for i in items))
    calc.total_sgst = round2(sum(i.sgst for i in items))
    calc.total_gst = round2(sum(i.total_gst for i in items))
    calc.items_total = round2(sum(i.total for i in items))
    if round_off:
        calc.round_off = round2(round_rupee(calc.items_total) - calc.items_total)
    calc.grand_total = round2(calc.items_total + calc.round_off)
    return calc


def group_by_gst_rate(items: Iterable[ItemCalculation]) -> Dict[float, Dict[str, float]]:
    """Taxable / CGST / SGST / GST totals per rate, for the invoice tax summary."""
    out: Dict[float, Dict[str, float]] = {}
    for it in items:
        row = out.setdefault(it.gst_rate, {"taxable_value": 0.0, "cgst": 0.0, "sgst": 0.0, "total_gst": 0.0})
        row["taxable_value"] = round2(row["taxable_value"] + it.taxable_value)
        row["cgst"] = round2(row["cgst"] + it.cgst)
        row["sgst"] = round2(row["sgst"] + it.sgst)
        row["total_gst"] = round2(row["total_gst"] + it.total_gst)
    return out
