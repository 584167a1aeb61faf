# medbill/tests/test_gst.py
import pytest

from medbill.utils.gst import (
    LineInput,
    add_exclusive,
    calculate_bill,
    calculate_discount,
    calculate_gst,
    default_hsn_code,
    group_by_gst_rate,
    is_valid_gst_rate,
    round2,
    split_inclusive,
)


def test_round2_is_half_up():
    assert round2(2.305) == 2.31
    assert round2(2.304) == 2.30
    assert round2(0.125) == 0.13


def test_inclusive_split_extracts_tax():
    g = split_inclusive(112, 12)
    assert (g.taxable_value, g.cgst, g.sgst, g.total_gst, g.total) == (100.0, 6.0, 6.0, 12.0, 112.0)


def test_inclusive_split_odd_paise_goes_to_sgst():
    g = split_inclusive(100, 5)
    assert g.taxable_value == 95.24
    assert g.total_gst == 4.76
    assert round2(g.cgst + g.sgst) == g.total_gst


def test_exclusive_adds_tax_on_top():
    g = add_exclusive(100, 18)
    assert (g.taxable_value, g.total_gst, g.total) == (100.0, 18.0, 118.0)
    assert g.cgst == g.sgst == 9.0


def test_zero_rate_has_no_tax():
    for g in (split_inclusive(10, 0), add_exclusive(10, 0)):
        assert g.total_gst == 0 and g.cgst == 0 and g.sgst == 0
        assert g.taxable_value == g.total == 10.0


def test_calculate_gst_applies_discount_before_tax():
    g = calculate_gst(56, 2, 12, "INCLUSIVE", discount=0)
    assert g.taxable_value == 100.0
    g = calculate_gst(50, 2, 12, "EXCLUSIVE", discount=10)
    assert g.taxable_value == 90.0 and g.total == 100.8


@pytest.mark.parametrize(
    "amount,kind,value,expected",
    [
        (200, "PERCENTAGE", 10, 20.0),
        (200, "PERCENTAGE", 150, 200.0),
        (200, "FLAT", 50, 50.0),
        (200, "FLAT", 500, 200.0),
        (200, None, 50, 0.0),
        (200, "FLAT", -5, 0.0),
    ],
)
def test_calculate_discount(amount, kind, value, expected):
    assert calculate_discount(amount, kind, value) == expected


def test_bill_totals_add_up():
    calc = calculate_bill([LineInput(112, 1, 12), LineInput(105, 1, 5)])
    assert calc.taxable_total == 200.0
    assert calc.total_gst == 17.0
    assert calc.items_total == 217.0
    assert calc.round_off == 0.0
    assert calc.grand_total == 217.0


def test_bill_discount_is_prorated_before_tax():
    calc = calculate_bill([LineInput(112, 1, 12), LineInput(105, 1, 5)], "FLAT", 17)
    assert calc.bill_discount == 17.0
    assert [i.bill_discount_share for i in calc.items] == [8.77, 8.23]
    assert round2(calc.taxable_total + calc.total_gst) == calc.items_total == 200.0
    assert calc.grand_total == 200.0
    for it in calc.items:
        assert round2(it.cgst + it.sgst) == it.total_gst


def test_prorate_residue_lands_on_last_line():
    calc = calculate_bill([LineInput(10, 1, 0)] * 3, "FLAT", 10, round_off=False)
    assert [i.bill_discount_share for i in calc.items] == [3.33, 3.33, 3.34]
    assert calc.items_total == 20.0


def test_item_discount_and_percentage_bill_discount_stack():
    calc = calculate_bill([LineInput(100, 2, 0, discount_type="FLAT", discount_value=20)], "PERCENTAGE", 10)
    it = calc.items[0]
    assert it.gross_amount == 200.0
    assert it.discount_amount == 20.0
    assert it.bill_discount_share == 18.0
    assert calc.discount_total == 38.0
    assert calc.grand_total == 162.0


def test_round_off_to_nearest_rupee():
    calc = calculate_bill([LineInput(10.5, 1, 12)])
    assert calc.items_total == 10.5
    assert calc.round_off == 0.5
    assert calc.grand_total == 11.0

    calc = calculate_bill([LineInput(10.5, 1, 12)], round_off=False)
    assert calc.round_off == 0.0
    assert calc.grand_total == 10.5


def test_exclusive_line_in_bill():
    calc = calculate_bill([LineInput(100, 2, 18, price_type="EXCLUSIVE")])
    assert (calc.taxable_total, calc.total_gst, calc.grand_total) == (200.0, 36.0, 236.0)


def test_group_by_rate():
    calc = calculate_bill([LineInput(112, 1, 12), LineInput(56, 1, 12), LineInput(105, 1, 5)])
    grouped = group_by_gst_rate(calc.items)
    assert set(grouped) == {12, 5}
    assert grouped[12]["taxable_value"] == 150.0
    assert grouped[12]["total_gst"] == 18.0


def test_rates_and_hsn_defaults():
    assert all(is_valid_gst_rate(r) for r in (0, 5, 12, 18, "12"))
    assert not is_valid_gst_rate(28)
    assert not is_valid_gst_rate("abc")
    assert default_hsn_code(0) == "3002"
    assert default_hsn_code(12) == "3004"
    assert default_hsn_code(18) == "2106"
