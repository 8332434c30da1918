"""
Unit tests for buy-x-get-y allocation
"""
from decimal import Decimal

import pytest

from promoapi.discounts import MalformedRuleError, allocate_buy_x_get_y
from tests.factories import line, make_bxgy


def test_single_line_buy_two_get_one_free():
    rule = make_bxgy(buy=2, get=1, buy_products={1}, get_products={1})
    total, allocs = allocate_buy_x_get_y(rule, [line(1, 5, 10)])
    assert total == Decimal("20")
    assert len(allocs) == 1
    assert allocs[0].product_id == 1
    assert allocs[0].quantity == 2
    assert allocs[0].unit_discount == Decimal("10")
    assert allocs[0].discounted_unit_price == Decimal("0")


def test_no_buy_lines_means_no_discount():
    rule = make_bxgy(buy_products={1}, get_products={2})
    assert allocate_buy_x_get_y(rule, [line(2, 3, 10)]) == (Decimal("0"), [])


def test_not_enough_buy_units():
    rule = make_bxgy(buy=3, get=1, buy_products={1}, get_products={2})
    assert allocate_buy_x_get_y(rule, [line(1, 2, 10), line(2, 1, 5)]) == (Decimal("0"), [])


def test_cheapest_get_units_discounted_first():
    rule = make_bxgy(buy=1, get=1, buy_products={1}, get_categories={5})
    lines = [
        line(1, 3, 50),
        line(10, 1, 30, category_id=5),
        line(11, 1, 8, category_id=5),
        line(12, 5, 12, category_id=5),
    ]
    total, allocs = allocate_buy_x_get_y(rule, lines)
    # three free units: one at 8, two at 12
    assert [(a.product_id, a.quantity) for a in allocs] == [(11, 1), (12, 2)]
    assert total == Decimal("32")


def test_units_never_exceed_line_quantity():
    rule = make_bxgy(buy=1, get=3, buy_products={1}, get_products={2})
    total, allocs = allocate_buy_x_get_y(rule, [line(1, 4, 10), line(2, 2, 6)])
    assert allocs[0].quantity == 2
    assert total == Decimal("12")


def test_percentage_get_discount():
    rule = make_bxgy(buy=2, get=1, buy_products={1}, get_products={2},
                     get_type="percentage", get_value=50)
    total, allocs = allocate_buy_x_get_y(rule, [line(1, 4, 10), line(2, 3, 8)])
    assert total == Decimal("8")
    assert allocs[0].unit_discount == Decimal("4")


def test_fixed_get_discount_capped_at_unit_price():
    rule = make_bxgy(buy=1, get=2, buy_products={1}, get_products={2, 3},
                     get_type="fixed_amount", get_value=5)
    total, allocs = allocate_buy_x_get_y(rule, [line(1, 1, 20), line(2, 1, 3), line(3, 1, 9)])
    assert [a.unit_discount for a in allocs] == [Decimal("3"), Decimal("5")]
    assert total == Decimal("8")


def test_buy_units_summed_across_lines_and_categories():
    rule = make_bxgy(buy=3, get=1, buy_products={1}, buy_categories={7}, get_products={9})
    lines = [line(1, 1, 10), line(2, 2, 10, category_id=7), line(9, 1, 4)]
    total, _ = allocate_buy_x_get_y(rule, lines)
    assert total == Decimal("4")


def test_overlap_allowed_shared_line_earns_and_receives():
    rule = make_bxgy(buy=2, get=1, buy_products={1}, get_products={1})
    total, allocs = allocate_buy_x_get_y(rule, [line(1, 3, 10)])
    assert total == Decimal("10")
    assert allocs[0].quantity == 1


def test_overlap_disabled_reserves_buy_units():
    rule = make_bxgy(buy=2, get=1, buy_products={1}, get_products={1}, allow_overlap=False)
    # two units pay for the reward, the third may be free
    total, allocs = allocate_buy_x_get_y(rule, [line(1, 3, 10)])
    assert total == Decimal("10")
    # with only two units nothing is left to discount
    assert allocate_buy_x_get_y(rule, [line(1, 2, 10)]) == (Decimal("0"), [])


def test_overlap_disabled_pure_buy_lines_used_first():
    rule = make_bxgy(buy=2, get=1, buy_products={1, 2}, get_products={2}, allow_overlap=False)
    total, allocs = allocate_buy_x_get_y(rule, [line(1, 2, 10), line(2, 1, 6)])
    assert total == Decimal("6")
    assert allocs[0].product_id == 2


@pytest.mark.parametrize("buy,get", [(0, 1), (1, 0)])
def test_zero_quantities_are_rejected(buy, get):
    rule = make_bxgy(buy=buy, get=get, buy_products={1}, get_products={1})
    with pytest.raises(MalformedRuleError):
        allocate_buy_x_get_y(rule, [line(1, 5, 10)])


def test_unknown_get_type_is_rejected():
    rule = make_bxgy(buy=1, get=1, buy_products={1}, get_products={1}, get_type="bogus")
    with pytest.raises(MalformedRuleError):
        allocate_buy_x_get_y(rule, [line(1, 2, 10)])
