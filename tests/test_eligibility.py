"""
Unit tests for coupon eligibility checks
"""
from datetime import timedelta

import pytest

from promoapi.discounts import (
    CategoryCondition, MalformedRuleError, MinQuantityCondition, ProductCondition, UserGroupCondition,
    decode_condition, evaluate,
)
from promoapi.discounts import eligibility as reasons
from tests.factories import NOW, WINDOW_FROM, WINDOW_UNTIL, cart, line, make_rule


def test_percentage_coupon_with_minimum_met_is_eligible():
    rule = make_rule(minimum_order_amount=50)
    result = evaluate(rule, cart(line(1, 1, 100)), NOW)
    assert result.eligible
    assert result.reason is None


def test_minimum_order_amount_not_met():
    rule = make_rule(minimum_order_amount=50)
    result = evaluate(rule, cart(line(1, 1, 40)), NOW)
    assert not result.eligible
    assert result.reason == "minimum order amount not met"


def test_declared_cart_total_is_used_for_minimum():
    rule = make_rule(minimum_order_amount=50)
    assert not evaluate(rule, cart(line(1, 1, 100), total=45), NOW)


def test_inactive_coupon():
    result = evaluate(make_rule(is_active=False), cart(line(1, 1, 100)), NOW)
    assert result.reason == reasons.NOT_ACTIVE


@pytest.mark.parametrize("now,ok", [
    (WINDOW_FROM, True),
    (WINDOW_UNTIL, True),
    (WINDOW_FROM - timedelta(seconds=1), False),
    (WINDOW_UNTIL + timedelta(seconds=1), False),
])
def test_validity_window_is_inclusive(now, ok):
    result = evaluate(make_rule(), cart(line(1, 1, 100)), now)
    assert result.eligible is ok
    if not ok:
        assert result.reason == reasons.OUTSIDE_WINDOW


def test_usage_limit_exceeded_wins_over_later_checks():
    rule = make_rule(usage_limit=100, usage_count=100, minimum_order_amount=1000,
                     conditions=(ProductCondition(frozenset({7})),))
    result = evaluate(rule, cart(line(9, 1, 10)), NOW)
    assert result.reason == "usage limit exceeded"


def test_usage_below_limit_passes():
    assert evaluate(make_rule(usage_limit=100, usage_count=99), cart(line(1, 1, 10)), NOW)


def test_per_user_limit_only_checked_with_user_count():
    rule = make_rule(user_usage_limit=1)
    assert evaluate(rule, cart(line(1, 1, 10)), NOW, user_usage_count=None)
    assert evaluate(rule, cart(line(1, 1, 10)), NOW, user_usage_count=0)
    result = evaluate(rule, cart(line(1, 1, 10)), NOW, user_usage_count=1)
    assert result.reason == reasons.USER_LIMIT_EXCEEDED


def test_first_time_customer_only():
    rule = make_rule(first_time_customer_only=True)
    assert evaluate(rule, cart(line(1, 1, 10)), NOW, has_prior_orders=False)
    assert evaluate(rule, cart(line(1, 1, 10)), NOW, has_prior_orders=None)
    result = evaluate(rule, cart(line(1, 1, 10)), NOW, has_prior_orders=True)
    assert result.reason == reasons.FIRST_TIME_ONLY


def test_required_product_missing():
    rule = make_rule(conditions=(ProductCondition(frozenset({7})),))
    result = evaluate(rule, cart(line(9, 1, 100)), NOW)
    assert result.reason == "required products not in cart"


def test_required_product_present():
    rule = make_rule(conditions=(ProductCondition(frozenset({7, 8})),))
    assert evaluate(rule, cart(line(9, 1, 100), line(8, 1, 5)), NOW)


def test_excluded_product_present():
    rule = make_rule(conditions=(ProductCondition(frozenset({9}), inclusive=False),))
    result = evaluate(rule, cart(line(9, 1, 100)), NOW)
    assert result.reason == reasons.EXCLUDED_PRODUCTS_PRESENT


def test_category_conditions():
    inc = make_rule(conditions=(CategoryCondition(frozenset({3})),))
    exc = make_rule(conditions=(CategoryCondition(frozenset({3}), inclusive=False),))
    c3 = cart(line(1, 1, 10, category_id=3))
    c4 = cart(line(1, 1, 10, category_id=4))
    assert evaluate(inc, c3, NOW)
    assert evaluate(inc, c4, NOW).reason == reasons.REQUIRED_CATEGORIES_MISSING
    assert evaluate(exc, c3, NOW).reason == reasons.EXCLUDED_CATEGORIES_PRESENT
    assert evaluate(exc, c4, NOW)


def test_minimum_quantity_counts_all_lines():
    rule = make_rule(conditions=(MinQuantityCondition(5),))
    assert evaluate(rule, cart(line(1, 2, 10), line(2, 3, 10)), NOW)
    result = evaluate(rule, cart(line(1, 2, 10), line(2, 2, 10)), NOW)
    assert result.reason == "Minimum 5 items required"


def test_all_conditions_must_hold_and_first_failure_reported():
    rule = make_rule(conditions=(
        ProductCondition(frozenset({1})),
        MinQuantityCondition(10),
        CategoryCondition(frozenset({99})),
    ))
    result = evaluate(rule, cart(line(1, 1, 10, category_id=2)), NOW)
    assert result.reason == "Minimum 10 items required"


def test_user_group_passes_without_resolver():
    rule = make_rule(conditions=(UserGroupCondition(frozenset({"vip"})),))
    assert evaluate(rule, cart(line(1, 1, 10)), NOW, user_id=5)


def test_user_group_with_resolver():
    groups = {5: {"vip"}, 6: set()}
    resolver = lambda uid, wanted: bool(groups.get(uid, set()) & set(wanted))
    inc = make_rule(conditions=(UserGroupCondition(frozenset({"vip"})),))
    exc = make_rule(conditions=(UserGroupCondition(frozenset({"vip"}), inclusive=False),))
    c = cart(line(1, 1, 10))

    assert evaluate(inc, c, NOW, user_id=5, user_group_resolver=resolver)
    assert evaluate(inc, c, NOW, user_id=6, user_group_resolver=resolver).reason == reasons.NOT_IN_USER_GROUP
    assert evaluate(inc, c, NOW, user_id=None, user_group_resolver=resolver).reason == reasons.NOT_IN_USER_GROUP
    assert evaluate(exc, c, NOW, user_id=6, user_group_resolver=resolver)
    assert not evaluate(exc, c, NOW, user_id=5, user_group_resolver=resolver)


def test_config_error_makes_rule_ineligible():
    result = evaluate(make_rule(config_error="bad json"), cart(line(1, 1, 10)), NOW)
    assert result.reason == reasons.CONFIG_ERROR


def test_evaluate_is_repeatable():
    rule = make_rule(minimum_order_amount=50, conditions=(ProductCondition(frozenset({1})),))
    c = cart(line(1, 1, 100))
    assert evaluate(rule, c, NOW) == evaluate(rule, c, NOW)


@pytest.mark.parametrize("ctype,stored", [
    ("product", "[7.9]"),
    ("category", "[true]"),
    ("minimum_quantity", "2.5"),
])
def test_non_integral_stored_values_are_malformed(ctype, stored):
    with pytest.raises(MalformedRuleError):
        decode_condition(ctype, stored)


def test_integral_strings_decode():
    assert decode_condition("product", '["7", 8]').ids == frozenset({7, 8})
    assert decode_condition("minimum_quantity", '"3"').threshold == 3
