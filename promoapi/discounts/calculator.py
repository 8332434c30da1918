# promoapi/discounts/calculator.py
from __future__ import annotations
import logging
from decimal import Decimal

from ..utils.money import D
from .bxgy import allocate_buy_x_get_y
from .types import (
    BUY_X_GET_Y, CartSnapshot, DiscountResult, DiscountRule, FIXED_AMOUNT,
    FREE_SHIPPING, MalformedRuleError, PERCENTAGE,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _zero(rule: DiscountRule) -> DiscountResult:
    return DiscountResult(is_valid=True, discount_amount=ZERO, rule_id=rule.id, code=rule.code)


def calculate(rule: DiscountRule, cart: CartSnapshot) -> DiscountResult:
    """
    Compute the discount for a rule that already passed eligibility.

    The amount is capped by ``maximum_discount_amount`` and by the cart total.
    Broken rule data never raises: it is logged and yields a zero discount.
    Free shipping only sets ``free_shipping``; zeroing the shipping charge is
    up to the caller.
    """
    cart_total = cart.total
    allocations = ()
    try:
        if rule.config_error:
            raise MalformedRuleError(rule.config_error)
        if rule.discount_type == PERCENTAGE:
            raw = cart_total * D(rule.value) / Decimal("100")
        elif rule.discount_type == FIXED_AMOUNT:
            raw = D(rule.value)
        elif rule.discount_type == FREE_SHIPPING:
            return DiscountResult(is_valid=True, discount_amount=ZERO, free_shipping=True,
                                  rule_id=rule.id, code=rule.code)
        elif rule.discount_type == BUY_X_GET_Y:
            if rule.buy_x_get_y is None:
                raise MalformedRuleError("buy_x_get_y rule is missing")
            raw, allocs = allocate_buy_x_get_y(rule.buy_x_get_y, cart.lines)
            allocations = tuple(allocs)
        else:
            raise MalformedRuleError(f"unknown discount type {rule.discount_type!r}")
    except MalformedRuleError as e:
        logger.error("discount rule %s (%s) is misconfigured: %s", rule.id, rule.code or rule.name, e)
        return _zero(rule)

    if rule.maximum_discount_amount is not None:
        raw = min(raw, D(rule.maximum_discount_amount))
    amount = max(ZERO, min(raw, cart_total))

    return DiscountResult(
        is_valid=True,
        discount_amount=amount,
        allocations=allocations,
        rule_id=rule.id,
        code=rule.code,
    )
