# promoapi/discounts/eligibility.py
from __future__ import annotations
from typing import Callable, Iterable

from ..utils.money import D
from .types import (
    CartSnapshot, CategoryCondition, DiscountRule, EligibilityResult,
    MinQuantityCondition, ProductCondition, UserGroupCondition,
)

# client-facing reasons; keep the wording stable
NOT_FOUND = "Coupon not found"
NOT_ACTIVE = "Coupon is not active"
OUTSIDE_WINDOW = "Coupon has expired or is not yet valid"
USAGE_LIMIT_EXCEEDED = "usage limit exceeded"
USER_LIMIT_EXCEEDED = "You have already used this coupon the maximum number of times"
FIRST_TIME_ONLY = "first-time customers only"
MIN_ORDER_NOT_MET = "minimum order amount not met"
REQUIRED_PRODUCTS_MISSING = "required products not in cart"
EXCLUDED_PRODUCTS_PRESENT = "Excluded products in cart"
REQUIRED_CATEGORIES_MISSING = "Required categories not in cart"
EXCLUDED_CATEGORIES_PRESENT = "Excluded categories in cart"
NOT_IN_USER_GROUP = "not in user group"
CONFIG_ERROR = "Coupon configuration error"


def min_quantity_reason(threshold: int) -> str:
    return f"Minimum {threshold} items required"


UserGroupResolver = Callable[[object, Iterable[str]], bool]

_OK = EligibilityResult(True)


def _fail(reason: str) -> EligibilityResult:
    return EligibilityResult(False, reason)


def _check_condition(cond, cart: CartSnapshot, user_id, user_group_resolver) -> str | None:
    if isinstance(cond, ProductCondition):
        present = any(l.product_id in cond.ids for l in cart.lines)
        if cond.inclusive and not present:
            return REQUIRED_PRODUCTS_MISSING
        if not cond.inclusive and present:
            return EXCLUDED_PRODUCTS_PRESENT
    elif isinstance(cond, CategoryCondition):
        present = any(l.category_id in cond.ids for l in cart.lines)
        if cond.inclusive and not present:
            return REQUIRED_CATEGORIES_MISSING
        if not cond.inclusive and present:
            return EXCLUDED_CATEGORIES_PRESENT
    elif isinstance(cond, MinQuantityCondition):
        if cart.total_quantity < cond.threshold:
            return min_quantity_reason(cond.threshold)
    elif isinstance(cond, UserGroupCondition):
        # no resolver wired in: group membership is not checked
        if user_group_resolver is None:
            return None
        member = bool(user_id is not None and user_group_resolver(user_id, cond.group_ids))
        if member != cond.inclusive:
            return NOT_IN_USER_GROUP
    return None


def evaluate(rule: DiscountRule, cart: CartSnapshot, now, user_usage_count: int | None = None,
             user_id=None, has_prior_orders: bool | None = None,
             user_group_resolver: UserGroupResolver | None = None) -> EligibilityResult:
    """
    Decide whether ``rule`` may be applied to ``cart`` at ``now``.

    Checks run in a fixed order and stop at the first failure, so only one
    reason is ever reported. ``user_usage_count`` is the number of times the
    current user already redeemed the rule; pass None for anonymous carts to
    skip the per-user checks.
    """
    if rule.config_error:
        return _fail(CONFIG_ERROR)
    if not rule.is_active:
        return _fail(NOT_ACTIVE)
    if now < rule.valid_from or now > rule.valid_until:
        return _fail(OUTSIDE_WINDOW)
    if rule.usage_limit is not None and rule.usage_count >= rule.usage_limit:
        return _fail(USAGE_LIMIT_EXCEEDED)
    if user_usage_count is not None and user_usage_count >= rule.user_usage_limit:
        return _fail(USER_LIMIT_EXCEEDED)
    if rule.first_time_customer_only and has_prior_orders:
        return _fail(FIRST_TIME_ONLY)
    if rule.minimum_order_amount is not None and cart.total < D(rule.minimum_order_amount):
        return _fail(MIN_ORDER_NOT_MET)

    for cond in rule.conditions:
        reason = _check_condition(cond, cart, user_id, user_group_resolver)
        if reason:
            return _fail(reason)
    return _OK
