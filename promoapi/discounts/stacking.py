# promoapi/discounts/stacking.py
from __future__ import annotations
from decimal import Decimal
from functools import reduce

from .calculator import calculate
from .eligibility import evaluate
from .types import CartSnapshot, CombinedDiscount, DiscountResult, DiscountRule


def by_priority(rules):
    # highest priority first; ties keep their id order so the outcome is stable
    return sorted(rules, key=lambda r: (-r.priority, r.id if r.id is not None else 0))


def _fold(state, item):
    combined, done = state
    if done:
        return state
    rule, result = item
    first = not combined.applied
    if not rule.stackable:
        # a non-stackable rule only applies when it is the first one reached
        if first:
            return CombinedDiscount(result.discount_amount, result.free_shipping, (result,)), True
        return combined, True
    return CombinedDiscount(
        combined.discount_amount + result.discount_amount,
        combined.free_shipping or result.free_shipping,
        combined.applied + (result,),
    ), False


def combine(pairs, cart_total) -> CombinedDiscount:
    """
    Fold already-evaluated (rule, result) pairs, given in priority order, into
    one discount. The top rule applies alone when it is not stackable;
    otherwise stackable rules accumulate until a non-stackable one is met.
    The total never exceeds ``cart_total``.
    """
    combined, _ = reduce(_fold, pairs, (CombinedDiscount(), False))
    if combined.discount_amount > cart_total:
        combined = CombinedDiscount(cart_total, combined.free_shipping, combined.applied)
    return combined


def resolve_automatic_discounts(rules, cart: CartSnapshot, now, **evaluate_kwargs) -> CombinedDiscount:
    eligible: list[tuple[DiscountRule, DiscountResult]] = []
    for rule in by_priority(rules):
        if evaluate(rule, cart, now, **evaluate_kwargs):
            eligible.append((rule, calculate(rule, cart)))
    return combine(eligible, max(cart.total, Decimal("0")))
