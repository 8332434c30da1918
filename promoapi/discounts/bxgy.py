# promoapi/discounts/bxgy.py
from __future__ import annotations
from decimal import Decimal

from ..utils.money import D, Money
from .types import (
    BuyXGetYRule, CartLine, FIXED_AMOUNT, GET_FREE, LineAllocation,
    MalformedRuleError, PERCENTAGE,
)


def _unit_discount(rule: BuyXGetYRule, unit_price: Decimal) -> Money:
    if rule.get_discount_type == GET_FREE:
        return unit_price
    value = D(rule.get_discount_value)
    if rule.get_discount_type == PERCENTAGE:
        return unit_price * min(max(value, Decimal("0")), Decimal("100")) / Decimal("100")
    if rule.get_discount_type == FIXED_AMOUNT:
        # a fixed amount never takes a unit below zero
        return min(max(value, Decimal("0")), unit_price)
    raise MalformedRuleError(f"unknown get discount type {rule.get_discount_type!r}")


def allocate_buy_x_get_y(rule: BuyXGetYRule, lines) -> tuple[Money, list[LineAllocation]]:
    """
    Work out how many "get" units a cart earns and discount the cheapest ones.

    Every ``buy_quantity`` units on buy-eligible lines earn ``get_quantity``
    discounted units. Get-eligible lines are walked cheapest first so the
    customer always receives the largest possible benefit.
    Returns (total discount, per-line allocations).
    """
    if rule.buy_quantity < 1 or rule.get_quantity < 1:
        raise MalformedRuleError("buy and get quantities must be >= 1")

    lines: list[CartLine] = list(lines)
    buy_units = sum(l.quantity for l in lines if rule.is_buy_line(l))
    free_units = (buy_units // rule.buy_quantity) * rule.get_quantity
    if free_units == 0:
        return Decimal("0"), []

    # units on shared lines that must stay paid because they earned the reward
    reserved: dict[int, int] = {}
    if not rule.allow_overlap:
        needed = (buy_units // rule.buy_quantity) * rule.buy_quantity
        # consume buy units from the priciest shared lines first so cheap ones stay free
        shared = sorted(
            (i for i, l in enumerate(lines) if rule.is_buy_line(l) and rule.is_get_line(l)),
            key=lambda i: lines[i].unit_price, reverse=True,
        )
        pure_buy = sum(l.quantity for l in lines if rule.is_buy_line(l) and not rule.is_get_line(l))
        needed = max(0, needed - pure_buy)
        for i in shared:
            take = min(needed, lines[i].quantity)
            reserved[i] = take
            needed -= take

    candidates = sorted(
        (i for i, l in enumerate(lines) if rule.is_get_line(l)),
        key=lambda i: lines[i].unit_price,
    )

    total = Decimal("0")
    allocations: list[LineAllocation] = []
    remaining = free_units
    for i in candidates:
        if remaining <= 0:
            break
        line = lines[i]
        available = line.quantity - reserved.get(i, 0)
        units = min(remaining, available)
        if units <= 0:
            continue
        per_unit = _unit_discount(rule, line.unit_price)
        allocations.append(LineAllocation(
            product_id=line.product_id,
            quantity=units,
            unit_price=line.unit_price,
            unit_discount=per_unit,
        ))
        total += per_unit * units
        remaining -= units

    return total, allocations
