# promoapi/services/discount_service.py
from __future__ import annotations
import logging

from ..discounts import CartSnapshot, CombinedDiscount, DiscountRule, MalformedRuleError, resolve_automatic_discounts
from ..discounts.types import BUY_X_GET_Y, DISCOUNT_TYPES, as_int
from ..extensions import db
from ..model import AutomaticDiscount, AutomaticDiscountCondition
from ..utils.dates import utcnow
from ..utils.money import D, money_out
from .coupon_service import (
    check_value, decode_conditions, group_resolver, parse_conditions, parse_flag, parse_money,
    parse_window, result_as_api,
)

logger = logging.getLogger(__name__)

# automatic discounts cannot be buy-x-get-y
AUTOMATIC_TYPES = tuple(t for t in DISCOUNT_TYPES if t != BUY_X_GET_Y)


def create_automatic_discount(data: dict, created_by=None) -> AutomaticDiscount:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValueError("name is required")
    dtype = (data.get("type") or "").strip().lower()
    if dtype not in AUTOMATIC_TYPES:
        raise ValueError(f"type must be one of {', '.join(AUTOMATIC_TYPES)}")
    value = parse_money(data, "value", required=True)
    check_value(dtype, value)
    valid_from, valid_until = parse_window(data)
    conditions = parse_conditions(data.get("conditions"))
    try:
        priority = as_int(data.get("priority", 0))
    except (TypeError, ValueError):
        raise ValueError("priority must be an integer")

    d = AutomaticDiscount(
        name=name, description=data.get("description"), type=dtype, value=value,
        minimum_order_amount=parse_money(data, "minimum_order_amount"),
        maximum_discount_amount=parse_money(data, "maximum_discount_amount"),
        priority=priority,
        is_active=parse_flag(data, "is_active", True),
        stackable=parse_flag(data, "stackable", False),
        valid_from=valid_from, valid_until=valid_until,
        created_by=created_by,
    )
    d.conditions = [AutomaticDiscountCondition(condition_type=t, condition_value=v, is_inclusive=i)
                    for t, v, i in conditions]
    db.session.add(d)
    db.session.commit()
    logger.info("automatic discount created id=%s priority=%s stackable=%s", d.id, d.priority, d.stackable)
    return d


def list_automatic_discounts(active_only=False) -> list[AutomaticDiscount]:
    q = AutomaticDiscount.query
    if active_only:
        q = q.filter(AutomaticDiscount.is_active.is_(True))
    return q.order_by(AutomaticDiscount.priority.desc(), AutomaticDiscount.id.asc()).all()


def deactivate_automatic_discount(d: AutomaticDiscount) -> AutomaticDiscount:
    d.is_active = False
    db.session.commit()
    return d


def rule_from_automatic(d: AutomaticDiscount) -> DiscountRule:
    config_error = None
    conditions = ()
    try:
        conditions = decode_conditions(d.conditions)
    except MalformedRuleError as e:
        logger.error("automatic discount %s has bad conditions: %s", d.id, e)
        config_error = str(e)
    return DiscountRule(
        id=d.id,
        name=d.name,
        discount_type=d.type,
        value=D(d.value),
        valid_from=d.valid_from,
        valid_until=d.valid_until,
        is_active=bool(d.is_active),
        minimum_order_amount=D(d.minimum_order_amount) if d.minimum_order_amount is not None else None,
        maximum_discount_amount=D(d.maximum_discount_amount) if d.maximum_discount_amount is not None else None,
        stackable=bool(d.stackable),
        priority=d.priority or 0,
        conditions=conditions,
        config_error=config_error,
    )


def evaluate_automatic_discounts(cart: CartSnapshot, user_id=None, now=None) -> CombinedDiscount:
    now = now or utcnow()
    rules = [rule_from_automatic(d) for d in AutomaticDiscount.query.filter(
        AutomaticDiscount.is_active.is_(True),
        AutomaticDiscount.valid_from <= now,
        AutomaticDiscount.valid_until >= now,
    )]
    return resolve_automatic_discounts(rules, cart, now, user_id=user_id,
                                       user_group_resolver=group_resolver())


def combined_as_api(combined: CombinedDiscount) -> dict:
    return {
        "discount_amount": money_out(combined.discount_amount),
        "free_shipping": combined.free_shipping,
        "applied": [dict(result_as_api(r), discount_id=r.rule_id) for r in combined.applied],
    }
