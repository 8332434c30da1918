"""
Builders for discount rules and carts used across the test suite.
"""
from datetime import datetime
from decimal import Decimal

from promoapi.discounts import BuyXGetYRule, CartLine, CartSnapshot, DiscountRule

NOW = datetime(2025, 6, 15, 12, 0, 0)
WINDOW_FROM = datetime(2025, 1, 1)
WINDOW_UNTIL = datetime(2025, 12, 31, 23, 59, 59)


def make_rule(**overrides) -> DiscountRule:
    fields = dict(
        id=1,
        code="SAVE20",
        discount_type="percentage",
        value=Decimal("20"),
        valid_from=WINDOW_FROM,
        valid_until=WINDOW_UNTIL,
    )
    fields.update(overrides)
    for key in ("value", "minimum_order_amount", "maximum_discount_amount"):
        if fields.get(key) is not None:
            fields[key] = Decimal(str(fields[key]))
    return DiscountRule(**fields)


def make_bxgy(buy=2, get=1, buy_products=(), get_products=(), buy_categories=(),
              get_categories=(), get_type="free", get_value=0, allow_overlap=True) -> BuyXGetYRule:
    return BuyXGetYRule(
        buy_quantity=buy,
        get_quantity=get,
        buy_product_ids=frozenset(buy_products),
        get_product_ids=frozenset(get_products),
        buy_category_ids=frozenset(buy_categories),
        get_category_ids=frozenset(get_categories),
        get_discount_type=get_type,
        get_discount_value=Decimal(str(get_value)),
        allow_overlap=allow_overlap,
    )


def line(product_id, quantity, price, category_id=None) -> CartLine:
    return CartLine(product_id=product_id, category_id=category_id,
                    quantity=quantity, unit_price=Decimal(str(price)))


def cart(*lines, total=None) -> CartSnapshot:
    return CartSnapshot(lines=tuple(lines),
                        declared_total=Decimal(str(total)) if total is not None else None)
