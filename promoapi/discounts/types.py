# promoapi/discounts/types.py
from __future__ import annotations
import json
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from ..utils.money import D, Money

# discount kinds
PERCENTAGE = "percentage"
FIXED_AMOUNT = "fixed_amount"
FREE_SHIPPING = "free_shipping"
BUY_X_GET_Y = "buy_x_get_y"
DISCOUNT_TYPES = (PERCENTAGE, FIXED_AMOUNT, FREE_SHIPPING, BUY_X_GET_Y)

# "get" side discount kinds of a buy-x-get-y rule
GET_FREE = "free"
GET_DISCOUNT_TYPES = (GET_FREE, PERCENTAGE, FIXED_AMOUNT)

# condition kinds as stored
COND_PRODUCT = "product"
COND_CATEGORY = "category"
COND_USER_GROUP = "user_group"
COND_MIN_QUANTITY = "minimum_quantity"
CONDITION_TYPES = (COND_PRODUCT, COND_CATEGORY, COND_USER_GROUP, COND_MIN_QUANTITY)


class MalformedRuleError(ValueError):
    """Stored discount rule data that cannot be turned into a usable rule."""


def as_int(raw) -> int:
    """Accept ints and integral strings only; 2.7 or True is not a quantity."""
    if isinstance(raw, bool):
        raise ValueError(f"not an integer: {raw!r}")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().lstrip("+-").isdigit():
        return int(raw)
    raise ValueError(f"not an integer: {raw!r}")


@dataclass(frozen=True)
class CartLine:
    product_id: int
    category_id: int | None
    quantity: int
    unit_price: Decimal

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        raw_price = data.get("price", data.get("unit_price"))
        try:
            if raw_price is None:
                raise ValueError("missing price")
            qty = as_int(data.get("quantity"))
            price = D(raw_price)
            pid = as_int(data.get("product_id"))
            cid = data.get("category_id")
            cid = as_int(cid) if cid is not None else None
        except (TypeError, ValueError, ArithmeticError):
            raise ValueError("cart items need integer product_id, quantity and numeric price")
        if qty < 1:
            raise ValueError("quantity must be >= 1")
        if price < 0:
            raise ValueError("price must be >= 0")
        return cls(product_id=pid, category_id=cid, quantity=qty, unit_price=price)


@dataclass(frozen=True)
class CartSnapshot:
    lines: tuple[CartLine, ...] = ()
    # caller-supplied total wins over the sum of lines (e.g. after item-level discounts)
    declared_total: Decimal | None = None

    @property
    def total(self) -> Money:
        if self.declared_total is not None:
            return D(self.declared_total)
        return sum((l.unit_price * l.quantity for l in self.lines), Decimal("0"))

    @property
    def total_quantity(self) -> int:
        return sum(l.quantity for l in self.lines)

    @classmethod
    def from_items(cls, items, total=None) -> "CartSnapshot":
        lines = tuple(CartLine.from_dict(i) for i in (items or []))
        return cls(lines=lines, declared_total=D(total) if total is not None else None)


# ---- conditions (decoded once when a rule is loaded) -----------------------

@dataclass(frozen=True)
class ProductCondition:
    ids: frozenset[int]
    inclusive: bool = True


@dataclass(frozen=True)
class CategoryCondition:
    ids: frozenset[int]
    inclusive: bool = True


@dataclass(frozen=True)
class MinQuantityCondition:
    threshold: int


@dataclass(frozen=True)
class UserGroupCondition:
    group_ids: frozenset[str]
    inclusive: bool = True


Condition = ProductCondition | CategoryCondition | MinQuantityCondition | UserGroupCondition


def _id_set(raw, cast=as_int) -> frozenset:
    items = raw if isinstance(raw, list) else [raw]
    return frozenset(cast(x) for x in items)


def decode_condition(condition_type: str, condition_value, inclusive: bool = True) -> Condition:
    """
    Turn a stored (type, serialized value) pair into a condition record.

    The stored value is a JSON document: a single id, a list of ids, or a
    number for ``minimum_quantity``. Raises MalformedRuleError on anything else.
    """
    try:
        value = json.loads(condition_value) if isinstance(condition_value, str) else condition_value
        if condition_type == COND_PRODUCT:
            return ProductCondition(ids=_id_set(value), inclusive=bool(inclusive))
        if condition_type == COND_CATEGORY:
            return CategoryCondition(ids=_id_set(value), inclusive=bool(inclusive))
        if condition_type == COND_MIN_QUANTITY:
            threshold = as_int(value)
            if threshold < 0:
                raise ValueError("negative threshold")
            return MinQuantityCondition(threshold=threshold)
        if condition_type == COND_USER_GROUP:
            return UserGroupCondition(group_ids=_id_set(value, str), inclusive=bool(inclusive))
    except (TypeError, ValueError) as e:
        raise MalformedRuleError(f"bad {condition_type} condition value {condition_value!r}: {e}") from e
    raise MalformedRuleError(f"unknown condition type {condition_type!r}")


def encode_condition(cond: Condition) -> tuple[str, str, bool]:
    if isinstance(cond, ProductCondition):
        return COND_PRODUCT, json.dumps(sorted(cond.ids)), cond.inclusive
    if isinstance(cond, CategoryCondition):
        return COND_CATEGORY, json.dumps(sorted(cond.ids)), cond.inclusive
    if isinstance(cond, MinQuantityCondition):
        return COND_MIN_QUANTITY, json.dumps(cond.threshold), True
    return COND_USER_GROUP, json.dumps(sorted(cond.group_ids)), cond.inclusive


# ---- rules -----------------------------------------------------------------

@dataclass(frozen=True)
class BuyXGetYRule:
    buy_quantity: int
    get_quantity: int
    buy_product_ids: frozenset[int] = frozenset()
    buy_category_ids: frozenset[int] = frozenset()
    get_product_ids: frozenset[int] = frozenset()
    get_category_ids: frozenset[int] = frozenset()
    get_discount_type: str = GET_FREE
    get_discount_value: Decimal = Decimal("0")
    # a line in both the buy and get sets may earn and receive free units
    allow_overlap: bool = True

    def is_buy_line(self, line: CartLine) -> bool:
        return line.product_id in self.buy_product_ids or line.category_id in self.buy_category_ids

    def is_get_line(self, line: CartLine) -> bool:
        return line.product_id in self.get_product_ids or line.category_id in self.get_category_ids


@dataclass(frozen=True)
class DiscountRule:
    """
    Everything the evaluator and calculator need to know about a coupon or
    an automatic discount. Automatic discounts have no code or usage caps and
    carry a priority instead.
    """
    id: int | None
    discount_type: str
    value: Decimal
    valid_from: datetime
    valid_until: datetime
    code: str | None = None
    name: str | None = None
    is_active: bool = True
    minimum_order_amount: Decimal | None = None
    maximum_discount_amount: Decimal | None = None
    usage_limit: int | None = None
    usage_count: int = 0
    user_usage_limit: int = 1
    stackable: bool = False
    first_time_customer_only: bool = False
    priority: int = 0
    conditions: tuple[Condition, ...] = ()
    buy_x_get_y: BuyXGetYRule | None = None
    # set when stored rule data failed to decode; the calculator then yields nothing
    config_error: str | None = None


# ---- results ---------------------------------------------------------------

@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    reason: str | None = None

    def __bool__(self):
        return self.eligible


@dataclass(frozen=True)
class LineAllocation:
    product_id: int
    quantity: int
    unit_price: Decimal
    unit_discount: Decimal

    @property
    def discounted_unit_price(self) -> Decimal:
        return self.unit_price - self.unit_discount

    @property
    def discount_amount(self) -> Decimal:
        return self.unit_discount * self.quantity


@dataclass(frozen=True)
class DiscountResult:
    is_valid: bool
    discount_amount: Decimal = Decimal("0")
    error_message: str | None = None
    allocations: tuple[LineAllocation, ...] = ()
    free_shipping: bool = False
    rule_id: int | None = None
    code: str | None = None

    @classmethod
    def invalid(cls, reason: str, rule: DiscountRule | None = None) -> "DiscountResult":
        return cls(is_valid=False, error_message=reason,
                   rule_id=rule.id if rule else None, code=rule.code if rule else None)


@dataclass(frozen=True)
class CombinedDiscount:
    """Outcome of folding several automatic discounts together."""
    discount_amount: Decimal = Decimal("0")
    free_shipping: bool = False
    applied: tuple[DiscountResult, ...] = field(default_factory=tuple)
