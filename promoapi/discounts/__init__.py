# ------ promoapi/discounts/__init__.py ------
# Pure coupon / automatic discount evaluation. Nothing in here touches
# Flask or the database.

from .types import (
    BuyXGetYRule, CartLine, CartSnapshot, CategoryCondition, CombinedDiscount,
    DiscountResult, DiscountRule, EligibilityResult, LineAllocation,
    MalformedRuleError, MinQuantityCondition, ProductCondition, UserGroupCondition,
    decode_condition, encode_condition,
)
from .eligibility import evaluate
from .calculator import calculate
from .bxgy import allocate_buy_x_get_y
from .stacking import combine, resolve_automatic_discounts

__all__ = [
    "BuyXGetYRule",
    "CartLine",
    "CartSnapshot",
    "CategoryCondition",
    "CombinedDiscount",
    "DiscountResult",
    "DiscountRule",
    "EligibilityResult",
    "LineAllocation",
    "MalformedRuleError",
    "MinQuantityCondition",
    "ProductCondition",
    "UserGroupCondition",
    "decode_condition",
    "encode_condition",
    "evaluate",
    "calculate",
    "allocate_buy_x_get_y",
    "combine",
    "resolve_automatic_discounts",
]
