# ------ promoapi/model/__init__.py ------

from .user import User
from .coupon import Coupon, CouponCondition, BuyXGetYPromotion, CouponUsage, UserCoupon
from .discount import AutomaticDiscount, AutomaticDiscountCondition

__all__ = [
    "User",
    "Coupon",
    "CouponCondition",
    "BuyXGetYPromotion",
    "CouponUsage",
    "UserCoupon",
    "AutomaticDiscount",
    "AutomaticDiscountCondition",
]
