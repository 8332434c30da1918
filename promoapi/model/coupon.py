# --- promoapi/model/coupon.py ---

from sqlalchemy.sql import func
from ..extensions import db
from ..utils.dates import iso
from ..utils.money import money_out


class Coupon(db.Model):
    __tablename__ = "coupons"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False, index=True)  # stored uppercase
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # "percentage" | "fixed_amount" | "free_shipping" | "buy_x_get_y"
    type = db.Column(db.String(20), nullable=False, index=True)
    value = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    minimum_order_amount = db.Column(db.Numeric(10, 2), nullable=True)
    maximum_discount_amount = db.Column(db.Numeric(10, 2), nullable=True)
    usage_limit = db.Column(db.Integer, nullable=True)            # null = unlimited
    usage_count = db.Column(db.Integer, nullable=False, default=0)
    user_usage_limit = db.Column(db.Integer, nullable=False, default=1)

    is_active = db.Column(db.Boolean, default=True, index=True)
    is_public = db.Column(db.Boolean, default=True)                # false = targeted
    stackable = db.Column(db.Boolean, default=False)
    first_time_customer_only = db.Column(db.Boolean, default=False)

    valid_from = db.Column(db.DateTime, nullable=False)
    valid_until = db.Column(db.DateTime, nullable=False)

    created_by = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True)
    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    conditions = db.relationship(
        "CouponCondition",
        back_populates="coupon",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CouponCondition.id.asc()",
    )
    buy_x_get_y = db.relationship(
        "BuyXGetYPromotion",
        back_populates="coupon",
        cascade="all, delete-orphan",
        uselist=False,
        lazy="selectin",
    )

    __table_args__ = (
        db.Index("idx_coupons_validity", "valid_from", "valid_until"),
    )

    def as_api(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "value": money_out(self.value),
            "minimum_order_amount": money_out(self.minimum_order_amount),
            "maximum_discount_amount": money_out(self.maximum_discount_amount),
            "usage_limit": self.usage_limit,
            "usage_count": self.usage_count or 0,
            "user_usage_limit": self.user_usage_limit,
            "is_active": bool(self.is_active),
            "is_public": bool(self.is_public),
            "stackable": bool(self.stackable),
            "first_time_customer_only": bool(self.first_time_customer_only),
            "valid_from": iso(self.valid_from),
            "valid_until": iso(self.valid_until),
            "conditions": [c.as_api() for c in self.conditions],
            "buy_x_get_y": self.buy_x_get_y.as_api() if self.buy_x_get_y else None,
            "created_at": iso(self.created_at),
        }


class CouponCondition(db.Model):
    __tablename__ = "coupon_conditions"

    id = db.Column(db.Integer, primary_key=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id", ondelete="CASCADE"), index=True, nullable=False)
    # "product" | "category" | "user_group" | "minimum_quantity"
    condition_type = db.Column(db.String(20), nullable=False, index=True)
    condition_value = db.Column(db.Text, nullable=False)      # JSON text
    is_inclusive = db.Column(db.Boolean, default=True)          # false = exclude
    created_at = db.Column(db.DateTime, server_default=func.now())

    coupon = db.relationship("Coupon", back_populates="conditions")

    def as_api(self):
        return {
            "condition_type": self.condition_type,
            "condition_value": self.condition_value,
            "is_inclusive": bool(self.is_inclusive),
        }


class BuyXGetYPromotion(db.Model):
    __tablename__ = "buy_x_get_y_promotions"

    id = db.Column(db.Integer, primary_key=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id", ondelete="CASCADE"),
                          index=True, unique=True, nullable=False)
    buy_quantity = db.Column(db.Integer, nullable=False)
    get_quantity = db.Column(db.Integer, nullable=False)
    buy_product_ids = db.Column(db.JSON, nullable=True)
    get_product_ids = db.Column(db.JSON, nullable=True)
    buy_category_ids = db.Column(db.JSON, nullable=True)
    get_category_ids = db.Column(db.JSON, nullable=True)
    get_discount_type = db.Column(db.String(20), nullable=False, default="free")  # free | percentage | fixed_amount
    get_discount_value = db.Column(db.Numeric(10, 2), default=0)
    allow_overlap = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, server_default=func.now())

    coupon = db.relationship("Coupon", back_populates="buy_x_get_y")

    def as_api(self):
        return {
            "buy_quantity": self.buy_quantity,
            "get_quantity": self.get_quantity,
            "buy_product_ids": self.buy_product_ids or [],
            "get_product_ids": self.get_product_ids or [],
            "buy_category_ids": self.buy_category_ids or [],
            "get_category_ids": self.get_category_ids or [],
            "get_discount_type": self.get_discount_type,
            "get_discount_value": money_out(self.get_discount_value),
            "allow_overlap": bool(self.allow_overlap),
        }


class CouponUsage(db.Model):
    __tablename__ = "coupon_usages"

    id = db.Column(db.Integer, primary_key=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), index=True, nullable=False)
    user_id = db.Column(db.Integer, index=True, nullable=True)
    order_id = db.Column(db.Integer, index=True, nullable=True)   # order lives elsewhere; not a FK
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False)
    original_amount = db.Column(db.Numeric(10, 2), nullable=False)
    used_at = db.Column(db.DateTime, server_default=func.now())

    def as_api(self):
        return {
            "id": self.id,
            "coupon_id": self.coupon_id,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "discount_amount": money_out(self.discount_amount),
            "original_amount": money_out(self.original_amount),
            "used_at": iso(self.used_at),
        }


class UserCoupon(db.Model):
    """A targeted coupon handed to one user."""
    __tablename__ = "user_coupons"

    id = db.Column(db.Integer, primary_key=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False)
    user_id = db.Column(db.Integer, index=True, nullable=False)
    assigned_by = db.Column(db.Integer, nullable=True)
    assigned_at = db.Column(db.DateTime, server_default=func.now())
    used_at = db.Column(db.DateTime, nullable=True)
    is_used = db.Column(db.Boolean, default=False)

    coupon = db.relationship("Coupon", lazy="joined")

    __table_args__ = (
        db.UniqueConstraint("coupon_id", "user_id", name="uq_user_coupons_coupon_user"),
    )
