# --- promoapi/model/discount.py ---

from sqlalchemy.sql import func
from ..extensions import db
from ..utils.dates import iso
from ..utils.money import money_out


class AutomaticDiscount(db.Model):
    """Cart-level discount applied without a code."""
    __tablename__ = "automatic_discounts"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    type = db.Column(db.String(20), nullable=False)  # percentage | fixed_amount | free_shipping
    value = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    minimum_order_amount = db.Column(db.Numeric(10, 2), nullable=True)
    maximum_discount_amount = db.Column(db.Numeric(10, 2), nullable=True)
    priority = db.Column(db.Integer, nullable=False, default=0, index=True)  # higher applies first
    is_active = db.Column(db.Boolean, default=True, index=True)
    stackable = db.Column(db.Boolean, default=False)
    valid_from = db.Column(db.DateTime, nullable=False)
    valid_until = db.Column(db.DateTime, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True)
    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    conditions = db.relationship(
        "AutomaticDiscountCondition",
        back_populates="discount",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="AutomaticDiscountCondition.id.asc()",
    )

    def as_api(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "value": money_out(self.value),
            "minimum_order_amount": money_out(self.minimum_order_amount),
            "maximum_discount_amount": money_out(self.maximum_discount_amount),
            "priority": self.priority,
            "is_active": bool(self.is_active),
            "stackable": bool(self.stackable),
            "valid_from": iso(self.valid_from),
            "valid_until": iso(self.valid_until),
            "conditions": [c.as_api() for c in self.conditions],
        }


class AutomaticDiscountCondition(db.Model):
    __tablename__ = "automatic_discount_conditions"

    id = db.Column(db.Integer, primary_key=True)
    discount_id = db.Column(db.Integer, db.ForeignKey("automatic_discounts.id", ondelete="CASCADE"),
                            index=True, nullable=False)
    condition_type = db.Column(db.String(20), nullable=False)
    condition_value = db.Column(db.Text, nullable=False)
    is_inclusive = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, server_default=func.now())

    discount = db.relationship("AutomaticDiscount", back_populates="conditions")

    def as_api(self):
        return {
            "condition_type": self.condition_type,
            "condition_value": self.condition_value,
            "is_inclusive": bool(self.is_inclusive),
        }
