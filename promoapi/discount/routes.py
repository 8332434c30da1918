# promoapi/discount/routes.py
from flask import request

from . import bp
from ..extensions import db
from ..model import AutomaticDiscount
from ..services import discount_service as svc
from ..services.coupon_service import cart_from_payload
from ..utils.api import ok, err
from ..utils.decorators import current_user_id, role_at_least


@bp.post("")
@role_at_least("admin")
def create_discount():
    d = svc.create_automatic_discount(request.get_json(silent=True) or {}, created_by=current_user_id())
    return ok("Automatic discount created", d.as_api(), status=201)


@bp.get("")
@role_at_least("manager")
def list_discounts():
    active_only = (request.args.get("active") or "").lower() == "true"
    return ok("ok", {"discounts": [d.as_api() for d in svc.list_automatic_discounts(active_only)]})


@bp.delete("/<int:discount_id>")
@role_at_least("admin")
def deactivate_discount(discount_id):
    d = db.session.get(AutomaticDiscount, discount_id)
    if not d:
        return err("Automatic discount not found", 404)
    return ok("Automatic discount deactivated", svc.deactivate_automatic_discount(d).as_api())


@bp.post("/evaluate")
def evaluate_discounts():
    cart = cart_from_payload(request.get_json(silent=True) or {})
    combined = svc.evaluate_automatic_discounts(cart, user_id=current_user_id())
    return ok("ok", svc.combined_as_api(combined))
