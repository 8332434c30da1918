# promoapi/coupon/routes.py
from __future__ import annotations
from flask import request
from flask_jwt_extended import jwt_required

from . import bp
from ..discounts.eligibility import USAGE_LIMIT_EXCEEDED
from ..services import coupon_service as svc
from ..utils.api import ok, err
from ..utils.decorators import current_user_id, role_at_least


def _coupon_or_404(coupon_id: int):
    c = svc.get_coupon(coupon_id)
    if not c:
        return None, err("Coupon not found", 404)
    return c, None


@bp.post("")
@role_at_least("admin")
def create_coupon():
    data = request.get_json(silent=True) or {}
    c = svc.create_coupon_from_payload(data, created_by=current_user_id())
    return ok("Coupon created", c.as_api(), status=201)


@bp.get("")
@role_at_least("manager")
def list_coupons():
    items, total, page, limit = svc.list_coupons(request.args)
    return ok("ok", {
        "coupons": [c.as_api() for c in items],
        "pagination": {"page": page, "limit": limit, "total": total,
                       "pages": (total + limit - 1) // limit},
    })


@bp.get("/public")
def public_coupons():
    try:
        limit = int(request.args.get("limit") or 10)
    except ValueError:
        return err("limit must be an integer", 400)
    items, _, _, _ = svc.list_coupons({"active": "true", "public": "true", "limit": limit})
    return ok("ok", {"coupons": [c.as_api() for c in items]})


@bp.get("/me")
@jwt_required()
def my_coupons():
    items = svc.available_coupons_for_user(current_user_id())
    return ok("ok", {"coupons": [c.as_api() for c in items]})


@bp.get("/stats")
@role_at_least("admin")
def coupon_stats():
    coupon_id = request.args.get("coupon_id", type=int)
    return ok("ok", svc.coupon_statistics(coupon_id))


@bp.get("/<int:coupon_id>")
@role_at_least("manager")
def get_coupon(coupon_id):
    c, resp = _coupon_or_404(coupon_id)
    if resp:
        return resp
    return ok("ok", c.as_api())


@bp.patch("/<int:coupon_id>")
@role_at_least("admin")
def update_coupon(coupon_id):
    c, resp = _coupon_or_404(coupon_id)
    if resp:
        return resp
    c = svc.update_coupon(c, request.get_json(silent=True) or {})
    return ok("Coupon updated", c.as_api())


@bp.delete("/<int:coupon_id>")
@role_at_least("admin")
def deactivate_coupon(coupon_id):
    c, resp = _coupon_or_404(coupon_id)
    if resp:
        return resp
    c = svc.deactivate_coupon(c)
    return ok("Coupon deactivated", c.as_api())


@bp.post("/<int:coupon_id>/assign")
@role_at_least("admin")
def assign_coupon(coupon_id):
    c, resp = _coupon_or_404(coupon_id)
    if resp:
        return resp
    data = request.get_json(silent=True) or {}
    added = svc.assign_coupon_to_users(c, data.get("user_ids"), assigned_by=current_user_id())
    return ok("Coupon assigned to users", {"coupon_id": c.id, "assigned": added})


@bp.post("/validate")
def validate_coupon():
    data = request.get_json(silent=True) or {}
    code = data.get("code") or data.get("coupon_code")
    if not code:
        return err("code is required", 400)
    cart = svc.cart_from_payload(data)
    result = svc.validate_coupon(code, cart, user_id=current_user_id(),
                                 has_prior_orders=data.get("has_prior_orders"))
    if not result.is_valid:
        return err(result.error_message, 400, svc.result_as_api(result))
    return ok("Coupon is valid", svc.result_as_api(result))


@bp.post("/redeem")
def redeem_coupon():
    data = request.get_json(silent=True) or {}
    code = data.get("code") or data.get("coupon_code")
    if not code:
        return err("code is required", 400)
    order_id = data.get("order_id")
    if order_id is not None and not isinstance(order_id, int):
        return err("order_id must be an integer", 400)
    cart = svc.cart_from_payload(data)
    result = svc.redeem_coupon(code, cart, user_id=current_user_id(), order_id=order_id,
                               has_prior_orders=data.get("has_prior_orders"))
    if not result.is_valid:
        status = 409 if result.error_message == USAGE_LIMIT_EXCEEDED else 400
        return err(result.error_message, status, svc.result_as_api(result))
    return ok("Coupon redeemed", svc.result_as_api(result))
