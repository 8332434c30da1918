# promoapi/services/coupon_service.py
from __future__ import annotations
import json
import logging
import re
from flask import current_app
from sqlalchemy import func, or_, select, update

from ..discounts import (
    BuyXGetYRule, CartSnapshot, DiscountResult, DiscountRule, MalformedRuleError,
    calculate, decode_condition, evaluate,
)
from ..discounts import eligibility
from ..discounts.types import (
    BUY_X_GET_Y, CONDITION_TYPES, DISCOUNT_TYPES, GET_DISCOUNT_TYPES, PERCENTAGE, as_int,
)
from ..extensions import db
from ..model import (
    BuyXGetYPromotion, Coupon, CouponCondition, CouponUsage, User, UserCoupon,
)
from ..utils.dates import parse_iso8601, utcnow
from ..utils.money import D, money_out, round_money

logger = logging.getLogger(__name__)

CODE_RE = re.compile(r"^[A-Z0-9_-]{3,50}$")
SORTABLE = {
    "created_at": Coupon.created_at,
    "name": Coupon.name,
    "code": Coupon.code,
    "usage_count": Coupon.usage_count,
    "valid_until": Coupon.valid_until,
}
UPDATABLE = (
    "name", "description", "value", "minimum_order_amount", "maximum_discount_amount",
    "usage_limit", "user_usage_limit", "is_active", "is_public", "stackable",
    "first_time_customer_only", "valid_from", "valid_until",
)


class DuplicateCodeError(ValueError):
    pass


def normalize_code(code) -> str:
    return (code or "").strip().upper()


# ---- payload parsing (shared with discount_service) ------------------------

def parse_money(data: dict, key: str, required=False):
    raw = data.get(key)
    if raw is None or raw == "":
        if required:
            raise ValueError(f"{key} is required")
        return None
    try:
        v = D(raw)
    except ValueError:
        raise ValueError(f"{key} must be numeric")
    if v < 0:
        raise ValueError(f"{key} must be non-negative")
    return v


def parse_int(data: dict, key: str, minimum: int, default=None):
    raw = data.get(key, default)
    if raw is None:
        return None
    try:
        v = as_int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer")
    if v < minimum:
        raise ValueError(f"{key} must be at least {minimum}")
    return v


def parse_flag(data: dict, key: str, default: bool) -> bool:
    raw = data.get(key, default)
    if not isinstance(raw, bool):
        raise ValueError(f"{key} must be true or false")
    return raw


def parse_window(data: dict, current_from=None, current_until=None):
    valid_from, valid_until = current_from, current_until
    if "valid_from" in data or current_from is None:
        valid_from = parse_iso8601(data.get("valid_from"))
        if not valid_from:
            raise ValueError("valid_from must be an ISO-8601 datetime")
    if "valid_until" in data or current_until is None:
        valid_until = parse_iso8601(data.get("valid_until"))
        if not valid_until:
            raise ValueError("valid_until must be an ISO-8601 datetime")
    if valid_from >= valid_until:
        raise ValueError("valid_from must be before valid_until")
    return valid_from, valid_until


def check_value(dtype: str, value):
    if dtype == PERCENTAGE and value > 100:
        raise ValueError("Percentage discount cannot exceed 100%")


def parse_conditions(items) -> list[tuple[str, str, bool]]:
    """Validate condition payloads and return (type, json text, inclusive) triples."""
    out = []
    for raw in items or []:
        ctype = (raw.get("condition_type") or "").strip().lower()
        if ctype not in CONDITION_TYPES:
            raise ValueError(f"condition_type must be one of {', '.join(CONDITION_TYPES)}")
        value = raw.get("condition_value")
        text = value if isinstance(value, str) else json.dumps(value)
        inclusive = parse_flag(raw, "is_inclusive", True)
        try:
            decode_condition(ctype, text, inclusive)
        except MalformedRuleError as e:
            raise ValueError(str(e))
        out.append((ctype, text, inclusive))
    return out


def decode_conditions(rows):
    return tuple(decode_condition(r.condition_type, r.condition_value, r.is_inclusive) for r in rows)


def _id_list(data: dict, key: str) -> list[int]:
    raw = data.get(key) or []
    try:
        return sorted({as_int(x) for x in raw})
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be a list of integers")


def _parse_buy_x_get_y(data) -> BuyXGetYPromotion:
    if not isinstance(data, dict):
        raise ValueError("buy_x_get_y rule is required for buy_x_get_y coupons")
    get_type = (data.get("get_discount_type") or "free").strip().lower()
    if get_type not in GET_DISCOUNT_TYPES:
        raise ValueError(f"get_discount_type must be one of {', '.join(GET_DISCOUNT_TYPES)}")
    get_value = parse_money(data, "get_discount_value") or D(0)
    check_value(get_type, get_value)
    promo = BuyXGetYPromotion(
        buy_quantity=parse_int(data, "buy_quantity", 1, default=0),
        get_quantity=parse_int(data, "get_quantity", 1, default=0),
        buy_product_ids=_id_list(data, "buy_product_ids"),
        get_product_ids=_id_list(data, "get_product_ids"),
        buy_category_ids=_id_list(data, "buy_category_ids"),
        get_category_ids=_id_list(data, "get_category_ids"),
        get_discount_type=get_type,
        get_discount_value=get_value,
        allow_overlap=parse_flag(data, "allow_overlap", True),
    )
    return promo


# ---- admin operations ------------------------------------------------------

def create_coupon_from_payload(data: dict, created_by=None) -> Coupon:
    code = normalize_code(data.get("code"))
    if not CODE_RE.match(code):
        raise ValueError("code must be 3-50 characters of letters, numbers, '_' or '-'")
    name = (data.get("name") or "").strip()
    if not name:
        raise ValueError("name is required")
    dtype = (data.get("type") or "").strip().lower()
    if dtype not in DISCOUNT_TYPES:
        raise ValueError(f"type must be one of {', '.join(DISCOUNT_TYPES)}")

    value = parse_money(data, "value", required=dtype != BUY_X_GET_Y) or D(0)
    check_value(dtype, value)
    valid_from, valid_until = parse_window(data)
    conditions = parse_conditions(data.get("conditions"))
    promo = _parse_buy_x_get_y(data.get("buy_x_get_y")) if dtype == BUY_X_GET_Y else None

    # unique case-insensitive
    if Coupon.query.filter(func.upper(Coupon.code) == code).first():
        raise DuplicateCodeError("Coupon code already exists")

    c = Coupon(
        code=code, name=name, description=data.get("description"),
        type=dtype, value=value,
        minimum_order_amount=parse_money(data, "minimum_order_amount"),
        maximum_discount_amount=parse_money(data, "maximum_discount_amount"),
        usage_limit=parse_int(data, "usage_limit", 1),
        usage_count=0,
        user_usage_limit=parse_int(data, "user_usage_limit", 1, default=1),
        is_active=parse_flag(data, "is_active", True),
        is_public=parse_flag(data, "is_public", True),
        stackable=parse_flag(data, "stackable", False),
        first_time_customer_only=parse_flag(data, "first_time_customer_only", False),
        valid_from=valid_from, valid_until=valid_until,
        created_by=created_by,
    )
    c.conditions = [CouponCondition(condition_type=t, condition_value=v, is_inclusive=i)
                    for t, v, i in conditions]
    c.buy_x_get_y = promo
    db.session.add(c)
    db.session.commit()
    logger.info("coupon created id=%s code=%s type=%s", c.id, c.code, c.type)
    return c


def update_coupon(c: Coupon, data: dict) -> Coupon:
    unknown = set(data) - set(UPDATABLE)
    if unknown:
        raise ValueError(f"cannot update: {', '.join(sorted(unknown))}")
    if "name" in data:
        if not (data.get("name") or "").strip():
            raise ValueError("name is required")
        c.name = data["name"].strip()
    if "description" in data:
        c.description = data.get("description")
    if "value" in data:
        value = parse_money(data, "value", required=True)
        check_value(c.type, value)
        c.value = value
    for key in ("minimum_order_amount", "maximum_discount_amount"):
        if key in data:
            setattr(c, key, parse_money(data, key))
    if "usage_limit" in data:
        limit = parse_int(data, "usage_limit", 1)
        if limit is not None and (c.usage_count or 0) > limit:
            raise ValueError("usage_limit cannot be below current usage_count")
        c.usage_limit = limit
    if "user_usage_limit" in data:
        c.user_usage_limit = parse_int(data, "user_usage_limit", 1)
    for key in ("is_active", "is_public", "stackable", "first_time_customer_only"):
        if key in data:
            setattr(c, key, parse_flag(data, key, False))
    if "valid_from" in data or "valid_until" in data:
        c.valid_from, c.valid_until = parse_window(data, c.valid_from, c.valid_until)
    db.session.commit()
    logger.info("coupon updated id=%s fields=%s", c.id, sorted(data))
    return c


def deactivate_coupon(c: Coupon) -> Coupon:
    # coupons are never deleted; usage history points at them
    c.is_active = False
    db.session.commit()
    logger.info("coupon deactivated id=%s code=%s", c.id, c.code)
    return c


def list_coupons(args) -> tuple[list[Coupon], int, int, int]:
    """Filter + paginate. Returns (items, total, page, limit)."""
    q = Coupon.query
    dtype = args.get("type")
    if dtype:
        if dtype not in DISCOUNT_TYPES:
            raise ValueError(f"type must be one of {', '.join(DISCOUNT_TYPES)}")
        q = q.filter(Coupon.type == dtype)
    active = args.get("active")
    if active is not None:
        q = q.filter(Coupon.is_active == (str(active).lower() == "true"))
    public = args.get("public")
    if public is not None:
        q = q.filter(Coupon.is_public == (str(public).lower() == "true"))
    search = (args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Coupon.code.ilike(like), Coupon.name.ilike(like)))

    sort_col = SORTABLE.get(args.get("sort_by") or "created_at")
    if sort_col is None:
        raise ValueError(f"sort_by must be one of {', '.join(SORTABLE)}")
    order = sort_col.asc() if (args.get("sort_order") or "desc").lower() == "asc" else sort_col.desc()

    try:
        page = max(1, int(args.get("page") or 1))
        limit = int(args.get("limit") or 10)
    except (TypeError, ValueError):
        raise ValueError("page and limit must be integers")
    limit = min(max(1, limit), current_app.config.get("MAX_PAGE_SIZE", 50))

    total = q.count()
    items = q.order_by(order, Coupon.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return items, total, page, limit


def get_coupon(coupon_id: int) -> Coupon | None:
    return db.session.get(Coupon, coupon_id)


def get_coupon_by_code(code) -> Coupon | None:
    code = normalize_code(code)
    if not code:
        return None
    return Coupon.query.filter(func.upper(Coupon.code) == code).first()


def assign_coupon_to_users(c: Coupon, user_ids, assigned_by=None) -> int:
    try:
        ids = {as_int(u) for u in user_ids or []}
    except (TypeError, ValueError):
        raise ValueError("user_ids must be a list of integers")
    if not ids:
        raise ValueError("At least one user ID is required")
    existing = {row.user_id for row in UserCoupon.query.filter(
        UserCoupon.coupon_id == c.id, UserCoupon.user_id.in_(ids))}
    added = 0
    for uid in sorted(ids - existing):
        db.session.add(UserCoupon(coupon_id=c.id, user_id=uid, assigned_by=assigned_by))
        added += 1
    db.session.commit()
    logger.info("coupon %s assigned to %d users (%d already assigned)", c.id, added, len(existing))
    return added


def available_coupons_for_user(user_id, now=None) -> list[Coupon]:
    now = now or utcnow()
    assigned = select(UserCoupon.coupon_id).where(
        UserCoupon.user_id == user_id, UserCoupon.is_used.is_(False))
    q = Coupon.query.filter(
        Coupon.is_active.is_(True),
        Coupon.valid_from <= now,
        Coupon.valid_until >= now,
        or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit),
        or_(Coupon.is_public.is_(True), Coupon.id.in_(assigned)),
    )
    return q.order_by(Coupon.valid_until.asc()).all()


def coupon_statistics(coupon_id=None, top=5) -> dict:
    usage_q = db.session.query(
        func.count(CouponUsage.id), func.coalesce(func.sum(CouponUsage.discount_amount), 0))
    if coupon_id is not None:
        usage_q = usage_q.filter(CouponUsage.coupon_id == coupon_id)
    total_usages, total_discount = usage_q.one()

    top_rows = (
        db.session.query(Coupon.id, Coupon.code, Coupon.usage_count)
        .filter(Coupon.usage_count > 0)
        .order_by(Coupon.usage_count.desc(), Coupon.id.asc())
        .limit(top)
        .all()
    )
    return {
        "total_coupons": Coupon.query.count(),
        "active_coupons": Coupon.query.filter(Coupon.is_active.is_(True)).count(),
        "total_usages": int(total_usages or 0),
        "total_discount_amount": money_out(D(total_discount)),
        "top_coupons": [{"id": i, "code": code, "usage_count": n} for i, code, n in top_rows],
    }


# ---- evaluation ------------------------------------------------------------

def cart_from_payload(data: dict) -> CartSnapshot:
    items = data.get("items")
    if items is None:
        items = data.get("cart_items")
    if not isinstance(items, list):
        raise ValueError("items must be a list")
    return CartSnapshot.from_items(items, data.get("cart_total"))


def rule_from_coupon(c: Coupon) -> DiscountRule:
    """Hydrate a coupon row into the immutable record the evaluator works on."""
    config_error = None
    conditions = ()
    bxgy = None
    try:
        conditions = decode_conditions(c.conditions)
        if c.buy_x_get_y is not None:
            p = c.buy_x_get_y
            bxgy = BuyXGetYRule(
                buy_quantity=int(p.buy_quantity or 0),
                get_quantity=int(p.get_quantity or 0),
                buy_product_ids=frozenset(p.buy_product_ids or ()),
                buy_category_ids=frozenset(p.buy_category_ids or ()),
                get_product_ids=frozenset(p.get_product_ids or ()),
                get_category_ids=frozenset(p.get_category_ids or ()),
                get_discount_type=p.get_discount_type,
                get_discount_value=D(p.get_discount_value),
                allow_overlap=bool(p.allow_overlap),
            )
            if bxgy.buy_quantity < 1 or bxgy.get_quantity < 1:
                raise MalformedRuleError("buy and get quantities must be >= 1")
        elif c.type == BUY_X_GET_Y:
            raise MalformedRuleError("buy_x_get_y coupon has no rule")
    except (MalformedRuleError, TypeError, ValueError) as e:
        logger.error("coupon %s (%s) has bad rule data: %s", c.id, c.code, e)
        config_error = str(e)

    return DiscountRule(
        id=c.id,
        code=c.code,
        name=c.name,
        discount_type=c.type,
        value=D(c.value),
        valid_from=c.valid_from,
        valid_until=c.valid_until,
        is_active=bool(c.is_active),
        minimum_order_amount=D(c.minimum_order_amount) if c.minimum_order_amount is not None else None,
        maximum_discount_amount=D(c.maximum_discount_amount) if c.maximum_discount_amount is not None else None,
        usage_limit=c.usage_limit,
        usage_count=c.usage_count or 0,
        user_usage_limit=c.user_usage_limit or 1,
        stackable=bool(c.stackable),
        first_time_customer_only=bool(c.first_time_customer_only),
        conditions=conditions,
        buy_x_get_y=bxgy,
        config_error=config_error,
    )


def user_groups_from_db(user_id, group_ids) -> bool:
    user = db.session.get(User, int(user_id))
    return bool(user and set(user.groups or ()) & set(group_ids))


def group_resolver():
    # without resolution enabled user_group conditions always pass
    if current_app.config.get("RESOLVE_USER_GROUPS"):
        return user_groups_from_db
    return None


def user_usage_count(coupon_id: int, user_id) -> int:
    return CouponUsage.query.filter_by(coupon_id=coupon_id, user_id=user_id).count()


def validate_coupon(code, cart: CartSnapshot, user_id=None, has_prior_orders=None,
                    now=None) -> DiscountResult:
    c = get_coupon_by_code(code)
    if not c:
        return DiscountResult.invalid(eligibility.NOT_FOUND)
    return _evaluate_coupon(c, cart, user_id, has_prior_orders, now or utcnow())


def _evaluate_coupon(c: Coupon, cart, user_id, has_prior_orders, now) -> DiscountResult:
    rule = rule_from_coupon(c)
    used = user_usage_count(c.id, user_id) if user_id is not None else None
    verdict = evaluate(rule, cart, now, user_usage_count=used, user_id=user_id,
                       has_prior_orders=has_prior_orders, user_group_resolver=group_resolver())
    if not verdict:
        return DiscountResult.invalid(verdict.reason, rule)
    return calculate(rule, cart)


def redeem_coupon(code, cart: CartSnapshot, user_id=None, order_id=None,
                  has_prior_orders=None, now=None) -> DiscountResult:
    """
    Validate, then claim one usage slot with a guarded UPDATE so two checkouts
    racing for the last slot cannot both succeed. Records the usage event.
    """
    c = get_coupon_by_code(code)
    if not c:
        return DiscountResult.invalid(eligibility.NOT_FOUND)
    result = _evaluate_coupon(c, cart, user_id, has_prior_orders, now or utcnow())
    if not result.is_valid:
        logger.info("redemption of %s rejected: %s", c.code, result.error_message)
        return result

    stmt = (
        update(Coupon)
        .where(Coupon.id == c.id)
        .where(or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit))
        .values(usage_count=Coupon.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount != 1:
        db.session.rollback()
        logger.warning("coupon %s lost its last usage slot to a concurrent redemption", c.code)
        return DiscountResult.invalid(eligibility.USAGE_LIMIT_EXCEEDED)

    db.session.add(CouponUsage(
        coupon_id=c.id, user_id=user_id, order_id=order_id,
        discount_amount=round_money(result.discount_amount), original_amount=round_money(cart.total),
    ))
    if user_id is not None:
        UserCoupon.query.filter_by(coupon_id=c.id, user_id=user_id, is_used=False).update(
            {"is_used": True, "used_at": now or utcnow()}, synchronize_session=False)
    db.session.commit()
    logger.info("coupon %s redeemed user=%s order=%s discount=%s",
                c.code, user_id, order_id, result.discount_amount)
    return result


def result_as_api(result: DiscountResult) -> dict:
    return {
        "is_valid": result.is_valid,
        "error_message": result.error_message,
        "code": result.code,
        "discount_amount": money_out(result.discount_amount),
        "free_shipping": result.free_shipping,
        "applicable_items": [
            {
                "product_id": a.product_id,
                "quantity": a.quantity,
                "original_price": money_out(a.unit_price),
                "discounted_price": money_out(a.discounted_unit_price),
                "discount_amount": money_out(a.discount_amount),
            }
            for a in result.allocations
        ],
    }
