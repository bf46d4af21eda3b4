from datetime import datetime

from flask import Blueprint, request, jsonify, g
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import Booking
from models.consultation import Consultation, format_price
from models.coupon import Coupon, CouponRedemption, DISCOUNT_TYPES, APPLICABLE_TO
from security.rate_limit import check_coupon_rate
from security.rbac import require_roles
from utils.audit import log_event
from utils.auth_context import login_required
from utils.coupons import calculate_discount, check_coupon, find_valid_coupon, normalize_code
from utils.i18n import error_response
from utils.serializers import coupon_to_dict

coupons_bp = Blueprint("coupons", __name__, url_prefix="/coupons")


def _coupon_fields(data: dict, partial: bool):
    """Returns (fields, bad_field_names)."""
    fields, bad = {}, []

    def present(name):
        return name in data or not partial

    if present("code"):
        code = normalize_code(data.get("code"))
        if not code or len(code) > 40:
            bad.append("code")
        fields["code"] = code
    if present("discount_type"):
        if data.get("discount_type") not in DISCOUNT_TYPES:
            bad.append("discount_type")
        fields["discount_type"] = data.get("discount_type")
    if present("discount_value"):
        value = data.get("discount_value")
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            bad.append("discount_value")
        fields["discount_value"] = value

    for name in ("valid_from", "valid_until"):
        if name in data or (name == "valid_until" and not partial):
            try:
                fields[name] = datetime.fromisoformat(data.get(name) or "")
            except (TypeError, ValueError):
                bad.append(name)

    if "max_uses" in data:
        value = data["max_uses"]
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 1):
            bad.append("max_uses")
        fields["max_uses"] = value
    if "applicable_to" in data:
        if data["applicable_to"] not in APPLICABLE_TO:
            bad.append("applicable_to")
        fields["applicable_to"] = data["applicable_to"]
    if "consultation_ids" in data:
        ids = data["consultation_ids"]
        if not isinstance(ids, list) or not all(isinstance(i, int) for i in ids):
            bad.append("consultation_ids")
        fields["consultation_ids"] = ids
    if "min_purchase_amount" in data:
        value = data["min_purchase_amount"]
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            bad.append("min_purchase_amount")
        fields["min_purchase_amount"] = value
    if "is_active" in data:
        if not isinstance(data["is_active"], bool):
            bad.append("is_active")
        fields["is_active"] = data["is_active"]

    if fields.get("discount_type") == "percentage" and isinstance(fields.get("discount_value"), int):
        fields["discount_value"] = min(fields["discount_value"], 100)
    return fields, bad


# ---------- CLIENTS: validate a code ----------
@coupons_bp.post("/validate")
@login_required
def validate_coupon():
    allowed, retry_after = check_coupon_rate(g.user.id)
    if not allowed:
        log_event("COUPON_RATE_LIMIT", user_id=g.user.id, metadata={"retry_after": retry_after})
        return error_response("rate_limited", 429, retry_after_seconds=retry_after)

    data = request.get_json(silent=True) or {}
    consultation_id = data.get("consultation_id")
    if isinstance(consultation_id, bool) or not isinstance(consultation_id, int):
        return error_response("validation_failed", 400, fields=["consultation_id"])
    consultation = Consultation.query.get(consultation_id)
    if not consultation or not consultation.is_active:
        return error_response("consultation_not_found", 404)

    coupon = find_valid_coupon(data.get("code"))
    if not coupon:
        return error_response("coupon_invalid", 400)
    problem = check_coupon(coupon, consultation, g.user.id, consultation.price)
    if problem:
        return error_response(problem, 400)

    discount = calculate_discount(coupon, consultation.price)
    final = consultation.price - discount
    return jsonify(
        valid=True,
        code=coupon.code,
        discount_type=coupon.discount_type,
        discount_value=coupon.discount_value,
        discount_amount=discount,
        original_amount=consultation.price,
        final_amount=final,
        currency=consultation.currency,
        formatted_final_amount=format_price(final, consultation.currency),
    ), 200


# ---------- ADMIN ----------
@coupons_bp.post("")
@require_roles("ADMIN")
def create_coupon():
    data = request.get_json(silent=True) or {}
    fields, bad = _coupon_fields(data, partial=False)
    if bad:
        return error_response("validation_failed", 400, fields=bad)
    if fields.get("valid_from") and fields["valid_until"] <= fields["valid_from"]:
        return error_response("validation_failed", 400, fields=["valid_until"])

    coupon = Coupon(created_by=g.user.id, **fields)
    db.session.add(coupon)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error_response("coupon_exists", 409)

    log_event("COUPON_CREATE", user_id=g.user.id, entity="coupon", entity_id=coupon.id,
              metadata={"code": coupon.code})
    return jsonify(coupon_to_dict(coupon)), 201


@coupons_bp.get("")
@require_roles("ADMIN")
def list_coupons():
    q = Coupon.query
    active = request.args.get("active")
    if active in ("1", "true"):
        q = q.filter_by(is_active=True)
    elif active in ("0", "false"):
        q = q.filter_by(is_active=False)
    rows = q.order_by(Coupon.created_at.desc()).limit(200).all()
    return jsonify([coupon_to_dict(c) for c in rows]), 200


@coupons_bp.patch("/<int:coupon_id>")
@require_roles("ADMIN")
def update_coupon(coupon_id: int):
    coupon = Coupon.query.get(coupon_id)
    if not coupon:
        return error_response("coupon_not_found", 404)

    data = request.get_json(silent=True) or {}
    fields, bad = _coupon_fields(data, partial=True)
    if bad:
        return error_response("validation_failed", 400, fields=bad)

    for key, value in fields.items():
        setattr(coupon, key, value)
    if coupon.discount_type == "percentage":
        coupon.discount_value = min(coupon.discount_value, 100)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error_response("coupon_exists", 409)

    log_event("COUPON_UPDATE", user_id=g.user.id, entity="coupon", entity_id=coupon.id,
              metadata={"fields": sorted(fields)})
    return jsonify(coupon_to_dict(coupon)), 200


@coupons_bp.post("/<int:coupon_id>/deactivate")
@require_roles("ADMIN")
def deactivate_coupon(coupon_id: int):
    coupon = Coupon.query.get(coupon_id)
    if not coupon:
        return error_response("coupon_not_found", 404)

    coupon.is_active = False
    db.session.commit()

    log_event("COUPON_DEACTIVATE", user_id=g.user.id, entity="coupon", entity_id=coupon.id)
    return jsonify(message="Coupon deactivated"), 200


@coupons_bp.get("/<int:coupon_id>/stats")
@require_roles("ADMIN")
def coupon_stats(coupon_id: int):
    coupon = Coupon.query.get(coupon_id)
    if not coupon:
        return error_response("coupon_not_found", 404)

    totals = (
        db.session.query(Booking.currency, func.sum(Booking.discount_amount), func.count(Booking.id))
        .join(CouponRedemption, CouponRedemption.booking_id == Booking.id)
        .filter(CouponRedemption.coupon_id == coupon.id)
        .group_by(Booking.currency)
        .all()
    )
    remaining = None if coupon.max_uses is None else max(coupon.max_uses - coupon.used_count, 0)
    return jsonify(
        coupon=coupon_to_dict(coupon),
        used_count=coupon.used_count,
        remaining_uses=remaining,
        discount_given={currency: int(total or 0) for currency, total, _ in totals},
        redemptions={currency: count for currency, _, count in totals},
    ), 200
