from flask import Blueprint, request, jsonify, g
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import Booking
from models.consultation import Consultation, CATEGORIES, CONSULTATION_TYPES, CURRENCIES, slugify
from models.feedback import ConsultationFeedback
from models.resource import ConsultationResource, RESOURCE_TYPES
from security.rbac import require_roles
from utils.audit import log_event
from utils.i18n import error_response
from utils.serializers import consultation_to_dict, feedback_to_dict, resource_to_dict

consultations_bp = Blueprint("consultations", __name__, url_prefix="/consultations")

EDITABLE_FIELDS = (
    "title", "title_en", "description", "description_en", "duration_minutes", "price",
    "original_price", "currency", "category", "consultation_type", "tags", "is_active",
    "requires_approval", "max_bookings_per_day", "display_order", "slug",
)


def _is_admin() -> bool:
    user = getattr(g, "user", None)
    return bool(user and user.is_admin)


def _int_in_range(value, low, high=None):
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    if value < low:
        return False
    return high is None or value <= high


def _validate(data: dict, partial: bool):
    """Returns a list of invalid field names."""
    bad = []

    def present(name):
        return name in data or not partial

    if present("title") and not (isinstance(data.get("title"), str) and data["title"].strip()):
        bad.append("title")
    if present("description") and not (isinstance(data.get("description"), str) and data["description"].strip()):
        bad.append("description")
    if present("duration_minutes") and not _int_in_range(data.get("duration_minutes"), 15, 480):
        bad.append("duration_minutes")
    if present("price") and not _int_in_range(data.get("price"), 0):
        bad.append("price")

    if data.get("original_price") is not None and not _int_in_range(data["original_price"], 0):
        bad.append("original_price")
    if "currency" in data and data["currency"] not in CURRENCIES:
        bad.append("currency")
    if "category" in data and data["category"] not in CATEGORIES:
        bad.append("category")
    if "consultation_type" in data and data["consultation_type"] not in CONSULTATION_TYPES:
        bad.append("consultation_type")
    if "max_bookings_per_day" in data and not _int_in_range(data["max_bookings_per_day"], 1):
        bad.append("max_bookings_per_day")
    if "display_order" in data and not _int_in_range(data["display_order"], 0):
        bad.append("display_order")
    if "tags" in data and not (
        isinstance(data["tags"], list) and all(isinstance(t, str) for t in data["tags"])
    ):
        bad.append("tags")
    for flag in ("is_active", "requires_approval"):
        if flag in data and not isinstance(data[flag], bool):
            bad.append(flag)
    return bad


def _lookup(ident: str):
    if ident.isdigit():
        return Consultation.query.get(int(ident))
    return Consultation.query.filter_by(slug=ident).first()


# ---------- PUBLIC: catalog ----------
@consultations_bp.get("")
def list_consultations():
    category = request.args.get("category")
    ctype = request.args.get("type")

    q = Consultation.query.filter_by(is_active=True)
    if category:
        q = q.filter_by(category=category)
    if ctype:
        q = q.filter_by(consultation_type=ctype)

    rows = q.order_by(Consultation.display_order.asc(), Consultation.created_at.desc()).all()
    return jsonify([consultation_to_dict(c) for c in rows]), 200


@consultations_bp.get("/popular")
def popular_consultations():
    limit = request.args.get("limit", type=int) or 5
    limit = max(1, min(limit, 20))

    rows = (
        Consultation.query
        .filter_by(is_active=True)
        .order_by(Consultation.total_bookings.desc(), Consultation.average_rating.desc())
        .limit(limit)
        .all()
    )
    return jsonify([consultation_to_dict(c) for c in rows]), 200


@consultations_bp.get("/<ident>")
def get_consultation(ident: str):
    c = _lookup(ident)
    admin = _is_admin()
    if not c or (not c.is_active and not admin):
        return error_response("consultation_not_found", 404)
    return jsonify(consultation_to_dict(c, admin=admin)), 200


@consultations_bp.get("/<int:consultation_id>/feedback")
def public_feedback(consultation_id: int):
    rows = (
        ConsultationFeedback.query
        .filter_by(consultation_id=consultation_id, is_public=True)
        .order_by(ConsultationFeedback.created_at.desc())
        .limit(100)
        .all()
    )
    return jsonify([feedback_to_dict(f) for f in rows]), 200


@consultations_bp.get("/<int:consultation_id>/resources")
def list_resources(consultation_id: int):
    c = Consultation.query.get(consultation_id)
    if not c:
        return error_response("consultation_not_found", 404)

    q = ConsultationResource.query.filter_by(consultation_id=consultation_id)
    user = getattr(g, "user", None)
    can_see_private = _is_admin() or (
        user is not None
        and Booking.query.filter(
            Booking.user_id == user.id,
            Booking.consultation_id == consultation_id,
            Booking.status.in_(("confirmed", "completed")),
        ).first() is not None
    )
    if not can_see_private:
        q = q.filter_by(is_public=True)

    rows = q.order_by(ConsultationResource.created_at.asc()).all()
    return jsonify([resource_to_dict(r) for r in rows]), 200


# ---------- ADMIN: manage catalog ----------
@consultations_bp.post("")
@require_roles("ADMIN")
def create_consultation():
    data = request.get_json(silent=True) or {}
    bad = _validate(data, partial=False)
    if bad:
        return error_response("validation_failed", 400, fields=bad)

    fields = {k: data[k] for k in EDITABLE_FIELDS if k in data}
    fields["slug"] = slugify(data.get("slug") or data.get("title_en") or data["title"])
    if Consultation.query.filter_by(slug=fields["slug"]).first():
        return error_response("slug_exists", 409)

    c = Consultation(**fields)
    db.session.add(c)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error_response("slug_exists", 409)

    log_event("CONSULTATION_CREATE", user_id=g.user.id, entity="consultation", entity_id=c.id)
    return jsonify(consultation_to_dict(c, admin=True)), 201


@consultations_bp.patch("/<int:consultation_id>")
@require_roles("ADMIN")
def update_consultation(consultation_id: int):
    c = Consultation.query.get(consultation_id)
    if not c:
        return error_response("consultation_not_found", 404)

    data = request.get_json(silent=True) or {}
    bad = _validate(data, partial=True)
    if bad:
        return error_response("validation_failed", 400, fields=bad)

    changed = [k for k in EDITABLE_FIELDS if k in data]
    for key in changed:
        setattr(c, key, data[key])
    if "slug" in data:
        c.slug = slugify(data["slug"])

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error_response("slug_exists", 409)

    log_event("CONSULTATION_UPDATE", user_id=g.user.id, entity="consultation", entity_id=c.id,
              metadata={"fields": changed})
    return jsonify(consultation_to_dict(c, admin=True)), 200


@consultations_bp.post("/<int:consultation_id>/deactivate")
@require_roles("ADMIN")
def deactivate_consultation(consultation_id: int):
    c = Consultation.query.get(consultation_id)
    if not c:
        return error_response("consultation_not_found", 404)

    c.is_active = False
    db.session.commit()

    log_event("CONSULTATION_DEACTIVATE", user_id=g.user.id, entity="consultation", entity_id=c.id)
    return jsonify(message="Consultation deactivated"), 200


@consultations_bp.delete("/<int:consultation_id>")
@require_roles("ADMIN")
def delete_consultation(consultation_id: int):
    c = Consultation.query.get(consultation_id)
    if not c:
        return error_response("consultation_not_found", 404)

    if Booking.query.filter_by(consultation_id=c.id).first():
        return error_response("consultation_in_use", 409)

    for slot in c.time_slots:
        db.session.delete(slot)
    ConsultationResource.query.filter_by(consultation_id=c.id).delete()
    db.session.delete(c)
    db.session.commit()

    log_event("CONSULTATION_DELETE", user_id=g.user.id, entity="consultation", entity_id=consultation_id)
    return jsonify(message="Consultation deleted"), 200


@consultations_bp.post("/<int:consultation_id>/resources")
@require_roles("ADMIN")
def create_resource(consultation_id: int):
    c = Consultation.query.get(consultation_id)
    if not c:
        return error_response("consultation_not_found", 404)

    data = request.get_json(silent=True) or {}
    title = (data.get("title") or "").strip()
    url = (data.get("url") or "").strip()
    rtype = data.get("type")
    if not title or not url or rtype not in RESOURCE_TYPES:
        return error_response("validation_failed", 400, fields=["title", "url", "type"])

    r = ConsultationResource(
        consultation_id=c.id,
        title=title,
        description=data.get("description"),
        type=rtype,
        url=url,
        is_public=bool(data.get("is_public", False)),
    )
    db.session.add(r)
    db.session.commit()

    log_event("RESOURCE_CREATE", user_id=g.user.id, entity="resource", entity_id=r.id)
    return jsonify(resource_to_dict(r)), 201


@consultations_bp.delete("/resources/<int:resource_id>")
@require_roles("ADMIN")
def delete_resource(resource_id: int):
    r = ConsultationResource.query.get(resource_id)
    if not r:
        return error_response("resource_not_found", 404)

    db.session.delete(r)
    db.session.commit()

    log_event("RESOURCE_DELETE", user_id=g.user.id, entity="resource", entity_id=resource_id)
    return jsonify(message="Resource deleted"), 200
