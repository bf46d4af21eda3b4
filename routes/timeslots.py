from datetime import datetime, timedelta, date, time

from flask import Blueprint, request, jsonify, g
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import Booking
from models.consultation import Consultation
from models.time_slot import TimeSlot
from security.rbac import require_roles
from utils.audit import log_event
from utils.i18n import error_response
from utils.serializers import slot_to_dict
from utils.slots import parse_day

timeslots_bp = Blueprint("timeslots", __name__)

MAX_GENERATE_DAYS = 92


def _parse_iso(dt_str: str):
    # ISO like "2026-01-20T18:00:00", stored as naive UTC
    return datetime.fromisoformat(dt_str)


def _parse_times(values):
    out = []
    for value in values or []:
        out.append(time.fromisoformat(value))
    return out


# ---------- PUBLIC: available slots ----------
@timeslots_bp.get("/consultations/<int:consultation_id>/slots")
def list_available_slots(consultation_id: int):
    c = Consultation.query.get(consultation_id)
    if not c or not c.is_active:
        return error_response("consultation_not_found", 404)

    q = TimeSlot.query.filter(
        TimeSlot.consultation_id == consultation_id,
        TimeSlot.is_active.is_(True),
        TimeSlot.is_available.is_(True),
        TimeSlot.start_time > datetime.utcnow(),
    )

    date_str = request.args.get("date")
    if date_str:
        try:
            start, end = parse_day(date_str)
        except ValueError:
            return error_response("invalid_date", 400)
        q = q.filter(TimeSlot.start_time >= start, TimeSlot.start_time < end)

    slots = q.order_by(TimeSlot.start_time.asc()).all()
    return jsonify([slot_to_dict(s) for s in slots]), 200


# ---------- ADMIN: create slots ----------
@timeslots_bp.post("/slots")
@require_roles("ADMIN")
def create_slot():
    data = request.get_json(silent=True) or {}
    consultation_id = data.get("consultation_id")
    start_time = data.get("start_time")
    if isinstance(consultation_id, bool) or not isinstance(consultation_id, int) or not start_time:
        return error_response("validation_failed", 400, fields=["consultation_id", "start_time"])

    c = Consultation.query.get(consultation_id)
    if not c:
        return error_response("consultation_not_found", 404)

    try:
        st = _parse_iso(start_time)
        et = _parse_iso(data["end_time"]) if data.get("end_time") else st + timedelta(minutes=c.duration_minutes)
    except (TypeError, ValueError):
        return error_response("invalid_datetime", 400)

    if et <= st:
        return error_response("slot_order", 400)
    if st <= datetime.utcnow():
        return error_response("slot_in_past", 400)

    slot = TimeSlot(consultation_id=c.id, start_time=st, end_time=et)
    db.session.add(slot)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error_response("slot_exists", 409)

    log_event("SLOT_CREATE", user_id=g.user.id, entity="slot", entity_id=slot.id)
    return jsonify(slot_to_dict(slot)), 201


@timeslots_bp.post("/slots/generate")
@require_roles("ADMIN")
def generate_slots():
    """Create one slot per day and time between start_date and end_date.

    Body: consultation_id, start_date, end_date (YYYY-MM-DD), times
    (["09:00", "14:30"]), optional weekdays (0=Monday).
    """
    data = request.get_json(silent=True) or {}
    consultation_id = data.get("consultation_id")
    if isinstance(consultation_id, bool) or not isinstance(consultation_id, int):
        return error_response("validation_failed", 400, fields=["consultation_id"])
    c = Consultation.query.get(consultation_id)
    if not c:
        return error_response("consultation_not_found", 404)

    try:
        first = date.fromisoformat(data.get("start_date") or "")
        last = date.fromisoformat(data.get("end_date") or "")
        times = _parse_times(data.get("times"))
    except (TypeError, ValueError):
        return error_response("invalid_date", 400)

    weekdays = data.get("weekdays")
    if weekdays is not None and not (
        isinstance(weekdays, list) and all(isinstance(d, int) and 0 <= d <= 6 for d in weekdays)
    ):
        return error_response("validation_failed", 400, fields=["weekdays"])

    if not times or last < first or (last - first).days >= MAX_GENERATE_DAYS:
        return error_response("validation_failed", 400, fields=["start_date", "end_date", "times"])

    now = datetime.utcnow()
    existing = {
        s.start_time
        for s in TimeSlot.query.filter(
            TimeSlot.consultation_id == c.id,
            TimeSlot.start_time >= datetime.combine(first, time.min),
            TimeSlot.start_time < datetime.combine(last + timedelta(days=1), time.min),
        )
    }

    created = skipped = 0
    day = first
    while day <= last:
        if weekdays is None or day.weekday() in weekdays:
            for t in times:
                st = datetime.combine(day, t)
                if st <= now or st in existing:
                    skipped += 1
                    continue
                db.session.add(TimeSlot(
                    consultation_id=c.id,
                    start_time=st,
                    end_time=st + timedelta(minutes=c.duration_minutes),
                ))
                existing.add(st)
                created += 1
        day += timedelta(days=1)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error_response("slot_exists", 409)

    log_event("SLOT_GENERATE", user_id=g.user.id, entity="consultation", entity_id=c.id,
              metadata={"created": created, "skipped": skipped})
    return jsonify(created=created, skipped=skipped), 201


@timeslots_bp.post("/slots/<int:slot_id>/deactivate")
@require_roles("ADMIN")
def deactivate_slot(slot_id: int):
    slot = TimeSlot.query.get(slot_id)
    if not slot:
        return error_response("slot_not_found", 404)

    slot.is_active = False
    db.session.commit()

    log_event("SLOT_DEACTIVATE", user_id=g.user.id, entity="slot", entity_id=slot_id)
    return jsonify(message="Slot deactivated"), 200


@timeslots_bp.delete("/slots/<int:slot_id>")
@require_roles("ADMIN")
def delete_slot(slot_id: int):
    slot = TimeSlot.query.get(slot_id)
    if not slot:
        return error_response("slot_not_found", 404)

    if Booking.query.filter_by(time_slot_id=slot_id).first():
        return error_response("slot_in_use", 409)

    db.session.delete(slot)
    db.session.commit()

    log_event("SLOT_DELETE", user_id=g.user.id, entity="slot", entity_id=slot_id)
    return jsonify(message="Slot deleted"), 200
