def _iso(value):
    return value.isoformat() if value else None


def consultation_to_dict(c, admin: bool = False) -> dict:
    out = {
        "id": c.id,
        "slug": c.slug,
        "title": c.title,
        "title_en": c.title_en,
        "description": c.description,
        "description_en": c.description_en,
        "duration_minutes": c.duration_minutes,
        "price": c.price,
        "original_price": c.original_price,
        "currency": c.currency,
        "formatted_price": c.formatted_price,
        "discount_percentage": c.discount_percentage,
        "category": c.category,
        "consultation_type": c.consultation_type,
        "tags": c.tags or [],
        "requires_approval": c.requires_approval,
        "average_rating": c.average_rating,
        "total_reviews": c.total_reviews,
    }
    if admin:
        out.update({
            "is_active": c.is_active,
            "max_bookings_per_day": c.max_bookings_per_day,
            "display_order": c.display_order,
            "total_bookings": c.total_bookings,
            "completed_bookings": c.completed_bookings,
            "total_revenue": c.total_revenue,
            "created_at": _iso(c.created_at),
            "updated_at": _iso(c.updated_at),
        })
    return out


def slot_to_dict(s) -> dict:
    return {
        "id": s.id,
        "consultation_id": s.consultation_id,
        "start_time": _iso(s.start_time),
        "end_time": _iso(s.end_time),
        "is_available": s.is_available,
        "is_active": s.is_active,
    }


def booking_to_dict(b, admin: bool = False) -> dict:
    out = {
        "id": b.id,
        "booking_number": b.booking_number,
        "consultation_id": b.consultation_id,
        "consultation_title": b.consultation.title if b.consultation else None,
        "time_slot": slot_to_dict(b.time_slot) if b.time_slot else None,
        "status": b.status,
        "payment_status": b.payment_status,
        "payment_method": b.payment_method,
        "amount": b.amount,
        "original_amount": b.original_amount,
        "discount_amount": b.discount_amount,
        "coupon_code": b.coupon_code,
        "currency": b.currency,
        "notes": b.notes,
        "rescheduled_count": b.rescheduled_count,
        "cancel_reason": b.cancel_reason,
        "cancelled_by": b.cancelled_by,
        "created_at": _iso(b.created_at),
        "confirmed_at": _iso(b.confirmed_at),
        "payment_completed_at": _iso(b.payment_completed_at),
        "cancelled_at": _iso(b.cancelled_at),
        "completed_at": _iso(b.completed_at),
    }
    # meeting details only once the booking is confirmed
    if b.status in ("confirmed", "completed") or admin:
        out["meeting_url"] = b.meeting_url
        out["meeting_password"] = b.meeting_password
    if admin:
        out.update({
            "user_id": b.user_id,
            "user_email": b.user.email if b.user else None,
            "user_name": b.user.full_name if b.user else None,
            "user_phone": b.user.phone_number if b.user else None,
            "admin_notes": b.admin_notes,
            "reminder_sent": b.reminder_sent,
        })
    return out


def bank_transfer_to_dict(t) -> dict:
    return {
        "receipt_url": t.receipt_url,
        "transfer_reference": t.transfer_reference,
        "bank_name": t.bank_name,
        "account_holder_name": t.account_holder_name,
        "transfer_date": _iso(t.transfer_date),
        "verification_status": t.verification_status,
        "verified_by": t.verified_by,
        "verified_at": _iso(t.verified_at),
        "rejection_reason": t.rejection_reason,
        "uploaded_at": _iso(t.uploaded_at),
    }


def payment_to_dict(p) -> dict:
    return {
        "id": p.id,
        "booking_id": p.booking_id,
        "booking_number": p.booking.booking_number if p.booking else None,
        "user_id": p.user_id,
        "provider": p.provider,
        "amount": p.amount,
        "currency": p.currency,
        "status": p.status,
        "provider_ref": p.provider_ref,
        "transaction_id": p.transaction_id,
        "failure_reason": p.failure_reason,
        "refund_reason": p.refund_reason,
        "created_at": _iso(p.created_at),
        "completed_at": _iso(p.completed_at),
        "refunded_at": _iso(p.refunded_at),
        "bank_transfer": bank_transfer_to_dict(p.bank_transfer) if p.bank_transfer else None,
    }


def coupon_to_dict(c) -> dict:
    return {
        "id": c.id,
        "code": c.code,
        "discount_type": c.discount_type,
        "discount_value": c.discount_value,
        "max_uses": c.max_uses,
        "used_count": c.used_count,
        "valid_from": _iso(c.valid_from),
        "valid_until": _iso(c.valid_until),
        "is_active": c.is_active,
        "applicable_to": c.applicable_to,
        "consultation_ids": c.consultation_ids or [],
        "min_purchase_amount": c.min_purchase_amount,
    }


def feedback_to_dict(f) -> dict:
    return {
        "id": f.id,
        "booking_id": f.booking_id,
        "consultation_id": f.consultation_id,
        "rating": f.rating,
        "comment": f.comment,
        "is_public": f.is_public,
        "created_at": _iso(f.created_at),
    }


def resource_to_dict(r) -> dict:
    return {
        "id": r.id,
        "consultation_id": r.consultation_id,
        "title": r.title,
        "description": r.description,
        "type": r.type,
        "url": r.url,
        "is_public": r.is_public,
    }


def notification_to_dict(n) -> dict:
    return {
        "id": n.id,
        "booking_id": n.booking_id,
        "type": n.type,
        "message": n.message,
        "is_read": n.is_read,
        "sent_via": n.sent_via,
        "created_at": _iso(n.created_at),
    }
