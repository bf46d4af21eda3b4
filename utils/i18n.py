"""Bilingual (Arabic / English) message catalogue.

Every JSON error carries both languages: ``error`` (English) and ``arabic``.
Notification texts are rendered in the recipient's preferred language.
"""
from flask import current_app, jsonify

MESSAGES = {
    # generic
    "auth_required": ("Authentication required", "يجب تسجيل الدخول"),
    "forbidden": ("Forbidden", "غير مصرح لك بالوصول"),
    "csrf_failed": ("CSRF validation failed", "فشل التحقق من رمز الحماية"),
    "validation_failed": ("Validation failed", "فشل في التحقق من البيانات"),
    "invalid_datetime": (
        "Invalid datetime format. Use ISO e.g. 2026-01-20T18:00:00",
        "تنسيق التاريخ والوقت غير صالح",
    ),
    "invalid_date": ("Invalid date. Use YYYY-MM-DD", "تاريخ غير صالح"),
    "not_configured": ("Service not configured", "الخدمة غير مهيأة"),
    "conflict": ("Conflicting update, please retry", "تعارض في البيانات، يرجى المحاولة مرة أخرى"),

    # auth
    "invalid_email": ("Invalid email", "بريد إلكتروني غير صالح"),
    "password_policy": ("Password does not meet policy", "كلمة المرور لا تستوفي الشروط"),
    "email_exists": ("Email already registered", "البريد الإلكتروني مسجل مسبقاً"),
    "invalid_credentials": ("Invalid credentials", "بيانات الدخول غير صحيحة"),
    "rate_limited": ("Too many requests. Slow down.", "طلبات كثيرة جداً، حاول لاحقاً"),
    "account_locked": ("Account temporarily locked. Try again later.", "الحساب مقفل مؤقتاً، حاول لاحقاً"),
    "invalid_current_password": ("Invalid current password", "كلمة المرور الحالية غير صحيحة"),
    "profile_incomplete": (
        "Full name and phone number are required before booking. Please update your profile.",
        "الاسم ورقم الهاتف مطلوبان قبل الحجز. يرجى تحديث الملف الشخصي.",
    ),
    "user_not_found": ("User not found", "المستخدم غير موجود"),
    "last_admin": ("Cannot remove the last ADMIN", "لا يمكن إزالة آخر مسؤول"),

    # catalog
    "consultation_not_found": ("Consultation not found", "الاستشارة غير موجودة"),
    "consultation_in_use": (
        "Consultation has bookings and cannot be deleted",
        "لا يمكن حذف استشارة لها حجوزات",
    ),
    "slug_exists": ("Slug already exists", "الرابط المختصر مستخدم مسبقاً"),
    "slot_not_found": ("Time slot not found", "الموعد غير موجود"),
    "slot_exists": ("Slot already exists for that consultation and time", "الموعد موجود مسبقاً"),
    "slot_in_past": ("Cannot create time slots in the past", "لا يمكن إنشاء مواعيد في الماضي"),
    "slot_order": ("end_time must be after start_time", "يجب أن يكون وقت الانتهاء بعد وقت البدء"),
    "slot_in_use": ("Cannot delete time slot with existing bookings", "لا يمكن حذف موعد له حجوزات"),
    "resource_not_found": ("Resource not found", "المورد غير موجود"),

    # booking
    "booking_not_found": ("Booking not found", "الحجز غير موجود"),
    "slot_unavailable": ("Time slot is not available", "الموعد غير متاح"),
    "slot_started": ("Cannot book past/started slots", "لا يمكن حجز موعد بدأ أو انتهى"),
    "daily_limit": (
        "No more bookings available for this consultation on that day",
        "لا توجد حجوزات متاحة لهذه الاستشارة في هذا اليوم",
    ),
    "invalid_payment_method": ("Invalid payment method", "طريقة الدفع غير صالحة"),
    "booking_not_cancellable": ("Booking not cancellable", "لا يمكن إلغاء هذا الحجز"),
    "cancel_window": (
        "Cannot cancel within {hours} hours of the consultation",
        "لا يمكن الإلغاء قبل أقل من {hours} ساعة من موعد الاستشارة",
    ),
    "booking_not_reschedulable": ("Booking cannot be rescheduled", "لا يمكن إعادة جدولة هذا الحجز"),
    "reschedule_limit": (
        "Maximum reschedule limit reached ({limit})",
        "تم الوصول إلى الحد الأقصى لإعادة الجدولة ({limit})",
    ),
    "reschedule_other_consultation": (
        "New slot must belong to the same consultation",
        "يجب أن يكون الموعد الجديد لنفس الاستشارة",
    ),
    "invalid_transition": (
        "Cannot move booking from {current} to {target}",
        "لا يمكن تغيير حالة الحجز من {current} إلى {target}",
    ),
    "payment_inconsistent": (
        "Booking cannot be {target} while payment is {payment_status}",
        "لا يمكن جعل الحجز {target} وحالة الدفع {payment_status}",
    ),
    "invalid_payment_transition": (
        "Cannot move payment from {current} to {target}",
        "لا يمكن تغيير حالة الدفع من {current} إلى {target}",
    ),
    "feedback_not_allowed": (
        "Can only submit feedback for completed consultations",
        "يمكن تقديم التقييم فقط للاستشارات المكتملة",
    ),
    "feedback_exists": ("Feedback already submitted", "تم تقديم التقييم مسبقاً"),
    "invalid_rating": ("Rating must be between 1 and 5", "يجب أن يكون التقييم بين 1 و 5"),
    "notification_not_found": ("Notification not found", "الإشعار غير موجود"),
    "feedback_not_found": ("Feedback not found", "التقييم غير موجود"),

    # payment
    "payment_not_found": ("Payment not found", "عملية الدفع غير موجودة"),
    "already_paid": ("Payment already completed for this booking", "تم الدفع مسبقاً لهذا الحجز"),
    "booking_not_payable": ("Booking is not awaiting payment", "الحجز لا ينتظر الدفع"),
    "wrong_payment_method": (
        "Booking was created with a different payment method",
        "تم إنشاء الحجز بطريقة دفع مختلفة",
    ),
    "receipt_required": ("Receipt image is required for bank transfer", "صورة الإيصال مطلوبة للتحويل البنكي"),
    "receipt_url_invalid": ("Invalid receipt image URL format", "تنسيق رابط صورة الإيصال غير صالح"),
    "transfer_not_pending": ("Bank transfer is not awaiting review", "التحويل البنكي لا ينتظر المراجعة"),
    "provider_error": ("Payment provider error", "خطأ من مزود الدفع"),
    "capture_failed": ("Payment capture failed", "فشل في إتمام الدفع"),
    "not_refundable": ("Payment is not refundable", "لا يمكن استرداد هذه الدفعة"),
    "webhook_secret_missing": ("Webhook secret not configured", "سر الويب هوك غير مهيأ"),
    "webhook_signature": ("Invalid webhook signature", "توقيع الويب هوك غير صالح"),

    # coupons
    "coupon_invalid": ("Invalid or expired coupon", "كوبون غير صالح أو منتهي"),
    "coupon_not_applicable": ("Coupon does not apply to this consultation", "الكوبون لا ينطبق على هذه الاستشارة"),
    "coupon_min_amount": ("Order amount is below the coupon minimum", "قيمة الطلب أقل من الحد الأدنى للكوبون"),
    "coupon_used": ("You have already used this coupon", "لقد استخدمت هذا الكوبون مسبقاً"),
    "coupon_exists": ("Coupon code already exists", "رمز الكوبون موجود مسبقاً"),
    "coupon_not_found": ("Coupon not found", "الكوبون غير موجود"),
}

NOTIFICATION_TEXTS = {
    "confirmation": (
        "Your booking {number} for \"{title}\" on {when} is confirmed.",
        "تم تأكيد حجزك {number} لاستشارة \"{title}\" بتاريخ {when}.",
    ),
    "reminder": (
        "Reminder: your consultation \"{title}\" starts on {when}.",
        "تذكير: موعد استشارتك \"{title}\" بتاريخ {when}.",
    ),
    "cancellation": (
        "Your booking {number} for \"{title}\" has been cancelled.",
        "تم إلغاء حجزك {number} لاستشارة \"{title}\".",
    ),
    "rescheduled": (
        "Your booking {number} for \"{title}\" has been moved to {when}.",
        "تم نقل موعد حجزك {number} لاستشارة \"{title}\" إلى {when}.",
    ),
}


def message(key: str, lang: str = "en", **params) -> str:
    en, ar = MESSAGES[key]
    text = ar if lang == "ar" else en
    return text.format(**params) if params else text


def error_response(key: str, status: int, params=None, **extra):
    params = params or {}
    return jsonify(
        error=message(key, "en", **params),
        arabic=message(key, "ar", **params),
        **extra,
    ), status


def user_language(user) -> str:
    lang = getattr(user, "preferred_language", None)
    if lang in ("ar", "en"):
        return lang
    return current_app.config.get("DEFAULT_LANGUAGE", "ar")


def notification_text(kind: str, lang: str, **params) -> str:
    en, ar = NOTIFICATION_TEXTS[kind]
    return (ar if lang == "ar" else en).format(**params)
