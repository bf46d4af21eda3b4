from models import db
from models.notification import BookingNotification
from utils.emailer import send_email
from utils.i18n import notification_text, user_language

EMAIL_SUBJECTS = {
    "confirmation": ("Booking confirmed", "تأكيد الحجز"),
    "reminder": ("Consultation reminder", "تذكير بموعد الاستشارة"),
    "cancellation": ("Booking cancelled", "إلغاء الحجز"),
    "rescheduled": ("Booking rescheduled", "إعادة جدولة الحجز"),
}


def notify(booking, kind: str) -> BookingNotification:
    """Record a booking notification and try to email it.

    Falls back to in-app only when SMTP is not configured or sending fails.
    The caller commits.
    """
    user = booking.user
    lang = user_language(user)
    consultation = booking.consultation
    title = consultation.title if lang == "ar" else (consultation.title_en or consultation.title)
    when = booking.time_slot.start_time.strftime("%Y-%m-%d %H:%M") + " UTC"

    text = notification_text(kind, lang, number=booking.booking_number, title=title, when=when)
    if kind == "confirmation" and booking.meeting_url:
        text += f"\n{booking.meeting_url}"

    en_subject, ar_subject = EMAIL_SUBJECTS[kind]
    sent, _error = send_email(user.email, ar_subject if lang == "ar" else en_subject, text)

    row = BookingNotification(
        booking_id=booking.id,
        user_id=user.id,
        type=kind,
        message=text,
        sent_via="email" if sent else "in-app",
    )
    db.session.add(row)
    return row
