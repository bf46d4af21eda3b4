import pytest

from models import db
from models.booking import Booking
from models.consultation import Consultation
from models.coupon import Coupon, CouponRedemption
from models.notification import BookingNotification
from models.payment import Payment
from utils.booking_rules import transition
from utils.reconcile import APPLIED, NEEDS_REFUND, NOOP, apply_payment_outcome

import factories


@pytest.fixture
def setup(ctx):
    user_id = factories.make_user("pay@example.com", language="ar")
    consultation_id = factories.make_consultation()
    slot_id = factories.make_slot(consultation_id, hours_ahead=72)
    booking_id = factories.make_booking(user_id, slot_id)
    payment_id = factories.make_payment(booking_id, provider_ref="cs_test_1")
    return Booking.query.get(booking_id), Payment.query.get(payment_id)


def test_completed_confirms_booking(setup):
    booking, payment = setup
    assert apply_payment_outcome(payment, "completed", transaction_id="pi_1") == APPLIED
    db.session.commit()

    assert payment.status == "completed"
    assert payment.transaction_id == "pi_1"
    assert booking.payment_status == "completed"
    assert booking.status == "confirmed"
    assert booking.consultation.total_bookings == 1

    note = BookingNotification.query.filter_by(booking_id=booking.id).one()
    assert note.type == "confirmation"
    # SMTP is not configured in tests
    assert booking.booking_number in note.message
    assert note.sent_via == "in-app"


def test_completed_is_idempotent(setup):
    booking, payment = setup
    apply_payment_outcome(payment, "completed")
    db.session.commit()

    assert apply_payment_outcome(payment, "completed") == NOOP
    assert booking.consultation.total_bookings == 1


def test_requires_approval_keeps_booking_pending(setup):
    booking, payment = setup
    Consultation.query.get(booking.consultation_id).requires_approval = True

    apply_payment_outcome(payment, "completed")
    assert booking.payment_status == "completed"
    assert booking.status == "pending"


def test_failure_then_success(setup):
    booking, payment = setup
    assert apply_payment_outcome(payment, "failed", reason="card_declined") == APPLIED
    assert booking.payment_status == "failed"
    assert payment.failure_reason == "card_declined"

    # a retried attempt can still succeed
    assert apply_payment_outcome(payment, "completed") == APPLIED
    assert booking.status == "confirmed"


def test_late_failure_never_moves_backwards(setup):
    booking, payment = setup
    apply_payment_outcome(payment, "completed")
    assert apply_payment_outcome(payment, "failed") == NOOP
    assert payment.status == "completed"
    assert booking.payment_status == "completed"


def test_failed_attempt_leaves_booking_pending_while_another_is_open(setup):
    booking, payment = setup
    other = Payment.query.get(factories.make_payment(booking.id, provider_ref="cs_test_2"))

    assert apply_payment_outcome(payment, "failed", reason="expired") == APPLIED
    assert booking.payment_status == "pending"

    # the last open attempt failing does fail the booking
    apply_payment_outcome(other, "failed", reason="expired")
    assert booking.payment_status == "failed"


def test_other_open_attempts_are_cancelled(setup):
    booking, payment = setup
    other_id = factories.make_payment(booking.id, provider_ref="cs_test_2")

    apply_payment_outcome(payment, "completed")
    assert Payment.query.get(other_id).status == "cancelled"


def test_payment_for_cancelled_booking_needs_refund(setup):
    booking, payment = setup
    booking.cancelled_by = "system"
    transition(booking, "cancelled")

    assert apply_payment_outcome(payment, "completed") == NEEDS_REFUND
    assert payment.status == "completed"
    assert booking.payment_status == "completed"
    assert booking.status == "cancelled"
    assert booking.consultation.total_bookings == 0


def test_second_payment_for_paid_booking_needs_refund(setup):
    booking, payment = setup
    apply_payment_outcome(payment, "completed")
    db.session.commit()

    extra = Payment.query.get(factories.make_payment(booking.id, provider="paypal", provider_ref="ORDER-1"))
    assert apply_payment_outcome(extra, "completed") == NEEDS_REFUND


def test_refund_cancels_and_releases(setup):
    booking, payment = setup
    apply_payment_outcome(payment, "completed")
    db.session.commit()

    assert apply_payment_outcome(payment, "refunded", reason="customer request", cancelled_by="admin") == APPLIED
    db.session.commit()

    assert payment.status == "refunded"
    assert booking.payment_status == "refunded"
    assert booking.status == "cancelled"
    assert booking.cancelled_by == "admin"
    assert booking.active_slot_id is None
    assert booking.time_slot.is_available is True
    assert apply_payment_outcome(payment, "refunded") == NOOP


def test_refund_of_unpaid_payment_is_noop(setup):
    _, payment = setup
    assert apply_payment_outcome(payment, "refunded") == NOOP


def test_coupon_counted_on_completion(setup):
    booking, payment = setup
    coupon_id = factories.make_coupon(code="WELCOME")
    booking.coupon_code = "WELCOME"

    apply_payment_outcome(payment, "completed")
    db.session.commit()

    assert Coupon.query.get(coupon_id).used_count == 1
    assert CouponRedemption.query.filter_by(coupon_id=coupon_id, user_id=booking.user_id).count() == 1


def test_unknown_outcome(setup):
    _, payment = setup
    with pytest.raises(ValueError):
        apply_payment_outcome(payment, "chargeback")
