from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import Booking
from models.time_slot import TimeSlot
from utils.slots import bookings_on_day, hold_slot, parse_day

import factories


@pytest.fixture
def slot_id(ctx):
    consultation_id = factories.make_consultation()
    return factories.make_slot(consultation_id, hours_ahead=72)


def test_hold_is_first_come_first_served(slot_id):
    assert hold_slot(slot_id) is True
    db.session.commit()
    assert hold_slot(slot_id) is False
    assert TimeSlot.query.get(slot_id).is_available is False


def test_inactive_slot_cannot_be_held(slot_id):
    TimeSlot.query.get(slot_id).is_active = False
    db.session.commit()
    assert hold_slot(slot_id) is False


def test_active_slot_claim_is_unique(slot_id):
    user_id = factories.make_user("unique@example.com")
    factories.make_booking(user_id, slot_id)

    slot = TimeSlot.query.get(slot_id)
    db.session.add(Booking(
        booking_number="CB-20990101-0001",
        user_id=user_id,
        consultation_id=slot.consultation_id,
        time_slot_id=slot_id,
        active_slot_id=slot_id,
        payment_method="stripe",
        amount=1,
        original_amount=1,
    ))
    with pytest.raises(IntegrityError):
        db.session.commit()
    db.session.rollback()


def test_cancelled_bookings_free_the_claim(slot_id):
    user_id = factories.make_user("reuse@example.com")
    first = Booking.query.get(factories.make_booking(user_id, slot_id))
    first.active_slot_id = None
    first.status = "cancelled"
    db.session.commit()

    second = factories.make_booking(user_id, slot_id)
    assert Booking.query.get(second).active_slot_id == slot_id


def test_bookings_on_day_counts_live_and_completed(slot_id):
    user_id = factories.make_user("count@example.com")
    slot = TimeSlot.query.get(slot_id)
    factories.make_booking(user_id, slot_id)
    assert bookings_on_day(slot.consultation_id, slot.start_time) == 1
    assert bookings_on_day(slot.consultation_id, slot.start_time + timedelta(days=1)) == 0


def test_parse_day():
    start, end = parse_day("2026-03-05")
    assert start == datetime(2026, 3, 5)
    assert end == datetime(2026, 3, 6)
    with pytest.raises(ValueError):
        parse_day("05/03/2026")
