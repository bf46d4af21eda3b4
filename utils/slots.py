from datetime import datetime, timedelta

from sqlalchemy import update

from models import db
from models.booking import Booking
from models.time_slot import TimeSlot


def hold_slot(slot_id: int) -> bool:
    """Atomically flip an available slot to unavailable.

    Returns False when another booking got there first. The caller owns the
    surrounding transaction.
    """
    result = db.session.execute(
        update(TimeSlot)
        .where(
            TimeSlot.id == slot_id,
            TimeSlot.is_available.is_(True),
            TimeSlot.is_active.is_(True),
        )
        .values(is_available=False, updated_at=datetime.utcnow())
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1


def release_slot(slot: TimeSlot) -> None:
    slot.is_available = True


def bookings_on_day(consultation_id: int, day: datetime) -> int:
    start = datetime(day.year, day.month, day.day)
    end = start + timedelta(days=1)
    return (
        Booking.query
        .join(TimeSlot, Booking.time_slot_id == TimeSlot.id)
        .filter(
            Booking.consultation_id == consultation_id,
            Booking.status.in_(("pending", "confirmed", "completed")),
            TimeSlot.start_time >= start,
            TimeSlot.start_time < end,
        )
        .count()
    )


def parse_day(date_str: str):
    day = datetime.fromisoformat(date_str)
    start = datetime(day.year, day.month, day.day)
    return start, start + timedelta(days=1)
