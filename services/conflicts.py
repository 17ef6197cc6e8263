from sqlalchemy import update

from models import db
from models.booking import Booking, ACTIVE_STATUSES
from models.lesson import Lesson


def intervals_overlap(s1, e1, s2, e2) -> bool:
    # half-open [s, e): touching boundaries do not overlap
    return s1 < e2 and s2 < e1


def find_overlapping_booking(lesson_id, start, end, statuses=ACTIVE_STATUSES, exclude_booking_id=None):
    q = Booking.query.filter(
        Booking.lesson_id == lesson_id,
        Booking.status.in_(statuses),
        Booking.start_time < end,
        Booking.end_time > start,
    )
    if exclude_booking_id is not None:
        q = q.filter(Booking.id != exclude_booking_id)
    return q.first()


def has_overlapping_booking(lesson_id, start, end, statuses=ACTIVE_STATUSES, exclude_booking_id=None) -> bool:
    return find_overlapping_booking(
        lesson_id, start, end, statuses=statuses, exclude_booking_id=exclude_booking_id
    ) is not None


def claim_lesson_schedule(lesson: Lesson) -> bool:
    """
    Advance lesson.schedule_version if nobody else did since we read it.

    Called inside the unit of work that writes a booking for the lesson. A
    concurrent writer that read the same version updates zero rows and must
    treat its earlier overlap check as stale.
    """
    expected = lesson.schedule_version or 0
    result = db.session.execute(
        update(Lesson)
        .where(Lesson.id == lesson.id, Lesson.schedule_version == expected)
        .values(schedule_version=expected + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
