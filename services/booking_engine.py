"""
Booking lifecycle: creation, status transitions and cancellation.

Every public operation validates first, writes once, and only then builds
its side effects. It returns ``(booking, effects)``; the caller commits
nothing else and passes ``effects`` to ``services.side_effects.dispatch``.

Status machine::

    PENDING   -> CONFIRMED | CANCELLED
    CONFIRMED -> CANCELLED | COMPLETED
    CANCELLED, COMPLETED are terminal
"""
from datetime import datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import (
    Booking, PENDING, CONFIRMED, CANCELLED, COMPLETED, ACTIVE_STATUSES,
    RESCHEDULE_REQUESTED, RESCHEDULE_CANCELLED,
)
from models.lesson import Lesson
from models.payment import Payment, PAYMENT_PENDING
from models.user import User, ROLE_STUDENT, ROLE_TEACHER
from security.rate_limit import check_booking_rate
from services.conflicts import has_overlapping_booking, claim_lesson_schedule
from services.errors import (
    AccessDenied, Conflict, Forbidden, InvalidState, NotFound, RateLimited, ValidationFailed,
)
from services.pricing import compute_booking_price
from services.side_effects import booking_link, notify_user

ALLOWED_TRANSITIONS = {
    PENDING: frozenset({CONFIRMED, CANCELLED}),
    CONFIRMED: frozenset({CANCELLED, COMPLETED}),
    CANCELLED: frozenset(),
    COMPLETED: frozenset(),
}

REQUESTABLE_STATUSES = (CONFIRMED, CANCELLED, COMPLETED)

_STATUS_NOTIFICATION = {
    CONFIRMED: ("BOOKING_CONFIRMED", "Booking confirmed"),
    CANCELLED: ("BOOKING_CANCELLED", "Booking cancelled"),
    COMPLETED: ("BOOKING_COMPLETED", "Lesson completed"),
}


# ---------- shared helpers (also used by services.reschedule) ----------

def describe_slot(start, end) -> str:
    return f"{start:%Y-%m-%d %H:%M}-{end:%H:%M} UTC"

def display_name(user) -> str:
    return (user.name or user.email) if user else "Someone"

def get_booking(booking_id) -> Booking:
    booking = db.session.get(Booking, booking_id)
    if not booking:
        raise NotFound("Booking not found")
    return booking

def ensure_party(booking: Booking, actor) -> None:
    if actor.user_id not in (booking.student_id, booking.teacher_id):
        raise AccessDenied("Access denied")

def get_booking_for_party(booking_id, actor) -> Booking:
    booking = get_booking(booking_id)
    ensure_party(booking, actor)
    return booking

def party_role(booking: Booking, actor) -> str:
    """Which side of this booking the actor is on."""
    return ROLE_STUDENT if actor.user_id == booking.student_id else ROLE_TEACHER

def counterpart_of(booking: Booking, actor):
    other_id = booking.teacher_id if actor.user_id == booking.student_id else booking.student_id
    return db.session.get(User, other_id)

def write_booking_if(booking: Booking, condition, **values) -> None:
    """
    Conditional single-row UPDATE. Nothing is written when ``condition`` no
    longer holds (another request got there first) and INVALID_STATE is
    raised instead.
    """
    values.setdefault("updated_at", datetime.utcnow())
    result = db.session.execute(
        update(Booking)
        .where(Booking.id == booking.id, condition)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise InvalidState("Booking was changed by another request, reload and try again")
    db.session.commit()
    # pick up the committed row
    db.session.refresh(booking)


# ---------- creation ----------

def create_booking(actor, lesson_id, start_time, end_time, rate_limit=check_booking_rate):
    """
    Student books a lesson slot. Returns (booking, effects).

    ``rate_limit`` is a callable taking the student id and returning
    (allowed, retry_after_seconds).
    """
    if actor.role != ROLE_STUDENT:
        raise Forbidden("Only students can book lessons")
    if not lesson_id or start_time is None or end_time is None:
        raise ValidationFailed("Lesson ID, start time, and end time are required")

    lesson = db.session.get(Lesson, lesson_id)
    if not lesson:
        raise NotFound("Lesson not found")
    if not lesson.is_published:
        raise InvalidState("Lesson is not available for booking")
    if lesson.teacher_id == actor.user_id:
        raise Forbidden("Cannot book your own lesson")
    if end_time <= start_time:
        raise ValidationFailed("End time must be after start time")

    allowed, retry_after = rate_limit(actor.user_id)
    if not allowed:
        raise RateLimited("Too many booking requests, try again later", retry_after=retry_after)

    if has_overlapping_booking(lesson.id, start_time, end_time):
        raise Conflict("This time slot is already booked")

    teacher = db.session.get(User, lesson.teacher_id)
    student = db.session.get(User, actor.user_id)
    price = compute_booking_price(
        lesson.price, teacher.hourly_rate if teacher else None, start_time, end_time
    )

    if not claim_lesson_schedule(lesson):
        db.session.rollback()
        raise Conflict("This time slot was just booked, pick another one")

    booking = Booking(
        lesson_id=lesson.id,
        student_id=actor.user_id,
        teacher_id=lesson.teacher_id,
        start_time=start_time,
        end_time=end_time,
        price=price,
        status=PENDING,
    )
    db.session.add(booking)
    try:
        db.session.flush()
        db.session.add(Payment(
            booking_id=booking.id,
            amount=price,
            currency=current_app.config.get("PAYMENT_CURRENCY", "usd"),
            status=PAYMENT_PENDING,
        ))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        # uq_booking_lesson_start_active
        raise Conflict("This time slot is already booked")

    effects = notify_user(
        teacher,
        "BOOKING_REQUESTED",
        f'{display_name(student)} requested "{lesson.title}" on {describe_slot(start_time, end_time)}.',
        booking_link(booking.id),
        subject="New booking request",
    )
    return booking, effects


# ---------- status transitions ----------

def _transition(booking: Booking, requested_status: str) -> str:
    current = booking.status
    if requested_status not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise InvalidState(f"Cannot change a {current.lower()} booking to {requested_status.lower()}")

    values = {"status": requested_status}
    if not ALLOWED_TRANSITIONS[requested_status] and booking.reschedule_status == RESCHEDULE_REQUESTED:
        # a closed booking cannot keep an open reschedule request
        values.update(
            proposed_start_time=None,
            proposed_end_time=None,
            reschedule_requested_by=None,
            reschedule_status=RESCHEDULE_CANCELLED,
            reschedule_resolved_at=datetime.utcnow(),
        )

    write_booking_if(booking, Booking.status == current, **values)
    return current


def _status_effects(booking: Booking, actor, new_status: str) -> list:
    recipient = counterpart_of(booking, actor)
    if recipient is None:
        return []
    actor_user = db.session.get(User, actor.user_id)
    title = booking.lesson.title if booking.lesson else "your lesson"
    when = describe_slot(booking.start_time, booking.end_time)
    type_, subject = _STATUS_NOTIFICATION[new_status]

    if new_status == CONFIRMED:
        message = f'Your booking for "{title}" on {when} has been confirmed.'
    elif new_status == CANCELLED:
        message = f'{display_name(actor_user)} cancelled the booking for "{title}" on {when}.'
    else:
        message = f'"{title}" on {when} was marked as completed.'

    return notify_user(recipient, type_, message, booking_link(booking.id), subject=subject)


def update_status(booking_id, actor, requested_status):
    """PUT /bookings/<id> with {"status": ...}. Returns (booking, effects)."""
    booking = get_booking_for_party(booking_id, actor)

    if requested_status not in REQUESTABLE_STATUSES:
        raise ValidationFailed("Status must be one of CONFIRMED, CANCELLED, COMPLETED")
    if actor.role == ROLE_STUDENT and requested_status != CANCELLED:
        raise Forbidden("Students can only cancel bookings")
    if requested_status == CONFIRMED and actor.user_id != booking.teacher_id:
        raise Forbidden("Only the teacher can confirm bookings")

    _transition(booking, requested_status)
    return booking, _status_effects(booking, actor, requested_status)


def cancel_booking(booking_id, actor):
    """DELETE /bookings/<id>. Returns (booking, effects)."""
    booking = get_booking_for_party(booking_id, actor)

    if booking.status not in ACTIVE_STATUSES:
        raise InvalidState("Cannot cancel completed or already cancelled booking")

    _transition(booking, CANCELLED)
    return booking, _status_effects(booking, actor, CANCELLED)
