"""
Reschedule negotiation between the two parties of a booking.

The negotiation lives in columns on ``bookings`` but is handled here as one
of three shapes:

* ``RescheduleNone``      - nothing was ever proposed (NULL and NONE alike)
* ``RescheduleRequested`` - one side proposed a new slot and waits
* ``RescheduleResolved``  - the last request ended ACCEPTED, DECLINED or
  CANCELLED; a new one may be proposed

Only a REQUESTED negotiation blocks a new proposal. Writes go through
``write_booking_if`` keyed on the ``reschedule_status`` value read during
validation, so two proposals racing each other cannot both land. Proposing
and accepting additionally require the booking to still be PENDING or
CONFIRMED at write time.
"""
from datetime import datetime
from typing import NamedTuple, Optional

from sqlalchemy import and_

from models import db
from models.booking import (
    Booking, ACTIVE_STATUSES,
    RESCHEDULE_NONE, RESCHEDULE_REQUESTED, RESCHEDULE_ACCEPTED,
    RESCHEDULE_DECLINED, RESCHEDULE_CANCELLED,
)
from models.lesson import Lesson
from models.user import User
from services.booking_engine import (
    counterpart_of, describe_slot, display_name, get_booking_for_party,
    party_role, write_booking_if,
)
from services.conflicts import claim_lesson_schedule, has_overlapping_booking
from services.errors import Conflict, Forbidden, InvalidState, ValidationFailed
from services.side_effects import booking_link, notify_user


class RescheduleNone(NamedTuple):
    status: str = RESCHEDULE_NONE


class RescheduleRequested(NamedTuple):
    by: str
    proposed_start: Optional[datetime]
    proposed_end: Optional[datetime]
    status: str = RESCHEDULE_REQUESTED


class RescheduleResolved(NamedTuple):
    outcome: str
    resolved_at: Optional[datetime] = None

    @property
    def status(self) -> str:
        return self.outcome


def read_state(booking: Booking):
    raw = booking.reschedule_status
    if raw in (None, RESCHEDULE_NONE):
        return RescheduleNone()
    if raw == RESCHEDULE_REQUESTED:
        return RescheduleRequested(
            by=booking.reschedule_requested_by,
            proposed_start=booking.proposed_start_time,
            proposed_end=booking.proposed_end_time,
        )
    return RescheduleResolved(outcome=raw, resolved_at=booking.reschedule_resolved_at)


def state_columns(state) -> dict:
    """Column values that store ``state`` on a booking row."""
    if isinstance(state, RescheduleRequested):
        return {
            "proposed_start_time": state.proposed_start,
            "proposed_end_time": state.proposed_end,
            "reschedule_requested_by": state.by,
            "reschedule_status": RESCHEDULE_REQUESTED,
            "reschedule_resolved_at": None,
        }
    cleared = {
        "proposed_start_time": None,
        "proposed_end_time": None,
        "reschedule_requested_by": None,
    }
    if isinstance(state, RescheduleResolved):
        cleared.update(reschedule_status=state.outcome, reschedule_resolved_at=state.resolved_at)
    else:
        cleared.update(reschedule_status=RESCHEDULE_NONE, reschedule_resolved_at=None)
    return cleared


def _unchanged_since_read(booking: Booking):
    raw = booking.reschedule_status
    if raw is None:
        return Booking.reschedule_status.is_(None)
    return Booking.reschedule_status == raw


def _write_state(booking: Booking, state, require_active=False, **extra) -> None:
    values = state_columns(state)
    values.update(extra)
    condition = _unchanged_since_read(booking)
    if require_active:
        # a concurrent cancel or completion wins over the negotiation
        condition = and_(condition, Booking.status.in_(ACTIVE_STATUSES))
    write_booking_if(booking, condition, **values)


def _effects(booking: Booking, actor, type_: str, subject: str, message: str) -> list:
    recipient = counterpart_of(booking, actor)
    if recipient is None:
        return []
    return notify_user(recipient, type_, message, booking_link(booking.id), subject=subject)


def _require_open_request(booking: Booking) -> RescheduleRequested:
    state = read_state(booking)
    if not isinstance(state, RescheduleRequested):
        raise InvalidState("There is no pending reschedule request")
    return state


def _lesson_title(booking: Booking) -> str:
    return booking.lesson.title if booking.lesson else "your lesson"


# ---------- actions ----------

def propose_reschedule(booking_id, actor, proposed_start, proposed_end):
    booking = get_booking_for_party(booking_id, actor)

    if booking.status not in ACTIVE_STATUSES:
        raise InvalidState("Only pending or confirmed bookings can be rescheduled")
    if isinstance(read_state(booking), RescheduleRequested):
        raise InvalidState("There is already a pending reschedule request")
    if proposed_start is None or proposed_end is None:
        raise ValidationFailed("proposedStartTime and proposedEndTime are required")
    if proposed_end <= proposed_start:
        raise ValidationFailed("Proposed end time must be after proposed start time")
    if proposed_start == booking.start_time and proposed_end == booking.end_time:
        raise ValidationFailed("Proposed time is the same as the current booking time")
    if has_overlapping_booking(booking.lesson_id, proposed_start, proposed_end, exclude_booking_id=booking.id):
        raise Conflict("The proposed time slot is already booked")

    old_slot = describe_slot(booking.start_time, booking.end_time)
    requester = party_role(booking, actor)
    requested = RescheduleRequested(by=requester, proposed_start=proposed_start, proposed_end=proposed_end)
    _write_state(booking, requested, require_active=True)

    who = display_name(db.session.get(User, actor.user_id))
    message = (
        f'{who} proposed moving "{_lesson_title(booking)}" from {old_slot} '
        f'to {describe_slot(proposed_start, proposed_end)}.'
    )
    return booking, _effects(booking, actor, "RESCHEDULE_REQUESTED", "Reschedule requested", message)


def accept_reschedule(booking_id, actor):
    booking = get_booking_for_party(booking_id, actor)
    state = _require_open_request(booking)

    if party_role(booking, actor) == state.by:
        raise Forbidden("You cannot accept your own reschedule request")
    if state.proposed_start is None or state.proposed_end is None:
        raise InvalidState("Reschedule request is missing the proposed time")
    if has_overlapping_booking(booking.lesson_id, state.proposed_start, state.proposed_end, exclude_booking_id=booking.id):
        raise Conflict("The proposed time slot is no longer available")

    lesson = db.session.get(Lesson, booking.lesson_id)
    if lesson is not None and not claim_lesson_schedule(lesson):
        db.session.rollback()
        raise Conflict("The lesson schedule changed, reload and try again")

    _write_state(
        booking,
        RescheduleResolved(outcome=RESCHEDULE_ACCEPTED, resolved_at=datetime.utcnow()),
        require_active=True,
        start_time=state.proposed_start,
        end_time=state.proposed_end,
    )

    who = display_name(db.session.get(User, actor.user_id))
    message = (
        f'{who} accepted the new time for "{_lesson_title(booking)}": '
        f'{describe_slot(booking.start_time, booking.end_time)}.'
    )
    return booking, _effects(booking, actor, "RESCHEDULE_ACCEPTED", "Reschedule accepted", message)


def decline_reschedule(booking_id, actor):
    booking = get_booking_for_party(booking_id, actor)
    state = _require_open_request(booking)

    if party_role(booking, actor) == state.by:
        raise Forbidden("You cannot decline your own reschedule request")

    _write_state(booking, RescheduleResolved(outcome=RESCHEDULE_DECLINED, resolved_at=datetime.utcnow()))

    who = display_name(db.session.get(User, actor.user_id))
    message = (
        f'{who} declined the reschedule request for "{_lesson_title(booking)}". '
        f'The booking stays at {describe_slot(booking.start_time, booking.end_time)}.'
    )
    return booking, _effects(booking, actor, "RESCHEDULE_DECLINED", "Reschedule declined", message)


def cancel_reschedule(booking_id, actor):
    booking = get_booking_for_party(booking_id, actor)
    state = _require_open_request(booking)

    if party_role(booking, actor) != state.by:
        raise Forbidden("Only the requester can withdraw a reschedule request")

    _write_state(booking, RescheduleResolved(outcome=RESCHEDULE_CANCELLED, resolved_at=datetime.utcnow()))

    who = display_name(db.session.get(User, actor.user_id))
    message = f'{who} withdrew the reschedule request for "{_lesson_title(booking)}".'
    return booking, _effects(booking, actor, "RESCHEDULE_CANCELLED", "Reschedule withdrawn", message)


ACTIONS = {
    "propose_reschedule": propose_reschedule,
    "accept_reschedule": accept_reschedule,
    "decline_reschedule": decline_reschedule,
    "cancel_reschedule": cancel_reschedule,
}


def apply_action(booking_id, actor, action, proposed_start=None, proposed_end=None):
    """Entry point for PUT /bookings/<id> with an ``action``. Returns (booking, effects)."""
    handler = ACTIONS.get(action) if isinstance(action, str) else None
    get_booking_for_party(booking_id, actor)
    if handler is None:
        raise ValidationFailed(f"Unknown action: {action}")
    if handler is propose_reschedule:
        return handler(booking_id, actor, proposed_start, proposed_end)
    return handler(booking_id, actor)
