from datetime import datetime, timezone

from flask import Blueprint, request, jsonify, g

from models.booking import Booking, BOOKING_STATUSES
from models.user import ROLE_STUDENT, ROLE_TEACHER
from services import booking_engine, reschedule
from services.errors import ValidationFailed
from services.side_effects import dispatch
from utils.audit import log_event
from utils.auth_context import current_actor, login_required

bookings_bp = Blueprint("bookings", __name__, url_prefix="/bookings")


def _parse_iso(value, field: str):
    # Expect ISO format like "2026-01-20T18:00:00Z"; stored as naive UTC
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise ValidationFailed(f"{field} must be an ISO 8601 string")
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationFailed(f"Invalid {field}. Use ISO e.g. 2026-01-20T18:00:00Z")
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _field(data: dict, name: str, camel: str):
    value = data.get(name)
    return value if value is not None else data.get(camel)


def _iso(dt):
    return dt.isoformat() + "Z" if dt else None


def _money(value):
    return str(value) if value is not None else None


def booking_json(b: Booking) -> dict:
    lesson = b.lesson
    payment = b.payment
    return {
        "id": b.id,
        "lesson_id": b.lesson_id,
        "student_id": b.student_id,
        "teacher_id": b.teacher_id,
        "start_time": _iso(b.start_time),
        "end_time": _iso(b.end_time),
        "price": _money(b.price),
        "status": b.status,
        "created_at": _iso(b.created_at),
        "reschedule": {
            "status": b.reschedule_status or "NONE",
            "requested_by": b.reschedule_requested_by,
            "proposed_start_time": _iso(b.proposed_start_time),
            "proposed_end_time": _iso(b.proposed_end_time),
        },
        "lesson": {
            "id": lesson.id,
            "title": lesson.title,
            "duration": lesson.duration,
        } if lesson else None,
        "payment": {
            "id": payment.id,
            "status": payment.status,
            "amount": _money(payment.amount),
            "currency": payment.currency,
        } if payment else None,
    }


# ---------- list my bookings ----------
@bookings_bp.get("")
@login_required
def list_bookings():
    status = request.args.get("status")
    if status and status not in BOOKING_STATUSES:
        raise ValidationFailed("Unknown status filter")

    q = Booking.query
    if g.user.role == ROLE_STUDENT:
        q = q.filter_by(student_id=g.user.id)
    elif g.user.role == ROLE_TEACHER:
        q = q.filter_by(teacher_id=g.user.id)
    else:
        q = q.filter((Booking.student_id == g.user.id) | (Booking.teacher_id == g.user.id))
    if status:
        q = q.filter_by(status=status)

    rows = q.order_by(Booking.start_time.desc()).all()
    return jsonify([booking_json(b) for b in rows]), 200


# ---------- STUDENTS: book a lesson ----------
@bookings_bp.post("")
@login_required
def create_booking():
    actor = current_actor()
    data = request.get_json(silent=True) or {}

    lesson_id = _field(data, "lesson_id", "lessonId")
    start_time = _parse_iso(_field(data, "start_time", "startTime"), "start_time")
    end_time = _parse_iso(_field(data, "end_time", "endTime"), "end_time")
    if not lesson_id or not start_time or not end_time:
        raise ValidationFailed("lesson_id, start_time, end_time are required")
    try:
        lesson_id = int(lesson_id)
    except (TypeError, ValueError):
        raise ValidationFailed("lesson_id must be an integer")

    booking, effects = booking_engine.create_booking(actor, lesson_id, start_time, end_time)

    log_event("BOOKING_CREATE", user_id=actor.user_id, entity="booking", entity_id=booking.id,
              metadata={"lesson_id": lesson_id, "price": str(booking.price)})
    dispatch(effects)
    return jsonify(booking_json(booking)), 201


@bookings_bp.get("/<int:booking_id>")
@login_required
def get_booking(booking_id: int):
    booking = booking_engine.get_booking_for_party(booking_id, current_actor())
    return jsonify(booking_json(booking)), 200


# ---------- status change or reschedule action ----------
@bookings_bp.put("/<int:booking_id>")
@login_required
def update_booking(booking_id: int):
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    action = data.get("action")
    status = data.get("status")

    if action:
        booking, effects = reschedule.apply_action(
            booking_id,
            actor,
            action,
            proposed_start=_parse_iso(_field(data, "proposed_start_time", "proposedStartTime"), "proposed_start_time"),
            proposed_end=_parse_iso(_field(data, "proposed_end_time", "proposedEndTime"), "proposed_end_time"),
        )
        log_event(action.upper(), user_id=actor.user_id, entity="booking", entity_id=booking_id,
                  metadata={"reschedule_status": booking.reschedule_status})
    elif status:
        booking, effects = booking_engine.update_status(booking_id, actor, status)
        log_event("BOOKING_STATUS_CHANGE", user_id=actor.user_id, entity="booking", entity_id=booking_id,
                  metadata={"status": status})
    else:
        raise ValidationFailed("Status is required")

    dispatch(effects)
    return jsonify(booking_json(booking)), 200


# ---------- cancel ----------
@bookings_bp.delete("/<int:booking_id>")
@login_required
def cancel_booking(booking_id: int):
    actor = current_actor()
    booking, effects = booking_engine.cancel_booking(booking_id, actor)

    log_event("BOOKING_CANCEL", user_id=actor.user_id, entity="booking", entity_id=booking.id)
    dispatch(effects)
    return jsonify(message="Booking cancelled successfully"), 200
