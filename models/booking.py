from datetime import datetime
from sqlalchemy import text

from models.db import db

PENDING = "PENDING"
CONFIRMED = "CONFIRMED"
CANCELLED = "CANCELLED"
COMPLETED = "COMPLETED"

BOOKING_STATUSES = (PENDING, CONFIRMED, CANCELLED, COMPLETED)
ACTIVE_STATUSES = (PENDING, CONFIRMED)

# reschedule_status values (NULL is read as NONE)
RESCHEDULE_NONE = "NONE"
RESCHEDULE_REQUESTED = "REQUESTED"
RESCHEDULE_ACCEPTED = "ACCEPTED"
RESCHEDULE_DECLINED = "DECLINED"
RESCHEDULE_CANCELLED = "CANCELLED"

_ACTIVE_SQL = "status IN ('PENDING', 'CONFIRMED')"

class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    lesson_id = db.Column(db.Integer, db.ForeignKey("lessons.id"), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    start_time = db.Column(db.DateTime, nullable=False, index=True)
    end_time = db.Column(db.DateTime, nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    status = db.Column(db.String(20), nullable=False, default=PENDING)
    # status values: PENDING, CONFIRMED, CANCELLED, COMPLETED

    # Reschedule negotiation (see services/reschedule.py)
    proposed_start_time = db.Column(db.DateTime, nullable=True)
    proposed_end_time = db.Column(db.DateTime, nullable=True)
    reschedule_requested_by = db.Column(db.String(20), nullable=True)  # STUDENT / TEACHER
    reschedule_status = db.Column(db.String(20), nullable=True)
    reschedule_resolved_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    lesson = db.relationship("Lesson")
    student = db.relationship("User", foreign_keys=[student_id])
    teacher = db.relationship("User", foreign_keys=[teacher_id])

    __table_args__ = (
        db.CheckConstraint("end_time > start_time", name="ck_booking_time_order"),
        # Two active bookings of one lesson can never start at the same instant
        db.Index(
            "uq_booking_lesson_start_active",
            "lesson_id", "start_time",
            unique=True,
            sqlite_where=text(_ACTIVE_SQL),
            postgresql_where=text(_ACTIVE_SQL),
        ),
    )
