from flask import Blueprint, request, jsonify, g
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import Booking, COMPLETED
from models.review import Review
from models.user import User
from security.rbac import require_roles
from services.errors import Conflict, NotFound, ValidationFailed
from services.side_effects import dispatch, notify_user
from utils.audit import log_event

reviews_bp = Blueprint("reviews", __name__, url_prefix="/reviews")

MAX_COMMENT_LENGTH = 500


def _review_json(r: Review) -> dict:
    return {
        "id": r.id,
        "booking_id": r.booking_id,
        "student_id": r.student_id,
        "teacher_id": r.teacher_id,
        "rating": r.rating,
        "comment": r.comment,
        "created_at": r.created_at.isoformat() + "Z",
    }


@reviews_bp.get("")
def list_reviews():
    teacher_id = request.args.get("teacher_id", type=int)
    booking_id = request.args.get("booking_id", type=int)

    q = Review.query
    if teacher_id:
        q = q.filter_by(teacher_id=teacher_id)
    if booking_id:
        q = q.filter_by(booking_id=booking_id)

    rows = q.order_by(Review.created_at.desc()).all()
    return jsonify([_review_json(r) for r in rows]), 200


@reviews_bp.post("")
@require_roles("STUDENT")
def create_review():
    data = request.get_json(silent=True) or {}
    booking_id = data.get("booking_id")
    rating = data.get("rating")
    comment = (data.get("comment") or "").strip()

    if not booking_id:
        raise ValidationFailed("booking_id is required")
    if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5:
        raise ValidationFailed("rating must be an integer between 1 and 5")
    if not comment or len(comment) > MAX_COMMENT_LENGTH:
        raise ValidationFailed(f"comment must be 1 to {MAX_COMMENT_LENGTH} characters")

    booking = Booking.query.filter_by(id=booking_id, student_id=g.user.id, status=COMPLETED).first()
    if not booking:
        raise NotFound("Booking not found or not completed")

    review = Review(
        booking_id=booking.id,
        student_id=g.user.id,
        teacher_id=booking.teacher_id,
        rating=rating,
        comment=comment,
    )
    db.session.add(review)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("You have already reviewed this booking")

    teacher = db.session.get(User, booking.teacher_id)
    average = db.session.query(func.avg(Review.rating)).filter(Review.teacher_id == booking.teacher_id).scalar()
    teacher.average_rating = float(average) if average is not None else None
    db.session.commit()

    log_event("REVIEW_CREATE", user_id=g.user.id, entity="review", entity_id=review.id,
              metadata={"booking_id": booking.id, "rating": rating})

    title = booking.lesson.title if booking.lesson else "your lesson"
    dispatch(notify_user(
        teacher, "REVIEW_RECEIVED",
        f'You received a {rating}-star review for "{title}".',
        f"/bookings/{booking.id}",
        subject="New review",
    ))
    return jsonify(_review_json(review)), 201
