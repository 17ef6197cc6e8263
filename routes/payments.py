import stripe
from flask import Blueprint, current_app, jsonify, g

from models.booking import Booking
from models.payment import Payment
from security.rbac import require_roles
from services.payments import prepare_checkout, attach_checkout_session
from services.pricing import to_minor_units
from utils.audit import log_event
from utils.auth_context import current_actor

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


def _payment_json(p: Payment) -> dict:
    booking = p.booking
    return {
        "id": p.id,
        "booking_id": p.booking_id,
        "amount": str(p.amount),
        "currency": p.currency,
        "status": p.status,
        "commission": str(p.commission) if p.commission is not None else None,
        "net_amount": str(p.net_amount) if p.net_amount is not None else None,
        "created_at": p.created_at.isoformat() + "Z",
        "paid_at": p.paid_at.isoformat() + "Z" if p.paid_at else None,
        "booking": {
            "id": booking.id,
            "lesson_title": booking.lesson.title if booking.lesson else None,
            "start_time": booking.start_time.isoformat() + "Z",
            "end_time": booking.end_time.isoformat() + "Z",
        } if booking else None,
    }


# ---------- STUDENTS: payment history ----------
@payments_bp.get("")
@require_roles("STUDENT")
def list_payments():
    rows = (
        Payment.query
        .join(Booking, Payment.booking_id == Booking.id)
        .filter(Booking.student_id == g.user.id)
        .order_by(Payment.created_at.desc())
        .all()
    )
    return jsonify([_payment_json(p) for p in rows]), 200


# ---------- STUDENTS: open a Stripe checkout for a pending booking ----------
@payments_bp.post("/checkout/<int:booking_id>")
@require_roles("STUDENT")
def start_checkout(booking_id: int):
    stripe.api_key = current_app.config.get("STRIPE_SECRET_KEY")
    if not stripe.api_key:
        return jsonify(error="Stripe secret key missing (STRIPE_SECRET_KEY)", code="CONFIGURATION"), 500

    actor = current_actor()
    booking, payment = prepare_checkout(booking_id, actor)

    base_url = current_app.config.get("FRONTEND_BASE_URL", "").rstrip("/")
    title = booking.lesson.title if booking.lesson else f"Lesson booking #{booking.id}"

    session = stripe.checkout.Session.create(
        mode="payment",
        payment_method_types=["card"],
        line_items=[{
            "price_data": {
                "currency": payment.currency,
                "product_data": {"name": title},
                "unit_amount": to_minor_units(payment.amount),
            },
            "quantity": 1,
        }],
        success_url=f"{base_url}/students/bookings?payment=success",
        cancel_url=f"{base_url}/students/bookings/{booking.id}?payment=cancelled",
        metadata={
            "booking_id": str(booking.id),
            "payment_id": str(payment.id),
        },
    )

    attach_checkout_session(payment, session["id"])

    log_event("PAYMENT_CHECKOUT_STARTED", user_id=actor.user_id, entity="payment", entity_id=payment.id,
              metadata={"stripe_session_id": session["id"], "booking_id": booking.id})
    return jsonify(url=session["url"]), 200
