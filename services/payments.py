"""
Payment side of the booking lifecycle.

``prepare_checkout`` arms the booking's single Payment row before a Stripe
checkout session is opened. ``confirm_payment`` and ``expire_payment`` are
driven by the Stripe webhook after the event signature has been verified.
Both webhook operations tolerate unknown payments (they log and return
``None``) so the webhook can always acknowledge the delivery.
"""
import logging
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import Booking, PENDING, CONFIRMED
from models.payment import Payment, PAYMENT_PENDING, PAYMENT_PAID, PAYMENT_FAILED
from models.user import User
from services.booking_engine import describe_slot, get_booking
from services.errors import AccessDenied, InvalidState
from services.pricing import split_commission
from services.side_effects import booking_link, notify_user
from utils.audit import log_event

log = logging.getLogger(__name__)


def commission_rate():
    return current_app.config.get("PLATFORM_COMMISSION_RATE", "0.10")


def _as_int(value):
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def find_payment(payment_id=None, booking_id=None, session_id=None):
    payment_id = _as_int(payment_id)
    booking_id = _as_int(booking_id)

    payment = None
    if payment_id:
        payment = db.session.get(Payment, payment_id)
        if payment and booking_id and payment.booking_id != booking_id:
            log.warning("Payment %s does not belong to booking %s", payment_id, booking_id)
            return None
    if not payment and session_id:
        payment = Payment.query.filter_by(stripe_session_id=session_id).first()
    if not payment and booking_id and not payment_id:
        payment = Payment.query.filter_by(booking_id=booking_id).first()
    return payment


def prepare_checkout(booking_id, actor):
    """
    Upsert the PENDING payment for a booking the student is about to pay.
    Returns (booking, payment).
    """
    booking = get_booking(booking_id)
    if booking.student_id != actor.user_id:
        raise AccessDenied("Access denied")
    if booking.status != PENDING:
        raise InvalidState("Booking is not payable")

    payment = Payment.query.filter_by(booking_id=booking.id).first()
    if payment and payment.status == PAYMENT_PAID:
        raise InvalidState("Booking is already paid")

    currency = current_app.config.get("PAYMENT_CURRENCY", "usd")
    if not payment:
        payment = Payment(booking_id=booking.id, amount=booking.price, currency=currency)
        db.session.add(payment)
    payment.amount = booking.price
    payment.currency = currency
    payment.status = PAYMENT_PENDING
    db.session.commit()
    return booking, payment


def attach_checkout_session(payment: Payment, session_id: str) -> None:
    payment.stripe_session_id = session_id
    db.session.commit()


def confirm_payment(payment_id, booking_id, external_payment_ref, session_id=None):
    """
    Money received: payment PAID, booking CONFIRMED, both parties told.

    Returns (payment, effects); payment is None when nothing matched. A
    repeated delivery for a PAID payment recomputes the same commission
    from the stored amount and produces no effects. When the booking cannot
    be confirmed because its slot now belongs to another active booking,
    the payment is still recorded as PAID, the clash is audited, and no
    effects are produced.
    """
    payment = find_payment(payment_id, booking_id, session_id)
    if payment is None:
        log.warning(
            "Payment confirmation for unknown payment (payment_id=%s, booking_id=%s, session=%s)",
            payment_id, booking_id, session_id,
        )
        return None, []

    already_paid = payment.status == PAYMENT_PAID
    commission, net_amount = split_commission(payment.amount, commission_rate())
    paid_at = payment.paid_at if already_paid else datetime.utcnow()

    _mark_paid(payment, commission, net_amount, external_payment_ref, paid_at)
    booking = db.session.get(Booking, payment.booking_id)
    if not already_paid and booking is not None:
        booking.status = CONFIRMED
    try:
        db.session.commit()
    except IntegrityError:
        # uq_booking_lesson_start_active: the slot went to another booking
        # after this one was cancelled, so only the payment is recorded
        db.session.rollback()
        _mark_paid(payment, commission, net_amount, external_payment_ref, paid_at)
        db.session.commit()
        log.warning("Payment %s paid but booking %s could not be re-confirmed", payment.id, payment.booking_id)
        log_event("PAYMENT_PAID_SLOT_TAKEN", entity="booking", entity_id=payment.booking_id,
                  metadata={"payment_id": payment.id, "booking_status": booking.status if booking else None})
        return payment, []

    if already_paid or booking is None:
        return payment, []
    return payment, _paid_effects(booking, net_amount)


def _mark_paid(payment: Payment, commission, net_amount, external_payment_ref, paid_at) -> None:
    payment.status = PAYMENT_PAID
    payment.commission = commission
    payment.net_amount = net_amount
    payment.paid_at = paid_at
    if external_payment_ref:
        payment.stripe_payment_intent_id = external_payment_ref


def expire_payment(payment_id, booking_id, session_id=None):
    """Checkout session expired: a still PENDING payment becomes FAILED."""
    payment = find_payment(payment_id, booking_id, session_id)
    if payment is None or payment.status != PAYMENT_PENDING:
        return payment
    payment.status = PAYMENT_FAILED
    db.session.commit()
    return payment


def _paid_effects(booking: Booking, net_amount) -> list:
    student = db.session.get(User, booking.student_id)
    teacher = db.session.get(User, booking.teacher_id)
    title = booking.lesson.title if booking.lesson else "your lesson"
    when = describe_slot(booking.start_time, booking.end_time)
    link = booking_link(booking.id)

    effects = []
    if student is not None:
        effects += notify_user(
            student, "PAYMENT_COMPLETED",
            f'Your payment for "{title}" was successful.',
            link,
            subject="Payment Successful",
            email_text=(
                f'Your payment for the lesson "{title}" on {when} has been processed '
                f"successfully. Enjoy your session!"
            ),
        )
    if teacher is not None:
        effects += notify_user(
            teacher, "PAYMENT_RECEIVED",
            f'You received a payment for "{title}".',
            link,
            subject="You received a payment",
            email_text=(
                f'A payment for the lesson "{title}" on {when} has been completed. '
                f"You will receive {net_amount} after platform commission."
            ),
        )
    return effects
