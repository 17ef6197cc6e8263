import logging

import stripe
from flask import Blueprint, current_app, request, jsonify
from sqlalchemy.exc import SQLAlchemyError

from models import db
from services.payments import confirm_payment, expire_payment
from services.side_effects import dispatch
from utils.audit import log_event

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhooks")

log = logging.getLogger(__name__)


@webhook_bp.post("/stripe")
def stripe_webhook():
    endpoint_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    sig_header = request.headers.get("Stripe-Signature")
    payload = request.data

    if not endpoint_secret or not sig_header:
        return jsonify(error="Missing Stripe signature or webhook secret"), 400

    try:
        event = stripe.Webhook.construct_event(payload, sig_header, endpoint_secret)
    except (ValueError, stripe.SignatureVerificationError) as exc:
        log.warning("Stripe webhook rejected: %s", exc)
        return jsonify(error="Invalid webhook signature"), 400

    # Past this point Stripe always gets a 200, otherwise it keeps redelivering
    event_type = event.get("type")
    try:
        _handle_checkout_event(event_type, event)
    except SQLAlchemyError:
        db.session.rollback()
        log.exception("Stripe event %s (%s) could not be stored", event.get("id"), event_type)

    return jsonify(received=True), 200


def _handle_checkout_event(event_type, event):
    if event_type not in ("checkout.session.completed", "checkout.session.expired"):
        return

    session = event["data"]["object"]
    session_id = session.get("id")
    meta = session.get("metadata", {}) or {}
    payment_id = meta.get("payment_id")
    booking_id = meta.get("booking_id")

    if event_type == "checkout.session.completed":
        payment, effects = confirm_payment(
            payment_id, booking_id, session.get("payment_intent"), session_id=session_id
        )
        if payment is None:
            log_event("PAYMENT_WEBHOOK_UNMATCHED", entity="payment", entity_id=payment_id,
                      metadata={"stripe_session_id": session_id, "booking_id": booking_id})
        else:
            log_event("PAYMENT_PAID", entity="payment", entity_id=payment.id,
                      metadata={"stripe_session_id": session_id, "booking_id": payment.booking_id,
                                "duplicate": not effects})
            dispatch(effects)
    else:
        payment = expire_payment(payment_id, booking_id, session_id=session_id)
        if payment is not None:
            log_event("PAYMENT_EXPIRED", entity="payment", entity_id=payment.id,
                      metadata={"stripe_session_id": session_id, "status": payment.status})
