"""
Outbox for booking side effects.

Engine operations never talk to the notification table or the mail server
themselves. They return a list of intents (``Notify`` / ``Email``) next to
the booking they changed, and the caller hands that list to ``dispatch``
once the state change is committed. A failing intent is logged and skipped;
it never undoes the transition that produced it.
"""
import logging
from typing import NamedTuple, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.notification import Notification
from utils.emailer import send_email

log = logging.getLogger(__name__)


class Notify(NamedTuple):
    user_id: int
    type: str
    message: str
    link: Optional[str] = None


class Email(NamedTuple):
    to: str
    subject: str
    text: str


def booking_link(booking_id) -> str:
    return f"/bookings/{booking_id}"


def absolute_link(path: str) -> str:
    base = (current_app.config.get("FRONTEND_BASE_URL") or "").rstrip("/")
    return f"{base}{path}"


def notify_user(user, type_: str, message: str, link: str, subject: str, email_text: str = None) -> list:
    """In-app notification plus email for one recipient."""
    effects = [Notify(user_id=user.id, type=type_, message=message, link=link)]
    if user.email:
        text = email_text or message
        effects.append(Email(
            to=user.email,
            subject=f"Mentoro: {subject}",
            text=f"{text}\n\n{absolute_link(link)}",
        ))
    return effects


def dispatch(effects) -> dict:
    """Execute intents in order. Returns counts of delivered/failed effects."""
    delivered = 0
    failed = 0
    for effect in effects or []:
        if isinstance(effect, Notify):
            ok = _create_notification(effect)
        elif isinstance(effect, Email):
            ok = _send(effect)
        else:
            log.warning("Unknown side effect %r skipped", effect)
            ok = False

        if ok:
            delivered += 1
        else:
            failed += 1
    return {"delivered": delivered, "failed": failed}


def _create_notification(effect: Notify) -> bool:
    row = Notification(
        user_id=effect.user_id,
        type=effect.type,
        message=effect.message[:500],
        link=effect.link,
    )
    db.session.add(row)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        log.warning("Could not store %s notification for user %s", effect.type, effect.user_id, exc_info=True)
        return False
    return True


def _send(effect: Email) -> bool:
    try:
        ok, error = send_email(effect.to, effect.subject, effect.text)
    except Exception:
        log.warning("Email %r to %s raised", effect.subject, effect.to, exc_info=True)
        return False
    if not ok:
        log.warning("Email %r to %s not sent: %s", effect.subject, effect.to, error)
    return ok
