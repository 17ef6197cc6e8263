from flask import Blueprint, request, jsonify, g

from models import db
from models.message import Message
from models.user import User
from services.errors import NotFound, ValidationFailed
from services.side_effects import Notify, dispatch
from utils.audit import log_event
from utils.auth_context import login_required

messages_bp = Blueprint("messages", __name__, url_prefix="/messages")

MAX_MESSAGE_LENGTH = 2000


def _message_json(m: Message) -> dict:
    return {
        "id": m.id,
        "sender_id": m.sender_id,
        "recipient_id": m.recipient_id,
        "content": m.content,
        "created_at": m.created_at.isoformat() + "Z",
    }


def _other_user_id(data) -> int:
    value = data.get("recipient_id") or data.get("recipientId")
    if not value:
        raise ValidationFailed("recipient_id is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationFailed("recipient_id must be an integer")


# ---------- conversation with one user, oldest first ----------
@messages_bp.get("")
@login_required
def list_messages():
    other_id = _other_user_id(request.args)
    me = g.user.id
    rows = (
        Message.query
        .filter(
            ((Message.sender_id == me) & (Message.recipient_id == other_id))
            | ((Message.sender_id == other_id) & (Message.recipient_id == me))
        )
        .order_by(Message.created_at.asc(), Message.id.asc())
        .all()
    )
    return jsonify([_message_json(m) for m in rows]), 200


@messages_bp.post("")
@login_required
def send_message():
    data = request.get_json(silent=True) or {}
    recipient_id = _other_user_id(data)
    content = data.get("content")
    content = content.strip() if isinstance(content, str) else ""

    if not content or len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationFailed(f"content must be 1 to {MAX_MESSAGE_LENGTH} characters")
    if recipient_id == g.user.id:
        raise ValidationFailed("Cannot send a message to yourself")
    if not db.session.get(User, recipient_id):
        raise NotFound("Recipient not found")

    msg = Message(sender_id=g.user.id, recipient_id=recipient_id, content=content)
    db.session.add(msg)
    db.session.commit()

    log_event("MESSAGE_SEND", user_id=g.user.id, entity="message", entity_id=msg.id,
              metadata={"recipient_id": recipient_id})

    sender = g.user.name or g.user.email
    dispatch([Notify(
        user_id=recipient_id,
        type="NEW_MESSAGE",
        message=f"New message from {sender}",
        link=f"/messages/{g.user.id}",
    )])
    return jsonify(_message_json(msg)), 201
