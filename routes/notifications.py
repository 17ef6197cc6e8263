from flask import Blueprint, request, jsonify, g

from models import db
from models.notification import Notification
from services.errors import NotFound, ValidationFailed
from utils.audit import log_event
from utils.auth_context import login_required

notifications_bp = Blueprint("notifications", __name__, url_prefix="/notifications")


def _notification_json(n: Notification) -> dict:
    return {
        "id": n.id,
        "type": n.type,
        "message": n.message,
        "link": n.link,
        "read": n.read,
        "created_at": n.created_at.isoformat() + "Z",
    }


def _mark_read(notification_id) -> Notification:
    n = db.session.get(Notification, notification_id)
    # other users' notifications look exactly like missing ones
    if not n or n.user_id != g.user.id:
        raise NotFound("Notification not found")
    if not n.read:
        n.read = True
        db.session.commit()
        log_event("NOTIFICATION_READ", user_id=g.user.id, entity="notification", entity_id=n.id)
    return n


@notifications_bp.get("")
@login_required
def list_notifications():
    q = Notification.query.filter_by(user_id=g.user.id)
    if request.args.get("unread") in ("1", "true"):
        q = q.filter_by(read=False)
    rows = q.order_by(Notification.created_at.desc(), Notification.id.desc()).all()
    return jsonify([_notification_json(n) for n in rows]), 200


@notifications_bp.put("")
@login_required
def mark_read_from_body():
    data = request.get_json(silent=True) or {}
    notification_id = data.get("id")
    if not notification_id:
        raise ValidationFailed("Notification id required")
    try:
        notification_id = int(notification_id)
    except (TypeError, ValueError):
        raise ValidationFailed("Notification id must be an integer")
    return jsonify(_notification_json(_mark_read(notification_id))), 200


@notifications_bp.patch("/<int:notification_id>")
@login_required
def mark_read(notification_id: int):
    return jsonify(_notification_json(_mark_read(notification_id))), 200
