from functools import wraps
from typing import NamedTuple

from flask import g
from security.session import get_session_from_request
from services.errors import Unauthenticated
from models import db
from models.user import User


class Actor(NamedTuple):
    user_id: int
    role: str


def load_current_user():
    sess = get_session_from_request()
    if not sess:
        g.user = None
        g.session = None
        return
    g.session = sess
    g.user = db.session.get(User, sess.user_id)

def current_actor() -> Actor:
    user = getattr(g, "user", None)
    if user is None:
        raise Unauthenticated("Authentication required")
    return Actor(user_id=user.id, role=user.role)

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            raise Unauthenticated("Authentication required")
        return fn(*args, **kwargs)
    return wrapper
