from functools import wraps
from flask import g

from services.errors import Forbidden, Unauthenticated

def has_role(role_name: str) -> bool:
    user = getattr(g, "user", None)
    if not user:
        return False
    return user.role == role_name

def require_roles(*role_names: str):
    """
    Usage: @require_roles("STUDENT")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                raise Unauthenticated("Authentication required")

            if not any(has_role(r) for r in role_names):
                raise Forbidden("Forbidden")

            return fn(*args, **kwargs)
        return wrapper
    return decorator
