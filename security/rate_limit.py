from datetime import datetime, timedelta
from flask import current_app

from models import db
from models.rate_limit import RateLimit

def check_and_increment(key: str, window_seconds: int, max_requests: int) -> tuple[bool, int]:
    """
    Returns (allowed, retry_after_seconds).
    Fixed window counter stored in the database, so every app instance
    shares it.
    """
    now = datetime.utcnow()

    row = RateLimit.query.filter_by(key=key).first()
    if not row:
        row = RateLimit(key=key, window_start=now, count=0)
        db.session.add(row)

    window_end = row.window_start + timedelta(seconds=window_seconds)

    # Reset window if expired
    if now >= window_end:
        row.window_start = now
        row.count = 0
        window_end = row.window_start + timedelta(seconds=window_seconds)

    row.count += 1
    db.session.commit()

    if row.count > max_requests:
        retry_after = int((window_end - now).total_seconds())
        return False, max(retry_after, 1)

    return True, 0

def check_booking_rate(user_id: int) -> tuple[bool, int]:
    window_seconds = current_app.config.get("BOOKING_RATE_WINDOW_SECONDS", 60)
    max_requests = current_app.config.get("BOOKING_RATE_MAX_REQUESTS", 5)
    return check_and_increment(f"booking:{user_id}", window_seconds, max_requests)
