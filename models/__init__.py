from .db import db
from .user import User
from .lesson import Lesson
from .booking import Booking
from .payment import Payment
from .notification import Notification
from .review import Review
from .session import Session
from .audit_log import AuditLog
from .rate_limit import RateLimit
from .message import Message
