from .health import health_bp
from .bookings import bookings_bp
from .payments import payments_bp
from .stripe_webhook import webhook_bp
from .notifications import notifications_bp
from .reviews import reviews_bp
from .messages import messages_bp
