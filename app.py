from decimal import Decimal

import click
from flask import Flask, jsonify
from flask_migrate import Migrate

from config import Config
from routes import (
    health_bp, bookings_bp, payments_bp, webhook_bp, notifications_bp, reviews_bp, messages_bp,
)
from models import db
from services.errors import BookingError, RateLimited
from utils.auth_context import load_current_user


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(bookings_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(webhook_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(reviews_bp)
    app.register_blueprint(messages_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(BookingError)
    def _booking_error(err):
        resp = jsonify(err.to_dict())
        resp.status_code = err.status_code
        if isinstance(err, RateLimited):
            resp.headers["Retry-After"] = str(err.retry_after)
        return resp

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------
from models.user import User, USER_ROLES
from models.lesson import Lesson
from security.session import create_session

def register_cli(app):
    @app.cli.command("create-user")
    @click.argument("email")
    @click.option("--role", type=click.Choice(USER_ROLES), default="STUDENT")
    @click.option("--name", default=None)
    @click.option("--hourly-rate", type=str, default=None, help="Teachers only, e.g. 60.00")
    def create_user(email, role, name, hourly_rate):
        """Create a STUDENT, TEACHER or ADMIN account."""
        email = email.strip().lower()
        if User.query.filter_by(email=email).first():
            click.echo("User already exists")
            return

        user = User(
            email=email,
            name=name,
            role=role,
            hourly_rate=Decimal(hourly_rate) if hourly_rate else None,
        )
        db.session.add(user)
        db.session.commit()
        click.echo(f"{user.email} created as {user.role} (id={user.id})")

    @app.cli.command("create-lesson")
    @click.argument("teacher_email")
    @click.argument("title")
    @click.option("--duration", type=int, default=60, help="Minutes")
    @click.option("--price", type=str, default=None, help="Leave empty to charge the hourly rate")
    @click.option("--publish/--draft", default=True)
    def create_lesson(teacher_email, title, duration, price, publish):
        """Create a lesson for an existing teacher."""
        teacher = User.query.filter_by(email=teacher_email.strip().lower(), role="TEACHER").first()
        if not teacher:
            click.echo("Teacher not found")
            return

        lesson = Lesson(
            teacher_id=teacher.id,
            title=title,
            duration=duration,
            price=Decimal(price) if price else None,
            is_published=publish,
        )
        db.session.add(lesson)
        db.session.commit()
        click.echo(f"Lesson {lesson.id} created for {teacher.email}")

    @app.cli.command("issue-session")
    @click.argument("email")
    def issue_session(email):
        """Print a session token (cookie value) for manual API testing."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return
        click.echo(create_session(user.id))

#-------------------------

if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
