import itertools
from datetime import datetime

import pytest

from app import create_app
from config import Config
from models import db
from models.lesson import Lesson
from models.user import User
from security.session import create_session
from services import booking_engine
from utils.auth_context import Actor


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SMTP_HOST = "smtp.mentoro.test"
    STRIPE_SECRET_KEY = "sk_test_mentoro"
    STRIPE_WEBHOOK_SECRET = "whsec_mentoro"
    FRONTEND_BASE_URL = "https://mentoro.test"
    BOOKING_RATE_MAX_REQUESTS = 100


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    """Collects emails instead of talking to SMTP."""
    sent = []

    def fake_send(to_email, subject, body):
        sent.append({"to": to_email, "subject": subject, "body": body})
        return True, None

    monkeypatch.setattr("services.side_effects.send_email", fake_send)
    return sent


@pytest.fixture
def make_user(app):
    counter = itertools.count(1)

    def _make(role="STUDENT", hourly_rate=None, name=None):
        n = next(counter)
        user = User(
            email=f"{role.lower()}{n}@mentoro.test",
            name=name or f"{role.title()} {n}",
            role=role,
            hourly_rate=hourly_rate,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_lesson(app):
    def _make(teacher, price=None, published=True, duration=60, title="Intro to Calculus"):
        lesson = Lesson(
            teacher_id=teacher.id,
            title=title,
            duration=duration,
            price=price,
            is_published=published,
        )
        db.session.add(lesson)
        db.session.commit()
        return lesson

    return _make


@pytest.fixture
def teacher(make_user):
    return make_user("TEACHER", hourly_rate=60)


@pytest.fixture
def student(make_user):
    return make_user("STUDENT")


@pytest.fixture
def outsider(make_user):
    return make_user("STUDENT")


@pytest.fixture
def lesson(make_lesson, teacher):
    return make_lesson(teacher)


def at(hour, minute=0, day=15):
    return datetime(2030, 1, day, hour, minute)


def actor(user):
    return Actor(user_id=user.id, role=user.role)


def allow(user_id):
    return True, 0


@pytest.fixture
def book(app):
    """Create a PENDING booking through the engine, skipping the rate limit."""
    def _book(student, lesson, start=None, end=None):
        booking, _ = booking_engine.create_booking(
            actor(student), lesson.id, start or at(10), end or at(11), rate_limit=allow
        )
        return booking

    return _book


@pytest.fixture
def login(client):
    def _login(user):
        token = create_session(user.id)
        client.set_cookie(TestConfig.AUTH_COOKIE_NAME, token)
        return token

    return _login
