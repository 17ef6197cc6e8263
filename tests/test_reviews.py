import pytest

from conftest import actor, at
from models import db
from models.notification import Notification
from models.review import Review
from models.user import User
from services.booking_engine import update_status


@pytest.fixture
def completed(student, teacher, lesson, book):
    booking = book(student, lesson, at(10), at(11))
    update_status(booking.id, actor(teacher), "CONFIRMED")
    update_status(booking.id, actor(teacher), "COMPLETED")
    return booking


def _review(client, booking_id, rating=5, comment="Clear and patient."):
    return client.post("/reviews", json={"booking_id": booking_id, "rating": rating, "comment": comment})


def test_review_completed_booking(client, login, student, teacher, completed, outbox):
    login(student)
    r = _review(client, completed.id, rating=4)
    assert r.status_code == 201
    body = r.get_json()
    assert body["teacher_id"] == teacher.id
    assert body["rating"] == 4

    assert db.session.get(User, teacher.id).average_rating == 4.0
    assert Notification.query.filter_by(user_id=teacher.id, type="REVIEW_RECEIVED").count() == 1
    assert outbox[-1]["subject"] == "Mentoro: New review"


def test_average_rating_spans_bookings(client, login, student, teacher, lesson, book, completed):
    second = book(student, lesson, at(14), at(15))
    update_status(second.id, actor(teacher), "CONFIRMED")
    update_status(second.id, actor(teacher), "COMPLETED")

    login(student)
    _review(client, completed.id, rating=5)
    _review(client, second.id, rating=2)
    assert db.session.get(User, teacher.id).average_rating == pytest.approx(3.5)


def test_one_review_per_booking(client, login, student, completed):
    login(student)
    assert _review(client, completed.id).status_code == 201

    r = _review(client, completed.id, rating=1)
    assert r.status_code == 409
    assert r.get_json()["code"] == "CONFLICT"
    assert Review.query.count() == 1


def test_pending_booking_cannot_be_reviewed(client, login, student, lesson, book):
    booking = book(student, lesson, at(10), at(11))
    login(student)
    r = _review(client, booking.id)
    assert r.status_code == 404


def test_other_students_booking(client, login, outsider, completed):
    login(outsider)
    assert _review(client, completed.id).status_code == 404


@pytest.mark.parametrize("rating, comment", [
    (0, "fine"),
    (6, "fine"),
    ("5", "fine"),
    (True, "fine"),
    (3, ""),
    (3, "x" * 501),
])
def test_review_validation(client, login, student, completed, rating, comment):
    login(student)
    r = _review(client, completed.id, rating=rating, comment=comment)
    assert r.status_code == 400
    assert r.get_json()["code"] == "VALIDATION"


def test_teachers_cannot_review(client, login, teacher, completed):
    login(teacher)
    assert _review(client, completed.id).status_code == 403


def test_list_reviews_by_teacher(client, login, student, teacher, outsider, completed):
    login(student)
    _review(client, completed.id)

    rows = client.get(f"/reviews?teacher_id={teacher.id}").get_json()
    assert [r["booking_id"] for r in rows] == [completed.id]
    assert client.get(f"/reviews?teacher_id={outsider.id}").get_json() == []
