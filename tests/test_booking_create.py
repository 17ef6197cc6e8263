from decimal import Decimal

import pytest

from conftest import actor, allow, at
from models.booking import Booking, PENDING
from models.notification import Notification
from models.payment import Payment, PAYMENT_PENDING
from services.booking_engine import create_booking, cancel_booking
from services.errors import Conflict, Forbidden, InvalidState, NotFound, RateLimited, ValidationFailed
from services.side_effects import Email, Notify


def test_overlapping_slot_conflicts_but_touching_slot_does_not(student, outsider, lesson):
    create_booking(actor(student), lesson.id, at(10), at(11), rate_limit=allow)

    with pytest.raises(Conflict):
        create_booking(actor(outsider), lesson.id, at(10, 30), at(11, 30), rate_limit=allow)

    booking, _ = create_booking(actor(outsider), lesson.id, at(11), at(12), rate_limit=allow)
    assert booking.status == PENDING
    assert Booking.query.filter_by(lesson_id=lesson.id).count() == 2


def test_enclosing_slot_conflicts(student, lesson):
    create_booking(actor(student), lesson.id, at(10, 15), at(10, 45), rate_limit=allow)
    with pytest.raises(Conflict):
        create_booking(actor(student), lesson.id, at(10), at(11), rate_limit=allow)


def test_cancelled_booking_frees_the_slot(student, outsider, lesson):
    booking, _ = create_booking(actor(student), lesson.id, at(10), at(11), rate_limit=allow)
    cancel_booking(booking.id, actor(student))

    again, _ = create_booking(actor(outsider), lesson.id, at(10), at(11), rate_limit=allow)
    assert again.status == PENDING


def test_same_slot_on_another_lesson_is_fine(student, teacher, lesson, make_lesson):
    other = make_lesson(teacher, title="Linear Algebra")
    create_booking(actor(student), lesson.id, at(10), at(11), rate_limit=allow)
    booking, _ = create_booking(actor(student), other.id, at(10), at(11), rate_limit=allow)
    assert booking.lesson_id == other.id


def test_price_falls_back_to_hourly_rate(student, lesson):
    # lesson.price unset, teacher charges 60/h, 90 minutes
    booking, _ = create_booking(actor(student), lesson.id, at(10), at(11, 30), rate_limit=allow)
    assert booking.price == Decimal("90.00")


def test_zero_lesson_price_uses_hourly_rate(student, teacher, make_lesson):
    lesson = make_lesson(teacher, price=0)
    booking, _ = create_booking(actor(student), lesson.id, at(10), at(11, 30), rate_limit=allow)
    assert booking.price == Decimal("90.00")


def test_lesson_price_overrides_hourly_rate(student, teacher, make_lesson):
    lesson = make_lesson(teacher, price=Decimal("25"))
    booking, _ = create_booking(actor(student), lesson.id, at(10), at(13), rate_limit=allow)
    assert booking.price == Decimal("25.00")


def test_missing_hourly_rate_prices_at_zero(student, make_user, make_lesson):
    unpaid_teacher = make_user("TEACHER")
    lesson = make_lesson(unpaid_teacher)
    booking, _ = create_booking(actor(student), lesson.id, at(10), at(11), rate_limit=allow)
    assert booking.price == Decimal("0.00")


def test_creation_opens_pending_payment_and_notifies_teacher(student, teacher, lesson):
    booking, effects = create_booking(actor(student), lesson.id, at(10), at(11), rate_limit=allow)

    payment = Payment.query.filter_by(booking_id=booking.id).one()
    assert payment.status == PAYMENT_PENDING
    assert payment.amount == booking.price

    notifies = [e for e in effects if isinstance(e, Notify)]
    emails = [e for e in effects if isinstance(e, Email)]
    assert [(n.user_id, n.type) for n in notifies] == [(teacher.id, "BOOKING_REQUESTED")]
    assert [e.to for e in emails] == [teacher.email]
    # effects are only intents until dispatched
    assert Notification.query.count() == 0


def test_only_students_can_book(teacher, make_user, lesson):
    other_teacher = make_user("TEACHER")
    with pytest.raises(Forbidden):
        create_booking(actor(other_teacher), lesson.id, at(10), at(11), rate_limit=allow)


def test_cannot_book_own_lesson(make_user, make_lesson):
    # a student account that also owns a lesson
    owner = make_user("STUDENT")
    lesson = make_lesson(owner)
    with pytest.raises(Forbidden):
        create_booking(actor(owner), lesson.id, at(10), at(11), rate_limit=allow)


def test_unknown_lesson(student):
    with pytest.raises(NotFound):
        create_booking(actor(student), 999, at(10), at(11), rate_limit=allow)


def test_unpublished_lesson(student, teacher, make_lesson):
    draft = make_lesson(teacher, published=False)
    with pytest.raises(InvalidState):
        create_booking(actor(student), draft.id, at(10), at(11), rate_limit=allow)


@pytest.mark.parametrize("start, end", [(at(11), at(10)), (at(10), at(10))])
def test_end_must_follow_start(student, lesson, start, end):
    with pytest.raises(ValidationFailed):
        create_booking(actor(student), lesson.id, start, end, rate_limit=allow)


def test_rate_limit_gate(student, lesson):
    with pytest.raises(RateLimited) as exc:
        create_booking(actor(student), lesson.id, at(10), at(11), rate_limit=lambda uid: (False, 42))
    assert exc.value.retry_after == 42
    assert Booking.query.count() == 0


# ---------- HTTP ----------

def test_post_requires_session(client, lesson):
    r = client.post("/bookings", json={"lesson_id": lesson.id, "start_time": "2030-01-15T10:00:00Z",
                                       "end_time": "2030-01-15T11:00:00Z"})
    assert r.status_code == 401
    assert r.get_json()["code"] == "UNAUTHENTICATED"


def test_post_creates_booking(client, login, student, teacher, lesson, outbox):
    login(student)
    r = client.post("/bookings", json={"lessonId": lesson.id, "startTime": "2030-01-15T10:00:00Z",
                                       "endTime": "2030-01-15T11:30:00Z"})
    assert r.status_code == 201
    data = r.get_json()
    assert data["status"] == "PENDING"
    assert Decimal(data["price"]) == Decimal("90")
    assert data["payment"]["status"] == "PENDING"
    assert data["reschedule"]["status"] == "NONE"

    note = Notification.query.filter_by(user_id=teacher.id).one()
    assert note.type == "BOOKING_REQUESTED"
    assert note.link == f"/bookings/{data['id']}"
    assert [m["to"] for m in outbox] == [teacher.email]


def test_post_with_offset_timestamp_is_stored_as_utc(client, login, student, lesson):
    login(student)
    r = client.post("/bookings", json={"lesson_id": lesson.id, "start_time": "2030-01-15T12:00:00+02:00",
                                       "end_time": "2030-01-15T13:00:00+02:00"})
    assert r.status_code == 201
    assert r.get_json()["start_time"] == "2030-01-15T10:00:00Z"


def test_post_conflict_is_409(client, login, student, lesson, book):
    book(student, lesson, at(10), at(11))
    login(student)
    r = client.post("/bookings", json={"lesson_id": lesson.id, "start_time": "2030-01-15T10:30:00",
                                       "end_time": "2030-01-15T11:30:00"})
    assert r.status_code == 409
    assert r.get_json()["code"] == "CONFLICT"


@pytest.mark.parametrize("payload", [
    {},
    {"lesson_id": 1, "start_time": "2030-01-15T10:00:00"},
    {"lesson_id": 1, "start_time": "yesterday", "end_time": "2030-01-15T11:00:00"},
    {"lesson_id": "abc", "start_time": "2030-01-15T10:00:00", "end_time": "2030-01-15T11:00:00"},
])
def test_post_validation(client, login, student, payload):
    login(student)
    r = client.post("/bookings", json=payload)
    assert r.status_code == 400
    assert r.get_json()["code"] == "VALIDATION"


def test_post_rate_limited(app, client, login, student, lesson):
    app.config["BOOKING_RATE_MAX_REQUESTS"] = 1
    login(student)
    first = client.post("/bookings", json={"lesson_id": lesson.id, "start_time": "2030-01-15T08:00:00",
                                           "end_time": "2030-01-15T09:00:00"})
    assert first.status_code == 201

    second = client.post("/bookings", json={"lesson_id": lesson.id, "start_time": "2030-01-15T12:00:00",
                                            "end_time": "2030-01-15T13:00:00"})
    assert second.status_code == 429
    assert second.get_json()["code"] == "RATE_LIMITED"
    assert int(second.headers["Retry-After"]) >= 1


def test_list_bookings_by_role(client, login, student, outsider, teacher, lesson, book):
    book(student, lesson, at(9), at(10))
    book(outsider, lesson, at(11), at(12))

    login(student)
    mine = client.get("/bookings").get_json()
    assert [b["student_id"] for b in mine] == [student.id]

    login(teacher)
    theirs = client.get("/bookings").get_json()
    assert len(theirs) == 2
    # newest start first
    assert theirs[0]["start_time"] > theirs[1]["start_time"]

    filtered = client.get("/bookings?status=CONFIRMED").get_json()
    assert filtered == []


def test_get_booking_parties_only(client, login, student, outsider, lesson, book):
    booking = book(student, lesson)

    login(outsider)
    r = client.get(f"/bookings/{booking.id}")
    assert r.status_code == 403
    assert r.get_json()["code"] == "ACCESS_DENIED"

    login(student)
    assert client.get(f"/bookings/{booking.id}").status_code == 200
    assert client.get("/bookings/9999").status_code == 404
