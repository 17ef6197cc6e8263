import pytest

from models.audit_log import AuditLog
from models.message import Message
from models.notification import Notification


def _send(client, recipient_id, content="Can we go over limits again?"):
    return client.post("/messages", json={"recipient_id": recipient_id, "content": content})


def test_send_message_notifies_recipient(client, login, student, teacher):
    login(student)
    r = _send(client, teacher.id)
    assert r.status_code == 201
    body = r.get_json()
    assert (body["sender_id"], body["recipient_id"]) == (student.id, teacher.id)

    note = Notification.query.filter_by(user_id=teacher.id).one()
    assert note.type == "NEW_MESSAGE"
    assert note.link == f"/messages/{student.id}"
    assert AuditLog.query.filter_by(action="MESSAGE_SEND").count() == 1


def test_conversation_is_chronological_and_private(client, login, student, teacher, outsider):
    login(student)
    _send(client, teacher.id, "first")
    login(teacher)
    _send(client, student.id, "second")
    login(outsider)
    _send(client, teacher.id, "not part of it")

    login(student)
    rows = client.get(f"/messages?recipient_id={teacher.id}").get_json()
    assert [m["content"] for m in rows] == ["first", "second"]

    login(outsider)
    rows = client.get(f"/messages?recipient_id={student.id}").get_json()
    assert rows == []


def test_requires_login(client, teacher):
    assert client.get(f"/messages?recipient_id={teacher.id}").status_code == 401
    assert _send(client, teacher.id).status_code == 401


@pytest.mark.parametrize("payload", [
    {"content": "hi"},
    {"recipient_id": "abc", "content": "hi"},
    {"recipient_id": 1, "content": "   "},
    {"recipient_id": 1, "content": ["hi"]},
    {"recipient_id": 1, "content": "x" * 2001},
])
def test_send_validation(client, login, student, teacher, payload):
    login(student)
    r = client.post("/messages", json=payload)
    assert r.status_code == 400
    assert r.get_json()["code"] == "VALIDATION"
    assert Message.query.count() == 0


def test_cannot_message_yourself_or_nobody(client, login, student):
    login(student)
    assert _send(client, student.id).status_code == 400
    assert _send(client, 9999).status_code == 404


def test_list_requires_counterpart(client, login, student):
    login(student)
    r = client.get("/messages")
    assert r.status_code == 400
