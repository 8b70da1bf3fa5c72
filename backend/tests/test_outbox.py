"""
Outbox dispatcher: delivery, retry with backoff, permanent failure.
"""

import asyncio
from datetime import datetime, timedelta

import pytest

from lisbonlovesme.core.config import settings
from lisbonlovesme.db.models import OutboxMessage
from lisbonlovesme.services import outbox


def _run(coro):
    return asyncio.run(coro)


def _add(db, kind=outbox.EMAIL_REVIEW_REQUEST, payload=None):
    message = outbox.enqueue(db, kind, payload or {"reference": "LT-TEST001"})
    db.commit()
    return message


def _reload(db, message_id):
    db.expire_all()
    return db.get(OutboxMessage, message_id)


def test_enqueue_rejects_unknown_kind(db):
    with pytest.raises(ValueError):
        outbox.enqueue(db, "sms.send", {})


def test_backoff_doubles():
    base = settings.outbox_backoff_seconds
    assert outbox.backoff_delay(1) == timedelta(seconds=base)
    assert outbox.backoff_delay(2) == timedelta(seconds=base * 2)
    assert outbox.backoff_delay(4) == timedelta(seconds=base * 8)


def test_successful_delivery_marks_sent(db, monkeypatch):
    delivered = []

    async def handler(payload):
        delivered.append(payload)

    monkeypatch.setitem(outbox.HANDLERS, outbox.EMAIL_REVIEW_REQUEST, handler)
    message = _add(db)

    counts = _run(outbox.drain())

    assert counts["sent"] == 1
    assert delivered == [{"reference": "LT-TEST001"}]
    stored = _reload(db, message.id)
    assert stored.status == "sent"
    assert stored.attempts == 1
    assert stored.sent_at is not None


def test_failure_is_rescheduled_with_backoff(db, monkeypatch):
    async def handler(payload):
        raise RuntimeError("smtp down")

    monkeypatch.setitem(outbox.HANDLERS, outbox.EMAIL_REVIEW_REQUEST, handler)
    message = _add(db)
    now = datetime.utcnow() + timedelta(seconds=1)

    counts = _run(outbox.drain(now=now))

    assert counts["retry"] == 1
    stored = _reload(db, message.id)
    assert stored.status == "pending"
    assert stored.attempts == 1
    assert stored.last_error == "smtp down"
    assert stored.next_attempt_at == now + outbox.backoff_delay(1)

    # Not due yet: nothing happens
    assert _run(outbox.drain(now=now + timedelta(seconds=1))) == {"sent": 0, "retry": 0, "failed": 0, "skipped": 0}


def test_gives_up_after_max_attempts(db, monkeypatch):
    async def handler(payload):
        raise RuntimeError("still down")

    monkeypatch.setitem(outbox.HANDLERS, outbox.EMAIL_REVIEW_REQUEST, handler)
    monkeypatch.setattr(settings, "outbox_max_attempts", 2)
    message = _add(db)

    now = datetime.utcnow() + timedelta(seconds=1)
    assert _run(outbox.drain(now=now))["retry"] == 1
    later = now + timedelta(days=1)
    assert _run(outbox.drain(now=later))["failed"] == 1

    stored = _reload(db, message.id)
    assert stored.status == "failed"
    assert stored.attempts == 2
    assert _run(outbox.drain(now=later + timedelta(days=1)))["failed"] == 0


def test_claimed_message_is_not_run_twice(db, monkeypatch):
    calls = []

    async def handler(payload):
        calls.append(payload)

    monkeypatch.setitem(outbox.HANDLERS, outbox.EMAIL_REVIEW_REQUEST, handler)
    message = _add(db)
    now = datetime.utcnow() + timedelta(seconds=1)

    assert outbox._claim(db, message.id, now)
    assert not outbox._claim(db, message.id, now)
    # The lease pushed the message out of the due window
    assert _run(outbox.drain(now=now))["sent"] == 0
    assert calls == []


def test_missing_smtp_counts_as_delivered(db):
    payload = {
        "reference": "LT-ABC1234",
        "tourName": "Alfama Walk",
        "customerFirstName": "Ana",
        "customerEmail": "ana@example.com",
        "language": "en",
    }
    message = _add(db, outbox.EMAIL_REVIEW_REQUEST, payload)

    assert _run(outbox.drain())["sent"] == 1
    assert _reload(db, message.id).status == "sent"


def test_deleted_notification_is_not_retried(db):
    message = _add(db, outbox.NOTIFICATION_DELIVER, {"notificationId": 999})

    assert _run(outbox.drain())["sent"] == 1
    assert _reload(db, message.id).status == "sent"


def test_message_without_handler_fails_at_once(db):
    message = OutboxMessage(kind="sms.legacy", payload={}, status="pending", attempts=0,
                            next_attempt_at=datetime.utcnow() - timedelta(seconds=1))
    db.add(message)
    db.commit()

    assert _run(outbox.drain())["failed"] == 1
    stored = _reload(db, message.id)
    assert stored.status == "failed"
    assert stored.attempts == 1
    assert "No handler" in stored.last_error
