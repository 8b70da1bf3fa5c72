"""
Outbox for side effects that must not block or undo a committed write.

Messages are enqueued in the same transaction as the change that caused
them (e.g. a booking), so they exist exactly when the change exists. The
dispatcher delivers them afterwards and retries failures with exponential
backoff. A message is claimed with a lease (next_attempt_at pushed into the
future) so two dispatchers never run the same message at once; if a
dispatcher dies mid-send the lease expires and the message becomes due again.
"""

from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
import asyncio
import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from lisbonlovesme.core.config import settings
from lisbonlovesme.core.monitoring import track_performance
from lisbonlovesme.db.database import session_scope
from lisbonlovesme.db.models import OutboxMessage
from lisbonlovesme.db.repositories import OutboxRepository
from lisbonlovesme.services import email as email_service
from lisbonlovesme.services.notifications import deliver_notification

logger = logging.getLogger(__name__)

CLAIM_LEASE = timedelta(minutes=5)

EMAIL_REQUEST_RECEIVED = "email.request_received"
EMAIL_ADMIN_NEW_BOOKING = "email.admin_new_booking"
EMAIL_BOOKING_CONFIRMED = "email.booking_confirmed"
EMAIL_REVIEW_REQUEST = "email.review_request"
NOTIFICATION_DELIVER = "notification.deliver"


async def _request_received(payload: Dict[str, Any]) -> None:
    await email_service.send_email(email_service.request_received_email(payload))


async def _admin_new_booking(payload: Dict[str, Any]) -> None:
    if not settings.admin_notification_email:
        logger.info("No admin notification email configured, skipping new booking email")
        return
    await email_service.send_email(
        email_service.admin_new_booking_email(payload, settings.admin_notification_email)
    )


async def _booking_confirmed(payload: Dict[str, Any]) -> None:
    await email_service.send_email(email_service.booking_confirmed_email(payload))


async def _review_request(payload: Dict[str, Any]) -> None:
    await email_service.send_email(email_service.review_request_email(payload))


async def _notification_deliver(payload: Dict[str, Any]) -> None:
    # Channel failures are logged inside deliver(); nothing here is retried
    await deliver_notification(payload["notificationId"])


HANDLERS: Dict[str, Callable[[Dict[str, Any]], Awaitable[None]]] = {
    EMAIL_REQUEST_RECEIVED: _request_received,
    EMAIL_ADMIN_NEW_BOOKING: _admin_new_booking,
    EMAIL_BOOKING_CONFIRMED: _booking_confirmed,
    EMAIL_REVIEW_REQUEST: _review_request,
    NOTIFICATION_DELIVER: _notification_deliver,
}


def enqueue(db: Session, kind: str, payload: Dict[str, Any]) -> OutboxMessage:
    """Add a message to the caller's transaction."""
    if kind not in HANDLERS:
        raise ValueError(f"Unknown outbox message kind: {kind}")
    return OutboxRepository(db).add(kind, payload)


def backoff_delay(attempts: int) -> timedelta:
    return timedelta(seconds=settings.outbox_backoff_seconds * (2 ** max(attempts - 1, 0)))


def _claim(db: Session, message_id: int, now: datetime) -> bool:
    result = db.execute(
        update(OutboxMessage)
        .where(
            OutboxMessage.id == message_id,
            OutboxMessage.status == "pending",
            OutboxMessage.next_attempt_at <= now,
        )
        .values(next_attempt_at=now + CLAIM_LEASE)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


# Database steps below are blocking and run in a worker thread; handlers run on the loop.

def _due_ids(now: datetime, limit: int) -> List[int]:
    with session_scope() as db:
        return [m.id for m in OutboxRepository(db).due(now, limit)]


def _start_attempt(message_id: int, now: datetime) -> Optional[Tuple[str, Dict[str, Any]]]:
    """Claim the message and count the attempt. None when another dispatcher has it."""
    with session_scope() as db:
        if not _claim(db, message_id, now):
            return None
        message = db.get(OutboxMessage, message_id)
        db.refresh(message)
        message.attempts = (message.attempts or 0) + 1
        kind, payload = message.kind, dict(message.payload or {})
        db.commit()
        return kind, payload


def _mark_sent(message_id: int) -> str:
    with session_scope() as db:
        message = db.get(OutboxMessage, message_id)
        message.status = "sent"
        message.sent_at = datetime.utcnow()
        message.last_error = None
        db.commit()
    return "sent"


def _mark_failed(message_id: int, now: datetime, error: Exception, permanent: bool) -> str:
    with session_scope() as db:
        message = db.get(OutboxMessage, message_id)
        message.last_error = str(error)[:1000]
        if permanent or message.attempts >= settings.outbox_max_attempts:
            message.status = "failed"
            logger.error(f"Outbox message {message.id} ({message.kind}) failed permanently: {error}",
                         extra={"outbox_id": message.id})
            outcome = "failed"
        else:
            message.next_attempt_at = now + backoff_delay(message.attempts)
            logger.warning(
                f"Outbox message {message.id} ({message.kind}) attempt {message.attempts} failed, "
                f"retrying at {message.next_attempt_at.isoformat()}: {error}",
                extra={"outbox_id": message.id},
            )
            outcome = "retry"
        db.commit()
    return outcome


async def _process(message_id: int, now: datetime) -> str:
    started = await asyncio.to_thread(_start_attempt, message_id, now)
    if started is None:
        return "skipped"
    kind, payload = started
    handler = HANDLERS.get(kind)
    try:
        if handler is None:
            raise LookupError(f"No handler for outbox kind {kind}")
        await handler(payload)
    except Exception as e:
        return await asyncio.to_thread(_mark_failed, message_id, now, e, handler is None)
    return await asyncio.to_thread(_mark_sent, message_id)


@track_performance("outbox.drain")
async def drain(limit: Optional[int] = None, now: Optional[datetime] = None) -> Dict[str, int]:
    """Deliver every due message once. Returns counts by outcome."""
    now = now or datetime.utcnow()
    counts = {"sent": 0, "retry": 0, "failed": 0, "skipped": 0}
    due_ids = await asyncio.to_thread(_due_ids, now, limit or settings.outbox_batch_size)
    for message_id in due_ids:
        counts[await _process(message_id, now)] += 1
    return counts


async def run_outbox_worker() -> None:
    """Background loop started from the app lifespan."""
    while True:
        await asyncio.sleep(settings.outbox_poll_seconds)
        try:
            counts = await drain()
            if counts["sent"] or counts["retry"] or counts["failed"]:
                logger.info(f"Outbox drain: {counts}")
        except Exception as e:
            logger.warning(f"Outbox worker error: {e}")
