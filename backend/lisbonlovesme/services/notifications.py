"""
Admin notification fan-out.

A notification is first persisted (the admin inbox is the source of truth),
then delivered best-effort over two independent channels:
  1. the live WebSocket hub, to every connected admin session
  2. Firebase Cloud Messaging, to registered mobile devices (when configured)
A failure on one channel, or on one connection, never affects the others.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Set, Tuple
import asyncio
import logging

from fastapi import WebSocket
from sqlalchemy.orm import Session

from lisbonlovesme.core.config import settings
from lisbonlovesme.db.database import session_scope
from lisbonlovesme.db.models import Notification
from lisbonlovesme.db.repositories import DeviceRepository, NotificationRepository

logger = logging.getLogger(__name__)


def serialize_notification(notification: Notification) -> Dict[str, Any]:
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "body": notification.body,
        "payload": notification.payload or {},
        "read": bool(notification.read),
        "createdAt": notification.created_at.isoformat() if notification.created_at else None,
    }


# ---------------------------------------------------------------------------
# Live channel
# ---------------------------------------------------------------------------

class NotificationHub:
    """Tracks admin WebSocket connections; server -> client broadcast only."""

    def __init__(self):
        self._connections: Set[WebSocket] = set()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections.add(websocket)
        logger.info(f"Notification socket connected ({len(self._connections)} open)")

    def disconnect(self, websocket: WebSocket) -> None:
        self._connections.discard(websocket)

    async def _send_all(self, message: Dict[str, Any]) -> int:
        delivered = 0
        for websocket in list(self._connections):
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping notification socket after send failure: {e}")
                self.disconnect(websocket)
        return delivered

    async def broadcast(self, notification: Dict[str, Any]) -> int:
        return await self._send_all({"type": "notification", "data": notification})

    async def heartbeat(self) -> int:
        """Ping every connection; the ones that cannot be written to are dropped."""
        return await self._send_all({"type": "ping"})


hub = NotificationHub()


async def heartbeat_loop() -> None:
    while True:
        await asyncio.sleep(settings.ws_heartbeat_seconds)
        try:
            await hub.heartbeat()
        except Exception as e:
            logger.warning(f"Notification heartbeat error: {e}")


# ---------------------------------------------------------------------------
# Mobile push
# ---------------------------------------------------------------------------

class PushSender:
    """Firebase Cloud Messaging sender, initialised on first use."""

    def __init__(self):
        self._app = None
        self._disabled = False

    def _ensure_app(self):
        if self._app is not None or self._disabled:
            return self._app
        if not settings.fcm_credentials_file:
            self._disabled = True
            return None
        import firebase_admin
        from firebase_admin import credentials

        cred = credentials.Certificate(settings.fcm_credentials_file)
        self._app = firebase_admin.initialize_app(cred, name="lisbonlovesme-push")
        logger.info("FCM push initialised")
        return self._app

    def send(self, tokens: List[str], title: str, body: str, data: Dict[str, Any]) -> int:
        app = self._ensure_app()
        if app is None or not tokens:
            return 0
        from firebase_admin import messaging

        message = messaging.MulticastMessage(
            tokens=tokens,
            notification=messaging.Notification(title=title, body=body),
            data={str(k): str(v) for k, v in data.items()},
        )
        response = messaging.send_each_for_multicast(message, app=app)
        if response.failure_count:
            logger.warning(f"FCM push: {response.failure_count}/{len(tokens)} deliveries failed")
        return response.success_count


push_sender = PushSender()


# ---------------------------------------------------------------------------
# Persist + deliver
# ---------------------------------------------------------------------------

def record_notification(
    db: Session,
    type: str,
    title: str,
    body: str,
    payload: Optional[Dict[str, Any]] = None,
) -> Notification:
    """Persist an inbox entry inside the caller's transaction."""
    return NotificationRepository(db).create(type=type, title=title, body=body, payload=payload)


async def deliver(notification: Dict[str, Any], device_tokens: List[str]) -> Dict[str, Any]:
    """Deliver an already persisted notification on every channel."""
    result: Dict[str, Any] = {"websocket": 0, "push": 0, "errors": []}

    try:
        result["websocket"] = await hub.broadcast(notification)
    except Exception as e:
        logger.error(f"WebSocket broadcast failed for notification {notification.get('id')}: {e}")
        result["errors"].append(f"websocket: {e}")

    try:
        result["push"] = await asyncio.to_thread(
            push_sender.send,
            device_tokens,
            notification["title"],
            notification["body"],
            {"type": notification["type"], "notificationId": notification["id"]},
        )
    except Exception as e:
        logger.error(f"Mobile push failed for notification {notification.get('id')}: {e}")
        result["errors"].append(f"push: {e}")

    return result


def _load_for_delivery(notification_id: int) -> Optional[Tuple[Dict[str, Any], List[str]]]:
    with session_scope() as db:
        notification = NotificationRepository(db).get(notification_id)
        if notification is None:
            return None
        return serialize_notification(notification), DeviceRepository(db).active_tokens()


async def deliver_notification(notification_id: int) -> Dict[str, Any]:
    """Load a stored notification and the active device tokens (off the loop), then deliver."""
    loaded = await asyncio.to_thread(_load_for_delivery, notification_id)
    if loaded is None:
        logger.warning(f"Notification {notification_id} vanished before delivery")
        return {"websocket": 0, "push": 0, "errors": ["missing"]}
    data, tokens = loaded
    return await deliver(data, tokens)
