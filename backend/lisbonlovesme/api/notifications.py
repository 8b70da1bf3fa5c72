"""
Admin notifications: inbox REST API, live WebSocket channel, device
registration, plus the public contact form and visit beacon that feed it.
"""

from typing import Optional
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from lisbonlovesme.api.schemas import ContactCreate, DeviceRegister, VisitCreate, contact_to_dict
from lisbonlovesme.core.exceptions import NotFoundError
from lisbonlovesme.core.rate_limiting import CONTACT_LIMIT, VISIT_LIMIT, limiter
from lisbonlovesme.core.security import require_admin
from lisbonlovesme.db.database import get_db
from lisbonlovesme.db.repositories import ContactMessageRepository, DeviceRepository, NotificationRepository
from lisbonlovesme.services import outbox
from lisbonlovesme.services.notifications import hub, record_notification, serialize_notification

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])

WS_UNAUTHORIZED = 4401

_IP_HEADERS = ("cf-connecting-ip", "true-client-ip", "x-real-ip")


def get_client_ip(request: Request) -> Optional[str]:
    """Client address behind CDN / reverse proxies."""
    for header in _IP_HEADERS:
        value = request.headers.get(header)
        if value and value.strip():
            return value.strip()
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None


def notify_admins(db: Session, background_tasks: BackgroundTasks, type: str, title: str, body: str, payload=None):
    """Persist a notification and queue its delivery; committed by the caller."""
    notification = record_notification(db, type=type, title=title, body=body, payload=payload)
    outbox.enqueue(db, outbox.NOTIFICATION_DELIVER, {"notificationId": notification.id})
    background_tasks.add_task(outbox.drain)
    return notification


# ============================================================================
# Inbox
# ============================================================================

@router.get("/notifications", dependencies=[Depends(require_admin)])
def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return [serialize_notification(n) for n in NotificationRepository(db).list(limit=limit, offset=offset)]


@router.get("/notifications/unread-count", dependencies=[Depends(require_admin)])
def unread_count(db: Session = Depends(get_db)):
    return {"count": NotificationRepository(db).unread_count()}


@router.post("/notifications/read-all", dependencies=[Depends(require_admin)])
def mark_all_read(db: Session = Depends(get_db)):
    updated = NotificationRepository(db).mark_all_read()
    db.commit()
    return {"success": True, "updated": updated}


@router.post("/notifications/{notification_id}/read", dependencies=[Depends(require_admin)])
def mark_read(notification_id: int, db: Session = Depends(get_db)):
    notification = NotificationRepository(db).get(notification_id)
    if notification is None:
        raise NotFoundError("Notification not found")
    notification.read = True
    db.commit()
    return serialize_notification(notification)


@router.post("/notifications/device", dependencies=[Depends(require_admin)])
def register_device(body: DeviceRegister, db: Session = Depends(get_db)):
    device = DeviceRepository(db).register(body.platform, body.token)
    db.commit()
    logger.info(f"Registered {device.platform} device {device.id} for push")
    return {"success": True, "id": device.id}


@router.delete("/notifications/device/{token}", dependencies=[Depends(require_admin)])
def unregister_device(token: str, db: Session = Depends(get_db)):
    if not DeviceRepository(db).deactivate(token):
        raise NotFoundError("Device not found")
    db.commit()
    return {"success": True}


# ============================================================================
# Live channel
# ============================================================================

@router.websocket("/notifications/ws")
async def notifications_ws(websocket: WebSocket):
    """Server -> client only; incoming frames are read and discarded."""
    session = websocket.scope.get("session") or {}
    if not session.get("isAuthenticated") or not session.get("isAdmin"):
        await websocket.close(code=WS_UNAUTHORIZED)
        return
    await hub.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)


# ============================================================================
# Public sources
# ============================================================================

@router.post("/contact", status_code=201)
@limiter.limit(CONTACT_LIMIT)
def submit_contact(
    request: Request,
    body: ContactCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    message = ContactMessageRepository(db).create(body.model_dump())
    notify_admins(
        db, background_tasks, "contact",
        title=f"New message from {body.name}",
        body=(body.subject or body.message)[:200],
        payload={"contactMessageId": message.id, "email": body.email},
    )
    db.commit()
    return {"success": True, "id": message.id}


@router.post("/visit")
@limiter.limit(VISIT_LIMIT)
def record_visit(
    request: Request,
    background_tasks: BackgroundTasks,
    body: Optional[VisitCreate] = None,
    db: Session = Depends(get_db),
):
    ip = get_client_ip(request)
    path = (body.path if body else None) or "/"
    notify_admins(
        db, background_tasks, "visit",
        title="New site visit",
        body=f"{ip or 'unknown'} visited {path}",
        payload={"ip": ip, "path": path, "userAgent": request.headers.get("user-agent")},
    )
    db.commit()
    return {"success": True, "ip": ip}


@router.get("/admin/messages", dependencies=[Depends(require_admin)])
def list_messages(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return [contact_to_dict(m) for m in ContactMessageRepository(db).list(limit=limit, offset=offset)]


@router.post("/admin/messages/{message_id}/read", dependencies=[Depends(require_admin)])
def mark_message_read(message_id: int, db: Session = Depends(get_db)):
    message = ContactMessageRepository(db).get(message_id)
    if message is None:
        raise NotFoundError("Message not found")
    message.read = True
    db.commit()
    return contact_to_dict(message)
