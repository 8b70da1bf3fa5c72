"""
Admin session, booking management, settings and export.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, File, Query, Request, UploadFile
from sqlalchemy.orm import Session

from lisbonlovesme.api.schemas import (
    BookingRequestUpdate,
    LoginRequest,
    PasswordChange,
    RefundRequest,
    SettingsUpdate,
    booking_to_dict,
    booking_with_details,
)
from lisbonlovesme.core.exceptions import NotFoundError, UnauthorizedError, ValidationError
from lisbonlovesme.core.rate_limiting import LOGIN_LIMIT, limiter
from lisbonlovesme.core.security import (
    hash_password,
    issue_csrf_token,
    login_session,
    logout_session,
    require_admin,
    session_user,
    verify_password,
)
from lisbonlovesme.db import models
from lisbonlovesme.db.database import get_db
from lisbonlovesme.db.repositories import BookingRepository, SettingsRepository, UserRepository
from lisbonlovesme.services import outbox
from lisbonlovesme.services.booking_workflow import BookingWorkflow
from lisbonlovesme.services.payments import refund_booking
from lisbonlovesme.services.uploads import save_image

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin"])

_EXPORT_MODELS = (
    models.Tour,
    models.Availability,
    models.Booking,
    models.DiscountCode,
    models.ClosedDay,
    models.AdminSetting,
    models.Testimonial,
    models.Article,
    models.GalleryImage,
    models.Document,
    models.Notification,
    models.ContactMessage,
    models.Device,
    models.OutboxMessage,
)


def _settings_to_dict(setting) -> Dict[str, Any]:
    return {
        "autoCloseDay": bool(setting.auto_close_day),
        "lastUpdated": setting.last_updated.isoformat() if setting.last_updated else None,
    }


# ============================================================================
# Session
# ============================================================================

@router.get("/csrf-token")
def csrf_token(request: Request):
    return {"csrfToken": issue_csrf_token(request)}


@router.post("/admin/login")
@limiter.limit(LOGIN_LIMIT)
def login(request: Request, body: LoginRequest, db: Session = Depends(get_db)):
    user = UserRepository(db).get_by_username(body.username)
    if user is None or not verify_password(body.password, user.password_hash):
        logger.warning(f"Failed admin login for {body.username!r}")
        raise UnauthorizedError("Invalid credentials")
    data = login_session(request, user)
    logger.info(f"Admin {user.username} logged in")
    return {"success": True, "user": data, "csrfToken": issue_csrf_token(request)}


@router.post("/admin/logout")
def logout(request: Request):
    logout_session(request)
    return {"success": True}


@router.get("/admin/session")
def session_status(request: Request):
    user = session_user(request)
    return {"isAuthenticated": user is not None, "isAdmin": bool(user and user.get("isAdmin")), "user": user}


@router.get("/admin/me")
def me(user: Dict[str, Any] = Depends(require_admin)):
    return user


@router.post("/admin/password")
def change_password(
    body: PasswordChange,
    user: Dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
):
    account = UserRepository(db).get(user["id"])
    if account is None or not verify_password(body.current_password, account.password_hash):
        raise ValidationError("Current password is incorrect")
    account.password_hash = hash_password(body.new_password)
    db.commit()
    logger.info(f"Admin {account.username} changed password")
    return {"success": True}


# ============================================================================
# Settings
# ============================================================================

@router.get("/admin/settings", dependencies=[Depends(require_admin)])
def get_settings(db: Session = Depends(get_db)):
    setting = SettingsRepository(db).get()
    db.commit()
    return _settings_to_dict(setting)


@router.put("/admin/settings", dependencies=[Depends(require_admin)])
def update_settings(body: SettingsUpdate, db: Session = Depends(get_db)):
    setting = SettingsRepository(db).update(body.auto_close_day)
    db.commit()
    logger.info(f"autoCloseDay set to {body.auto_close_day}")
    return _settings_to_dict(setting)


# ============================================================================
# Bookings
# ============================================================================

@router.get("/admin/bookings", dependencies=[Depends(require_admin)])
def list_bookings(tour_id: Optional[int] = Query(None, alias="tourId"), db: Session = Depends(get_db)):
    return [booking_with_details(b) for b in BookingRepository(db).list(tour_id=tour_id)]


@router.get("/admin/requests", dependencies=[Depends(require_admin)])
def list_requests(db: Session = Depends(get_db)):
    return [booking_with_details(b) for b in BookingRepository(db).list(status="requested")]


@router.put("/admin/requests/{booking_id}", dependencies=[Depends(require_admin)])
def update_request(booking_id: int, body: BookingRequestUpdate, db: Session = Depends(get_db)):
    workflow = BookingWorkflow(db)
    booking = workflow.update_request(workflow.get(booking_id), body.model_dump(exclude_unset=True))
    return booking_to_dict(booking)


@router.post("/admin/requests/{booking_id}/confirm", dependencies=[Depends(require_admin)])
def confirm_request(
    booking_id: int,
    background_tasks: BackgroundTasks,
    body: Optional[BookingRequestUpdate] = None,
    db: Session = Depends(get_db),
):
    """Confirm a request; the customer gets the confirmation email with a calendar invite."""
    workflow = BookingWorkflow(db)
    data = body.model_dump(exclude_unset=True) if body else None
    booking = workflow.confirm(workflow.get(booking_id), data)
    background_tasks.add_task(outbox.drain)
    return booking_to_dict(booking)


@router.post("/admin/requests/{booking_id}/cancel", dependencies=[Depends(require_admin)])
def cancel_request(booking_id: int, db: Session = Depends(get_db)):
    workflow = BookingWorkflow(db)
    return booking_to_dict(workflow.cancel(workflow.get(booking_id)))


@router.post("/admin/refund/{booking_id}", dependencies=[Depends(require_admin)])
def refund(booking_id: int, body: Optional[RefundRequest] = None, db: Session = Depends(get_db)):
    booking = BookingRepository(db).get(booking_id)
    if booking is None:
        raise NotFoundError("Booking not found")
    booking = refund_booking(db, booking, body.reason if body else None)
    return {"success": True, "booking": booking_to_dict(booking)}


@router.get("/admin/payments", dependencies=[Depends(require_admin)])
def list_payments(db: Session = Depends(get_db)):
    payments: List[Dict[str, Any]] = []
    for booking in BookingRepository(db).list():
        info = booking.additional_info or {}
        payments.append({
            "bookingId": booking.id,
            "bookingReference": booking.booking_reference,
            "customerName": f"{booking.customer_first_name} {booking.customer_last_name}",
            "customerEmail": booking.customer_email,
            "paymentStatus": booking.payment_status,
            "totalAmount": booking.total_amount,
            "originalAmount": info.get("originalAmount", booking.total_amount),
            "discountAmount": info.get("discountAmount", 0),
            "discountCode": info.get("discountCode"),
            "stripePaymentIntentId": booking.stripe_payment_intent_id,
            "refund": info.get("refund"),
            "createdAt": booking.created_at.isoformat() if booking.created_at else None,
        })
    return payments


@router.post("/admin/bookings/{booking_id}/review-request", dependencies=[Depends(require_admin)])
def send_review_request(booking_id: int, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    workflow = BookingWorkflow(db)
    workflow.request_review(workflow.get(booking_id))
    background_tasks.add_task(outbox.drain)
    return {"success": True}


# ============================================================================
# Uploads & export
# ============================================================================

@router.post("/admin/upload-image", dependencies=[Depends(require_admin)])
async def upload_image(image: UploadFile = File(...)):
    stored = await save_image(image)
    return {"url": stored.url}


def _row_to_dict(row) -> Dict[str, Any]:
    data = {}
    for column in row.__table__.columns:
        value = getattr(row, column.key)
        data[column.key] = value.isoformat() if isinstance(value, datetime) else value
    return data


@router.get("/admin/export", dependencies=[Depends(require_admin)])
def export_data(db: Session = Depends(get_db)):
    """Every table (except users) as JSON, for backups."""
    dump = {m.__tablename__: [_row_to_dict(r) for r in db.query(m).all()] for m in _EXPORT_MODELS}
    dump["exportedAt"] = datetime.utcnow().isoformat()
    return dump
