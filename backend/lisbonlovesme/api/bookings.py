"""
Public booking endpoints.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from lisbonlovesme.api.schemas import BookingCreate, booking_to_dict, booking_with_details
from lisbonlovesme.core.exceptions import NotFoundError
from lisbonlovesme.core.rate_limiting import BOOKING_LIMIT, limiter
from lisbonlovesme.db.database import get_db
from lisbonlovesme.db.repositories import BookingRepository
from lisbonlovesme.services import outbox
from lisbonlovesme.services.booking_workflow import (
    BookingPolicy,
    BookingRequest,
    BookingWorkflow,
    load_booking_policy,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bookings"])


def get_booking_policy(db: Session = Depends(get_db)) -> BookingPolicy:
    """Booking rules as configured at the time of this request."""
    return load_booking_policy(db)


@router.post("/bookings", status_code=201)
@limiter.limit(BOOKING_LIMIT)
def create_booking(
    request: Request,
    body: BookingCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    policy: BookingPolicy = Depends(get_booking_policy),
):
    """
    Reserve spots and record a booking request.
    Emails and admin notifications are delivered after the response.
    """
    result = BookingWorkflow(db, policy).create(BookingRequest(**body.model_dump()))
    background_tasks.add_task(outbox.drain)
    response = booking_to_dict(result.booking)
    response["success"] = True
    return response


@router.get("/bookings/reference/{reference}")
def get_booking_by_reference(reference: str, db: Session = Depends(get_db)):
    booking = BookingRepository(db).get_by_reference(reference)
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking_with_details(booking)
