"""
Booking workflow.

Creating a booking is one database transaction:
  1. load the tour and evaluate the discount code (if any)
  2. take the spots with a conditional decrement (never below zero)
  3. consume the discount code, again conditionally
  4. insert the booking, close the day when policy says so
  5. record the admin notification and enqueue emails / push in the outbox
Everything commits together or not at all. Delivery of the enqueued side
effects happens after commit, see services/outbox.py.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging
import secrets
import string

from sqlalchemy.orm import Session

from lisbonlovesme.core.config import settings
from lisbonlovesme.core.exceptions import ConflictError, NotFoundError, ValidationError
from lisbonlovesme.core.i18n import get_localized_text, normalize_language
from lisbonlovesme.core.monitoring import track_performance
from lisbonlovesme.db.models import Availability, Booking, Tour
from lisbonlovesme.db.repositories import (
    AvailabilityRepository,
    BookingRepository,
    ClosedDayRepository,
    DiscountRepository,
    SettingsRepository,
    TourRepository,
)
from lisbonlovesme.services import outbox
from lisbonlovesme.services.discounts import (
    DiscountEvaluation,
    evaluate_discount,
    normalize_code,
    original_amount,
)
from lisbonlovesme.services.email import format_amount
from lisbonlovesme.services.notifications import record_notification

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "LT-"
REFERENCE_ALPHABET = string.ascii_uppercase + string.digits
REFERENCE_LENGTH = 7
DEFAULT_MEETING_POINT = "Meeting point details will be sent in the confirmation email."

PAYMENT_STATUSES = ("requested", "confirmed", "cancelled", "refunded")
PAYMENT_TRANSITIONS = {
    "requested": {"confirmed", "cancelled", "refunded"},
    "confirmed": {"cancelled", "refunded"},
    "cancelled": set(),
    "refunded": set(),
}


@dataclass
class BookingPolicy:
    """Rules read once per request from admin settings and config."""
    auto_close_day: bool = False
    reject_invalid_discount_codes: bool = False


def load_booking_policy(db: Session) -> BookingPolicy:
    setting = SettingsRepository(db).get()
    return BookingPolicy(
        auto_close_day=bool(setting.auto_close_day),
        reject_invalid_discount_codes=settings.reject_invalid_discount_codes,
    )


@dataclass
class BookingRequest:
    tour_id: int
    availability_id: int
    customer_first_name: str
    customer_last_name: str
    customer_email: str
    customer_phone: str
    number_of_participants: int
    special_requests: Optional[str] = None
    discount_code: Optional[str] = None
    language: Optional[str] = None


@dataclass
class BookingResult:
    booking: Booking
    evaluation: Optional[DiscountEvaluation]
    day_closed: bool = False


def generate_booking_reference() -> str:
    return REFERENCE_PREFIX + "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(REFERENCE_LENGTH))


def unique_booking_reference(repo: BookingRepository, attempts: int = 10) -> str:
    for _ in range(attempts):
        reference = generate_booking_reference()
        if not repo.reference_exists(reference):
            return reference
    raise ConflictError("Could not allocate a booking reference, please retry")


def ensure_transition(booking: Booking, target: str, allow_same: bool = False) -> None:
    """
    Raise unless `target` is reachable from the current status. Staying in
    the same status is only accepted with `allow_same` (re-confirming with
    edited details); cancelled and refunded are terminal.
    """
    if target not in PAYMENT_STATUSES:
        raise ValidationError(f"Unknown payment status: {target}")
    current = booking.payment_status or "requested"
    if target == current and allow_same and PAYMENT_TRANSITIONS.get(current):
        return
    if target not in PAYMENT_TRANSITIONS.get(current, set()):
        raise ConflictError(
            f"Cannot change booking from {current} to {target}",
            {"currentStatus": current},
        )


def booking_email_payload(booking: Booking, tour: Tour, availability: Optional[Availability]) -> Dict[str, Any]:
    """Snapshot of everything the booking emails need, stored in the outbox."""
    lang = normalize_language(booking.language)
    info = booking.additional_info or {}
    return {
        "reference": booking.booking_reference,
        "tourName": get_localized_text(tour.name, lang),
        "duration": get_localized_text(tour.duration, "en"),
        "date": availability.date if availability else None,
        "time": availability.time if availability else None,
        "participants": booking.number_of_participants,
        "totalAmount": booking.total_amount,
        "discountAmount": info.get("discountAmount", 0),
        "discountCode": info.get("discountCode"),
        "customerFirstName": booking.customer_first_name,
        "customerLastName": booking.customer_last_name,
        "customerEmail": booking.customer_email,
        "customerPhone": booking.customer_phone,
        "language": lang,
        "specialRequests": booking.special_requests,
        "meetingPoint": booking.meeting_point,
        "confirmedDate": booking.confirmed_date,
        "confirmedTime": booking.confirmed_time,
        "confirmedMeetingPoint": booking.confirmed_meeting_point,
    }


class BookingWorkflow:
    def __init__(self, db: Session, policy: Optional[BookingPolicy] = None):
        self.db = db
        self._policy = policy
        self.tours = TourRepository(db)
        self.availabilities = AvailabilityRepository(db)
        self.bookings = BookingRepository(db)
        self.discounts = DiscountRepository(db)
        self.closed_days = ClosedDayRepository(db)

    @property
    def policy(self) -> BookingPolicy:
        if self._policy is None:
            self._policy = load_booking_policy(self.db)
        return self._policy

    def _evaluate(self, code: Optional[str], tour: Tour, participants: int) -> Optional[DiscountEvaluation]:
        code = normalize_code(code)
        if not code:
            return None
        evaluation = evaluate_discount(self.discounts.get_by_code(code), tour, participants)
        if not evaluation.valid:
            if self.policy.reject_invalid_discount_codes:
                raise ValidationError(evaluation.message, {"reason": evaluation.reason})
            logger.info(f"Ignoring discount code {code}: {evaluation.reason}")
            return None
        return evaluation

    @track_performance("booking.create")
    def create(self, request: BookingRequest) -> BookingResult:
        try:
            result = self._create(request)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(result.booking)
        logger.info(
            f"Booking {result.booking.booking_reference} created for tour {request.tour_id} "
            f"({request.number_of_participants} participants, total {result.booking.total_amount})",
            extra={"booking_reference": result.booking.booking_reference},
        )
        return result

    def _create(self, request: BookingRequest) -> BookingResult:
        tour = self.tours.get(request.tour_id)
        if tour is None:
            raise NotFoundError("Tour not found")

        evaluation = self._evaluate(request.discount_code, tour, request.number_of_participants)

        availability = self.availabilities.get(request.availability_id)
        if availability is None:
            raise NotFoundError("Availability not found")
        if availability.tour_id != tour.id:
            raise ValidationError("Availability does not belong to this tour")

        if not self.availabilities.reserve_spots(availability.id, request.number_of_participants):
            self.db.refresh(availability)
            raise ConflictError(
                f"Not enough spots available. Only {availability.spots_left} spots left.",
                {"spotsLeft": availability.spots_left},
            )

        # The code may have run out between evaluation and now; the booking still goes through
        if evaluation is not None and not self.discounts.consume(evaluation.discount_id):
            logger.info(f"Discount code {evaluation.code} exhausted concurrently, booking at full price")
            evaluation = None

        base = original_amount(tour.price, tour.price_type, request.number_of_participants)
        discount_amount = evaluation.discount_amount if evaluation else 0
        total = evaluation.total_amount if evaluation else base

        booking = self.bookings.create({
            "tour_id": tour.id,
            "availability_id": availability.id,
            "customer_first_name": request.customer_first_name,
            "customer_last_name": request.customer_last_name,
            "customer_email": request.customer_email,
            "customer_phone": request.customer_phone,
            "number_of_participants": request.number_of_participants,
            "special_requests": request.special_requests,
            "booking_reference": unique_booking_reference(self.bookings),
            "total_amount": total,
            "payment_status": "requested",
            "meeting_point": DEFAULT_MEETING_POINT,
            "language": normalize_language(request.language),
            "additional_info": {
                "originalAmount": base,
                "discountAmount": discount_amount,
                "finalAmount": total,
                "discountCode": evaluation.code if evaluation else None,
                "discountCategory": evaluation.category if evaluation else None,
            },
        })

        self.db.refresh(availability)
        day_closed = False
        if self.policy.auto_close_day:
            self.closed_days.close_day(availability.date, "Auto-closed after booking")
            day_closed = True
        elif availability.spots_left == 0:
            self.closed_days.close_day(availability.date, "Auto-closed: fully booked")
            day_closed = True

        payload = booking_email_payload(booking, tour, availability)
        notification = record_notification(
            self.db,
            type="booking",
            title="New booking request",
            body=(
                f"{booking.customer_first_name} {booking.customer_last_name} requested "
                f"{payload['tourName']} on {availability.date} {availability.time} "
                f"for {booking.number_of_participants} ({format_amount(total)})"
            ),
            payload={"bookingId": booking.id, "reference": booking.booking_reference},
        )
        outbox.enqueue(self.db, outbox.EMAIL_REQUEST_RECEIVED, payload)
        outbox.enqueue(self.db, outbox.EMAIL_ADMIN_NEW_BOOKING, payload)
        outbox.enqueue(self.db, outbox.NOTIFICATION_DELIVER, {"notificationId": notification.id})

        return BookingResult(booking=booking, evaluation=evaluation, day_closed=day_closed)

    # ------------------------------------------------------------------
    # Admin lifecycle
    # ------------------------------------------------------------------

    def get(self, booking_id: int) -> Booking:
        booking = self.bookings.get(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    def change_status(self, booking: Booking, status: str) -> Booking:
        ensure_transition(booking, status)
        previous = booking.payment_status
        booking.payment_status = status
        self.db.commit()
        logger.info(f"Booking {booking.booking_reference}: {previous} -> {status}",
                    extra={"booking_reference": booking.booking_reference})
        return booking

    def update_request(self, booking: Booking, data: Dict[str, Any]) -> Booking:
        """Admin edits: confirmed date/time/meeting point and notes."""
        self.bookings.update(booking, data)
        self.db.commit()
        return booking

    def confirm(self, booking: Booking, data: Optional[Dict[str, Any]] = None) -> Booking:
        ensure_transition(booking, "confirmed", allow_same=True)
        if data:
            self.bookings.update(booking, data)
        booking.payment_status = "confirmed"
        payload = booking_email_payload(booking, booking.tour, booking.availability)
        outbox.enqueue(self.db, outbox.EMAIL_BOOKING_CONFIRMED, payload)
        self.db.commit()
        logger.info(f"Booking {booking.booking_reference} confirmed",
                    extra={"booking_reference": booking.booking_reference})
        return booking

    def cancel(self, booking: Booking) -> Booking:
        # Capacity is not released; the admin reopens spots by editing the availability
        return self.change_status(booking, "cancelled")

    def request_review(self, booking: Booking) -> None:
        payload = booking_email_payload(booking, booking.tour, booking.availability)
        outbox.enqueue(self.db, outbox.EMAIL_REVIEW_REQUEST, payload)
        self.db.commit()
