"""
Refunds through Stripe.
Payment capture happens on the client; the API only reverses payments.
"""

from datetime import datetime
from typing import Optional
import logging

import stripe
from sqlalchemy.orm import Session

from lisbonlovesme.core.config import settings
from lisbonlovesme.core.exceptions import UpstreamError
from lisbonlovesme.db.models import Booking
from lisbonlovesme.services.booking_workflow import ensure_transition

logger = logging.getLogger(__name__)


def refund_booking(db: Session, booking: Booking, reason: Optional[str] = None) -> Booking:
    """Reverse the card payment (if any) and mark the booking refunded."""
    ensure_transition(booking, "refunded")

    refund = {
        "reason": reason or "requested_by_customer",
        "amount": booking.total_amount,
        "refundedAt": datetime.utcnow().isoformat(),
        "method": "manual",
    }

    if booking.stripe_payment_intent_id:
        if not settings.stripe_secret_key:
            raise UpstreamError("Payment provider is not configured; cannot refund card payment")
        try:
            result = stripe.Refund.create(
                payment_intent=booking.stripe_payment_intent_id,
                reason="requested_by_customer",
                metadata={"bookingReference": booking.booking_reference, "note": reason or ""},
                api_key=settings.stripe_secret_key,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe refund failed for {booking.booking_reference}: {e}")
            raise UpstreamError(f"Refund failed: {e.user_message or str(e)}")
        refund["method"] = "stripe"
        refund["stripeRefundId"] = result.id
        refund["stripeStatus"] = result.status

    info = dict(booking.additional_info or {})
    info["refund"] = refund
    booking.additional_info = info
    booking.payment_status = "refunded"
    db.commit()
    logger.info(f"Booking {booking.booking_reference} refunded ({refund['method']})")
    return booking
