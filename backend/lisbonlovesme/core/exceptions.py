"""
Domain exceptions.
Each carries the HTTP status it maps to; main.py renders them as {"message": ...}.
"""

from typing import Any, Dict, Optional


class TourBookingError(Exception):
    """Base class for errors raised by services and routes."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message}
        if self.details:
            body.update(self.details)
        return body


class NotFoundError(TourBookingError):
    status_code = 404


class ValidationError(TourBookingError):
    status_code = 400


class ConflictError(TourBookingError):
    """State conflicts: overbooking, duplicate codes or slugs, illegal status changes."""

    status_code = 409


class UnauthorizedError(TourBookingError):
    status_code = 401


class ForbiddenError(TourBookingError):
    status_code = 403


class UpstreamError(TourBookingError):
    """Email, payment or push provider failure."""

    status_code = 502
