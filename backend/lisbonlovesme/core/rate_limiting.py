"""
Rate Limiting & Throttling
Per-IP request throttling for the public write endpoints and admin login.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse
import logging

from lisbonlovesme.core.config import settings

logger = logging.getLogger(__name__)

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


# Rate limit definitions
BOOKING_LIMIT = "20/minute"
DISCOUNT_VALIDATE_LIMIT = "30/minute"
LOGIN_LIMIT = "10/minute"
CONTACT_LIMIT = "5/minute"
VISIT_LIMIT = "60/minute"
HEALTH_LIMIT = "1000/minute"


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 JSON response when rate limit exceeded."""
    client_host = request.client.host if request.client else "unknown"
    logger.warning(f"Rate limit exceeded for {client_host}: {request.url.path}")

    return JSONResponse(
        status_code=429,
        content={
            "message": "Too many requests. Please slow down.",
            "retry_after": 60,
        },
        headers={"Retry-After": "60"},
    )
