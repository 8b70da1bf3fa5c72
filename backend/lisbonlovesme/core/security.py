"""
Admin authentication helpers.
Passwords are bcrypt hashes; the logged-in admin lives in the signed session
cookie set by Starlette's SessionMiddleware.
"""

from typing import Any, Dict, Optional
import hmac
import logging
import secrets

import bcrypt
from fastapi import Request
from sqlalchemy.orm import Session

from lisbonlovesme.core.config import settings
from lisbonlovesme.core.exceptions import ForbiddenError, UnauthorizedError
from lisbonlovesme.db.repositories import UserRepository

logger = logging.getLogger(__name__)

CSRF_HEADER = "X-CSRF-Token"
_SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    salt = bcrypt.gensalt(rounds=rounds or settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        logger.warning("Stored password hash could not be parsed")
        return False


def session_user(request: Request) -> Optional[Dict[str, Any]]:
    if not request.session.get("isAuthenticated"):
        return None
    return request.session.get("user")


def login_session(request: Request, user) -> Dict[str, Any]:
    data = {"id": user.id, "username": user.username, "isAdmin": bool(user.is_admin)}
    request.session.clear()
    request.session["isAuthenticated"] = True
    request.session["isAdmin"] = bool(user.is_admin)
    request.session["user"] = data
    return data


def logout_session(request: Request) -> None:
    request.session.clear()


def issue_csrf_token(request: Request) -> str:
    token = request.session.get("csrfToken")
    if not token:
        token = secrets.token_urlsafe(32)
        request.session["csrfToken"] = token
    return token


def verify_csrf(request: Request) -> None:
    if not settings.csrf_enabled or request.method in _SAFE_METHODS:
        return
    expected = request.session.get("csrfToken")
    supplied = request.headers.get(CSRF_HEADER)
    if not expected or not supplied or not hmac.compare_digest(expected, supplied):
        raise ForbiddenError("Invalid CSRF token")


def require_admin(request: Request) -> Dict[str, Any]:
    """FastAPI dependency: the session must belong to a logged-in admin."""
    user = session_user(request)
    if user is None:
        raise UnauthorizedError("Unauthorized")
    if not user.get("isAdmin"):
        raise ForbiddenError("Forbidden - Admin access required")
    verify_csrf(request)
    return user


def ensure_admin_user(db: Session) -> None:
    """Create the bootstrap admin account if it does not exist yet."""
    repo = UserRepository(db)
    if repo.get_by_username(settings.admin_username) is not None:
        return
    repo.create(settings.admin_username, hash_password(settings.admin_password), is_admin=True)
    db.commit()
    logger.info("Default admin user created")
