"""
Lisbonlovesme Tours -- FastAPI Application
Booking, discounts, availability and admin back office for the tour site.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware
from contextlib import asynccontextmanager
import logging
import logging.config
import time
import asyncio

from slowapi.errors import RateLimitExceeded

from lisbonlovesme.core.config import settings
from lisbonlovesme.core.exceptions import TourBookingError
from lisbonlovesme.core.monitoring import build_logging_config
from lisbonlovesme.core.rate_limiting import limiter, rate_limit_handler
from lisbonlovesme.core.security import ensure_admin_user
from lisbonlovesme.db.database import init_db, session_scope
from lisbonlovesme.services.notifications import heartbeat_loop
from lisbonlovesme.services.outbox import run_outbox_worker
from lisbonlovesme.services.uploads import resolve_upload_dir
from lisbonlovesme.api import (
    admin,
    articles,
    availabilities,
    bookings,
    discounts,
    documents,
    gallery,
    health,
    notifications,
    testimonials,
    tours,
)

logging.config.dictConfig(build_logging_config(settings.log_level, settings.log_format))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown."""
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")

    # Retry DB init up to 3 times for resilience
    for attempt in range(1, 4):
        try:
            init_db()
            logger.info("Database initialized successfully")
            break
        except Exception as e:
            if attempt < 3:
                logger.warning(f"Database init attempt {attempt}/3 failed: {e}, retrying in 2s...")
                await asyncio.sleep(2)
            else:
                logger.error(f"Database init failed after 3 attempts, aborting startup: {e}")
                raise

    with session_scope() as db:
        ensure_admin_user(db)

    # Outbox dispatcher + live-channel heartbeat
    tasks = [
        asyncio.create_task(run_outbox_worker()),
        asyncio.create_task(heartbeat_loop()),
    ]
    logger.info(f"Outbox poll every {settings.outbox_poll_seconds}s | "
                f"WebSocket heartbeat every {settings.ws_heartbeat_seconds}s")
    logger.info("Application startup complete -- ready to serve")

    yield

    # Shutdown
    for task in tasks:
        task.cancel()
    logger.info("Application shutting down")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Lisbonlovesme Tours -- tour booking and admin API.",
    docs_url="/docs" if settings.debug else None,
    redoc_url=None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan,
)

# Rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

# Admin session cookie (itsdangerous-signed)
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    session_cookie=settings.session_cookie_name,
    max_age=settings.session_max_age_seconds,
    same_site="lax",
    https_only=settings.session_https_only,
)

# GZip compression (min 500 bytes)
app.add_middleware(GZipMiddleware, minimum_size=500)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


# Combined request logging + security headers middleware (single pass)
@app.middleware("http")
async def request_middleware(request: Request, call_next):
    """Log requests with timing + add security headers in one pass."""
    start = time.perf_counter()
    request_id = request.headers.get("X-Request-ID", "")

    response = await call_next(request)

    elapsed = time.perf_counter() - start
    response.headers["X-Process-Time"] = f"{elapsed:.3f}"

    # Security headers
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"
    if settings.session_https_only:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    if request_id:
        response.headers["X-Request-ID"] = request_id

    # Uploaded files are not worth a log line each
    path = request.url.path
    if not path.startswith("/uploads"):
        logger.info(
            f"{request.method} {path} -> {response.status_code} in {elapsed:.3f}s",
            extra={"duration_ms": round(elapsed * 1000, 2)},
        )

    return response


@app.exception_handler(TourBookingError)
async def domain_exception_handler(request: Request, exc: TourBookingError):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"message": "Invalid request data", "errors": errors})


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions gracefully."""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"message": str(exc) or "Internal Server Error"})


# Include routers
app.include_router(health.router, prefix=settings.api_prefix)
app.include_router(tours.router, prefix=settings.api_prefix)
app.include_router(availabilities.router, prefix=settings.api_prefix)
app.include_router(bookings.router, prefix=settings.api_prefix)
app.include_router(discounts.router, prefix=settings.api_prefix)
app.include_router(admin.router, prefix=settings.api_prefix)
app.include_router(notifications.router, prefix=settings.api_prefix)
app.include_router(testimonials.router, prefix=settings.api_prefix)
app.include_router(articles.router, prefix=settings.api_prefix)
app.include_router(gallery.router, prefix=settings.api_prefix)
app.include_router(documents.router, prefix=settings.api_prefix)

# Uploaded images and documents
app.mount("/uploads", StaticFiles(directory=str(resolve_upload_dir())), name="uploads")


# Root endpoint
@app.get("/")
async def root():
    """Root -- API information."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "status": "running",
        "health": f"{settings.api_prefix}/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "lisbonlovesme.main:app",
        host=settings.api_host,
        port=settings.api_port,
        workers=settings.api_workers,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
