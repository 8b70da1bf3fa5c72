"""
Monitoring & Observability
Structured logging and performance tracking.
"""

import time
from typing import Callable, Any
from functools import wraps
import logging
import json
from datetime import datetime
import asyncio

logger = logging.getLogger(__name__)


# ============================================================================
# STRUCTURED LOGGING
# ============================================================================

class JSONFormatter(logging.Formatter):
    """JSON formatter for structured log output."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        for extra in ("duration_ms", "booking_reference", "outbox_id"):
            value = getattr(record, extra, None)
            if value is not None:
                log_data[extra] = value
        return json.dumps(log_data)


def build_logging_config(level: str, fmt: str = "text") -> dict:
    """dictConfig for the app, uvicorn and sqlalchemy loggers."""
    formatter = "json" if fmt == "json" else "detailed"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            },
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
            },
            "json": {"()": "lisbonlovesme.core.monitoring.JSONFormatter"},
        },
        "handlers": {
            "default": {
                "formatter": formatter,
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "lisbonlovesme": {"handlers": ["default"], "level": level},
            "uvicorn": {"handlers": ["default"], "level": "INFO"},
            "sqlalchemy": {"handlers": ["default"], "level": "WARNING"},
        },
    }


# ============================================================================
# PERFORMANCE TRACKING
# ============================================================================

def track_performance(operation_name: str):
    """Decorator to log operation timings."""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
                elapsed = (time.perf_counter() - start) * 1000
                logger.info(f"{operation_name} completed in {elapsed:.0f}ms",
                            extra={"duration_ms": round(elapsed)})
                return result
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                logger.error(f"{operation_name} failed after {elapsed:.0f}ms: {e}")
                raise

        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
                elapsed = (time.perf_counter() - start) * 1000
                logger.info(f"{operation_name} completed in {elapsed:.0f}ms",
                            extra={"duration_ms": round(elapsed)})
                return result
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                logger.error(f"{operation_name} failed after {elapsed:.0f}ms: {e}")
                raise

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
