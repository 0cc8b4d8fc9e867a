"""
Structured logging for the prospecting CRM companion.
JSON lines on stdout; pipeline runs tag their entries with the lookup they serve.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

# Keys a pipeline run binds with structlog.contextvars; copied onto every entry it emits.
PIPELINE_CONTEXT_KEYS = ("cache_key", "entity_kind")

NOISY_LOGGERS = ("httpx", "httpcore", "openai", "uvicorn.access")


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL; unknown values fall back to INFO
    """
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_pipeline_context,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _add_pipeline_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Copy the bound lookup context onto the entry unless the call site set it explicitly."""
    bound = structlog.contextvars.get_contextvars()
    for key in PIPELINE_CONTEXT_KEYS:
        value = bound.get(key)
        if value is not None:
            event_dict.setdefault(key, value)
    return event_dict


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """Structured logger for a module (pass __name__)."""
    return structlog.get_logger(name)


def log_request(method: str, path: str, status_code: int, duration_ms: float):
    """Log HTTP requests with consistent fields."""
    logger = get_logger("http")

    log_data = {
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": duration_ms,
    }

    if status_code >= 500:
        logger.error("HTTP request failed", **log_data)
    elif status_code >= 400:
        logger.warning("HTTP request rejected", **log_data)
    else:
        logger.info("HTTP request completed", **log_data)


def log_pipeline_completed(
    entity_kind: str,
    entity_id: str,
    engagement_count: int,
    summarized: bool,
    duration_ms: float,
    timed_out: bool = False,
):
    """
    Log one finished engagement lookup.

    A run is degraded when it timed out, or when it found engagements but
    could not summarize them.
    """
    logger = get_logger("engagements.pipeline")

    log_data = {
        "entity_kind": entity_kind,
        "entity_id": entity_id,
        "engagement_count": engagement_count,
        "summarized": summarized,
        "duration_ms": duration_ms,
    }

    degraded = timed_out or (engagement_count > 0 and not summarized)
    if degraded:
        logger.warning("Engagement pipeline degraded", timed_out=timed_out, **log_data)
    else:
        logger.info("Engagement pipeline completed", **log_data)
