"""
Structured Logging
==================

JSON-structured logging with correlation ID tracking.

Provides:
- Structured JSON logs (parseable by log aggregators)
- Correlation ID for tracing a batch or a request
- Contextual loggers for modules
- Performance timing utilities

Usage:
    from helpdesk.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Ticket transitioned", extra={"ticket_id": 42})
"""

import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    Custom JSON formatter with additional fields.

    Adds:
    - timestamp in ISO format
    - correlation_id when available
    - Environment info
    """

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        if hasattr(record, "correlation_id"):
            log_record["correlation_id"] = record.correlation_id

        log_record["environment"] = getattr(record, "environment", "unknown")

        for key, value in list(log_record.items()):
            if not isinstance(value, str):
                continue
            lowered = key.lower()
            if "password" in lowered or "api_key" in lowered or "webhook" in lowered:
                log_record[key] = "***REDACTED***"
            elif "token" in lowered:
                log_record[key] = "***REDACTED***"


class EnvironmentFilter(logging.Filter):
    """Stamps every record with the deployment environment."""

    def __init__(self, environment: str):
        super().__init__()
        self.environment = environment

    def filter(self, record: logging.LogRecord) -> bool:
        record.environment = self.environment
        return True


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
) -> None:
    """
    Configure structured JSON logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        environment: Environment name for log context
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))
    handler.addFilter(EnvironmentFilter(environment))
    handler.setFormatter(
        CustomJsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    )
    root_logger.addHandler(handler)

    # Silence noisy loggers
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__ of the module)
    """
    return logging.getLogger(name)


def get_context_logger(name: str, correlation_id: str | None = None) -> logging.Logger | logging.LoggerAdapter:
    """
    Get a logger with correlation ID for tracing.

    Args:
        name: Logger name
        correlation_id: Correlation ID attached to every record
    """
    logger = get_logger(name)
    if correlation_id:
        return CorrelationAdapter(logger, {"correlation_id": correlation_id})
    return logger


class CorrelationAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges its context into per-call `extra`."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


@contextmanager
def log_latency(logger: logging.Logger | logging.LoggerAdapter, operation: str, **extra_context: Any):
    """
    Context manager for measuring and logging operation latency.

    Usage:
        with log_latency(logger, "automation_batch", trigger="time_based"):
            engine.process_batch(tickets, "time_based")
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        latency_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{operation} completed",
            extra={
                "operation": operation,
                "latency_ms": round(latency_ms, 2),
                **extra_context,
            },
        )
