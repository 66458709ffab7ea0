"""Logging and performance utilities for the Speck-It task engine.

This module provides structured logging, timing of engine operations
and error reporting with context for the ``speckit.tasks`` loggers.
"""

from __future__ import annotations

import json
import time
import logging as std_logging
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

ROOT_LOGGER = "speckit.tasks"


def setup_logging(log_level: Union[str, int] = std_logging.INFO, log_file: Optional[Path] = None) -> None:
    """Setup structured logging for the task engine."""

    logger = std_logging.getLogger(ROOT_LOGGER)
    logger.setLevel(log_level)

    # Clear existing handlers so repeated setup does not duplicate output
    logger.handlers.clear()

    detailed_formatter = std_logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Console handler writes to stderr; stdout belongs to the MCP stdio transport
    console_handler = std_logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(detailed_formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = std_logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(std_logging.DEBUG)
        file_handler.setFormatter(JsonFormatter())
        logger.addHandler(file_handler)

    logger.info("Speck-It task engine logging initialized")


def get_logger(name: str) -> std_logging.Logger:
    """Return a logger below the ``speckit.tasks`` hierarchy."""
    return std_logging.getLogger(f"{ROOT_LOGGER}.{name}")


class JsonFormatter(std_logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: std_logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_entry.update(record.extra_fields)

        return json.dumps(log_entry, default=str)


class PerformanceMonitor:
    """Keep recent timing metrics for engine operations in memory."""

    def __init__(self, max_samples: int = 100):
        self.max_samples = max_samples
        self.metrics: Dict[str, List[Dict[str, Any]]] = {}

    def record_metric(self, name: str, value: Any, tags: Optional[Dict[str, str]] = None) -> None:
        """Record a performance metric."""
        metric = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "name": name,
            "value": value,
            "tags": tags or {},
        }
        samples = self.metrics.setdefault(name, [])
        samples.append(metric)
        if len(samples) > self.max_samples:
            del samples[: len(samples) - self.max_samples]

        get_logger("performance").debug(
            "Metric recorded: %s=%s", name, value, extra={"extra_fields": metric}
        )

    def get_metrics(self, name: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        """Get recorded metrics."""
        if name:
            return {name: list(self.metrics.get(name, []))}
        return {key: list(values) for key, values in self.metrics.items()}

    def clear(self) -> None:
        self.metrics.clear()


# Global performance monitor instance
performance_monitor = PerformanceMonitor()


def _event(operation_name: str, status: str, **fields: Any) -> Dict[str, Any]:
    return {"extra_fields": {"operation": operation_name, "status": status, **fields}}


def log_performance(operation_name: str):
    """Time every call of the decorated engine operation.

    Each call records an ``<operation>_duration`` metric tagged with its
    outcome; exceptions are logged and re-raised unchanged.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger("performance")
            metric = f"{operation_name}_duration"
            logger.debug("Starting operation: %s", operation_name)
            start_time = time.perf_counter()

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration = time.perf_counter() - start_time
                error_type = type(e).__name__
                performance_monitor.record_metric(metric, duration, {"status": "error", "error_type": error_type})
                logger.warning(
                    "Failed operation: %s after %.3fs - %s", operation_name, duration, e,
                    extra=_event(operation_name, "error", duration=duration, error_type=error_type),
                )
                raise

            duration = time.perf_counter() - start_time
            # Operations that report failures as {"error": ...} responses count as errors too
            if isinstance(result, dict) and "error" in result:
                error_type = result.get("error_type", "error")
                performance_monitor.record_metric(metric, duration, {"status": "error", "error_type": error_type})
                logger.warning(
                    "Failed operation: %s after %.3fs - %s", operation_name, duration, result["error"],
                    extra=_event(operation_name, "error", duration=duration, error_type=error_type),
                )
                return result

            performance_monitor.record_metric(metric, duration, {"status": "success"})
            logger.info(
                "Completed operation: %s in %.3fs", operation_name, duration,
                extra=_event(operation_name, "success", duration=duration),
            )
            return result

        return wrapper
    return decorator


@contextmanager
def log_operation(operation_name: str, **extra_fields):
    """Log the start and outcome of a block, e.g. a document write."""
    logger = get_logger("operations")
    logger.info("Starting operation: %s", operation_name, extra=_event(operation_name, "started", **extra_fields))
    start_time = time.perf_counter()

    try:
        yield
    except Exception as e:
        duration = time.perf_counter() - start_time
        logger.error(
            "Failed operation: %s after %.3fs - %s", operation_name, duration, e,
            extra=_event(operation_name, "failed", duration=duration, error_type=type(e).__name__,
                         error_message=str(e), **extra_fields),
        )
        raise

    duration = time.perf_counter() - start_time
    logger.info(
        "Completed operation: %s in %.3fs", operation_name, duration,
        extra=_event(operation_name, "completed", duration=duration, **extra_fields),
    )


def log_error_with_context(error: Exception, context: Dict[str, Any], **extra_fields) -> None:
    """Log an engine error together with the request that caused it."""
    get_logger("errors").error(
        "Error in %s: %s", context.get("operation", "unknown operation"), error,
        extra={"extra_fields": {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "error_type": type(error).__name__,
            "error_message": str(error),
            "context": context,
            **extra_fields,
        }},
    )
