"""
Shared logging configuration for the offline cache layer.

Loggers are named ``offline.<component>[.<kind>]`` (``offline.service``,
``offline.storage.stListing``, ...) or after the shared helper that owns them
(``retry.<function>``, ``circuit_breaker.<name>``). Every event is rendered
as one JSON line carrying the service name and the component.
"""

import sys
import structlog
import logging
import time
from typing import Any, Callable, Dict

Processor = Callable[[Any, str, Dict[str, Any]], Dict[str, Any]]

COMPONENT_ROOT = "offline"


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured logging for a service."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            service_context(service_name),
            add_timestamp,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    level = logging.getLevelName(log_level.upper())
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level if isinstance(level, int) else logging.INFO,
    )


def component_of(logger_name: str) -> str:
    """Component part of a logger name: ``offline.storage.items`` -> ``storage``."""
    parts = logger_name.split(".")
    if parts[0] == COMPONENT_ROOT and len(parts) > 1:
        return parts[1]
    return parts[0]


def service_context(service_name: str) -> Processor:
    """Build a processor stamping the service name and component on events."""

    def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", service_name)
        logger_name = event_dict.get("logger", "")
        if logger_name:
            event_dict["component"] = component_of(logger_name)
        return event_dict

    return add_service_context


def add_timestamp(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add high-precision timestamp to log events."""
    event_dict["timestamp"] = time.time()
    return event_dict


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
