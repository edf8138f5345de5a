"""
Shared logging configuration for the Crypto Dashboard API.

Log levels are carried by an explicitly constructed ``LoggingContext`` that
the service builds once and hands to its components, instead of living in
process-wide mutable state.
"""

import logging
import sys
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

# Context variable for request correlation
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add correlation context to log events."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def add_timestamp(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add high-precision timestamp to log events."""
    event_dict["ts"] = time.time()
    return event_dict


def _build_processors() -> List[Any]:
    return [
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_correlation_context,
        add_timestamp,
        structlog.processors.JSONRenderer()
    ]


def resolve_level(log_level: str) -> int:
    """Translate a level name into a :mod:`logging` level, defaulting to INFO."""
    return _LEVELS.get((log_level or "info").lower(), logging.INFO)


@dataclass(frozen=True)
class LoggingContext:
    """Immutable logging configuration passed down to service components."""

    service_name: str
    log_level: str = "info"

    @property
    def level(self) -> int:
        return resolve_level(self.log_level)

    def get_logger(self, name: str) -> Any:
        """Return a JSON logger bound to ``name`` and filtered at this context's level."""
        logger = structlog.wrap_logger(
            structlog.PrintLogger(sys.stdout),
            processors=_build_processors(),
            wrapper_class=structlog.make_filtering_bound_logger(self.level),
            context_class=dict,
        )
        return logger.bind(logger=name, service=self.service_name)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set request ID in context."""
    if not request_id:
        request_id = f"req_{uuid.uuid4()}"
    request_id_var.set(request_id)
    return request_id


def clear_context():
    """Clear all context variables."""
    request_id_var.set(None)


def get_logger(name: str) -> Any:
    """Get a structured logger for components built without a logging context."""
    return structlog.get_logger(name)
