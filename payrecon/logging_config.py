"""
Structured logging for payrecon.

Every record carries app/environment context plus anything bound to the
request context by the middleware. Keys that can carry gateway credentials
are masked before rendering.
"""
import logging
import sys
from typing import Any, Dict, Optional

import structlog

from payrecon.config import settings

SENSITIVE_KEYS = frozenset({
    "authorization",
    "x-webhook-signature",
    "signature",
    "secret",
    "secret_key",
    "client_secret",
    "password",
    "access_token",
})


def add_app_context(logger: Any, method_name: str, event_dict: Dict) -> Dict:
    """Add application context to log entries."""
    event_dict['app'] = settings.APP_NAME
    event_dict['version'] = settings.APP_VERSION
    event_dict['environment'] = settings.ENVIRONMENT
    return event_dict


def mask_secrets(logger: Any, method_name: str, event_dict: Dict) -> Dict:
    for key, value in event_dict.items():
        if value and key.lower() in SENSITIVE_KEYS:
            event_dict[key] = "***"
    return event_dict


def configure_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """Configure stdlib logging and structlog. JSON output unless LOG_FORMAT=console."""
    level_name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
    )

    if (fmt or settings.LOG_FORMAT) == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            add_app_context,
            mask_secrets,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


def get_logger(name: str = __name__):
    """Get a structured logger instance."""
    return structlog.get_logger(name)
