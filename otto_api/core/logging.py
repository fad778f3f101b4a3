"""Structured logging via structlog.

Configures structlog once at application startup.

Renderer selection:
  debug=True:  `ConsoleRenderer` with colours for local development.
  debug=False: `JSONRenderer` for machine-parseable logs in production.

ContextVar injection:
  `request_id` (set by `RequestIdMiddleware`) and `delivery_id` (set by the
  webhook receiver for the GitHub delivery being processed) are added to
  every log line, so the per-project lines emitted while a push fans out
  can be traced back to a single delivery.
"""

from __future__ import annotations

import logging
import sys

import structlog

from otto_api.core.middleware import get_delivery_id, get_request_id


def _inject_context_vars(
    logger: logging.Logger,
    method: str,
    event_dict: dict,
) -> dict:
    """Structlog processor: inject request_id and delivery_id from ContextVars."""
    request_id = get_request_id()
    delivery_id = get_delivery_id()
    if request_id:
        event_dict["request_id"] = request_id
    if delivery_id:
        event_dict["delivery_id"] = delivery_id
    return event_dict


def configure_structlog(debug: bool = True) -> None:
    """Configure structlog for the application lifetime.

    Call once from `create_app()`. Calling multiple times is safe.
    """
    shared_processors: list = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _inject_context_vars,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if debug:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.DEBUG if debug else logging.INFO,
    )
    # botocore logs signed request headers at DEBUG
    logging.getLogger("botocore").setLevel(logging.INFO)
