"""
Audit Logger

DESIGN DECISION: Every mutation and every background sync outcome
is logged. Saves and rate refreshes run detached from the caller, so
the structured log is the only place their failures become visible.

The audit logger:
- Never raises (a logging problem must not break a mutation)
- Keeps an in-memory tail of recent events for status displays and tests
"""

import logging
from collections import deque
from typing import Optional

import structlog

from finvault.config import get_settings
from finvault.models.audit import AuditEvent, AuditSeverity


# Configure structlog for local logging
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
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: Optional[str] = None) -> None:
    """
    Route structured logs to stderr and set the finvault logger level.

    The level defaults to the LOG_LEVEL setting. Only the "finvault"
    logger tree is touched, so a host application keeps its own root level.
    """
    level = (level or get_settings().app.log_level).upper()
    logging.basicConfig(format="%(message)s")
    logging.getLogger("finvault").setLevel(level)


class AuditLogger:
    """
    Central audit logging service.

    Logs events to the structured local log and remembers the most
    recent ones.
    """

    def __init__(self, history_size: int = 200, log_level: Optional[str] = None):
        configure_logging(log_level)
        self._logger = structlog.get_logger("finvault.audit")
        self._recent: deque[AuditEvent] = deque(maxlen=history_size)

    def log(self, event: AuditEvent) -> None:
        """Log an audit event."""
        self._recent.append(event)
        log_dict = event.to_log_dict()

        try:
            if event.severity == AuditSeverity.ERROR:
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            logging.getLogger(__name__).warning("audit logging failed: %s", e)

    def recent_events(self, limit: Optional[int] = None) -> list[AuditEvent]:
        """Most recent events, newest first."""
        events = list(reversed(self._recent))
        return events[:limit] if limit else events
