"""Audit logging package."""

from finvault.audit.logger import AuditLogger, configure_logging

__all__ = ["AuditLogger", "configure_logging"]
