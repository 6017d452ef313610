"""
Audit Models for FinVault

Every mutation of the vault and every sync attempt is logged.
This provides:
1. Traceability of what changed the in-memory vault and when
2. Debugging information when a background save or refresh fails
3. A record of lock/unlock attempts on the vault

DESIGN DECISION: Audit events are append-only structured log records.
They are never written into the vault document itself.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Session
    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    VAULT_CREATED = "vault_created"
    VAULT_LOADED = "vault_loaded"

    # Mutations
    ENTRY_ADDED = "entry_added"
    ENTRY_UPDATED = "entry_updated"
    GOAL_ADDED = "goal_added"
    GOAL_CONTRIBUTED = "goal_contributed"
    LEGACY_CONFIGURED = "legacy_configured"
    TERMS_ACCEPTED = "terms_accepted"
    SETTINGS_UPDATED = "settings_updated"

    # Persistence
    VAULT_SAVED = "vault_saved"
    SAVE_SKIPPED = "save_skipped"
    SAVE_FAILED = "save_failed"
    MIRROR_EXPORTED = "mirror_exported"
    ATTACHMENT_ARCHIVED = "attachment_archived"
    ATTACHMENT_FAILED = "attachment_failed"

    # Currency
    RATES_REFRESHED = "rates_refreshed"
    RATES_FAILED = "rates_failed"

    # Vault lock
    VAULT_LOCKED = "vault_locked"
    VAULT_UNLOCKED = "vault_unlocked"
    UNLOCK_FAILED = "unlock_failed"

    # System events
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'entry', 'goal', 'vault')"
    )
    entity_id: Optional[str] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.entry_added(entry_id, "Salary", revision)
        event = AuditEventBuilder.save_failed(revision, "local-db", str(e))
    """

    @staticmethod
    def login_succeeded(mode: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGIN_SUCCEEDED,
            entity_type="session",
            description=f"Logged in with storage mode {mode}",
            details={"mode": mode},
            is_user_action=True,
        )

    @staticmethod
    def login_failed(mode: str, error: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGIN_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="session",
            description=f"Login failed for storage mode {mode}",
            details={"mode": mode},
            error_message=error,
            is_user_action=True,
        )

    @staticmethod
    def vault_opened(mode: str, created: bool, entry_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.VAULT_CREATED if created
                else AuditEventType.VAULT_LOADED
            ),
            entity_type="vault",
            description=(
                "Created a new empty vault" if created
                else f"Loaded vault with {entry_count} entries"
            ),
            details={"mode": mode, "entry_count": entry_count},
        )

    @staticmethod
    def entry_added(entry_id: str, name: str, revision: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_ADDED,
            entity_type="entry",
            entity_id=entry_id,
            description=f"Entry added: {name}",
            details={"revision": revision},
            is_user_action=True,
        )

    @staticmethod
    def entry_updated(entry_id: str, name: str, revision: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_UPDATED,
            entity_type="entry",
            entity_id=entry_id,
            description=f"Entry updated: {name}",
            details={"revision": revision},
            is_user_action=True,
        )

    @staticmethod
    def goal_changed(
        goal_id: str,
        name: str,
        revision: int,
        contribution: Optional[float] = None,
    ) -> AuditEvent:
        if contribution is None:
            return AuditEvent(
                event_type=AuditEventType.GOAL_ADDED,
                entity_type="goal",
                entity_id=goal_id,
                description=f"Goal added: {name}",
                details={"revision": revision},
                is_user_action=True,
            )
        return AuditEvent(
            event_type=AuditEventType.GOAL_CONTRIBUTED,
            entity_type="goal",
            entity_id=goal_id,
            description=f"Contributed {contribution:,.2f} to goal: {name}",
            details={"revision": revision, "contribution": contribution},
            is_user_action=True,
        )

    @staticmethod
    def vault_mutated(
        event_type: AuditEventType,
        description: str,
        revision: int,
    ) -> AuditEvent:
        """Settings-level mutations: legacy, terms, preferences."""
        return AuditEvent(
            event_type=event_type,
            entity_type="vault",
            description=description,
            details={"revision": revision},
            is_user_action=True,
        )

    @staticmethod
    def vault_saved(revision: int, mode: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VAULT_SAVED,
            entity_type="vault",
            description=f"Vault revision {revision} saved",
            details={"revision": revision, "mode": mode},
        )

    @staticmethod
    def save_skipped(revision: int, current_revision: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_SKIPPED,
            severity=AuditSeverity.DEBUG,
            entity_type="vault",
            description=f"Stale revision {revision} not saved",
            details={"revision": revision, "current_revision": current_revision},
        )

    @staticmethod
    def save_failed(revision: int, mode: str, error: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="vault",
            description=f"Failed to save vault revision {revision}",
            details={"revision": revision, "mode": mode},
            error_message=error,
        )

    @staticmethod
    def mirror_exported(spreadsheet_id: str, row_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIRROR_EXPORTED,
            entity_type="mirror",
            entity_id=spreadsheet_id,
            description=f"Spreadsheet mirror rewritten with {row_count} rows",
            details={"row_count": row_count},
        )

    @staticmethod
    def attachment_archived(reference: Optional[str], account_name: str) -> AuditEvent:
        if reference is None:
            return AuditEvent(
                event_type=AuditEventType.ATTACHMENT_FAILED,
                severity=AuditSeverity.WARNING,
                entity_type="attachment",
                description=f"Statement for {account_name} was not archived",
                details={"account_name": account_name},
            )
        return AuditEvent(
            event_type=AuditEventType.ATTACHMENT_ARCHIVED,
            entity_type="attachment",
            entity_id=reference,
            description=f"Statement archived for {account_name}",
            details={"account_name": account_name},
        )

    @staticmethod
    def rates_refreshed(base_currency: str, rates: dict[str, float]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATES_REFRESHED,
            entity_type="vault",
            description=f"Exchange rates refreshed against {base_currency}",
            details={"base_currency": base_currency, "codes": sorted(rates)},
        )

    @staticmethod
    def rates_failed(base_currency: str, error: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATES_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="vault",
            description="Exchange rate refresh failed, keeping cached table",
            details={"base_currency": base_currency},
            error_message=error,
        )

    @staticmethod
    def vault_lock_changed(locked: bool, method: Optional[str] = None) -> AuditEvent:
        if locked:
            return AuditEvent(
                event_type=AuditEventType.VAULT_LOCKED,
                entity_type="vault",
                description="Vault locked",
            )
        return AuditEvent(
            event_type=AuditEventType.VAULT_UNLOCKED,
            entity_type="vault",
            description=f"Vault unlocked via {method}",
            details={"method": method},
            is_user_action=True,
        )

    @staticmethod
    def unlock_failed(method: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.UNLOCK_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="vault",
            description=f"Unlock via {method} rejected",
            details={"method": method},
            error_message=reason,
            is_user_action=True,
        )

    @staticmethod
    def external_service_error(service: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            details={"service": service},
            error_message=error_message,
        )
