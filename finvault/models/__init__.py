"""Data models package."""

from finvault.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from finvault.models.finance import (
    CATEGORY_GENERAL,
    CATEGORY_INCOME,
    CATEGORY_INVESTMENTS,
    CATEGORY_SAVINGS,
    FINANCIAL_CATEGORIES,
    EntryType,
    FinanceEntry,
    Goal,
    GoalCategory,
    GroundingSource,
    Liquidity,
    UserData,
    VaultSettings,
    new_id,
    utc_now_iso,
)
from finvault.models.legacy import (
    PASSKEY_ALPHABET,
    LegacyProfile,
    generate_passkey,
    normalize_passkey,
    verify_passkey,
)

__all__ = [
    # Audit
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Vault
    "CATEGORY_GENERAL",
    "CATEGORY_INCOME",
    "CATEGORY_INVESTMENTS",
    "CATEGORY_SAVINGS",
    "FINANCIAL_CATEGORIES",
    "EntryType",
    "FinanceEntry",
    "Goal",
    "GoalCategory",
    "GroundingSource",
    "Liquidity",
    "UserData",
    "VaultSettings",
    "new_id",
    "utc_now_iso",
    # Legacy protocol
    "PASSKEY_ALPHABET",
    "LegacyProfile",
    "generate_passkey",
    "normalize_passkey",
    "verify_passkey",
]
