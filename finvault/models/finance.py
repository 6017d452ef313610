"""
Core Data Models for FinVault

These models define the persisted vault document and everything in it.
They are designed to:
1. Enforce the invariants at runtime (non-negative amounts, closed enums)
2. Serialize to the exact camelCase JSON every backend stores
3. Be immutable, so each mutation produces a new snapshot

DESIGN DECISION: Amounts are floats, not Decimals. The vault is a JSON
document shared by three backends and must keep plain JSON numbers.
Dates stay ISO strings so an unparseable date survives a round-trip
untouched instead of failing the whole document load.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from finvault.models.legacy import LegacyProfile


def new_id() -> str:
    """Generate a fresh entity identifier."""
    return str(uuid4())


def utc_now_iso() -> str:
    """Current UTC timestamp in the ISO form stored in vault documents."""
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


class VaultModel(BaseModel):
    """Base for everything stored in the vault document."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        str_strip_whitespace=True,
        extra="ignore",
        # inf and nan serialize as JSON null and would not load back
        allow_inf_nan=False,
    )


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class EntryType(str, Enum):
    """
    Kind of financial fact.

    The sign of an amount is carried here, never by a negative number.
    """
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EXPENSE = "EXPENSE"
    BILL = "BILL"
    INSURANCE = "INSURANCE"
    BENEFIT = "BENEFIT"


class Liquidity(str, Enum):
    """How quickly an asset can be turned into cash."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class GoalCategory(str, Enum):
    TRAVEL = "Travel"
    HOUSE = "House"
    EDUCATION = "Education"
    WEDDING = "Wedding"
    RETIREMENT = "Retirement"
    EMERGENCY = "Emergency"
    OTHER = "Other"


# YYYY-MM prefix of an ISO date
MONTH_KEY_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

# Conventional entry categories. Category itself stays free-form text.
CATEGORY_INCOME = "Income"
CATEGORY_NEEDS = "Needs"
CATEGORY_WANTS = "Wants"
CATEGORY_DEBT = "Debt"
CATEGORY_SAVINGS = "Savings"
CATEGORY_INVESTMENTS = "Investments"
CATEGORY_GENERAL = "General"

FINANCIAL_CATEGORIES = (
    CATEGORY_INCOME,
    CATEGORY_NEEDS,
    CATEGORY_WANTS,
    CATEGORY_DEBT,
    CATEGORY_SAVINGS,
    CATEGORY_INVESTMENTS,
    CATEGORY_GENERAL,
)


# =============================================================================
# ENTRIES AND GOALS
# =============================================================================

class GroundingSource(VaultModel):
    """A web source cited by a property valuation."""

    title: str = "Source"
    uri: str


class FinanceEntry(VaultModel):
    """
    One financial fact: asset, liability, expense, bill, insurance or benefit.

    Kind-specific fields are optional and simply absent for other kinds.
    """

    # Identity
    id: str = Field(default_factory=new_id)
    type: EntryType
    category: str = Field(default=CATEGORY_GENERAL)
    name: str = Field(..., min_length=1, max_length=200)

    # Magnitude in the entry's own currency
    amount: float = Field(..., ge=0)
    currency: Optional[str] = Field(
        default=None,
        description="ISO currency code; absent means base currency"
    )
    date: str = Field(default="", description="ISO calendar date")

    # Real estate
    address: Optional[str] = None
    plot_size: Optional[str] = None
    property_type: Optional[str] = None
    valuation_sources: Optional[list[GroundingSource]] = None
    last_valuated: Optional[str] = None

    # Debt
    emi: Optional[float] = Field(default=None, ge=0)
    months_remaining: Optional[int] = Field(default=None, ge=0)
    linked_asset_id: Optional[str] = None
    initial_amount: Optional[float] = Field(default=None, ge=0)

    # Insurance and benefits
    coverage_amount: Optional[float] = Field(default=None, ge=0)
    expiry_date: Optional[str] = None
    reference_number: Optional[str] = None
    is_work_provided: Optional[bool] = None

    is_recurring: Optional[bool] = None
    liquidity: Optional[Liquidity] = None
    notes: Optional[str] = Field(default=None, max_length=2000)

    # Reference to the archived source document (fs://, idb:// or a Drive id)
    attachment_ref: Optional[str] = Field(default=None, alias="statementDriveId")


class Goal(VaultModel):
    """
    A savings target.

    current_amount only grows through explicit contributions.
    linked_asset_id is for display, no consistency is enforced.
    """

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    target_amount: float = Field(..., gt=0)
    current_amount: float = Field(default=0.0, ge=0)
    currency: Optional[str] = None
    deadline: Optional[str] = None
    category: GoalCategory = GoalCategory.OTHER
    linked_asset_id: Optional[str] = None


# =============================================================================
# AGGREGATE ROOT
# =============================================================================

class VaultSettings(VaultModel):
    """Per-vault preferences stored alongside the data."""

    base_currency: str = Field(default="USD", alias="currency")
    user_name: str = "FinVault User"
    vault_lock_enabled: bool = Field(default=False, alias="biometricEnabled")
    terms_accepted: bool = False
    spreadsheet_id: Optional[str] = None
    monthly_budget_limit: Optional[float] = Field(default=5000.0, ge=0)


class UserData(VaultModel):
    """
    The whole vault: the single document every backend persists.

    revision grows by one with every mutation and is written into the
    document, so a stale snapshot can be recognised before it is saved.
    """

    entries: list[FinanceEntry] = Field(default_factory=list)
    goals: list[Goal] = Field(default_factory=list)
    last_synced: str = Field(default_factory=utc_now_iso)
    exchange_rates: Optional[dict[str, float]] = None
    legacy: Optional[LegacyProfile] = None
    settings: VaultSettings = Field(default_factory=VaultSettings)
    revision: int = Field(default=0, ge=0)

    @classmethod
    def create_initial(
        cls,
        base_currency: str = "USD",
        user_name: str = "FinVault User",
        monthly_budget_limit: Optional[float] = 5000.0,
    ) -> "UserData":
        """Empty vault created on first login to a storage mode."""
        return cls(
            settings=VaultSettings(
                base_currency=base_currency,
                user_name=user_name,
                monthly_budget_limit=monthly_budget_limit,
            )
        )

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "UserData":
        """Load a persisted document. Missing goals/settings take defaults."""
        return cls.model_validate(document)

    def to_document(self) -> dict[str, Any]:
        """Plain JSON-ready dict with the persisted camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @property
    def base_currency(self) -> str:
        return self.settings.base_currency

    def find_entry(self, entry_id: str) -> Optional[FinanceEntry]:
        return next((e for e in self.entries if e.id == entry_id), None)

    def find_goal(self, goal_id: str) -> Optional[Goal]:
        return next((g for g in self.goals if g.id == goal_id), None)
