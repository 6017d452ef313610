"""
Derived Metrics Engine

Pure functions of (UserData, today). Nothing here is cached or persisted:
every figure is recomputed from the entry list and the current rate
table each time it is read.

Month bucketing uses the first 7 characters of an entry's ISO date.
An entry whose date has no valid YYYY-MM prefix belongs to no month: it
is left out of monthly figures but still counts in all-time totals.

DESIGN DECISION: percentages round half up (12.5 -> 13), not Python's
banker's rounding, so figures match what users see elsewhere.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict

from finvault.models.finance import (
    CATEGORY_GENERAL,
    CATEGORY_INCOME,
    CATEGORY_INVESTMENTS,
    CATEGORY_SAVINGS,
    MONTH_KEY_PATTERN,
    EntryType,
    FinanceEntry,
    Goal,
    Liquidity,
    UserData,
)
from finvault.services.currency import entry_in_base


SPENDING_TYPES = (EntryType.EXPENSE, EntryType.BILL)

RUNWAY_UNBOUNDED = "∞"

DEFAULT_BUDGET_LIMIT = 5000.0

# Keyword rules for the 50/30/20 budget split, checked in this order
NEEDS_KEYWORDS = ("need", "rent", "bill", "food")
WANTS_KEYWORDS = ("want", "play", "dine")
SECURITY_KEYWORDS = ("saving", "invest", "debt")

PROTECTION_TYPES = ("Life", "Health", "Home", "Critical Illness")


class MetricsModel(BaseModel):
    model_config = ConfigDict(frozen=True)


# =============================================================================
# HELPERS
# =============================================================================

def round_half_up(value: float, places: int = 0) -> float:
    exponent = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP))


def month_key(entry: FinanceEntry) -> Optional[str]:
    """YYYY-MM the entry belongs to, or None."""
    key = (entry.date or "")[:7]
    return key if MONTH_KEY_PATTERN.match(key) else None


def current_month(today: Optional[date] = None) -> str:
    return (today or date.today()).strftime("%Y-%m")


def trailing_months(today: Optional[date] = None, count: int = 6) -> list[str]:
    """The last `count` month keys, oldest first, ending with today's month."""
    today = today or date.today()
    index = today.year * 12 + today.month - 1
    return [
        f"{i // 12:04d}-{i % 12 + 1:02d}"
        for i in range(index - count + 1, index + 1)
    ]


def _total(data: UserData, entries: Iterable[FinanceEntry]) -> float:
    return sum((entry_in_base(e, data) for e in entries), 0.0)


def _in_month(data: UserData, month: str) -> list[FinanceEntry]:
    return [e for e in data.entries if month_key(e) == month]


# =============================================================================
# ALL-TIME TOTALS
# =============================================================================

def total_assets(data: UserData) -> float:
    return _total(data, (e for e in data.entries if e.type == EntryType.ASSET))


def total_liabilities(data: UserData) -> float:
    return _total(data, (e for e in data.entries if e.type == EntryType.LIABILITY))


def net_worth(data: UserData) -> float:
    """Base-converted assets minus base-converted liabilities."""
    return total_assets(data) - total_liabilities(data)


# =============================================================================
# CURRENT-MONTH FLOWS
# =============================================================================

def monthly_burn(data: UserData, today: Optional[date] = None) -> float:
    """Expenses and bills dated in the current month."""
    month = _in_month(data, current_month(today))
    return _total(data, (e for e in month if e.type in SPENDING_TYPES))


def monthly_inflow(data: UserData, today: Optional[date] = None) -> float:
    """Income-category assets dated in the current month."""
    month = _in_month(data, current_month(today))
    return _total(
        data,
        (e for e in month if e.type == EntryType.ASSET and e.category == CATEGORY_INCOME),
    )


def monthly_savings(data: UserData, today: Optional[date] = None) -> float:
    """Savings and Investments assets dated in the current month."""
    month = _in_month(data, current_month(today))
    return _total(
        data,
        (
            e for e in month
            if e.type == EntryType.ASSET
            and e.category in (CATEGORY_SAVINGS, CATEGORY_INVESTMENTS)
        ),
    )


def savings_rate(data: UserData, today: Optional[date] = None) -> int:
    """Monthly savings as a whole percentage of monthly inflow; 0 without inflow."""
    inflow = monthly_inflow(data, today)
    if inflow <= 0:
        return 0
    return int(round_half_up(monthly_savings(data, today) / inflow * 100))


def debt_burden(data: UserData, today: Optional[date] = None) -> int:
    """Total liabilities as a whole percentage of a year of inflow; 0 without inflow."""
    inflow = monthly_inflow(data, today)
    if inflow <= 0:
        return 0
    return int(round_half_up(total_liabilities(data) / (inflow * 12) * 100))


def runway_months(data: UserData, today: Optional[date] = None) -> Optional[float]:
    """
    Months the assets would cover the current burn, to one decimal.

    None when there is no burn (unbounded runway).
    """
    burn = monthly_burn(data, today)
    if burn <= 0:
        return None
    return round_half_up(total_assets(data) / burn, 1)


def format_runway(months: Optional[float]) -> str:
    return RUNWAY_UNBOUNDED if months is None else f"{months:.1f}"


# =============================================================================
# COMPOSITION AND SERIES
# =============================================================================

class LiquiditySplit(MetricsModel):
    high: float = 0.0
    medium: float = 0.0
    low: float = 0.0

    @property
    def total(self) -> float:
        return self.high + self.medium + self.low


def liquidity_composition(
    data: UserData,
    default_tier: Liquidity = Liquidity.LOW,
) -> LiquiditySplit:
    """
    Split asset value by liquidity tier.

    Only ASSET entries count. Untagged assets go to default_tier.
    """
    tiers = {tier: 0.0 for tier in Liquidity}
    for entry in data.entries:
        if entry.type != EntryType.ASSET:
            continue
        tiers[entry.liquidity or default_tier] += entry_in_base(entry, data)
    return LiquiditySplit(
        high=tiers[Liquidity.HIGH],
        medium=tiers[Liquidity.MEDIUM],
        low=tiers[Liquidity.LOW],
    )


class MonthlyFlow(MetricsModel):
    month: str
    income: float
    expenses: float


def six_month_flow(data: UserData, today: Optional[date] = None) -> list[MonthlyFlow]:
    """Income and spending for the trailing six months, oldest first."""
    series = []
    for month in trailing_months(today, 6):
        entries = _in_month(data, month)
        series.append(MonthlyFlow(
            month=month,
            income=_total(
                data,
                (e for e in entries if e.type == EntryType.ASSET and e.category == CATEGORY_INCOME),
            ),
            expenses=_total(data, (e for e in entries if e.type in SPENDING_TYPES)),
        ))
    return series


def category_breakdown(data: UserData, today: Optional[date] = None) -> dict[str, float]:
    """Current-month spending per category; untagged spending is General."""
    breakdown: dict[str, float] = {}
    for entry in _in_month(data, current_month(today)):
        if entry.type not in SPENDING_TYPES:
            continue
        category = entry.category or CATEGORY_GENERAL
        breakdown[category] = breakdown.get(category, 0.0) + entry_in_base(entry, data)
    return breakdown


class DashboardStats(MetricsModel):
    """Headline figures, all in the base currency."""

    total_assets: float
    total_liabilities: float
    net_worth: float
    monthly_burn: float
    monthly_inflow: float
    net_flow: float
    savings_rate: int
    debt_burden: int
    runway_months: Optional[float]

    @property
    def runway_display(self) -> str:
        return format_runway(self.runway_months)


def dashboard_stats(data: UserData, today: Optional[date] = None) -> DashboardStats:
    assets = total_assets(data)
    liabilities = total_liabilities(data)
    burn = monthly_burn(data, today)
    inflow = monthly_inflow(data, today)
    return DashboardStats(
        total_assets=assets,
        total_liabilities=liabilities,
        net_worth=assets - liabilities,
        monthly_burn=burn,
        monthly_inflow=inflow,
        net_flow=inflow - burn,
        savings_rate=savings_rate(data, today),
        debt_burden=debt_burden(data, today),
        runway_months=runway_months(data, today),
    )


# =============================================================================
# BUDGET, PAYOFF, GOALS, SAFETY NET
# =============================================================================

class BudgetSummary(MetricsModel):
    """Current-month spending against the 50/30/20 split of the budget limit."""

    needs: float
    wants: float
    security: float
    limit: float

    @property
    def total(self) -> float:
        return self.needs + self.wants + self.security

    @property
    def needs_target(self) -> float:
        return self.limit * 0.5

    @property
    def wants_target(self) -> float:
        return self.limit * 0.3

    @property
    def security_target(self) -> float:
        return self.limit * 0.2

    @property
    def over_limit(self) -> bool:
        return self.total > self.limit

    @property
    def utilization(self) -> float:
        """Percent of the limit spent, capped at 100."""
        if self.limit <= 0:
            return 100.0
        return min(100.0, self.total / self.limit * 100)


def budget_bucket(category: str) -> str:
    """needs, wants or security for a category label. Unmatched labels are wants."""
    label = (category or "").lower()
    if any(word in label for word in NEEDS_KEYWORDS):
        return "needs"
    if any(word in label for word in WANTS_KEYWORDS):
        return "wants"
    if any(word in label for word in SECURITY_KEYWORDS):
        return "security"
    return "wants"


def budget_summary(data: UserData, today: Optional[date] = None) -> BudgetSummary:
    buckets = {"needs": 0.0, "wants": 0.0, "security": 0.0}
    for entry in _in_month(data, current_month(today)):
        if entry.type in SPENDING_TYPES:
            buckets[budget_bucket(entry.category)] += entry_in_base(entry, data)
    return BudgetSummary(
        **buckets,
        limit=data.settings.monthly_budget_limit or DEFAULT_BUDGET_LIMIT,
    )


def payoff_progress(entry: FinanceEntry) -> float:
    """Percent of a debt paid off since initial_amount; 0 when unknown."""
    if not entry.initial_amount:
        return 0.0
    return max(0.0, 100 - entry.amount / entry.initial_amount * 100)


def goal_progress(goal: Goal) -> float:
    """Percent of the target reached, capped at 100."""
    return min(goal.current_amount / goal.target_amount * 100, 100.0)


class CoverageSummary(MetricsModel):
    insurance: list[FinanceEntry]
    benefits: list[FinanceEntry]
    total_coverage: float
    protection: dict[str, bool]

    @property
    def gaps(self) -> list[str]:
        return [name for name, covered in self.protection.items() if not covered]


def coverage_summary(data: UserData) -> CoverageSummary:
    """
    Insurance and benefits on file.

    A benefit is a BENEFIT entry or anything flagged work-provided.
    Coverage counts coverage_amount, falling back to amount.
    """
    insurance = [e for e in data.entries if e.type == EntryType.INSURANCE]
    benefits = [
        e for e in data.entries
        if e.type == EntryType.BENEFIT or e.is_work_provided
    ]
    covered_labels = [e.category.lower() for e in insurance]
    return CoverageSummary(
        insurance=insurance,
        benefits=benefits,
        total_coverage=sum(
            (e.coverage_amount or e.amount)
            for e in insurance + [b for b in benefits if b not in insurance]
        ),
        protection={
            kind: any(kind.lower() in label for label in covered_labels)
            for kind in PROTECTION_TYPES
        },
    )
