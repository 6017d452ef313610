"""Derived metrics package."""

from finvault.metrics.engine import (
    BudgetSummary,
    CoverageSummary,
    DashboardStats,
    LiquiditySplit,
    MonthlyFlow,
    budget_summary,
    category_breakdown,
    coverage_summary,
    dashboard_stats,
    debt_burden,
    format_runway,
    goal_progress,
    liquidity_composition,
    monthly_burn,
    monthly_inflow,
    monthly_savings,
    net_worth,
    payoff_progress,
    runway_months,
    savings_rate,
    six_month_flow,
    total_assets,
    total_liabilities,
)

__all__ = [
    # Results
    "BudgetSummary",
    "CoverageSummary",
    "DashboardStats",
    "LiquiditySplit",
    "MonthlyFlow",
    # Totals and rates
    "debt_burden",
    "monthly_burn",
    "monthly_inflow",
    "monthly_savings",
    "net_worth",
    "runway_months",
    "format_runway",
    "savings_rate",
    "total_assets",
    "total_liabilities",
    # Views
    "budget_summary",
    "category_breakdown",
    "coverage_summary",
    "dashboard_stats",
    "goal_progress",
    "liquidity_composition",
    "payoff_progress",
    "six_month_flow",
]
