"""
Meridian Spend Module
=====================

Cost import, aggregation, forecasting and budgets.
"""

from .aggregator import (
    BUDGET_STATE_RANK,
    BudgetState,
    BudgetStatus,
    SpendSummary,
    build_spend_summary,
    daily_spend,
    evaluate_budget,
    forecast_month_end,
    month_to_date,
    percent_change,
    previous_month_window,
    spend_by_service,
    total_spend,
    worst_budget_state,
)
from .importer import CostImporter, ImportResult

__all__ = [
    "CostImporter",
    "ImportResult",
    "daily_spend",
    "spend_by_service",
    "total_spend",
    "month_to_date",
    "forecast_month_end",
    "percent_change",
    "previous_month_window",
    "BudgetState",
    "BudgetStatus",
    "BUDGET_STATE_RANK",
    "evaluate_budget",
    "worst_budget_state",
    "SpendSummary",
    "build_spend_summary",
]
