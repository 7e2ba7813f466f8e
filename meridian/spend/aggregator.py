"""
Meridian - Spend Aggregation
============================

Month-to-date totals, run-rate forecast, service breakdown and budget
evaluation over cost_records.

All money is Decimal. Summaries only count records in the environment's
currency; records in any other currency are excluded and counted.
"""

import calendar
import enum
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID

import pandas as pd
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.db import resolve_environment, utcnow
from ..core.models import Budget, CostRecord

CENT = Decimal("0.01")


class BudgetState(str, enum.Enum):
    OK = "ok"
    WARNING = "warning"
    AT_RISK = "at_risk"
    EXCEEDED = "exceeded"


BUDGET_STATE_RANK = {
    BudgetState.OK: 0,
    BudgetState.WARNING: 1,
    BudgetState.AT_RISK: 2,
    BudgetState.EXCEEDED: 3,
}


def _money(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def days_in_month(day: date) -> int:
    return calendar.monthrange(day.year, day.month)[1]


def previous_month_window(as_of: date) -> tuple[date, date]:
    """The previous month from its 1st through the same day number (clamped)."""
    last_of_previous = as_of.replace(day=1) - timedelta(days=1)
    start = last_of_previous.replace(day=1)
    end = last_of_previous.replace(day=min(as_of.day, last_of_previous.day))
    return start, end


# =============================================================================
# QUERIES
# =============================================================================


def _window(query, environment_id: UUID, start: date, end: date, currency: str | None):
    query = query.filter(
        CostRecord.environment_id == environment_id,
        CostRecord.usage_date >= start,
        CostRecord.usage_date <= end,
    )
    if currency:
        query = query.filter(CostRecord.currency == currency)
    return query


def total_spend(
    session: Session, environment_id: UUID, start: date, end: date,
    currency: str | None = None, service: str | None = None,
) -> Decimal:
    query = _window(session.query(func.sum(CostRecord.amount)), environment_id, start, end, currency)
    if service:
        query = query.filter(CostRecord.service == service)
    return _money(query.scalar())


def daily_spend(
    session: Session, environment_id: UUID, start: date, end: date, currency: str | None = None
) -> pd.DataFrame:
    """One row per day in [start, end] with columns usage_date, amount; days without records are 0."""
    rows = (
        _window(
            session.query(CostRecord.usage_date, func.sum(CostRecord.amount)),
            environment_id, start, end, currency,
        )
        .group_by(CostRecord.usage_date)
        .all()
    )
    totals = {usage_date: float(amount or 0) for usage_date, amount in rows}
    days = pd.date_range(start, end, freq="D").date
    return pd.DataFrame({"usage_date": days, "amount": [totals.get(day, 0.0) for day in days]})


def spend_by_service(
    session: Session, environment_id: UUID, start: date, end: date,
    currency: str | None = None, limit: int | None = None,
) -> list[dict[str, Any]]:
    """Services by spend, largest first."""
    rows = (
        _window(
            session.query(CostRecord.service, func.sum(CostRecord.amount)),
            environment_id, start, end, currency,
        )
        .group_by(CostRecord.service)
        .all()
    )
    services = sorted(
        ({"service": service, "amount": _money(amount)} for service, amount in rows),
        key=lambda s: (-s["amount"], s["service"]),
    )
    return services[:limit] if limit else services


def month_to_date(
    session: Session, environment_id: UUID, as_of: date,
    currency: str | None = None, service: str | None = None,
) -> Decimal:
    return total_spend(session, environment_id, as_of.replace(day=1), as_of, currency, service)


def forecast_month_end(mtd: Decimal, as_of: date) -> Decimal:
    """Linear run-rate: mtd / days elapsed * days in month."""
    return _money(Decimal(mtd) / as_of.day * days_in_month(as_of))


def percent_change(current: Decimal, previous: Decimal) -> float | None:
    if not previous:
        return None
    return round(float((Decimal(current) - Decimal(previous)) / abs(Decimal(previous)) * 100), 2)


# =============================================================================
# BUDGETS
# =============================================================================


@dataclass
class BudgetStatus:
    budget_id: UUID | None
    name: str
    service: str | None
    amount: Decimal
    spent: Decimal
    forecast: Decimal
    state: BudgetState
    percent_used: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "budget_id": str(self.budget_id) if self.budget_id else None,
            "name": self.name,
            "service": self.service,
            "amount": str(self.amount),
            "spent": str(self.spent),
            "forecast": str(self.forecast),
            "state": self.state.value,
            "percent_used": self.percent_used,
        }


def evaluate_budget(budget: Budget, spent: Decimal, forecast: Decimal) -> BudgetStatus:
    """
    Budget state, most severe first:
    exceeded (spent >= amount), at_risk (forecast > amount),
    warning (spent >= amount * threshold), ok.
    """
    amount = _money(budget.monthly_amount)
    threshold = Decimal(str(budget.warning_threshold if budget.warning_threshold is not None else 0.8))

    if spent >= amount:
        state = BudgetState.EXCEEDED
    elif forecast > amount:
        state = BudgetState.AT_RISK
    elif spent >= amount * threshold:
        state = BudgetState.WARNING
    else:
        state = BudgetState.OK

    percent_used = round(float(spent / amount * 100), 2) if amount > 0 else 0.0
    return BudgetStatus(
        budget_id=budget.id,
        name=budget.name,
        service=budget.service,
        amount=amount,
        spent=_money(spent),
        forecast=_money(forecast),
        state=state,
        percent_used=percent_used,
    )


def worst_budget_state(statuses: list[BudgetStatus]) -> BudgetState | None:
    if not statuses:
        return None
    return max((s.state for s in statuses), key=BUDGET_STATE_RANK.__getitem__)


# =============================================================================
# SUMMARY
# =============================================================================


@dataclass
class SpendSummary:
    environment_id: UUID
    currency: str
    as_of: date
    month_to_date: Decimal
    forecast: Decimal
    previous_period: Decimal
    percent_change: float | None
    top_services: list[dict[str, Any]] = field(default_factory=list)
    budgets: list[BudgetStatus] = field(default_factory=list)
    excluded_records: int = 0

    @property
    def worst_budget_state(self) -> BudgetState | None:
        return worst_budget_state(self.budgets)

    def to_dict(self) -> dict[str, Any]:
        worst = self.worst_budget_state
        return {
            "environment_id": str(self.environment_id),
            "currency": self.currency,
            "as_of": self.as_of.isoformat(),
            "month_to_date": str(self.month_to_date),
            "forecast": str(self.forecast),
            "previous_period": str(self.previous_period),
            "percent_change": self.percent_change,
            "top_services": [{"service": s["service"], "amount": str(s["amount"])} for s in self.top_services],
            "budgets": [b.to_dict() for b in self.budgets],
            "worst_budget_state": worst.value if worst else None,
            "excluded_records": self.excluded_records,
        }


def build_spend_summary(
    session: Session, environment_id: str | UUID, as_of: date | None = None, top_n: int = 5
) -> SpendSummary:
    """Month-to-date spend picture for one environment."""
    env = resolve_environment(session, environment_id)
    as_of = as_of or utcnow().date()
    currency = env.currency
    start = as_of.replace(day=1)

    mtd = month_to_date(session, env.id, as_of, currency)
    forecast = forecast_month_end(mtd, as_of)
    prev_start, prev_end = previous_month_window(as_of)
    previous = total_spend(session, env.id, prev_start, prev_end, currency)

    excluded = (
        session.query(func.count(CostRecord.id))
        .filter(
            CostRecord.environment_id == env.id,
            CostRecord.usage_date >= start,
            CostRecord.usage_date <= as_of,
            CostRecord.currency != currency,
        )
        .scalar()
    ) or 0

    budgets = (
        session.query(Budget)
        .filter(Budget.environment_id == env.id, Budget.is_active.is_(True))
        .order_by(Budget.name)
        .all()
    )
    statuses = []
    for budget in budgets:
        spent = month_to_date(session, env.id, as_of, budget.currency, budget.service)
        statuses.append(evaluate_budget(budget, spent, forecast_month_end(spent, as_of)))

    return SpendSummary(
        environment_id=env.id,
        currency=currency,
        as_of=as_of,
        month_to_date=mtd,
        forecast=forecast,
        previous_period=previous,
        percent_change=percent_change(mtd, previous),
        top_services=spend_by_service(session, env.id, start, as_of, currency, limit=top_n),
        budgets=statuses,
        excluded_records=excluded,
    )
