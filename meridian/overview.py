"""Landing-page numbers for one environment."""

from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from .core.db import as_utc, resolve_environment
from .core.models import DriftFinding, DriftScan, FindingStatusEnum, Resource, ScanStatusEnum, SeverityEnum
from .health import environment_health
from .spend import build_spend_summary


def build_overview(session: Session, environment_id: str | UUID, as_of: date | None = None) -> dict[str, Any]:
    """
    Everything the overview cards show:
    open findings by severity, drifted resources, last scan, spend and
    worst budget state, workloads by status.
    """
    env = resolve_environment(session, environment_id)
    live = (FindingStatusEnum.OPEN, FindingStatusEnum.ACKNOWLEDGED)

    findings = {severity.value: 0 for severity in SeverityEnum}
    for severity, count in (
        session.query(DriftFinding.severity, func.count(DriftFinding.id))
        .filter(DriftFinding.environment_id == env.id, DriftFinding.status == FindingStatusEnum.OPEN)
        .group_by(DriftFinding.severity)
        .all()
    ):
        findings[severity.value] = count

    drifted = (
        session.query(func.count(func.distinct(DriftFinding.resource_id)))
        .filter(DriftFinding.environment_id == env.id, DriftFinding.status.in_(live))
        .scalar()
    ) or 0
    resource_count = (
        session.query(func.count(Resource.id))
        .filter(Resource.environment_id == env.id, Resource.is_active.is_(True))
        .scalar()
    ) or 0

    last_scan = (
        session.query(DriftScan)
        .filter(DriftScan.environment_id == env.id, DriftScan.status == ScanStatusEnum.SUCCESS)
        .order_by(DriftScan.completed_at.desc())
        .first()
    )

    spend = build_spend_summary(session, env.id, as_of)
    worst = spend.worst_budget_state

    return {
        "environment": {"id": str(env.id), "name": env.name, "provider": env.provider.value, "currency": env.currency},
        "drift": {
            "open_findings": findings,
            "open_total": sum(findings.values()),
            "drifted_resources": drifted,
            "resources": resource_count,
            "last_scan_at": as_utc(last_scan.completed_at).isoformat() if last_scan else None,
        },
        "spend": {
            "month_to_date": str(spend.month_to_date),
            "forecast": str(spend.forecast),
            "percent_change": spend.percent_change,
            "worst_budget_state": worst.value if worst else None,
        },
        "health": environment_health(session, env.id),
    }
