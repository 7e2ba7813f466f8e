"""
Meridian - Health Sweeper
=========================

Probes every active workload of an environment, evaluates it, and records a
HealthCheck row per workload. Probes run concurrently under a semaphore;
all database writes happen after the probes finish, on the calling thread.

Usage:
    sweeper = HealthSweeper(session)
    result = asyncio.run(sweeper.sweep("staging"))
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.db import (
    get_or_create_job,
    mark_job_failed,
    mark_job_started,
    mark_job_success,
    resolve_environment,
    to_uuid,
    utcnow,
)
from ..core.models import HealthCheck, HealthStatusEnum, JobTypeEnum, Workload
from ..observability import OperationLogger
from ..resilience.error_handler import HealthCheckError, NotFoundError
from .evaluator import evaluate_workload
from .probes import HttpProber, ProbeResult

logger = logging.getLogger(__name__)

AVAILABLE_STATUSES = (HealthStatusEnum.HEALTHY, HealthStatusEnum.DEGRADED)


@dataclass
class SweepResult:
    environment_id: UUID
    job_id: UUID | None = None
    checked: int = 0
    probed: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "environment_id": str(self.environment_id),
            "job_id": str(self.job_id) if self.job_id else None,
            "checked": self.checked,
            "probed": self.probed,
            "by_status": self.by_status,
            "duration_ms": self.duration_ms,
        }


class HealthSweeper:
    """Runs health sweeps for one environment at a time."""

    def __init__(
        self,
        session: Session,
        prober: HttpProber | None = None,
        max_concurrency: int | None = None,
        degraded_latency_ms: float | None = None,
    ):
        if max_concurrency is None or degraded_latency_ms is None:
            from ..config import get_settings
            settings = get_settings()
            max_concurrency = max_concurrency or settings.HEALTH_MAX_CONCURRENCY
            degraded_latency_ms = degraded_latency_ms or settings.HEALTH_DEGRADED_LATENCY_MS
        self.session = session
        self.prober = prober
        self.max_concurrency = max(1, max_concurrency)
        self.degraded_latency_ms = degraded_latency_ms

    async def _probe_all(self, workloads: list[Workload]) -> dict[UUID, ProbeResult]:
        semaphore = asyncio.Semaphore(self.max_concurrency)
        prober = self.prober or HttpProber()

        async def probe_one(workload: Workload) -> tuple[UUID, ProbeResult]:
            async with semaphore:
                return workload.id, await prober.probe(workload.endpoint_url, workload.expected_status or 200)

        try:
            pairs = await asyncio.gather(*(probe_one(w) for w in workloads if w.endpoint_url))
        finally:
            if self.prober is None:
                await prober.aclose()
        return dict(pairs)

    async def sweep(self, environment_ref: str | UUID, triggered_by: str = "manual") -> SweepResult:
        """
        Probe and evaluate every active workload.

        Raises:
            NotFoundError: unknown environment
            HealthCheckError: the sweep could not be recorded
        """
        env = resolve_environment(self.session, environment_ref)
        started = utcnow()
        job, _ = get_or_create_job(
            self.session,
            JobTypeEnum.HEALTH_SWEEP,
            {"environment_id": str(env.id), "started_at": started.isoformat(), "triggered_by": triggered_by},
            environment_id=env.id,
        )
        mark_job_started(job)
        result = SweepResult(environment_id=env.id, job_id=job.id)

        with OperationLogger(logger, "health_sweep", environment_id=str(env.id)):
            try:
                workloads = (
                    self.session.query(Workload)
                    .filter(Workload.environment_id == env.id, Workload.is_active.is_(True))
                    .order_by(Workload.namespace, Workload.name)
                    .all()
                )
                probes = await self._probe_all(workloads)

                now = utcnow()
                for workload in workloads:
                    probe = probes.get(workload.id)
                    evaluation = evaluate_workload(
                        workload.desired_replicas, workload.ready_replicas, probe, self.degraded_latency_ms
                    )
                    self.session.add(
                        HealthCheck(
                            environment_id=env.id,
                            workload_id=workload.id,
                            checked_at=now,
                            status=evaluation.status,
                            latency_ms=probe.latency_ms if probe else None,
                            http_status=probe.status_code if probe else None,
                            ready_replicas=workload.ready_replicas,
                            desired_replicas=workload.desired_replicas,
                            message=evaluation.message,
                        )
                    )
                    workload.last_status = evaluation.status
                    workload.last_checked_at = now
                    result.by_status[evaluation.status.value] = result.by_status.get(evaluation.status.value, 0) + 1

                result.checked = len(workloads)
                result.probed = len(probes)
                self.session.flush()
            except Exception as e:
                mark_job_failed(job, str(e))
                raise HealthCheckError(f"Health sweep of '{env.name}' failed: {e}") from e

            result.duration_ms = int((utcnow() - started).total_seconds() * 1000)
            mark_job_success(job, outputs=result.to_dict())
            self.session.flush()

        logger.info(f"Health sweep of {env.name}: {result.by_status}")
        return result


def run_sweep(session: Session, environment_ref: str | UUID, **kwargs) -> SweepResult:
    """Blocking wrapper around HealthSweeper.sweep for sync callers."""
    triggered_by = kwargs.pop("triggered_by", "manual")
    return asyncio.run(HealthSweeper(session, **kwargs).sweep(environment_ref, triggered_by=triggered_by))


# =============================================================================
# READ SIDE
# =============================================================================


def compute_uptime(
    session: Session, workload_id: str | UUID, window_hours: int = 24, now: datetime | None = None
) -> float | None:
    """Percent of checks in the window that were healthy or degraded; None with no checks."""
    workload_id = to_uuid(workload_id, "workload id")
    since = (now or utcnow()) - timedelta(hours=window_hours)
    rows = (
        session.query(HealthCheck.status, func.count(HealthCheck.id))
        .filter(HealthCheck.workload_id == workload_id, HealthCheck.checked_at >= since)
        .group_by(HealthCheck.status)
        .all()
    )
    total = sum(count for _, count in rows)
    if not total:
        return None
    available = sum(count for status, count in rows if status in AVAILABLE_STATUSES)
    return round(available / total * 100, 2)


def environment_health(session: Session, environment_id: UUID) -> dict[str, int]:
    """Active workloads counted by last_status (every status present, zero if none)."""
    counts = {status.value: 0 for status in HealthStatusEnum}
    rows = (
        session.query(Workload.last_status, func.count(Workload.id))
        .filter(Workload.environment_id == environment_id, Workload.is_active.is_(True))
        .group_by(Workload.last_status)
        .all()
    )
    for status, count in rows:
        counts[status.value] = count
    return counts


def list_checks(session: Session, workload_id: str | UUID, limit: int = 100) -> list[HealthCheck]:
    """Most recent checks of a workload first."""
    workload = session.get(Workload, to_uuid(workload_id, "workload id"))
    if workload is None:
        raise NotFoundError(f"Workload '{workload_id}' not found")
    return (
        session.query(HealthCheck)
        .filter(HealthCheck.workload_id == workload.id)
        .order_by(HealthCheck.checked_at.desc())
        .limit(limit)
        .all()
    )
