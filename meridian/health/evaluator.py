"""Workload health evaluation from replica counts and probe results."""

from dataclasses import dataclass

from ..core.models import HEALTH_RANK, HealthStatusEnum
from .probes import ProbeResult


@dataclass
class Evaluation:
    status: HealthStatusEnum
    message: str


def _replica_verdict(desired: int | None, ready: int | None) -> Evaluation | None:
    if desired is None or ready is None:
        return None
    if desired == 0:
        return Evaluation(HealthStatusEnum.HEALTHY, "scaled to zero")
    if ready == 0:
        return Evaluation(HealthStatusEnum.UNHEALTHY, f"0/{desired} replicas ready")
    if ready < desired:
        return Evaluation(HealthStatusEnum.DEGRADED, f"{ready}/{desired} replicas ready")
    return Evaluation(HealthStatusEnum.HEALTHY, f"{ready}/{desired} replicas ready")


def _probe_verdict(probe: ProbeResult | None, degraded_latency_ms: float) -> Evaluation | None:
    if probe is None:
        return None
    if not probe.ok:
        return Evaluation(HealthStatusEnum.UNHEALTHY, f"probe failed: {probe.error or 'unknown error'}")
    if probe.latency_ms is not None and probe.latency_ms > degraded_latency_ms:
        return Evaluation(
            HealthStatusEnum.DEGRADED,
            f"slow probe: {probe.latency_ms:.0f}ms > {degraded_latency_ms:.0f}ms",
        )
    return Evaluation(HealthStatusEnum.HEALTHY, "probe ok")


def evaluate_workload(
    desired: int | None,
    ready: int | None,
    probe: ProbeResult | None = None,
    degraded_latency_ms: float = 1000.0,
) -> Evaluation:
    """
    Worst of the replica verdict and the probe verdict.

    Replicas: none ready of some desired is unhealthy, fewer than desired is
    degraded. Probe: failure is unhealthy, latency over the threshold is
    degraded. No replica data and no probe gives unknown.
    """
    verdicts = [
        v for v in (_replica_verdict(desired, ready), _probe_verdict(probe, degraded_latency_ms)) if v is not None
    ]
    if not verdicts:
        return Evaluation(HealthStatusEnum.UNKNOWN, "no replica data or health endpoint")

    worst = max(verdicts, key=lambda v: HEALTH_RANK[v.status])
    if worst.status == HealthStatusEnum.HEALTHY:
        return Evaluation(HealthStatusEnum.HEALTHY, "; ".join(v.message for v in verdicts))
    return worst
