"""Tests for workload health evaluation."""
import pytest

from meridian.core.models import HealthStatusEnum
from meridian.health import ProbeResult, evaluate_workload


class TestReplicaVerdict:
    """Replica counts alone."""

    @pytest.mark.parametrize(
        "desired,ready,expected",
        [
            (3, 3, HealthStatusEnum.HEALTHY),
            (3, 5, HealthStatusEnum.HEALTHY),
            (3, 2, HealthStatusEnum.DEGRADED),
            (3, 0, HealthStatusEnum.UNHEALTHY),
            (0, 0, HealthStatusEnum.HEALTHY),
        ],
    )
    def test_replicas(self, desired, ready, expected):
        assert evaluate_workload(desired, ready).status == expected

    def test_degraded_message(self):
        assert evaluate_workload(2, 1).message == "1/2 replicas ready"

    def test_no_data_is_unknown(self):
        assert evaluate_workload(None, None).status == HealthStatusEnum.UNKNOWN
        assert evaluate_workload(3, None).status == HealthStatusEnum.UNKNOWN


class TestProbeVerdict:
    """Probe results, alone and combined with replicas."""

    def test_probe_ok(self):
        result = evaluate_workload(None, None, ProbeResult(ok=True, status_code=200, latency_ms=12.0))
        assert result.status == HealthStatusEnum.HEALTHY

    def test_probe_failure_is_unhealthy(self):
        result = evaluate_workload(None, None, ProbeResult(ok=False, error="ConnectError: refused"))
        assert result.status == HealthStatusEnum.UNHEALTHY
        assert "refused" in result.message

    def test_slow_probe_is_degraded(self):
        result = evaluate_workload(None, None, ProbeResult(ok=True, latency_ms=1500.0), degraded_latency_ms=1000)
        assert result.status == HealthStatusEnum.DEGRADED

    def test_worst_verdict_wins(self):
        failing = ProbeResult(ok=False, status_code=503, error="expected HTTP 200, got 503")
        assert evaluate_workload(3, 3, failing).status == HealthStatusEnum.UNHEALTHY
        assert evaluate_workload(3, 1, ProbeResult(ok=True, latency_ms=5.0)).status == HealthStatusEnum.DEGRADED

    def test_all_healthy_joins_messages(self):
        result = evaluate_workload(2, 2, ProbeResult(ok=True, latency_ms=5.0))
        assert result.status == HealthStatusEnum.HEALTHY
        assert result.message == "2/2 replicas ready; probe ok"
