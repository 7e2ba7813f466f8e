"""Tests for HTTP probes, health sweeps and uptime."""
import asyncio
from datetime import timedelta

import httpx
import pytest

from meridian.core.db import utcnow
from meridian.core.models import (
    HealthCheck,
    HealthStatusEnum,
    JobRun,
    JobStatusEnum,
    JobTypeEnum,
    Workload,
)
from meridian.health import (
    HealthSweeper,
    HttpProber,
    compute_uptime,
    environment_health,
    list_checks,
    run_sweep,
)
from meridian.resilience import HealthCheckError, NotFoundError


def prober_for(handler, retries=0):
    return HttpProber(timeout=1.0, retries=retries, retry_delay=0, transport=httpx.MockTransport(handler))


class TestHttpProber:
    """Tests for HttpProber.probe."""

    @pytest.mark.asyncio
    async def test_expected_status(self):
        async with prober_for(lambda request: httpx.Response(200, text="ok")) as prober:
            result = await prober.probe("http://api.internal/healthz")

        assert result.ok
        assert result.status_code == 200
        assert result.latency_ms is not None and result.latency_ms >= 0

    @pytest.mark.asyncio
    async def test_unexpected_status(self):
        async with prober_for(lambda request: httpx.Response(503)) as prober:
            result = await prober.probe("http://api.internal/healthz")

        assert not result.ok
        assert result.status_code == 503
        assert result.error == "expected HTTP 200, got 503"

    @pytest.mark.asyncio
    async def test_custom_expected_status(self):
        async with prober_for(lambda request: httpx.Response(204)) as prober:
            result = await prober.probe("http://api.internal/healthz", expected_status=204)
        assert result.ok

    @pytest.mark.asyncio
    async def test_transport_errors_retried_then_reported(self):
        calls = []

        def handler(request):
            calls.append(request.url)
            raise httpx.ConnectError("connection refused", request=request)

        async with prober_for(handler, retries=2) as prober:
            result = await prober.probe("http://api.internal/healthz")

        assert len(calls) == 3
        assert not result.ok
        assert result.status_code is None
        assert "ConnectError" in result.error

    @pytest.mark.asyncio
    async def test_recovers_after_transient_error(self):
        calls = []

        def handler(request):
            calls.append(request.url)
            if len(calls) == 1:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(200)

        async with prober_for(handler, retries=2) as prober:
            result = await prober.probe("http://api.internal/healthz")

        assert result.ok
        assert len(calls) == 2


class TestHealthSweeper:
    """Tests for HealthSweeper.sweep."""

    @pytest.mark.asyncio
    async def test_sweep_replica_only_workloads(self, session, seeded):
        sweeper = HealthSweeper(session, prober=prober_for(lambda r: httpx.Response(200)), max_concurrency=2,
                                degraded_latency_ms=1000)
        result = await sweeper.sweep("staging", triggered_by="test")
        session.commit()

        assert result.checked == 3
        assert result.probed == 0
        assert result.by_status == {"healthy": 1, "degraded": 1, "unhealthy": 1}

        statuses = {w.name: w.last_status for w in session.query(Workload).all()}
        assert statuses == {
            "api": HealthStatusEnum.HEALTHY,
            "worker": HealthStatusEnum.DEGRADED,
            "postgres": HealthStatusEnum.UNHEALTHY,
        }
        assert session.query(HealthCheck).count() == 3

    @pytest.mark.asyncio
    async def test_sweep_probes_endpoints(self, session, seeded):
        env = seeded["environment"]
        session.add_all([
            Workload(environment_id=env.id, name="web", endpoint_url="http://web.internal/healthz"),
            Workload(environment_id=env.id, name="broken", endpoint_url="http://broken.internal/healthz"),
        ])
        session.commit()

        def handler(request):
            if request.url.host == "broken.internal":
                return httpx.Response(500)
            return httpx.Response(200)

        sweeper = HealthSweeper(session, prober=prober_for(handler), max_concurrency=1, degraded_latency_ms=1000)
        result = await sweeper.sweep(env.id)
        session.commit()

        assert result.probed == 2
        web = session.query(Workload).filter_by(name="web").one()
        broken = session.query(Workload).filter_by(name="broken").one()
        assert web.last_status == HealthStatusEnum.HEALTHY
        assert broken.last_status == HealthStatusEnum.UNHEALTHY

        check = list_checks(session, broken.id)[0]
        assert check.http_status == 500
        assert "got 500" in check.message

    @pytest.mark.asyncio
    async def test_sweep_records_job(self, session, seeded):
        sweeper = HealthSweeper(session, prober=prober_for(lambda r: httpx.Response(200)), max_concurrency=2,
                                degraded_latency_ms=1000)
        result = await sweeper.sweep("staging")

        job = session.get(JobRun, result.job_id)
        assert job.job_type == JobTypeEnum.HEALTH_SWEEP
        assert job.status == JobStatusEnum.SUCCESS
        assert job.outputs["checked"] == 3

    @pytest.mark.asyncio
    async def test_inactive_workloads_skipped(self, session, seeded):
        seeded["workloads"][0].is_active = False
        session.commit()

        sweeper = HealthSweeper(session, prober=prober_for(lambda r: httpx.Response(200)), max_concurrency=2,
                                degraded_latency_ms=1000)
        result = await sweeper.sweep("staging")
        assert result.checked == 2

    @pytest.mark.asyncio
    async def test_concurrency_limit(self, session, seeded):
        """No more than max_concurrency endpoints are in flight at once."""
        env = seeded["environment"]
        session.add_all([
            Workload(environment_id=env.id, name=f"svc-{i}", endpoint_url=f"http://svc-{i}.internal/healthz")
            for i in range(6)
        ])
        session.commit()

        in_flight = 0
        peak = 0

        async def handler(request):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return httpx.Response(200)

        sweeper = HealthSweeper(session, prober=prober_for(handler), max_concurrency=2, degraded_latency_ms=1000)
        result = await sweeper.sweep(env.id)

        assert result.probed == 6
        assert peak == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_job(self, session, seeded):
        env = seeded["environment"]
        session.add(Workload(environment_id=env.id, name="web", endpoint_url="http://web.internal/healthz"))
        session.commit()

        def handler(request):
            raise RuntimeError("connection pool exhausted")

        sweeper = HealthSweeper(session, prober=prober_for(handler), max_concurrency=2, degraded_latency_ms=1000)
        with pytest.raises(HealthCheckError, match="connection pool exhausted"):
            await sweeper.sweep(env.id)

        job = session.query(JobRun).filter_by(job_type=JobTypeEnum.HEALTH_SWEEP).one()
        assert job.status == JobStatusEnum.FAILED
        assert "connection pool exhausted" in job.error_message

    def test_run_sweep_blocking(self, session, seeded):
        result = run_sweep(session, "staging", triggered_by="cli", max_concurrency=2, degraded_latency_ms=1000)
        assert result.checked == 3

    def test_unknown_environment(self, session):
        with pytest.raises(NotFoundError):
            run_sweep(session, "nowhere", max_concurrency=2, degraded_latency_ms=1000)


class TestReadSide:
    """Tests for uptime, status counts and check history."""

    def _checks(self, session, workload, statuses, now):
        for hours_ago, status in statuses:
            session.add(
                HealthCheck(
                    environment_id=workload.environment_id,
                    workload_id=workload.id,
                    checked_at=now - timedelta(hours=hours_ago),
                    status=status,
                )
            )
        session.commit()

    def test_uptime_counts_healthy_and_degraded(self, session, seeded):
        api = seeded["workloads"][0]
        now = utcnow()
        self._checks(
            session,
            api,
            [
                (1, HealthStatusEnum.HEALTHY),
                (2, HealthStatusEnum.DEGRADED),
                (3, HealthStatusEnum.UNHEALTHY),
                (4, HealthStatusEnum.HEALTHY),
                (30, HealthStatusEnum.UNHEALTHY),  # outside the window
            ],
            now,
        )

        assert compute_uptime(session, api.id, window_hours=24, now=now) == 75.0
        assert compute_uptime(session, api.id, window_hours=48, now=now) == 60.0

    def test_uptime_without_checks(self, session, seeded):
        assert compute_uptime(session, seeded["workloads"][0].id) is None

    def test_environment_health_zero_fills(self, session, seeded):
        counts = environment_health(session, seeded["environment"].id)
        assert counts == {"healthy": 0, "degraded": 0, "unhealthy": 0, "unknown": 3}

    def test_list_checks_newest_first(self, session, seeded):
        api = seeded["workloads"][0]
        now = utcnow()
        self._checks(session, api, [(5, HealthStatusEnum.UNHEALTHY), (1, HealthStatusEnum.HEALTHY)], now)

        checks = list_checks(session, api.id)
        assert [c.status for c in checks] == [HealthStatusEnum.HEALTHY, HealthStatusEnum.UNHEALTHY]

    def test_list_checks_unknown_workload(self, session):
        with pytest.raises(NotFoundError):
            list_checks(session, "00000000-0000-0000-0000-000000000000")
