"""Tests for the REST API."""
import asyncio
import uuid

import pytest
from fastapi.testclient import TestClient

import server
from meridian.core.models import HealthCheck
from meridian.health import run_sweep

CSV = b"""date,provider,service,amount,currency
2026-03-10,aws,AmazonS3,12.00,USD
2026-03-11,aws,AmazonS3,oops,USD
"""


@pytest.fixture
def client(session_scope):
    def override_get_db():
        with session_scope() as db:
            yield db

    server.app.dependency_overrides[server.get_db] = override_get_db
    server.limiter.enabled = False
    yield TestClient(server.app)
    server.app.dependency_overrides.clear()


@pytest.fixture
def scanned(client, seeded):
    response = client.post("/api/environments/staging/drift/scans")
    assert response.status_code == 201
    return response.json()


class TestServiceHealth:
    """Tests for GET /api/health."""

    def test_health_ok(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["database"]["connected"] is True
        assert body["database"]["dialect"] == "sqlite"

    def test_request_id_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"

    def test_request_id_generated(self, client):
        response = client.get("/api/health")
        assert response.headers["X-Request-ID"].startswith("corr-")


class TestEnvironments:
    """Tests for the environment endpoints."""

    def test_create_and_list(self, client):
        response = client.post("/api/environments", json={"name": "prod", "currency": "eur", "provider": "gcp"})

        assert response.status_code == 201
        created = response.json()
        assert created["currency"] == "EUR"
        assert created["provider"] == "gcp"
        assert created["is_active"] is True

        names = [env["name"] for env in client.get("/api/environments").json()]
        assert names == ["prod"]

    def test_currency_defaults_from_settings(self, client):
        response = client.post("/api/environments", json={"name": "dev"})
        assert response.json()["currency"] == server.settings.DEFAULT_CURRENCY

    def test_duplicate_name_rejected(self, client):
        client.post("/api/environments", json={"name": "prod"})
        response = client.post("/api/environments", json={"name": "prod"})

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidInputError"

    def test_validation_error(self, client):
        response = client.post("/api/environments", json={"name": "prod", "currency": "dollars"})
        assert response.status_code == 422

    def test_unknown_environment(self, client):
        response = client.get("/api/environments/nowhere/overview")

        assert response.status_code == 404
        assert response.json() == {"detail": "Environment 'nowhere' not found", "error": "NotFoundError"}

    def test_overview(self, client, scanned, today):
        response = client.get("/api/environments/staging/overview", params={"as_of": today.isoformat()})

        assert response.status_code == 200
        body = response.json()
        assert body["environment"]["name"] == "staging"
        assert body["drift"]["open_total"] == 2
        assert body["spend"]["month_to_date"] == "311.25"
        assert body["spend"]["worst_budget_state"] == "at_risk"


class TestState:
    """Tests for resources and declared/actual state uploads."""

    def test_list_resources(self, client, seeded):
        response = client.get("/api/environments/staging/resources", params={"resource_type": "aws_instance"})

        assert response.status_code == 200
        assert [r["address"] for r in response.json()] == ["aws_instance.web[0]"]

    def test_put_declared_resources(self, client, environment):
        body = {"resources": [{"address": "aws_instance.a", "attributes": {"instance_type": "t3.micro"}}]}
        response = client.put(f"/api/environments/{environment.id}/resources/declared", json=body)

        assert response.status_code == 200
        assert response.json()["counts"] == {"created": 1, "updated": 0, "undeclared": 0}

        resources = client.get(f"/api/environments/{environment.id}/resources").json()
        assert resources[0]["resource_type"] == "aws_instance"
        assert resources[0]["declared_state"] == {"instance_type": "t3.micro"}

    def test_put_declared_terraform_state(self, client, environment):
        tfstate = {
            "version": 4,
            "resources": [
                {
                    "mode": "managed",
                    "type": "aws_s3_bucket",
                    "name": "logs",
                    "provider": 'provider["registry.terraform.io/hashicorp/aws"]',
                    "instances": [{"attributes": {"bucket": "logs", "region": "eu-west-1"}}],
                }
            ],
        }
        response = client.put(
            f"/api/environments/{environment.id}/resources/declared", json={"terraform_state": tfstate}
        )

        assert response.status_code == 200
        assert response.json()["counts"]["created"] == 1

    def test_put_declared_malformed_terraform_state(self, client, environment):
        tfstate = {"version": 4, "resources": [{"name": "web", "instances": [{"attributes": {}}]}]}
        response = client.put(
            f"/api/environments/{environment.id}/resources/declared", json={"terraform_state": tfstate}
        )
        assert response.status_code == 400
        assert "type" in response.json()["detail"]

    def test_put_actual_rejects_terraform_state(self, client, environment):
        response = client.put(
            f"/api/environments/{environment.id}/resources/actual", json={"terraform_state": {"resources": []}}
        )
        assert response.status_code == 400

    def test_put_actual_partial(self, client, seeded):
        body = {"resources": [{"address": "aws_s3_bucket.assets", "attributes": {"versioning": True}}],
                "complete": False}
        response = client.put("/api/environments/staging/resources/actual", json=body)

        assert response.json()["counts"] == {"created": 0, "updated": 1, "missing": 0}

    def test_exactly_one_source_required(self, client, environment):
        response = client.put(f"/api/environments/{environment.id}/resources/declared", json={})
        assert response.status_code == 422


class TestDrift:
    """Tests for scans and finding triage."""

    def test_scan_result(self, scanned):
        assert scanned["status"] == "success"
        assert scanned["resources_scanned"] == 3
        assert scanned["findings_opened"] == 2
        assert scanned["worst_severity"] == "critical"

    def test_list_scans(self, client, scanned):
        scans = client.get("/api/environments/staging/drift/scans").json()

        assert len(scans) == 1
        assert scans[0]["id"] == scanned["scan_id"]
        assert scans[0]["drifted_resources"] == 2

    def test_findings_filtered_by_severity(self, client, scanned):
        response = client.get("/api/environments/staging/drift/findings", params={"severity": "critical"})

        findings = response.json()
        assert len(findings) == 1
        assert findings[0]["change_type"] == "missing"

    def test_invalid_status_filter(self, client, scanned):
        response = client.get("/api/environments/staging/drift/findings", params={"status": "sleeping"})
        assert response.status_code == 422

    def test_acknowledge_then_resolve(self, client, scanned):
        finding = client.get("/api/environments/staging/drift/findings").json()[0]

        response = client.post(
            f"/api/drift/findings/{finding['id']}/acknowledge", json={"acknowledged_by": "alice", "note": "known"}
        )
        assert response.status_code == 200
        assert response.json()["status"] == "acknowledged"
        assert response.json()["acknowledged_by"] == "alice"

        response = client.post(f"/api/drift/findings/{finding['id']}/resolve")
        assert response.json()["status"] == "resolved"
        assert response.json()["resolved_at"] is not None

        response = client.post(f"/api/drift/findings/{finding['id']}/acknowledge")
        assert response.status_code == 400

    def test_unknown_finding(self, client):
        response = client.post(f"/api/drift/findings/{uuid.uuid4()}/resolve")
        assert response.status_code == 404

    def test_malformed_finding_id(self, client):
        response = client.post("/api/drift/findings/not-a-uuid/resolve")
        assert response.status_code == 400


class TestSpend:
    """Tests for cost import, summaries and budgets."""

    def test_import_costs(self, client, seeded):
        response = client.post(
            "/api/environments/staging/costs/import", files={"file": ("march.csv", CSV, "text/csv")}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["source"] == "march.csv"
        assert body["rows_created"] == 1
        assert body["rows_rejected"] == 1
        assert body["errors"][0]["line"] == 3

    def test_reimport_is_skipped(self, client, seeded):
        files = {"file": ("march.csv", CSV, "text/csv")}
        client.post("/api/environments/staging/costs/import", files=files)
        response = client.post("/api/environments/staging/costs/import", files=files)

        assert response.json()["skipped"] is True

    def test_empty_upload(self, client, seeded):
        response = client.post(
            "/api/environments/staging/costs/import", files={"file": ("empty.csv", b"", "text/csv")}
        )
        assert response.status_code == 400

    def test_bad_csv_header(self, client, seeded):
        response = client.post(
            "/api/environments/staging/costs/import", files={"file": ("bad.csv", b"foo,bar\n1,2\n", "text/csv")}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "SpendImportError"

    def test_spend_summary(self, client, seeded, today):
        response = client.get("/api/environments/staging/spend/summary", params={"as_of": today.isoformat()})

        body = response.json()
        assert body["month_to_date"] == "311.25"
        assert body["forecast"] == "643.25"
        assert body["top_services"][0] == {"service": "AmazonEC2", "amount": "187.50"}
        assert body["budgets"][0]["state"] == "at_risk"

    def test_create_budget(self, client, seeded):
        body = {"name": "ec2", "service": "AmazonEC2", "monthly_amount": "200.00", "warning_threshold": 0.9}
        response = client.post("/api/environments/staging/budgets", json=body)

        assert response.status_code == 201
        assert response.json()["currency"] == "USD"
        assert response.json()["warning_threshold"] == 0.9

        names = [b["name"] for b in client.get("/api/environments/staging/budgets").json()]
        assert names == ["ec2", "monthly"]

    def test_budget_threshold_default(self, client, seeded):
        response = client.post("/api/environments/staging/budgets", json={"name": "rds", "monthly_amount": "50"})
        assert response.json()["warning_threshold"] == server.settings.BUDGET_WARNING_THRESHOLD

    def test_duplicate_budget(self, client, seeded):
        response = client.post("/api/environments/staging/budgets", json={"name": "monthly", "monthly_amount": "1"})
        assert response.status_code == 400

    def test_budget_must_be_positive(self, client, seeded):
        response = client.post("/api/environments/staging/budgets", json={"name": "zero", "monthly_amount": "0"})
        assert response.status_code == 422


class TestWorkloads:
    """Tests for workloads, sweeps and uptime."""

    def test_create_and_list(self, client, environment):
        body = {"name": "web", "namespace": "frontend", "endpoint_url": "https://web.internal/healthz"}
        response = client.post(f"/api/environments/{environment.id}/workloads", json=body)

        assert response.status_code == 201
        assert response.json()["last_status"] == "unknown"
        assert response.json()["kind"] == "deployment"

        workloads = client.get(f"/api/environments/{environment.id}/workloads").json()
        assert [w["name"] for w in workloads] == ["web"]

    def test_duplicate_workload(self, client, environment):
        client.post(f"/api/environments/{environment.id}/workloads", json={"name": "web"})
        response = client.post(f"/api/environments/{environment.id}/workloads", json={"name": "web"})
        assert response.status_code == 400

    def test_endpoint_must_be_http(self, client, environment):
        body = {"name": "web", "endpoint_url": "ftp://web.internal"}
        response = client.post(f"/api/environments/{environment.id}/workloads", json=body)
        assert response.status_code == 422

    def test_sweep(self, client, seeded):
        response = client.post("/api/environments/staging/health/sweeps")

        assert response.status_code == 200
        body = response.json()
        assert body["checked"] == 3
        assert body["probed"] == 0
        assert body["by_status"] == {"healthy": 1, "degraded": 1, "unhealthy": 1}

    def test_sweep_runs_outside_the_server_loop(self, client, seeded, monkeypatch):
        """Sweeps run on a worker thread, leaving the server's event loop free."""
        calls = []

        def recording_sweep(*args, **kwargs):
            try:
                asyncio.get_running_loop()
                calls.append("on loop")
            except RuntimeError:
                calls.append("off loop")
            return run_sweep(*args, **kwargs)

        monkeypatch.setattr(server, "run_sweep", recording_sweep)
        response = client.post("/api/environments/staging/health/sweeps")

        assert response.status_code == 200
        assert calls == ["off loop"]

    def test_checks_and_uptime(self, client, seeded):
        client.post("/api/environments/staging/health/sweeps")
        api = seeded["workloads"][0]

        checks = client.get(f"/api/workloads/{api.id}/checks").json()
        assert len(checks) == 1
        assert checks[0]["status"] == "healthy"

        uptime = client.get(f"/api/workloads/{api.id}/uptime", params={"window_hours": 24}).json()
        assert uptime["uptime_percent"] == 100.0

    def test_uptime_without_checks(self, client, seeded, session):
        postgres = seeded["workloads"][2]
        response = client.get(f"/api/workloads/{postgres.id}/uptime")

        assert response.status_code == 200
        assert response.json()["uptime_percent"] is None
        assert session.query(HealthCheck).count() == 0

    def test_uptime_window_must_be_positive(self, client, seeded):
        response = client.get(f"/api/workloads/{seeded['workloads'][0].id}/uptime", params={"window_hours": 0})
        assert response.status_code == 400

    def test_uptime_unknown_workload(self, client):
        response = client.get(f"/api/workloads/{uuid.uuid4()}/uptime")
        assert response.status_code == 404


class TestUnexpectedErrors:
    """Unhandled exceptions become an opaque 500 with an error id."""

    def test_error_id(self, client, seeded, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("secret internals")

        monkeypatch.setattr(server, "build_spend_summary", explode)
        response = TestClient(server.app, raise_server_exceptions=False).get(
            "/api/environments/staging/spend/summary"
        )

        assert response.status_code == 500
        body = response.json()
        assert "secret internals" not in body["detail"]
        assert body["detail"].endswith(body["error_id"])
