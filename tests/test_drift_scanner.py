"""Tests for drift scans, finding reconciliation and triage."""
from datetime import timedelta

import pytest

from meridian.core.db import utcnow
from meridian.core.models import (
    ChangeTypeEnum,
    DriftFinding,
    DriftScan,
    FindingStatusEnum,
    Resource,
    ScanStatusEnum,
    SeverityEnum,
)
from meridian.drift import (
    DriftPolicy,
    DriftScanner,
    acknowledge_finding,
    list_findings,
    list_scans,
    resolve_finding,
)
from meridian.resilience import DriftScanError, InvalidInputError, NotFoundError


def scan(session, env_ref, policy=None):
    result = DriftScanner(session, policy=policy or DriftPolicy()).scan_environment(env_ref, triggered_by="test")
    session.commit()
    return result


def live_findings(session, env_id):
    return (
        session.query(DriftFinding)
        .filter(
            DriftFinding.environment_id == env_id,
            DriftFinding.status.in_([FindingStatusEnum.OPEN, FindingStatusEnum.ACKNOWLEDGED]),
        )
        .all()
    )


class TestScanEnvironment:
    """Tests for DriftScanner.scan_environment."""

    def test_first_scan_opens_findings(self, session, seeded):
        env = seeded["environment"]
        result = scan(session, env.id)

        assert result.status == ScanStatusEnum.SUCCESS
        assert result.resources_scanned == 3
        assert result.drifted_resources == 2
        assert result.findings_opened == 2
        assert result.findings_resolved == 0
        assert result.worst_severity == SeverityEnum.CRITICAL
        assert result.by_severity == {"medium": 1, "critical": 1}

        findings = {f.path: f for f in live_findings(session, env.id)}
        assert findings["instance_type"].change_type == ChangeTypeEnum.CHANGED
        assert findings["instance_type"].expected == "t3.micro"
        assert findings["instance_type"].actual == "t3.large"
        assert findings[""].change_type == ChangeTypeEnum.MISSING

    def test_scan_by_name(self, session, seeded):
        assert scan(session, "staging").resources_scanned == 3

    def test_scan_row_recorded(self, session, seeded):
        result = scan(session, seeded["environment"].id)

        row = session.get(DriftScan, result.scan_id)
        assert row.status == ScanStatusEnum.SUCCESS
        assert row.triggered_by == "test"
        assert row.completed_at is not None
        assert row.duration_ms is not None and row.duration_ms >= 0
        assert row.findings_opened == 2

    def test_rescan_is_idempotent(self, session, seeded):
        env = seeded["environment"]
        scan(session, env.id)
        second = scan(session, env.id)

        assert second.findings_opened == 0
        assert second.findings_refreshed == 2
        assert second.findings_resolved == 0
        assert len(live_findings(session, env.id)) == 2

    def test_fixed_drift_resolves_finding(self, session, seeded):
        env = seeded["environment"]
        scan(session, env.id)

        web = session.query(Resource).filter_by(address="aws_instance.web[0]").one()
        web.actual_state = dict(web.declared_state)
        session.commit()

        result = scan(session, env.id)
        assert result.findings_resolved == 1
        resolved = session.query(DriftFinding).filter_by(path="instance_type").one()
        assert resolved.status == FindingStatusEnum.RESOLVED
        assert resolved.resolved_at is not None

    def test_acknowledged_finding_stays_acknowledged(self, session, seeded):
        env = seeded["environment"]
        scan(session, env.id)
        finding = session.query(DriftFinding).filter_by(path="instance_type").one()
        acknowledge_finding(session, finding.id, acknowledged_by="ops", note="resize pending")
        session.commit()

        result = scan(session, env.id)

        assert result.findings_opened == 0
        session.refresh(finding)
        assert finding.status == FindingStatusEnum.ACKNOWLEDGED
        assert finding.acknowledged_by == "ops"

    def test_manually_resolved_finding_reopens_as_new(self, session, seeded):
        env = seeded["environment"]
        scan(session, env.id)
        finding = session.query(DriftFinding).filter_by(path="instance_type").one()
        resolve_finding(session, finding.id, note="fixed, honest")
        session.commit()

        result = scan(session, env.id)

        assert result.findings_opened == 1
        rows = session.query(DriftFinding).filter_by(path="instance_type").all()
        assert sorted(r.status.value for r in rows) == ["open", "resolved"]

    def test_inactive_resources_skipped(self, session, seeded):
        env = seeded["environment"]
        bucket = session.query(Resource).filter_by(address="aws_s3_bucket.assets").one()
        bucket.is_active = False
        session.commit()

        result = scan(session, env.id)
        assert result.resources_scanned == 2
        assert result.worst_severity == SeverityEnum.MEDIUM

    def test_empty_environment(self, session, environment):
        result = scan(session, environment.id)
        assert result.resources_scanned == 0
        assert result.worst_severity is None

    def test_unknown_environment(self, session):
        with pytest.raises(NotFoundError):
            DriftScanner(session, policy=DriftPolicy()).scan_environment("nope")

    def test_failure_marks_scan_failed_and_keeps_findings(self, session, seeded):
        env = seeded["environment"]
        scan(session, env.id)

        class BrokenPolicy(DriftPolicy):
            def classify(self, path, change_type):
                raise RuntimeError("classifier exploded")

        with pytest.raises(DriftScanError, match="classifier exploded"):
            DriftScanner(session, policy=BrokenPolicy()).scan_environment(env.id)
        session.commit()

        failed = [s for s in list_scans(session, env.id) if s.status == ScanStatusEnum.FAILED]
        assert len(failed) == 1
        assert "classifier exploded" in failed[0].error_message
        assert len(live_findings(session, env.id)) == 2


class TestTriage:
    """Tests for acknowledge / resolve / list."""

    def test_acknowledge_resolved_finding_rejected(self, session, seeded):
        scan(session, seeded["environment"].id)
        finding = session.query(DriftFinding).filter_by(path="instance_type").one()
        resolve_finding(session, finding.id)

        with pytest.raises(InvalidInputError):
            acknowledge_finding(session, finding.id, acknowledged_by="ops")

    def test_acknowledge_unknown_finding(self, session):
        with pytest.raises(NotFoundError):
            acknowledge_finding(session, "00000000-0000-0000-0000-000000000000")

    def test_acknowledge_bad_id(self, session):
        with pytest.raises(InvalidInputError):
            acknowledge_finding(session, "not-a-uuid")

    def test_resolve_is_idempotent(self, session, seeded):
        scan(session, seeded["environment"].id)
        finding = session.query(DriftFinding).filter_by(path="instance_type").one()
        first = resolve_finding(session, finding.id).resolved_at
        second = resolve_finding(session, finding.id, note="again").resolved_at

        assert first == second
        assert finding.note == "again"

    def test_list_findings_most_severe_first(self, session, seeded):
        env = seeded["environment"]
        scan(session, env.id)

        findings = list_findings(session, env.id)
        assert [f.severity for f in findings] == [SeverityEnum.CRITICAL, SeverityEnum.MEDIUM]

    def test_list_findings_limit_keeps_older_severe_finding(self, session, seeded):
        env = seeded["environment"]
        scan(session, env.id)
        critical = list_findings(session, env.id, severity=SeverityEnum.CRITICAL)[0]
        critical.last_detected_at = utcnow() - timedelta(days=3)
        session.commit()

        assert list_findings(session, env.id, limit=1) == [critical]

    def test_list_findings_filters(self, session, seeded):
        env = seeded["environment"]
        scan(session, env.id)

        critical = list_findings(session, env.id, severity=SeverityEnum.CRITICAL)
        assert len(critical) == 1
        assert list_findings(session, env.id, status=FindingStatusEnum.RESOLVED) == []
