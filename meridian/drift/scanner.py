"""
Meridian - Drift Scanner
========================

Walks an environment's resources, diffs declared against actual state and
reconciles the result with the stored findings:

- a divergence seen again refreshes its finding (status is kept, so an
  acknowledged finding stays acknowledged)
- a new divergence opens a finding
- a finding whose divergence is gone is resolved

Usage:
    scanner = DriftScanner(session)
    result = scanner.scan_environment("staging", triggered_by="cli")
"""

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy import case
from sqlalchemy.orm import Session

from ..core.db import as_utc, resolve_environment, to_uuid, utcnow
from ..core.models import (
    SEVERITY_RANK,
    DriftFinding,
    DriftScan,
    FindingStatusEnum,
    Resource,
    ScanStatusEnum,
    SeverityEnum,
)
from ..observability import OperationLogger
from ..resilience.error_handler import DriftScanError, InvalidInputError, NotFoundError
from .differ import DriftPolicy, StateChange, diff_states, worst_severity

logger = logging.getLogger(__name__)

_LIVE_STATUSES = (FindingStatusEnum.OPEN, FindingStatusEnum.ACKNOWLEDGED)


@dataclass
class DriftScanResult:
    """Outcome of one scan."""

    scan_id: UUID
    environment_id: UUID
    status: ScanStatusEnum
    resources_scanned: int = 0
    drifted_resources: int = 0
    findings_opened: int = 0
    findings_refreshed: int = 0
    findings_resolved: int = 0
    duration_ms: int = 0
    worst_severity: SeverityEnum | None = None
    by_severity: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scan_id": str(self.scan_id),
            "environment_id": str(self.environment_id),
            "status": self.status.value,
            "resources_scanned": self.resources_scanned,
            "drifted_resources": self.drifted_resources,
            "findings_opened": self.findings_opened,
            "findings_refreshed": self.findings_refreshed,
            "findings_resolved": self.findings_resolved,
            "duration_ms": self.duration_ms,
            "worst_severity": self.worst_severity.value if self.worst_severity else None,
            "by_severity": self.by_severity,
        }


class DriftScanner:
    """Runs drift scans against the resources stored for an environment."""

    def __init__(self, session: Session, policy: DriftPolicy | None = None):
        self.session = session
        self.policy = policy or DriftPolicy.from_settings()

    def scan_environment(self, environment_ref: str | UUID, triggered_by: str = "manual") -> DriftScanResult:
        """
        Scan every active resource of an environment.

        The scan row is left in the session as FAILED when anything goes
        wrong; callers that want it persisted commit before re-raising.

        Raises:
            NotFoundError: unknown environment
            DriftScanError: the scan failed part way
        """
        env = resolve_environment(self.session, environment_ref)

        scan = DriftScan(
            environment_id=env.id,
            status=ScanStatusEnum.IN_PROGRESS,
            triggered_by=triggered_by,
            started_at=utcnow(),
        )
        self.session.add(scan)
        self.session.flush()

        with OperationLogger(logger, "drift_scan", environment_id=str(env.id), scan_id=str(scan.id)):
            try:
                result = self._run(env.id, scan)
            except Exception as e:
                scan.status = ScanStatusEnum.FAILED
                scan.error_message = str(e)
                self._finish(scan)
                self.session.flush()
                raise DriftScanError(f"Drift scan of '{env.name}' failed: {e}") from e

        logger.info(
            f"Drift scan of {env.name}: {result.resources_scanned} resources, "
            f"{result.drifted_resources} drifted, {result.findings_opened} opened, "
            f"{result.findings_resolved} resolved"
        )
        return result

    def _run(self, environment_id: UUID, scan: DriftScan) -> DriftScanResult:
        resources = (
            self.session.query(Resource)
            .filter(Resource.environment_id == environment_id, Resource.is_active.is_(True))
            .order_by(Resource.address)
            .all()
        )

        # Diff everything first so a bad resource leaves the findings untouched
        planned: dict[UUID, list[StateChange]] = {}
        for resource in resources:
            planned[resource.id] = diff_states(resource.declared_state, resource.actual_state, self.policy)

        live = (
            self.session.query(DriftFinding)
            .filter(DriftFinding.environment_id == environment_id, DriftFinding.status.in_(_LIVE_STATUSES))
            .all()
        )
        existing: dict[tuple[UUID, str], DriftFinding] = {(f.resource_id, f.path): f for f in live}

        now = utcnow()
        opened = refreshed = resolved = 0
        severities: list[SeverityEnum] = []
        seen: set[tuple[UUID, str]] = set()

        for resource_id, changes in planned.items():
            for change in changes:
                key = (resource_id, change.path)
                seen.add(key)
                severity = self.policy.classify(change.path, change.change_type)
                severities.append(severity)

                finding = existing.get(key)
                if finding is None:
                    finding = DriftFinding(
                        environment_id=environment_id,
                        resource_id=resource_id,
                        path=change.path,
                        status=FindingStatusEnum.OPEN,
                        first_detected_at=now,
                    )
                    self.session.add(finding)
                    existing[key] = finding
                    opened += 1
                else:
                    refreshed += 1

                finding.scan_id = scan.id
                finding.change_type = change.change_type
                finding.expected = change.expected
                finding.actual = change.actual
                finding.severity = severity
                finding.last_detected_at = now

        for key, finding in existing.items():
            if key in seen:
                continue
            finding.status = FindingStatusEnum.RESOLVED
            finding.resolved_at = now
            finding.scan_id = scan.id
            resolved += 1

        drifted = sum(1 for changes in planned.values() if changes)
        scan.resources_scanned = len(resources)
        scan.drifted_resources = drifted
        scan.findings_opened = opened
        scan.findings_resolved = resolved
        scan.status = ScanStatusEnum.SUCCESS
        self._finish(scan)
        self.session.flush()

        by_severity: dict[str, int] = {}
        for severity in severities:
            by_severity[severity.value] = by_severity.get(severity.value, 0) + 1

        return DriftScanResult(
            scan_id=scan.id,
            environment_id=environment_id,
            status=scan.status,
            resources_scanned=len(resources),
            drifted_resources=drifted,
            findings_opened=opened,
            findings_refreshed=refreshed,
            findings_resolved=resolved,
            duration_ms=scan.duration_ms or 0,
            worst_severity=worst_severity(severities),
            by_severity=by_severity,
        )

    @staticmethod
    def _finish(scan: DriftScan) -> None:
        scan.completed_at = utcnow()
        if scan.started_at:
            scan.duration_ms = int((scan.completed_at - as_utc(scan.started_at)).total_seconds() * 1000)


# =============================================================================
# TRIAGE
# =============================================================================


def _get_finding(session: Session, finding_id: str | UUID) -> DriftFinding:
    finding = session.get(DriftFinding, to_uuid(finding_id, "finding id"))
    if finding is None:
        raise NotFoundError(f"Drift finding '{finding_id}' not found")
    return finding


def acknowledge_finding(
    session: Session, finding_id: str | UUID, acknowledged_by: str | None = None, note: str | None = None
) -> DriftFinding:
    """
    Mark a finding as known. It stays acknowledged while the divergence persists.

    Raises:
        NotFoundError: unknown finding
        InvalidInputError: the finding is already resolved
    """
    finding = _get_finding(session, finding_id)
    if finding.status == FindingStatusEnum.RESOLVED:
        raise InvalidInputError("Cannot acknowledge a resolved finding")
    finding.status = FindingStatusEnum.ACKNOWLEDGED
    finding.acknowledged_by = acknowledged_by
    if note is not None:
        finding.note = note
    session.flush()
    logger.info(f"Finding {finding.id} acknowledged by {acknowledged_by or 'unknown'}")
    return finding


def resolve_finding(session: Session, finding_id: str | UUID, note: str | None = None) -> DriftFinding:
    """
    Close a finding by hand. If the divergence is still there the next scan
    opens a fresh finding for it.
    """
    finding = _get_finding(session, finding_id)
    if finding.status != FindingStatusEnum.RESOLVED:
        finding.status = FindingStatusEnum.RESOLVED
        finding.resolved_at = utcnow()
    if note is not None:
        finding.note = note
    session.flush()
    return finding


def list_findings(
    session: Session,
    environment_id: UUID,
    status: FindingStatusEnum | None = None,
    severity: SeverityEnum | None = None,
    limit: int = 500,
) -> list[DriftFinding]:
    """Findings of an environment, most severe first, then newest."""
    query = session.query(DriftFinding).filter(DriftFinding.environment_id == environment_id)
    if status is not None:
        query = query.filter(DriftFinding.status == status)
    if severity is not None:
        query = query.filter(DriftFinding.severity == severity)
    rank = case(*((DriftFinding.severity == sev, value) for sev, value in SEVERITY_RANK.items()), else_=0)
    return query.order_by(rank.desc(), DriftFinding.last_detected_at.desc()).limit(limit).all()


def list_scans(session: Session, environment_id: UUID, limit: int = 20) -> list[DriftScan]:
    """Most recent scans first."""
    return (
        session.query(DriftScan)
        .filter(DriftScan.environment_id == environment_id)
        .order_by(DriftScan.created_at.desc(), DriftScan.started_at.desc())
        .limit(limit)
        .all()
    )
