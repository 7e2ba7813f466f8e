"""initial_schema

Revision ID: 5c1f0e7a9b21
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

from meridian.core.models import (
    ChangeTypeEnum,
    FindingStatusEnum,
    HealthStatusEnum,
    JobStatusEnum,
    JobTypeEnum,
    ProviderEnum,
    ScanStatusEnum,
    SeverityEnum,
    WorkloadKindEnum,
)

# revision identifiers, used by Alembic.
revision: str = "5c1f0e7a9b21"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# Enum types are created once up front; tables reference them without re-creating.
ENUMS = {
    "providerenum": ProviderEnum,
    "scanstatusenum": ScanStatusEnum,
    "changetypeenum": ChangeTypeEnum,
    "severityenum": SeverityEnum,
    "findingstatusenum": FindingStatusEnum,
    "workloadkindenum": WorkloadKindEnum,
    "healthstatusenum": HealthStatusEnum,
    "jobtypeenum": JobTypeEnum,
    "jobstatusenum": JobStatusEnum,
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(ENUMS[name], name=name, create_type=False)


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def _env_fk(nullable: bool = False) -> sa.Column:
    return sa.Column(
        "environment_id", _uuid(), sa.ForeignKey("environments.id", ondelete="CASCADE"), nullable=nullable
    )


def upgrade() -> None:
    bind = op.get_bind()
    for name in ENUMS:
        _enum(name).create(bind, checkfirst=True)

    op.create_table(
        "environments",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("provider", _enum("providerenum"), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("settings", postgresql.JSONB(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "resources",
        sa.Column("id", _uuid(), primary_key=True),
        _env_fk(),
        sa.Column("address", sa.String(500), nullable=False, comment="IaC address, e.g. aws_instance.web[0]"),
        sa.Column("resource_type", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("provider", sa.String(50), nullable=True),
        sa.Column("region", sa.String(50), nullable=True),
        sa.Column("declared_state", postgresql.JSONB(), nullable=True),
        sa.Column("actual_state", postgresql.JSONB(), nullable=True),
        sa.Column("tags", postgresql.JSONB(), nullable=True),
        sa.Column("declared_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("observed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("environment_id", "address", name="uq_env_resource_address"),
    )
    op.create_index("idx_resource_env", "resources", ["environment_id"])
    op.create_index("idx_resource_type", "resources", ["resource_type"])

    op.create_table(
        "drift_scans",
        sa.Column("id", _uuid(), primary_key=True),
        _env_fk(),
        sa.Column("status", _enum("scanstatusenum"), nullable=False),
        sa.Column("triggered_by", sa.String(100), nullable=True, comment="manual, cli, api, schedule"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("resources_scanned", sa.Integer(), nullable=True),
        sa.Column("drifted_resources", sa.Integer(), nullable=True),
        sa.Column("findings_opened", sa.Integer(), nullable=True),
        sa.Column("findings_resolved", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(op.f("ix_drift_scans_environment_id"), "drift_scans", ["environment_id"])
    op.create_index("idx_scan_env_created", "drift_scans", ["environment_id", "created_at"])
    op.create_index("idx_scan_status", "drift_scans", ["status"])

    op.create_table(
        "drift_findings",
        sa.Column("id", _uuid(), primary_key=True),
        _env_fk(),
        sa.Column("resource_id", _uuid(), sa.ForeignKey("resources.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "scan_id", _uuid(), sa.ForeignKey("drift_scans.id", ondelete="SET NULL"), nullable=True,
            comment="Last scan that saw this finding",
        ),
        sa.Column("path", sa.String(500), nullable=False, comment="Attribute path, '' for the whole resource"),
        sa.Column("change_type", _enum("changetypeenum"), nullable=False),
        sa.Column("expected", postgresql.JSONB(), nullable=True),
        sa.Column("actual", postgresql.JSONB(), nullable=True),
        sa.Column("severity", _enum("severityenum"), nullable=False),
        sa.Column("status", _enum("findingstatusenum"), nullable=False),
        sa.Column("acknowledged_by", sa.String(100), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("first_detected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_detected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_drift_findings_environment_id"), "drift_findings", ["environment_id"])
    op.create_index(op.f("ix_drift_findings_resource_id"), "drift_findings", ["resource_id"])
    op.create_index("idx_finding_resource_path_status", "drift_findings", ["resource_id", "path", "status"])
    op.create_index("idx_finding_env_status", "drift_findings", ["environment_id", "status"])
    op.create_index("idx_finding_severity", "drift_findings", ["severity"])

    op.create_table(
        "cost_records",
        sa.Column("id", _uuid(), primary_key=True),
        _env_fk(),
        sa.Column("resource_id", _uuid(), sa.ForeignKey("resources.id", ondelete="SET NULL"), nullable=True),
        sa.Column("usage_date", sa.Date(), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("service", sa.String(255), nullable=False),
        sa.Column("usage_type", sa.String(255), nullable=True),
        sa.Column("resource_address", sa.String(500), nullable=True),
        sa.Column("amount", sa.Numeric(14, 4), nullable=False, comment="Negative for credits/refunds"),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("source", sa.String(255), nullable=True, comment="Import file name or feed"),
        sa.Column("record_hash", sa.String(64), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("environment_id", "record_hash", name="uq_env_cost_record_hash"),
    )
    op.create_index(op.f("ix_cost_records_environment_id"), "cost_records", ["environment_id"])
    op.create_index(op.f("ix_cost_records_resource_id"), "cost_records", ["resource_id"])
    op.create_index("idx_cost_env_date", "cost_records", ["environment_id", "usage_date"])
    op.create_index("idx_cost_service", "cost_records", ["service"])

    op.create_table(
        "budgets",
        sa.Column("id", _uuid(), primary_key=True),
        _env_fk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("service", sa.String(255), nullable=True, comment="NULL for the whole environment"),
        sa.Column("monthly_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("warning_threshold", sa.Float(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("environment_id", "name", name="uq_env_budget_name"),
    )
    op.create_index(op.f("ix_budgets_environment_id"), "budgets", ["environment_id"])

    op.create_table(
        "workloads",
        sa.Column("id", _uuid(), primary_key=True),
        _env_fk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("namespace", sa.String(255), nullable=False),
        sa.Column("kind", _enum("workloadkindenum"), nullable=False),
        sa.Column("endpoint_url", sa.String(1000), nullable=True, comment="HTTP health endpoint, if any"),
        sa.Column("expected_status", sa.Integer(), nullable=False),
        sa.Column("desired_replicas", sa.Integer(), nullable=True),
        sa.Column("ready_replicas", sa.Integer(), nullable=True),
        sa.Column("last_status", _enum("healthstatusenum"), nullable=False),
        sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("environment_id", "namespace", "name", name="uq_env_workload"),
    )
    op.create_index(op.f("ix_workloads_environment_id"), "workloads", ["environment_id"])
    op.create_index("idx_workload_status", "workloads", ["last_status"])

    op.create_table(
        "health_checks",
        sa.Column("id", _uuid(), primary_key=True),
        _env_fk(),
        sa.Column("workload_id", _uuid(), sa.ForeignKey("workloads.id", ondelete="CASCADE"), nullable=False),
        sa.Column("checked_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("status", _enum("healthstatusenum"), nullable=False),
        sa.Column("latency_ms", sa.Float(), nullable=True),
        sa.Column("http_status", sa.Integer(), nullable=True),
        sa.Column("ready_replicas", sa.Integer(), nullable=True),
        sa.Column("desired_replicas", sa.Integer(), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
    )
    op.create_index(op.f("ix_health_checks_environment_id"), "health_checks", ["environment_id"])
    op.create_index(op.f("ix_health_checks_workload_id"), "health_checks", ["workload_id"])
    op.create_index("idx_check_workload_time", "health_checks", ["workload_id", "checked_at"])

    op.create_table(
        "job_runs",
        sa.Column("id", _uuid(), primary_key=True),
        _env_fk(nullable=True),
        sa.Column("job_type", _enum("jobtypeenum"), nullable=False),
        sa.Column("input_hash", sa.String(64), nullable=False),
        sa.Column("inputs", postgresql.JSONB(), nullable=True),
        sa.Column("outputs", postgresql.JSONB(), nullable=True),
        sa.Column("status", _enum("jobstatusenum"), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=True),
        sa.Column("max_retries", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("job_type", "input_hash", name="uq_job_type_input_hash"),
    )
    op.create_index(op.f("ix_job_runs_environment_id"), "job_runs", ["environment_id"])
    op.create_index("idx_job_status", "job_runs", ["status"])
    op.create_index("idx_job_created", "job_runs", ["created_at"])


def downgrade() -> None:
    for table in (
        "job_runs",
        "health_checks",
        "workloads",
        "budgets",
        "cost_records",
        "drift_findings",
        "drift_scans",
        "resources",
        "environments",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        _enum(name).drop(bind, checkfirst=True)
