"""
Meridian - Pydantic Validation Schemas
======================================

Request and response models for the REST API. Response models read
straight from ORM rows (from_attributes).
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .models import (
    ChangeTypeEnum,
    FindingStatusEnum,
    HealthStatusEnum,
    ProviderEnum,
    ScanStatusEnum,
    SeverityEnum,
    WorkloadKindEnum,
)


# Base Schemas
class BaseSchema(BaseModel):
    model_config = ConfigDict(
        from_attributes=True, populate_by_name=True, str_strip_whitespace=True
    )


class TimestampMixin(BaseModel):
    created_at: datetime | None = None
    updated_at: datetime | None = None


def _currency(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.upper()
    if len(value) != 3 or not value.isalpha():
        raise ValueError("currency must be a 3-letter ISO code")
    return value


# Environment Schemas
class EnvironmentCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    provider: ProviderEnum = ProviderEnum.AWS
    currency: str | None = None
    settings: dict[str, Any] = Field(default_factory=dict)

    @field_validator("currency")
    @classmethod
    def check_currency(cls, v: str | None) -> str | None:
        return _currency(v)


class EnvironmentResponse(EnvironmentCreate, TimestampMixin):
    id: UUID
    currency: str
    is_active: bool = True


# Resource Schemas
class ResourceResponse(BaseSchema, TimestampMixin):
    id: UUID
    environment_id: UUID
    address: str
    resource_type: str
    name: str | None = None
    provider: str | None = None
    region: str | None = None
    declared_state: dict[str, Any] | None = None
    actual_state: dict[str, Any] | None = None
    tags: dict[str, Any] | None = None
    declared_at: datetime | None = None
    observed_at: datetime | None = None
    is_active: bool = True


class StateEntryIn(BaseSchema):
    address: str = Field(..., min_length=1, max_length=500)
    type: str | None = Field(default=None, max_length=100)
    name: str | None = None
    provider: str | None = None
    region: str | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)


class StateImportRequest(BaseSchema):
    """Either explicit resources or a raw Terraform state document."""

    resources: list[StateEntryIn] | None = None
    terraform_state: dict[str, Any] | None = None
    complete: bool = True

    @model_validator(mode="after")
    def check_one_source(self):
        if (self.resources is None) == (self.terraform_state is None):
            raise ValueError("provide exactly one of 'resources' or 'terraform_state'")
        return self


class StateImportResponse(BaseModel):
    environment_id: UUID
    counts: dict[str, int]


# Drift Schemas
class DriftScanRequest(BaseSchema):
    triggered_by: str = Field(default="api", max_length=100)


class DriftScanResponse(BaseSchema):
    id: UUID
    environment_id: UUID
    status: ScanStatusEnum
    triggered_by: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None
    resources_scanned: int = 0
    drifted_resources: int = 0
    findings_opened: int = 0
    findings_resolved: int = 0
    error_message: str | None = None


class DriftFindingResponse(BaseSchema, TimestampMixin):
    id: UUID
    environment_id: UUID
    resource_id: UUID
    scan_id: UUID | None = None
    path: str
    change_type: ChangeTypeEnum
    expected: Any = None
    actual: Any = None
    severity: SeverityEnum
    status: FindingStatusEnum
    acknowledged_by: str | None = None
    note: str | None = None
    first_detected_at: datetime | None = None
    last_detected_at: datetime | None = None
    resolved_at: datetime | None = None


class AcknowledgeRequest(BaseSchema):
    acknowledged_by: str | None = Field(default=None, max_length=100)
    note: str | None = None


class ResolveRequest(BaseSchema):
    note: str | None = None


# Budget Schemas
class BudgetCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    service: str | None = Field(default=None, max_length=255)
    monthly_amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    currency: str | None = None
    warning_threshold: float | None = Field(default=None, gt=0, le=1)

    @field_validator("currency")
    @classmethod
    def check_currency(cls, v: str | None) -> str | None:
        return _currency(v)


class BudgetResponse(BudgetCreate, TimestampMixin):
    id: UUID
    environment_id: UUID
    currency: str
    warning_threshold: float
    is_active: bool = True


# Workload Schemas
class WorkloadCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    namespace: str = Field(default="default", min_length=1, max_length=255)
    kind: WorkloadKindEnum = WorkloadKindEnum.DEPLOYMENT
    endpoint_url: str | None = Field(default=None, max_length=1000)
    expected_status: int = Field(default=200, ge=100, le=599)
    desired_replicas: int | None = Field(default=None, ge=0)
    ready_replicas: int | None = Field(default=None, ge=0)

    @field_validator("endpoint_url")
    @classmethod
    def check_endpoint_url(cls, v: str | None) -> str | None:
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("endpoint_url must be an http(s) URL")
        return v or None


class WorkloadResponse(WorkloadCreate, TimestampMixin):
    id: UUID
    environment_id: UUID
    last_status: HealthStatusEnum = HealthStatusEnum.UNKNOWN
    last_checked_at: datetime | None = None
    is_active: bool = True


class HealthCheckResponse(BaseSchema):
    id: UUID
    workload_id: UUID
    checked_at: datetime
    status: HealthStatusEnum
    latency_ms: float | None = None
    http_status: int | None = None
    ready_replicas: int | None = None
    desired_replicas: int | None = None
    message: str | None = None


# Service Health
class ServiceHealthResponse(BaseModel):
    status: str
    version: str
    database: dict[str, Any]
