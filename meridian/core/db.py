"""
Meridian - Database Utilities
=============================

Database connection management, session handling, and utility functions
for working with the console's PostgreSQL database.

Usage:
    from meridian.core.db import get_engine, get_session, init_db

    # Initialize database
    engine = get_engine()
    init_db(engine)

    # Use session
    with get_session() as session:
        env = Environment(name="staging")
        session.add(env)
"""

import hashlib
from collections.abc import Generator
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from ..config import get_settings
from ..resilience.error_handler import DatabaseError, InvalidInputError, NotFoundError, handle_errors
from ..resilience.retry_manager import RetryConfig, retry_with_backoff
from .models import (
    Base,
    Budget,
    CostRecord,
    Environment,
    JobRun,
    JobStatusEnum,
    JobTypeEnum,
    ProviderEnum,
    Resource,
    Workload,
    WorkloadKindEnum,
    compute_cost_record_hash,
    compute_input_hash,
)

# =============================================================================
# CONFIGURATION
# =============================================================================


def get_database_url() -> str:
    """
    Get database URL from settings.

    Environment variables (in order of precedence):
    - DATABASE_URL: Full connection string
    - POSTGRES_* variables: Individual connection parameters
    """
    return get_settings().database_url


# =============================================================================
# TIME HELPERS
# =============================================================================


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    """Treat naive datetimes (as SQLite returns them) as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# =============================================================================
# ENGINE AND SESSION MANAGEMENT
# =============================================================================

_engine: Engine | None = None
_SessionFactory: sessionmaker | None = None


def get_engine(
    url: str | None = None,
    pool_size: int = 5,
    max_overflow: int = 10,
    echo: bool = False,
) -> Engine:
    """
    Get or create the SQLAlchemy engine.

    Args:
        url: Database URL (uses get_database_url() if not provided)
        pool_size: Number of connections in the pool
        max_overflow: Max connections above pool_size
        echo: Enable SQL logging

    Returns:
        SQLAlchemy Engine instance
    """
    global _engine

    if _engine is None:
        db_url = url or get_database_url()
        is_sqlite = db_url.startswith("sqlite")

        engine_kwargs: dict[str, Any] = {"echo": echo}

        if is_sqlite:
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in db_url or db_url == "sqlite://":
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["poolclass"] = QueuePool
            engine_kwargs["pool_size"] = pool_size
            engine_kwargs["max_overflow"] = max_overflow
            engine_kwargs["pool_pre_ping"] = True
            if "+psycopg" in db_url:
                engine_kwargs["connect_args"] = {"prepare_threshold": None}

        _engine = create_engine(db_url, **engine_kwargs)

    return _engine


def get_session_factory(engine: Engine | None = None) -> sessionmaker:
    """Get or create session factory."""
    global _SessionFactory

    if _SessionFactory is None:
        _SessionFactory = sessionmaker(
            bind=engine or get_engine(),
            autocommit=False,
            autoflush=False,
        )

    return _SessionFactory


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Usage:
        with get_session() as session:
            envs = session.query(Environment).all()
    """
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# =============================================================================
# DATABASE INITIALIZATION
# =============================================================================


@handle_errors(DatabaseError)
def init_db(engine: Engine | None = None) -> None:
    """
    Initialize the database schema.

    Creates all tables. For production, use Alembic migrations instead.
    """
    engine = engine or get_engine()
    Base.metadata.create_all(engine)


def drop_all_tables(engine: Engine | None = None) -> None:
    """
    Drop all tables. USE WITH CAUTION!

    Only for development/testing.
    """
    engine = engine or get_engine()
    Base.metadata.drop_all(engine)


@retry_with_backoff(RetryConfig(max_retries=2, initial_delay=0.5), exceptions=(Exception,))
def _ping(bind: Engine | Connection) -> None:
    if isinstance(bind, Connection):
        bind.execute(text("SELECT 1"))
        return
    with bind.connect() as conn:
        conn.execute(text("SELECT 1"))


def check_database(engine: Engine | Connection | None = None) -> dict[str, Any]:
    """
    Smoke-test the database connection.

    Returns a dict with connectivity and latency; raises DatabaseError
    when the database stays unreachable after retries.
    """
    if engine is None:
        engine = get_engine()
    started = utcnow()
    try:
        _ping(engine)
    except Exception as e:
        raise DatabaseError(f"Database unreachable: {e}") from e
    latency_ms = (utcnow() - started).total_seconds() * 1000
    return {
        "connected": True,
        "dialect": engine.dialect.name,
        "latency_ms": round(latency_ms, 2),
    }


# =============================================================================
# IDEMPOTENCY HELPERS
# =============================================================================


def get_or_create_job(
    session: Session,
    job_type: JobTypeEnum,
    inputs: dict[str, Any],
    environment_id: UUID | None = None,
    **kwargs,
) -> tuple[JobRun, bool]:
    """
    Get existing job run or create a new one (idempotency pattern).

    Args:
        session: Database session
        job_type: Job type enum
        inputs: Job input parameters
        environment_id: Owning environment, if any
        **kwargs: Additional JobRun fields

    Returns:
        Tuple of (JobRun, created) where created is True if new
    """
    input_hash = compute_input_hash(job_type.value, inputs)

    existing = (
        session.query(JobRun)
        .filter(
            JobRun.job_type == job_type,
            JobRun.input_hash == input_hash,
        )
        .first()
    )

    if existing:
        return existing, False

    job = JobRun(
        environment_id=environment_id,
        job_type=job_type,
        input_hash=input_hash,
        inputs=inputs,
        status=JobStatusEnum.PENDING,
        **kwargs,
    )
    session.add(job)
    session.flush()

    return job, True


def mark_job_started(job: JobRun) -> None:
    """Mark a job as in progress."""
    job.status = JobStatusEnum.IN_PROGRESS
    job.started_at = utcnow()


def mark_job_success(job: JobRun, outputs: dict | None = None) -> None:
    """Mark a job as successful."""
    now = utcnow()
    job.status = JobStatusEnum.SUCCESS
    job.completed_at = now
    job.outputs = outputs
    job.error_message = None
    if job.started_at:
        job.duration_ms = int((now - as_utc(job.started_at)).total_seconds() * 1000)


def mark_job_failed(job: JobRun, error_message: str) -> None:
    """Mark a job as failed."""
    now = utcnow()
    job.status = JobStatusEnum.FAILED
    job.completed_at = now
    job.error_message = error_message
    job.retry_count = (job.retry_count or 0) + 1
    if job.started_at:
        job.duration_ms = int((now - as_utc(job.started_at)).total_seconds() * 1000)


# =============================================================================
# ENVIRONMENT HELPERS
# =============================================================================


def to_uuid(value: str | UUID, label: str = "id") -> UUID:
    """Parse a UUID, raising InvalidInputError on garbage."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as e:
        raise InvalidInputError(f"Invalid {label}: '{value}'") from e


def resolve_environment(session: Session, ref: str | UUID) -> Environment:
    """
    Look up an environment by id or name.

    Raises:
        NotFoundError: if nothing matches
    """
    env = None
    if isinstance(ref, UUID):
        env = session.get(Environment, ref)
    else:
        try:
            env = session.get(Environment, UUID(str(ref)))
        except ValueError:
            env = None
        if env is None:
            env = session.query(Environment).filter(Environment.name == str(ref)).first()

    if env is None:
        raise NotFoundError(f"Environment '{ref}' not found")
    return env


def list_environments(session: Session, include_inactive: bool = False) -> list[Environment]:
    """List environments ordered by name."""
    query = session.query(Environment)
    if not include_inactive:
        query = query.filter(Environment.is_active.is_(True))
    return query.order_by(Environment.name).all()


# =============================================================================
# CONTENT HASH HELPERS
# =============================================================================


def compute_content_hash(content: bytes | str) -> str:
    """Compute SHA-256 hash of content for deduplication."""
    if isinstance(content, str):
        content = content.encode()
    return hashlib.sha256(content).hexdigest()


# =============================================================================
# DEMO DATA
# =============================================================================


def seed_demo_data(session: Session, name: str = "staging", today: date | None = None) -> dict:
    """
    Seed an environment with a little of everything. Returns dict of created objects.

    The data contains one drifted instance, one missing bucket, a month of
    spend, a budget and three workloads.
    """
    today = today or utcnow().date()

    env = Environment(name=name, description="Demo environment", provider=ProviderEnum.AWS, currency="USD")
    session.add(env)
    session.flush()

    now = utcnow()
    web = Resource(
        environment_id=env.id,
        address="aws_instance.web[0]",
        resource_type="aws_instance",
        name="web-0",
        provider="aws",
        region="us-east-1",
        declared_state={"instance_type": "t3.micro", "tags": {"Name": "web-0", "Team": "platform"}},
        actual_state={"instance_type": "t3.large", "tags": {"Name": "web-0", "Team": "platform"}},
        declared_at=now,
        observed_at=now,
    )
    bucket = Resource(
        environment_id=env.id,
        address="aws_s3_bucket.assets",
        resource_type="aws_s3_bucket",
        name="assets",
        provider="aws",
        region="us-east-1",
        declared_state={"versioning": True, "acl": "private"},
        actual_state=None,
        declared_at=now,
    )
    db_res = Resource(
        environment_id=env.id,
        address="aws_db_instance.main",
        resource_type="aws_db_instance",
        name="main",
        provider="aws",
        region="us-east-1",
        declared_state={"engine": "postgres", "engine_version": "16.2", "storage_encrypted": True},
        actual_state={"engine": "postgres", "engine_version": "16.2", "storage_encrypted": True},
        declared_at=now,
        observed_at=now,
    )
    session.add_all([web, bucket, db_res])
    session.flush()

    records = []
    first = today.replace(day=1)
    day = first
    while day <= today:
        for service, amount in (("AmazonEC2", Decimal("12.50")), ("AmazonRDS", Decimal("8.25"))):
            records.append(
                CostRecord(
                    environment_id=env.id,
                    usage_date=day,
                    provider="aws",
                    service=service,
                    amount=amount,
                    currency="USD",
                    source="seed",
                    record_hash=compute_cost_record_hash("aws", service, day, currency="USD"),
                )
            )
        day += timedelta(days=1)
    session.add_all(records)

    budget = Budget(environment_id=env.id, name="monthly", monthly_amount=Decimal("600.00"), currency="USD")
    session.add(budget)

    workloads = [
        Workload(environment_id=env.id, name="api", namespace="default", kind=WorkloadKindEnum.DEPLOYMENT,
                 desired_replicas=3, ready_replicas=3),
        Workload(environment_id=env.id, name="worker", namespace="default", kind=WorkloadKindEnum.DEPLOYMENT,
                 desired_replicas=2, ready_replicas=1),
        Workload(environment_id=env.id, name="postgres", namespace="data", kind=WorkloadKindEnum.STATEFULSET,
                 desired_replicas=1, ready_replicas=0),
    ]
    session.add_all(workloads)
    session.flush()

    return {
        "environment": env,
        "resources": [web, bucket, db_res],
        "cost_records": records,
        "budget": budget,
        "workloads": workloads,
    }
