"""
Meridian Infrastructure Console
===============================

Drift monitoring, spend tracking and workload health for the environments
a platform team runs.

Modules:
    - core: Database models, schemas, and utilities
    - drift: Declared vs actual state comparison and scanning
    - spend: Cost import, aggregation and budgets
    - health: Workload probes, sweeps and uptime
    - ui: Server-rendered card components for the console
    - observability: Logging and request context
    - resilience: Error taxonomy and retries
    - interface: CLI
"""

__version__ = "0.1.0"
__author__ = "Meridian Team"

from .core.db import get_engine, get_session, init_db
from .core.models import (
    Base,
    Budget,
    CostRecord,
    DriftFinding,
    DriftScan,
    Environment,
    HealthCheck,
    JobRun,
    Resource,
    Workload,
)

__all__ = [
    # Core models
    "Base",
    "Environment",
    "Resource",
    "DriftScan",
    "DriftFinding",
    "CostRecord",
    "Budget",
    "Workload",
    "HealthCheck",
    "JobRun",
    # Database utilities
    "get_session",
    "get_engine",
    "init_db",
]
