"""
Meridian Health Module
======================

HTTP probes, workload evaluation, sweeps and uptime.
"""

from .evaluator import Evaluation, evaluate_workload
from .probes import HttpProber, ProbeResult
from .sweeper import (
    HealthSweeper,
    SweepResult,
    compute_uptime,
    environment_health,
    list_checks,
    run_sweep,
)

__all__ = [
    "HttpProber",
    "ProbeResult",
    "Evaluation",
    "evaluate_workload",
    "HealthSweeper",
    "SweepResult",
    "run_sweep",
    "compute_uptime",
    "environment_health",
    "list_checks",
]
