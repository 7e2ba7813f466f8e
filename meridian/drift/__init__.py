"""
Meridian Drift Module
=====================

Declared-vs-actual state comparison, severity policy, scanning and triage.
"""

from .differ import (
    DEFAULT_SEVERITY_RULES,
    DriftPolicy,
    SeverityRule,
    StateChange,
    diff_states,
    worst_severity,
)
from .scanner import (
    DriftScanner,
    DriftScanResult,
    acknowledge_finding,
    list_findings,
    list_scans,
    resolve_finding,
)
from .state_loader import (
    StateEntry,
    load_snapshot,
    load_terraform_state,
    record_actual_state,
    record_declared_state,
    resource_type_from_address,
)

__all__ = [
    "diff_states",
    "StateChange",
    "DriftPolicy",
    "SeverityRule",
    "DEFAULT_SEVERITY_RULES",
    "worst_severity",
    "DriftScanner",
    "DriftScanResult",
    "acknowledge_finding",
    "resolve_finding",
    "list_findings",
    "list_scans",
    "StateEntry",
    "load_terraform_state",
    "load_snapshot",
    "record_declared_state",
    "record_actual_state",
    "resource_type_from_address",
]
