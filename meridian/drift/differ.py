"""
Meridian - State Differ
=======================

Compares the declared state of a resource with its actual state and reports
each divergence as a StateChange at a dotted/indexed attribute path
(``ingress[0].cidr_blocks``).

Rules:
- keys declared but absent from the actual state are REMOVED
- keys only present in the actual state are ignored, except under a strict
  prefix (``tags`` by default) where they are ADDED
- scalar lists compare order-insensitively by default; lists holding
  mappings compare by index and report extra/missing elements
- bool never equals int, 1 equals 1.0
"""

import fnmatch
import json
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..core.models import SEVERITY_RANK, ChangeTypeEnum, SeverityEnum


@dataclass(frozen=True)
class StateChange:
    """One divergence between declared and actual state."""

    path: str
    change_type: ChangeTypeEnum
    expected: Any = None
    actual: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "change_type": self.change_type.value,
            "expected": self.expected,
            "actual": self.actual,
        }


@dataclass(frozen=True)
class SeverityRule:
    pattern: str
    severity: SeverityEnum


# First match wins.
DEFAULT_SEVERITY_RULES: tuple[SeverityRule, ...] = (
    SeverityRule("tags", SeverityEnum.LOW),
    SeverityRule("tags.*", SeverityEnum.LOW),
    SeverityRule("tags_all*", SeverityEnum.LOW),
    SeverityRule("*description*", SeverityEnum.LOW),
    SeverityRule("*security_group*", SeverityEnum.HIGH),
    SeverityRule("*ingress*", SeverityEnum.HIGH),
    SeverityRule("*egress*", SeverityEnum.HIGH),
    SeverityRule("*iam*", SeverityEnum.HIGH),
    SeverityRule("*policy*", SeverityEnum.HIGH),
    SeverityRule("*encrypt*", SeverityEnum.HIGH),
    SeverityRule("*public*", SeverityEnum.HIGH),
    SeverityRule("*acl*", SeverityEnum.HIGH),
)


def _glob(path: str, pattern: str) -> bool:
    # '[' is literal in attribute paths, so it cannot open a character class
    return fnmatch.fnmatchcase(path.lower(), pattern.lower().replace("[", "[[]"))


@dataclass
class DriftPolicy:
    """What to compare and how bad each divergence is."""

    ignore_paths: list[str] = field(default_factory=list)
    strict_prefixes: list[str] = field(default_factory=lambda: ["tags"])
    ignore_list_order: bool = True
    severity_rules: list[SeverityRule] = field(default_factory=lambda: list(DEFAULT_SEVERITY_RULES))
    default_severity: SeverityEnum = SeverityEnum.MEDIUM

    @classmethod
    def from_settings(cls, settings=None) -> "DriftPolicy":
        if settings is None:
            from ..config import get_settings
            settings = get_settings()
        return cls(ignore_paths=list(settings.DRIFT_IGNORE_PATHS))

    def is_ignored(self, path: str) -> bool:
        return any(_glob(path, pattern) for pattern in self.ignore_paths)

    def is_strict(self, path: str) -> bool:
        for prefix in self.strict_prefixes:
            if path == prefix or path.startswith(prefix + ".") or path.startswith(prefix + "["):
                return True
        return False

    def classify(self, path: str, change_type: ChangeTypeEnum) -> SeverityEnum:
        if change_type == ChangeTypeEnum.MISSING:
            return SeverityEnum.CRITICAL
        if change_type == ChangeTypeEnum.UNMANAGED:
            return SeverityEnum.MEDIUM
        for rule in self.severity_rules:
            if _glob(path, rule.pattern):
                return rule.severity
        return self.default_severity


def worst_severity(severities) -> SeverityEnum | None:
    """Highest severity in an iterable, None when empty."""
    worst = None
    for severity in severities:
        if worst is None or SEVERITY_RANK[severity] > SEVERITY_RANK[worst]:
            worst = severity
    return worst


# =============================================================================
# DIFF
# =============================================================================


def diff_states(declared: Any, actual: Any, policy: DriftPolicy | None = None) -> list[StateChange]:
    """
    Diff a resource's declared state against its actual state.

    A missing actual state yields a single MISSING change and a missing
    declared state a single UNMANAGED change, both at path "".
    """
    policy = policy or DriftPolicy()

    if declared is None and actual is None:
        return []
    if actual is None:
        return [StateChange("", ChangeTypeEnum.MISSING, declared, None)]
    if declared is None:
        return [StateChange("", ChangeTypeEnum.UNMANAGED, None, actual)]

    changes: list[StateChange] = []
    _diff(declared, actual, "", policy, changes)
    return changes


def _join(path: str, key: Any) -> str:
    return f"{path}.{key}" if path else str(key)


def _is_list(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _scalars_equal(expected: Any, actual: Any) -> bool:
    if isinstance(expected, bool) or isinstance(actual, bool):
        return type(expected) is type(actual) and expected == actual
    if _is_number(expected) and _is_number(actual):
        return expected == actual
    if type(expected) is not type(actual):
        return False
    return expected == actual


def _canonical(value: Any) -> tuple:
    if value is None:
        return ("none",)
    if isinstance(value, bool):
        return ("bool", value)
    if _is_number(value):
        return ("num", float(value))
    if isinstance(value, str):
        return ("str", value)
    return ("json", json.dumps(value, sort_keys=True, default=str))


def _diff(expected: Any, actual: Any, path: str, policy: DriftPolicy, out: list[StateChange]) -> None:
    if path and policy.is_ignored(path):
        return

    if isinstance(expected, Mapping) and isinstance(actual, Mapping):
        for key, expected_value in expected.items():
            child = _join(path, key)
            if policy.is_ignored(child):
                continue
            if key not in actual:
                out.append(StateChange(child, ChangeTypeEnum.REMOVED, expected_value, None))
            else:
                _diff(expected_value, actual[key], child, policy, out)
        for key, actual_value in actual.items():
            if key in expected:
                continue
            child = _join(path, key)
            if policy.is_ignored(child) or not policy.is_strict(child):
                continue
            out.append(StateChange(child, ChangeTypeEnum.ADDED, None, actual_value))
        return

    if _is_list(expected) and _is_list(actual):
        _diff_lists(list(expected), list(actual), path, policy, out)
        return

    if not _scalars_equal(expected, actual):
        out.append(StateChange(path, ChangeTypeEnum.CHANGED, expected, actual))


def _diff_lists(expected: list, actual: list, path: str, policy: DriftPolicy, out: list[StateChange]) -> None:
    structured = any(isinstance(item, Mapping) or _is_list(item) for item in expected + actual)

    if structured:
        for index in range(max(len(expected), len(actual))):
            child = f"{path}[{index}]"
            if policy.is_ignored(child):
                continue
            if index >= len(actual):
                out.append(StateChange(child, ChangeTypeEnum.REMOVED, expected[index], None))
            elif index >= len(expected):
                out.append(StateChange(child, ChangeTypeEnum.ADDED, None, actual[index]))
            else:
                _diff(expected[index], actual[index], child, policy, out)
        return

    if policy.ignore_list_order:
        equal = Counter(map(_canonical, expected)) == Counter(map(_canonical, actual))
    else:
        equal = len(expected) == len(actual) and all(
            _scalars_equal(e, a) for e, a in zip(expected, actual)
        )
    if not equal:
        out.append(StateChange(path, ChangeTypeEnum.CHANGED, expected, actual))
