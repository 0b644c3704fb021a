"""
Feature Contracts - Anomaly Taxonomy

The vocabulary of problems the diff engine can report, their severities, and
the per-call report that collects them.

At most one anomaly is surfaced per feature path. When several rules fire
for the same path, the one with the highest severity wins, and among equal
severities the one with the lowest precedence number:

    FEATURE_MISSING < SCHEMA_NEW_FEATURE < UNEXPECTED_DATA_TYPE
    < FEATURE_PRESENCE_TOO_LOW < VALUE_COUNT_OUT_OF_RANGE
    < ENUM_UNEXPECTED_VALUES / VALUE_OUT_OF_RANGE / BOOL_UNEXPECTED_VALUES
    < COMPARATOR_L_INFTY_HIGH < COMPARATOR_JENSEN_SHANNON_HIGH

Usage:
    report = find_changes(schema, view, config)

    if report.has_errors:
        for anomaly in report.error_anomalies:
            print(f"{anomaly.path}: {anomaly.description}")
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import pandas as pd

from feature_contracts.validation.path import Path
from feature_contracts.validation.schema import Schema, SchemaPatch


class Severity(StrEnum):
    """Anomaly severity level."""

    ERROR = "ERROR"
    WARNING = "WARNING"

    @property
    def rank(self) -> int:
        """Lower is more severe."""
        return 0 if self is Severity.ERROR else 1


class AnomalyType(StrEnum):
    """Type of anomaly detected."""

    FEATURE_MISSING = "FEATURE_MISSING"
    SCHEMA_NEW_FEATURE = "SCHEMA_NEW_FEATURE"
    UNEXPECTED_DATA_TYPE = "UNEXPECTED_DATA_TYPE"
    FEATURE_PRESENCE_TOO_LOW = "FEATURE_PRESENCE_TOO_LOW"
    VALUE_COUNT_OUT_OF_RANGE = "VALUE_COUNT_OUT_OF_RANGE"
    ENUM_UNEXPECTED_VALUES = "ENUM_UNEXPECTED_VALUES"
    VALUE_OUT_OF_RANGE = "VALUE_OUT_OF_RANGE"
    BOOL_UNEXPECTED_VALUES = "BOOL_UNEXPECTED_VALUES"
    COMPARATOR_L_INFTY_HIGH = "COMPARATOR_L_INFTY_HIGH"
    COMPARATOR_JENSEN_SHANNON_HIGH = "COMPARATOR_JENSEN_SHANNON_HIGH"
    DATASET_LOW_NUM_EXAMPLES = "DATASET_LOW_NUM_EXAMPLES"

    @property
    def precedence(self) -> int:
        return _PRECEDENCE[self]

    @property
    def short_description(self) -> str:
        return _SHORT_DESCRIPTIONS[self]


_PRECEDENCE = {
    AnomalyType.DATASET_LOW_NUM_EXAMPLES: 0,
    AnomalyType.FEATURE_MISSING: 1,
    AnomalyType.SCHEMA_NEW_FEATURE: 2,
    AnomalyType.UNEXPECTED_DATA_TYPE: 3,
    AnomalyType.FEATURE_PRESENCE_TOO_LOW: 4,
    AnomalyType.VALUE_COUNT_OUT_OF_RANGE: 5,
    AnomalyType.ENUM_UNEXPECTED_VALUES: 6,
    AnomalyType.VALUE_OUT_OF_RANGE: 6,
    AnomalyType.BOOL_UNEXPECTED_VALUES: 6,
    AnomalyType.COMPARATOR_L_INFTY_HIGH: 7,
    AnomalyType.COMPARATOR_JENSEN_SHANNON_HIGH: 8,
}

_SHORT_DESCRIPTIONS = {
    AnomalyType.DATASET_LOW_NUM_EXAMPLES: "Low num examples in dataset",
    AnomalyType.FEATURE_MISSING: "Column dropped",
    AnomalyType.SCHEMA_NEW_FEATURE: "New column",
    AnomalyType.UNEXPECTED_DATA_TYPE: "Unexpected data type",
    AnomalyType.FEATURE_PRESENCE_TOO_LOW: "Column missing in some examples",
    AnomalyType.VALUE_COUNT_OUT_OF_RANGE: "Unexpected number of values",
    AnomalyType.ENUM_UNEXPECTED_VALUES: "Unexpected string values",
    AnomalyType.VALUE_OUT_OF_RANGE: "Out-of-range values",
    AnomalyType.BOOL_UNEXPECTED_VALUES: "Non-boolean values",
    AnomalyType.COMPARATOR_L_INFTY_HIGH: "High Linfty distance",
    AnomalyType.COMPARATOR_JENSEN_SHANNON_HIGH: "High approximate Jensen-Shannon divergence",
}


class ComparisonTarget(StrEnum):
    """Which linked statistics a distance check compared against."""

    PREVIOUS = "previous"  # drift
    SERVING = "serving"  # skew


@dataclass(frozen=True)
class Anomaly:
    """A single finding for one feature path."""

    path: Path
    type: AnomalyType
    severity: Severity
    description: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def short_description(self) -> str:
        return self.type.short_description

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.severity.rank, self.type.precedence)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path.to_list(),
            "type": self.type.value,
            "severity": self.severity.value,
            "short_description": self.short_description,
            "description": self.description,
            "details": self.details,
        }


def most_severe(candidates: Iterable[Anomaly]) -> Anomaly | None:
    """
    Pick the single anomaly to surface for a path.

    Ties on (severity, precedence) keep the first candidate, so callers list
    candidates in rule order.
    """
    return min(candidates, key=lambda a: a.sort_key, default=None)


@dataclass(frozen=True)
class AnomaliesReport:
    """Result of comparing one statistics view against one schema."""

    baseline: Schema
    anomalies: Mapping[Path, Anomaly] = field(default_factory=dict)
    data_missing: bool = False
    dataset_anomaly: Anomaly | None = None
    schema_patch: SchemaPatch | None = None

    @property
    def has_anomalies(self) -> bool:
        """Check if any anomalies were detected."""
        return bool(self.anomalies) or self.dataset_anomaly is not None

    @property
    def all_anomalies(self) -> list[Anomaly]:
        """Dataset-level anomaly first, then per-feature anomalies in path order."""
        result = [self.dataset_anomaly] if self.dataset_anomaly is not None else []
        result.extend(self.anomalies[path] for path in sorted(self.anomalies))
        return result

    @property
    def has_errors(self) -> bool:
        """Check if any error-level anomalies were detected."""
        return any(a.severity == Severity.ERROR for a in self.all_anomalies)

    @property
    def error_anomalies(self) -> list[Anomaly]:
        return [a for a in self.all_anomalies if a.severity == Severity.ERROR]

    @property
    def warning_anomalies(self) -> list[Anomaly]:
        return [a for a in self.all_anomalies if a.severity == Severity.WARNING]

    @property
    def anomalies_by_type(self) -> dict[AnomalyType, list[Anomaly]]:
        """Group anomalies by type."""
        result: dict[AnomalyType, list[Anomaly]] = {}
        for anomaly in self.all_anomalies:
            result.setdefault(anomaly.type, []).append(anomaly)
        return result

    def get(self, path: Path) -> Anomaly | None:
        return self.anomalies.get(path)

    def proposed_schema(self) -> Schema:
        """Baseline with the report's schema patch applied."""
        if self.schema_patch is None:
            return self.baseline
        return self.baseline.apply(self.schema_patch)

    def to_dict(self) -> dict[str, Any]:
        """Convert the report to a dictionary with a stable key order."""
        result: dict[str, Any] = {
            "data_missing": self.data_missing,
            "anomalies": [self.anomalies[path].to_dict() for path in sorted(self.anomalies)],
            "baseline": self.baseline.to_dict(),
        }
        if self.dataset_anomaly is not None:
            result["dataset_anomaly"] = self.dataset_anomaly.to_dict()
        if self.schema_patch is not None and not self.schema_patch.is_empty:
            result["proposed_schema_patch"] = self.schema_patch.to_dict()
        return result

    def to_dataframe(self) -> pd.DataFrame:
        """One row per anomaly, indexed by feature name."""
        rows = [
            {
                "Feature name": str(a.path) if a.path.steps else "<dataset>",
                "Anomaly type": a.type.value,
                "Severity": a.severity.value,
                "Anomaly short description": a.short_description,
                "Anomaly long description": a.description,
            }
            for a in self.all_anomalies
        ]
        columns = [
            "Feature name",
            "Anomaly type",
            "Severity",
            "Anomaly short description",
            "Anomaly long description",
        ]
        return pd.DataFrame(rows, columns=columns).set_index("Feature name")
