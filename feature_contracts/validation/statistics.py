"""
Feature Contracts - Statistics Records

Immutable in-memory form of a dataset statistics document. Computing the
statistics from raw records happens upstream; this module only holds them
and converts them to and from plain dictionaries.

Usage:
    stats = DatasetStatistics.from_dict(
        {
            "num_examples": 100,
            "features": [
                {"path": ["age"], "type": "INT", "num_non_missing": 100,
                 "min": 0, "max": 90},
            ],
        }
    )
    age = stats.get_feature_stats(Path(("age",)))
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from feature_contracts.validation._parsing import (
    as_count,
    as_int,
    as_list,
    as_number,
    check_keys,
    require,
)
from feature_contracts.validation.errors import ParseError
from feature_contracts.validation.path import Path


class StatsType(StrEnum):
    """Observed value type of a feature."""

    INT = "INT"
    FLOAT = "FLOAT"
    STRING = "STRING"
    BYTES = "BYTES"
    STRUCT = "STRUCT"

    @property
    def is_numeric(self) -> bool:
        return self in (StatsType.INT, StatsType.FLOAT)

    @property
    def is_string(self) -> bool:
        return self in (StatsType.STRING, StatsType.BYTES)


@dataclass(frozen=True)
class HistogramBucket:
    """One bucket of a numeric histogram covering [low, high]."""

    low: float
    high: float
    count: float

    def to_dict(self) -> dict[str, Any]:
        return {"low": self.low, "high": self.high, "count": self.count}

    @classmethod
    def from_dict(cls, data: Any, where: str) -> HistogramBucket:
        check_keys(data, ("low", "high", "count"), where)
        low = as_number(require(data, "low", where), f"{where}.low")
        high = as_number(require(data, "high", where), f"{where}.high")
        if low > high:  # type: ignore[operator]
            raise ParseError(f"{where}: bucket low {low} is above high {high}")
        return cls(low=low, high=high, count=as_count(require(data, "count", where), f"{where}.count"))  # type: ignore[arg-type]


@dataclass(frozen=True)
class ValueFrequency:
    """A categorical value and how often it was observed."""

    value: str
    frequency: float

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "frequency": self.frequency}

    @classmethod
    def from_dict(cls, data: Any, where: str) -> ValueFrequency:
        check_keys(data, ("value", "frequency"), where)
        value = require(data, "value", where)
        if not isinstance(value, str):
            raise ParseError(f"{where}.value: expected a string, got {value!r}")
        return cls(value=value, frequency=as_count(require(data, "frequency", where), f"{where}.frequency"))


def _parse_top_values(raw: Any, where: str) -> tuple[ValueFrequency, ...]:
    return tuple(
        ValueFrequency.from_dict(item, f"{where}[{i}]") for i, item in enumerate(as_list(raw, where))
    )


def _parse_histogram(raw: Any, where: str) -> tuple[HistogramBucket, ...]:
    return tuple(
        HistogramBucket.from_dict(item, f"{where}[{i}]") for i, item in enumerate(as_list(raw, where))
    )


@dataclass(frozen=True)
class WeightedStatistics:
    """Counts and distributions recomputed with per-example weights."""

    num_non_missing: float
    num_missing: float = 0.0
    mean: float | None = None
    top_values: tuple[ValueFrequency, ...] = ()
    histogram: tuple[HistogramBucket, ...] = ()

    _FIELDS = ("num_non_missing", "num_missing", "mean", "top_values", "histogram")

    def to_dict(self) -> dict[str, Any]:
        return {
            "num_non_missing": self.num_non_missing,
            "num_missing": self.num_missing,
            "mean": self.mean,
            "top_values": [v.to_dict() for v in self.top_values],
            "histogram": [b.to_dict() for b in self.histogram],
        }

    @classmethod
    def from_dict(cls, data: Any, where: str) -> WeightedStatistics:
        check_keys(data, cls._FIELDS, where)
        return cls(
            num_non_missing=as_count(require(data, "num_non_missing", where), f"{where}.num_non_missing"),
            num_missing=as_count(data.get("num_missing", 0.0), f"{where}.num_missing"),
            mean=as_number(data.get("mean"), f"{where}.mean", allow_none=True),
            top_values=_parse_top_values(data.get("top_values", []), f"{where}.top_values"),
            histogram=_parse_histogram(data.get("histogram", []), f"{where}.histogram"),
        )


@dataclass(frozen=True)
class FeatureStatistics:
    """Statistics for a single feature."""

    path: Path
    type: StatsType
    num_non_missing: int
    num_missing: int = 0

    # Values per example
    min_num_values: int = 0
    max_num_values: int = 0
    avg_num_values: float = 0.0

    # Numerical stats (None for non-numeric)
    mean: float | None = None
    std_dev: float | None = None
    min: float | None = None
    max: float | None = None
    num_zeros: int | None = None
    histogram: tuple[HistogramBucket, ...] = ()

    # Categorical stats (empty for numeric)
    unique: int | None = None
    top_values: tuple[ValueFrequency, ...] = ()
    avg_length: float | None = None

    weighted: WeightedStatistics | None = None

    _FIELDS = (
        "path",
        "name",
        "type",
        "num_non_missing",
        "num_missing",
        "min_num_values",
        "max_num_values",
        "avg_num_values",
        "mean",
        "std_dev",
        "min",
        "max",
        "num_zeros",
        "histogram",
        "unique",
        "top_values",
        "avg_length",
        "weighted",
    )

    @property
    def name(self) -> str:
        return str(self.path)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "path": self.path.to_list(),
            "type": self.type.value,
            "num_non_missing": self.num_non_missing,
            "num_missing": self.num_missing,
            "min_num_values": self.min_num_values,
            "max_num_values": self.max_num_values,
            "avg_num_values": self.avg_num_values,
            "mean": self.mean,
            "std_dev": self.std_dev,
            "min": self.min,
            "max": self.max,
            "num_zeros": self.num_zeros,
            "histogram": [b.to_dict() for b in self.histogram],
            "unique": self.unique,
            "top_values": [v.to_dict() for v in self.top_values],
            "avg_length": self.avg_length,
            "weighted": self.weighted.to_dict() if self.weighted else None,
        }

    @classmethod
    def from_dict(cls, data: Any, where: str = "feature") -> FeatureStatistics:
        """
        Create FeatureStatistics from a dictionary.

        The feature is named either by `path` (list of steps) or by `name`
        (a dotted string).

        Raises:
            ParseError: If a field is missing, unknown, or of the wrong type
        """
        check_keys(data, cls._FIELDS, where)
        if "path" in data:
            path = Path.parse(data["path"])
        else:
            path = Path.parse(require(data, "name", where))
        where = f"feature '{path}'"

        raw_type = require(data, "type", where)
        try:
            stats_type = StatsType(raw_type)
        except ValueError as e:
            raise ParseError(f"{where}: unknown type {raw_type!r}") from e

        weighted = data.get("weighted")
        return cls(
            path=path,
            type=stats_type,
            num_non_missing=as_int(require(data, "num_non_missing", where), f"{where}.num_non_missing"),  # type: ignore[arg-type]
            num_missing=as_int(data.get("num_missing", 0), f"{where}.num_missing"),  # type: ignore[arg-type]
            min_num_values=as_int(data.get("min_num_values", 0), f"{where}.min_num_values"),  # type: ignore[arg-type]
            max_num_values=as_int(data.get("max_num_values", 0), f"{where}.max_num_values"),  # type: ignore[arg-type]
            avg_num_values=as_count(data.get("avg_num_values", 0.0), f"{where}.avg_num_values"),
            mean=as_number(data.get("mean"), f"{where}.mean", allow_none=True),
            std_dev=as_number(data.get("std_dev"), f"{where}.std_dev", allow_none=True),
            min=as_number(data.get("min"), f"{where}.min", allow_none=True),
            max=as_number(data.get("max"), f"{where}.max", allow_none=True),
            num_zeros=as_int(data.get("num_zeros"), f"{where}.num_zeros", allow_none=True),
            histogram=_parse_histogram(data.get("histogram", []), f"{where}.histogram"),
            unique=as_int(data.get("unique"), f"{where}.unique", allow_none=True),
            top_values=_parse_top_values(data.get("top_values", []), f"{where}.top_values"),
            avg_length=as_number(data.get("avg_length"), f"{where}.avg_length", allow_none=True),
            weighted=(
                WeightedStatistics.from_dict(weighted, f"{where}.weighted")
                if weighted is not None
                else None
            ),
        )


@dataclass(frozen=True)
class DatasetStatistics:
    """Container for the statistics of one dataset slice."""

    num_examples: int
    features: tuple[FeatureStatistics, ...] = ()
    name: str = ""
    weighted_num_examples: float | None = None

    @property
    def num_features(self) -> int:
        return len(self.features)

    def to_dict(self) -> dict[str, Any]:
        """Convert statistics to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "num_examples": self.num_examples,
            "weighted_num_examples": self.weighted_num_examples,
            "features": [f.to_dict() for f in self.features],
        }

    @classmethod
    def from_dict(cls, data: Any) -> DatasetStatistics:
        """
        Create DatasetStatistics from dictionary.

        Raises:
            ParseError: If the document is malformed or repeats a feature path
        """
        where = "statistics"
        check_keys(data, ("name", "num_examples", "weighted_num_examples", "features"), where)

        name = data.get("name", "")
        if not isinstance(name, str):
            raise ParseError(f"{where}.name: expected a string, got {name!r}")

        features = []
        seen: set[Path] = set()
        for i, raw in enumerate(as_list(data.get("features", []), f"{where}.features")):
            feature = FeatureStatistics.from_dict(raw, f"{where}.features[{i}]")
            if feature.path in seen:
                raise ParseError(f"{where}: duplicate statistics for feature '{feature.path}'")
            seen.add(feature.path)
            features.append(feature)

        return cls(
            num_examples=as_int(require(data, "num_examples", where), f"{where}.num_examples"),  # type: ignore[arg-type]
            features=tuple(features),
            name=name,
            weighted_num_examples=as_number(
                data.get("weighted_num_examples"), f"{where}.weighted_num_examples", allow_none=True
            ),
        )

    def get_feature_stats(self, path: Path) -> FeatureStatistics | None:
        """Get statistics for a specific feature."""
        for f in self.features:
            if f.path == path:
                return f
        return None
