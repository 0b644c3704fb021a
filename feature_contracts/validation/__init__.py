"""
Feature Contracts - Validation System

Statistics-vs-schema validation and schema inference:
- Schema model and document codec
- Anomaly detection (missing, unexpected, type, presence, domain, skew)
- Schema inference and widening

Components:
    - Schema / FeatureSpec: declared per-feature constraints
    - DatasetStatsView: read-only view over dataset statistics
    - DiffEngine: compares a view against a schema
    - FeatureStatisticsValidator: facade over the engines and the codec
"""

from feature_contracts.validation.anomalies import (
    AnomaliesReport,
    Anomaly,
    AnomalyType,
    ComparisonTarget,
    Severity,
)
from feature_contracts.validation.codec import (
    dump_anomalies,
    dump_schema,
    dump_statistics,
    load_schema,
    load_statistics,
)
from feature_contracts.validation.diff_engine import DiffEngine, find_changes
from feature_contracts.validation.errors import (
    FeatureContractsError,
    ParseError,
    SerializationError,
    StateError,
)
from feature_contracts.validation.path import Path
from feature_contracts.validation.schema import (
    BoolDomain,
    Comparator,
    FeatureSpec,
    FeatureType,
    FloatDomain,
    IntDomain,
    Presence,
    Schema,
    SchemaPatch,
    StringDomain,
    ValueCount,
)
from feature_contracts.validation.statistics import (
    DatasetStatistics,
    FeatureStatistics,
    HistogramBucket,
    StatsType,
    ValueFrequency,
    WeightedStatistics,
)
from feature_contracts.validation.statistics_view import DatasetStatsView, FeatureStatsView
from feature_contracts.validation.validator import (
    FeatureStatisticsValidator,
    ValidationOptions,
    infer_schema,
    infer_schema_document,
    update_schema,
    validate_statistics,
    validate_statistics_document,
)

__all__ = [
    # Paths and errors
    "Path",
    "FeatureContractsError",
    "ParseError",
    "StateError",
    "SerializationError",
    # Statistics
    "DatasetStatistics",
    "FeatureStatistics",
    "HistogramBucket",
    "StatsType",
    "ValueFrequency",
    "WeightedStatistics",
    "DatasetStatsView",
    "FeatureStatsView",
    # Schema
    "Schema",
    "SchemaPatch",
    "FeatureSpec",
    "FeatureType",
    "Presence",
    "ValueCount",
    "Comparator",
    "StringDomain",
    "IntDomain",
    "FloatDomain",
    "BoolDomain",
    # Anomalies
    "AnomaliesReport",
    "Anomaly",
    "AnomalyType",
    "ComparisonTarget",
    "Severity",
    "DiffEngine",
    "find_changes",
    # Codec
    "load_statistics",
    "load_schema",
    "dump_statistics",
    "dump_schema",
    "dump_anomalies",
    # Facade
    "FeatureStatisticsValidator",
    "ValidationOptions",
    "validate_statistics",
    "infer_schema",
    "update_schema",
    "validate_statistics_document",
    "infer_schema_document",
]
