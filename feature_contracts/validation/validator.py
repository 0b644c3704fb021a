"""
Feature Contracts - Statistics Validator

Entry points that wire statistics records, schemas and configuration into
the diff and inference engines:
- Validate statistics against a schema (optionally for one environment, and
  against previous-span and serving statistics)
- Infer a schema from statistics
- Widen an existing schema to admit new statistics
- The same operations over JSON/YAML documents

Usage:
    validator = FeatureStatisticsValidator(config)

    report = validator.validate_statistics(
        stats,
        ValidationOptions(schema=schema, environment="serving", previous_statistics=prev),
    )

    if report.has_errors:
        for anomaly in report.error_anomalies:
            print(f"{anomaly.path}: {anomaly.description}")
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from feature_contracts.shared.config import Settings, get_config
from feature_contracts.validation import inference
from feature_contracts.validation.anomalies import AnomaliesReport
from feature_contracts.validation.codec import dump_anomalies, dump_schema, load_schema, load_statistics
from feature_contracts.validation.diff_engine import DiffEngine
from feature_contracts.validation.path import PathLike
from feature_contracts.validation.schema import Schema
from feature_contracts.validation.statistics import DatasetStatistics
from feature_contracts.validation.statistics_view import DatasetStatsView

logger = logging.getLogger(__name__)


@dataclass
class ValidationOptions:
    """Optional inputs of a validation or update call."""

    schema: Schema | None = None
    environment: str | None = None
    previous_statistics: DatasetStatistics | None = None
    serving_statistics: DatasetStatistics | None = None
    paths_to_check: Sequence[PathLike] | None = None


class FeatureStatisticsValidator:
    """
    Validate dataset statistics against feature schemas.

    Holds configuration only; each call builds its own views and returns a
    new report or schema.
    """

    def __init__(self, config: Settings | None = None):
        """
        Initialize validator.

        Args:
            config: Configuration object (uses default if not provided)
        """
        self.config = config or get_config()

    def build_view(
        self, statistics: DatasetStatistics, options: ValidationOptions | None = None
    ) -> DatasetStatsView:
        """
        Build the view under test and link previous and serving views to it.

        The linked views report weighted numbers exactly when the view under
        test does.
        """
        options = options or ValidationOptions()
        by_weight = DatasetStatsView(statistics).by_weight

        previous = None
        if options.previous_statistics is not None:
            previous = DatasetStatsView(options.previous_statistics, by_weight=by_weight)
        serving = None
        if options.serving_statistics is not None:
            serving = DatasetStatsView(options.serving_statistics, by_weight=by_weight)

        return DatasetStatsView(
            statistics,
            by_weight=by_weight,
            environment=options.environment,
            previous=previous,
            serving=serving,
        )

    def validate_statistics(
        self, statistics: DatasetStatistics, options: ValidationOptions | None = None
    ) -> AnomaliesReport:
        """
        Validate statistics against a schema.

        Args:
            statistics: Statistics of the dataset under test
            options: Schema, environment, linked statistics and path restriction.
                Without a schema every feature is reported as new.

        Returns:
            AnomaliesReport

        Raises:
            StateError: If the schema is inconsistent or a rule fails
        """
        options = options or ValidationOptions()
        schema = options.schema or Schema()

        logger.info(
            f"Validating statistics for {statistics.name or 'dataset'}",
            extra={
                "dataset": statistics.name,
                "num_examples": statistics.num_examples,
                "features": statistics.num_features,
                "environment": options.environment,
            },
        )

        view = self.build_view(statistics, options)
        report = DiffEngine(self.config.validation).find_changes(schema, view, options.paths_to_check)

        logger.info(
            f"Validation complete for {statistics.name or 'dataset'}: "
            f"{len(report.all_anomalies)} anomalies ({len(report.error_anomalies)} errors)",
            extra={
                "dataset": statistics.name,
                "total_anomalies": len(report.all_anomalies),
                "error_count": len(report.error_anomalies),
                "data_missing": report.data_missing,
            },
        )

        return report

    def infer_schema(self, statistics: DatasetStatistics) -> Schema:
        """Infer a schema from statistics."""
        logger.info(
            f"Inferring schema for {statistics.name or 'dataset'}",
            extra={"dataset": statistics.name, "features": statistics.num_features},
        )
        return inference.infer_schema(DatasetStatsView(statistics), self.config.validation)

    def update_schema(
        self,
        schema: Schema,
        statistics: DatasetStatistics,
        options: ValidationOptions | None = None,
    ) -> Schema:
        """
        Widen a schema so that it admits the statistics.

        Only `environment` and `paths_to_check` are read from the options.
        """
        options = options or ValidationOptions()

        logger.info(
            f"Updating schema for {statistics.name or 'dataset'}",
            extra={
                "dataset": statistics.name,
                "environment": options.environment,
                "restricted": options.paths_to_check is not None,
            },
        )

        view = DatasetStatsView(statistics, environment=options.environment)
        return inference.update_schema(schema, view, self.config.validation, options.paths_to_check)

    # =========================================================================
    # Document Entry Points
    # =========================================================================

    def validate_statistics_document(
        self,
        statistics: str | bytes,
        schema: str | bytes = "",
        environment: str = "",
        previous_statistics: str | bytes = "",
        serving_statistics: str | bytes = "",
        fmt: str | None = None,
    ) -> str:
        """
        Validate a statistics document against a schema document.

        Empty strings mean "not given". The report is encoded in the
        configured default format.

        Raises:
            ParseError: If an input document is malformed
            StateError: If the schema is inconsistent or a rule fails
            SerializationError: If the report cannot be encoded
        """
        options = ValidationOptions(
            schema=load_schema(schema, fmt) if schema else None,
            environment=environment or None,
            previous_statistics=load_statistics(previous_statistics, fmt) if previous_statistics else None,
            serving_statistics=load_statistics(serving_statistics, fmt) if serving_statistics else None,
        )
        report = self.validate_statistics(load_statistics(statistics, fmt), options)
        codec = self.config.codec
        return dump_anomalies(report, codec.default_format, codec.indent)

    def infer_schema_document(self, statistics: str | bytes, fmt: str | None = None) -> str:
        """
        Infer a schema document from a statistics document.

        Raises:
            ParseError: If the statistics document is malformed
            SerializationError: If the schema cannot be encoded
        """
        schema = self.infer_schema(load_statistics(statistics, fmt))
        codec = self.config.codec
        return dump_schema(schema, codec.default_format, codec.indent)


# =============================================================================
# Convenience Functions
# =============================================================================


def validate_statistics(
    statistics: DatasetStatistics,
    options: ValidationOptions | None = None,
    config: Settings | None = None,
) -> AnomaliesReport:
    """
    Convenience function to validate statistics.

    Args:
        statistics: Statistics of the dataset under test
        options: Schema, environment, linked statistics and path restriction
        config: Configuration object

    Returns:
        AnomaliesReport
    """
    validator = FeatureStatisticsValidator(config)
    return validator.validate_statistics(statistics, options)


def infer_schema(statistics: DatasetStatistics, config: Settings | None = None) -> Schema:
    """Convenience function to infer a schema."""
    validator = FeatureStatisticsValidator(config)
    return validator.infer_schema(statistics)


def update_schema(
    schema: Schema,
    statistics: DatasetStatistics,
    options: ValidationOptions | None = None,
    config: Settings | None = None,
) -> Schema:
    """Convenience function to widen a schema."""
    validator = FeatureStatisticsValidator(config)
    return validator.update_schema(schema, statistics, options)


def validate_statistics_document(
    statistics: str | bytes,
    schema: str | bytes = "",
    environment: str = "",
    previous_statistics: str | bytes = "",
    serving_statistics: str | bytes = "",
    config: Settings | None = None,
) -> str:
    """Convenience function to validate a statistics document."""
    validator = FeatureStatisticsValidator(config)
    return validator.validate_statistics_document(
        statistics, schema, environment, previous_statistics, serving_statistics
    )


def infer_schema_document(statistics: str | bytes, config: Settings | None = None) -> str:
    """Convenience function to infer a schema document."""
    validator = FeatureStatisticsValidator(config)
    return validator.infer_schema_document(statistics)
