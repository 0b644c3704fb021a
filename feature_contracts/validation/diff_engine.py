"""
Feature Contracts - Diff Engine

Compare one dataset's statistics against a schema and report, per feature,
the single most severe violation:
- Missing and unexpected features
- Type mismatches
- Presence and value-count violations
- Enum, range and boolean domain violations
- Distribution skew (serving) and drift (previous span)

Usage:
    engine = DiffEngine(config.validation)
    report = engine.find_changes(schema, DatasetStatsView(stats, environment="serving"))

    for anomaly in report.all_anomalies:
        print(f"{anomaly.path}: {anomaly.short_description}")
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from feature_contracts.shared.config import ComparatorConfig, ValidationConfig
from feature_contracts.validation.anomalies import (
    AnomaliesReport,
    Anomaly,
    AnomalyType,
    ComparisonTarget,
    Severity,
    most_severe,
)
from feature_contracts.validation.distance import jensen_shannon_divergence, l_infinity_distance
from feature_contracts.validation.errors import FeatureContractsError, StateError
from feature_contracts.validation.inference import infer_feature_specs
from feature_contracts.validation.path import Path, PathLike
from feature_contracts.validation.schema import (
    BoolDomain,
    Comparator,
    FeatureSpec,
    FloatDomain,
    IntDomain,
    Schema,
    SchemaPatch,
    StringDomain,
)
from feature_contracts.validation.statistics_view import DatasetStatsView, FeatureStatsView

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Comparison:
    """One distance that exceeded its threshold."""

    target: ComparisonTarget
    distance: float
    threshold: float
    value: str | None = None

    def to_dict(self) -> dict:
        result = {"target": self.target.value, "distance": self.distance, "threshold": self.threshold}
        if self.value is not None:
            result["value"] = self.value
        return result


def _fmt(number: float) -> str:
    """Render whole floats without a trailing .0 so bounds read like the schema."""
    if isinstance(number, float) and number.is_integer():
        return str(int(number))
    return f"{number:g}"


class DiffEngine:
    """
    Statistics-vs-schema comparison.

    The engine holds only configuration; every call to find_changes works on
    its own inputs and returns a fresh report.
    """

    def __init__(self, config: ValidationConfig | None = None):
        """
        Initialize the diff engine.

        Args:
            config: Validation thresholds (defaults when not provided)
        """
        self.config = config or ValidationConfig()

    def find_changes(
        self,
        schema: Schema,
        view: DatasetStatsView,
        paths_to_check: Iterable[PathLike] | None = None,
    ) -> AnomaliesReport:
        """
        Compare statistics against a schema.

        Args:
            schema: Declared constraints
            view: Statistics of the slice under test, optionally linked to
                previous-span and serving views
            paths_to_check: Only evaluate these paths. Others are skipped,
                not flagged.

        Returns:
            AnomaliesReport with at most one anomaly per path

        Raises:
            StateError: If the schema is inconsistent or a rule fails
        """
        # No data means nothing to compare; the schema is returned as given
        if view.statistics.num_examples == 0:
            logger.debug("Statistics have no examples, skipping feature rules")
            return AnomaliesReport(baseline=schema, data_missing=True)

        schema.check_consistency()

        restriction = {Path.parse(p) for p in paths_to_check} if paths_to_check is not None else None
        environment = view.environment

        anomalies: dict[Path, Anomaly] = {}
        proposed: list[FeatureSpec] = []

        for path in sorted(set(schema.paths()) | set(view.paths())):
            if restriction is not None and path not in restriction:
                continue
            covering = self._covering_ancestor(schema, view, path)
            if covering is not None:
                # A restricted path under a new struct is reported through that struct
                if restriction is None or covering in restriction or covering in anomalies:
                    continue
                if schema.get_feature(covering) is not None:
                    continue
                path = covering

            spec = schema.get_feature(path)
            feature = view.get_by_path(path)

            try:
                if spec is None:
                    candidates = [self._unexpected_feature(path)]
                    if self.config.new_features_are_warnings and feature is not None:
                        proposed.extend(infer_feature_specs(feature, self.config))
                elif not schema.is_active(path, environment):
                    continue
                else:
                    candidates = self._evaluate(schema, spec, feature, environment)
            except FeatureContractsError:
                raise
            except Exception as e:
                raise StateError(f"Rule evaluation failed for feature '{path}': {e}") from e

            anomaly = most_severe(candidates)
            if anomaly is not None:
                logger.debug(
                    f"{path}: {anomaly.type} ({anomaly.severity})",
                    extra={"path": str(path), "anomaly_type": anomaly.type.value},
                )
                anomalies[path] = anomaly

        dataset_anomaly = self._check_num_examples(schema, view)

        logger.debug(
            f"Diff complete: {len(anomalies)} feature anomalies",
            extra={"anomalies": len(anomalies), "proposed_features": len(proposed)},
        )

        return AnomaliesReport(
            baseline=schema,
            anomalies=anomalies,
            dataset_anomaly=dataset_anomaly,
            schema_patch=SchemaPatch(features=tuple(proposed)) if proposed else None,
        )

    # =========================================================================
    # Traversal
    # =========================================================================

    def _covering_ancestor(self, schema: Schema, view: DatasetStatsView, path: Path) -> Path | None:
        """
        The outermost enclosing struct that already explains this path: the
        struct is reported as new, is inactive, is absent from the statistics,
        or has an unexpected type. None when the path is evaluated on its own.
        """
        for ancestor in path.ancestors():
            parent_spec = schema.get_feature(ancestor)
            parent_view = view.get_by_path(ancestor)
            if parent_spec is None:
                if parent_view is not None:
                    return ancestor
                continue
            if not schema.is_active(ancestor, view.environment):
                return ancestor
            if parent_view is None or parent_view.is_all_missing:
                return ancestor
            if not parent_spec.type.accepts(parent_view.type):
                return ancestor
        return None

    def _evaluate(
        self,
        schema: Schema,
        spec: FeatureSpec,
        feature: FeatureStatsView | None,
        environment: str | None,
    ) -> list[Anomaly]:
        """Run every rule for a declared, active feature; candidates in rule order."""
        if feature is None or feature.is_all_missing:
            return self._check_missing(schema, spec, environment)

        if not spec.type.accepts(feature.type):
            return [self._type_mismatch(spec, feature)]

        candidates = []
        candidates.extend(self._check_presence(spec, feature, environment))
        candidates.extend(self._check_value_count(spec, feature))
        candidates.extend(self._check_domain(schema, spec, feature))
        candidates.extend(self._check_distribution(spec, feature))
        return candidates

    # =========================================================================
    # Private Rule Methods
    # =========================================================================

    def _unexpected_feature(self, path: Path) -> Anomaly:
        severity = Severity.WARNING if self.config.new_features_are_warnings else Severity.ERROR
        return Anomaly(
            path=path,
            type=AnomalyType.SCHEMA_NEW_FEATURE,
            severity=severity,
            description="New column (column in data but not in schema)",
        )

    def _check_missing(self, schema: Schema, spec: FeatureSpec, environment: str | None) -> list[Anomaly]:
        if schema.required_in(spec.path, environment):
            return [
                Anomaly(
                    path=spec.path,
                    type=AnomalyType.FEATURE_MISSING,
                    severity=Severity.ERROR,
                    description="The feature was not present in any examples.",
                    details={"environment": environment},
                )
            ]
        presence = spec.presence_in(environment)
        if presence.min_count > 0:
            return [
                Anomaly(
                    path=spec.path,
                    type=AnomalyType.FEATURE_PRESENCE_TOO_LOW,
                    severity=Severity.ERROR,
                    description=(
                        f"The feature was present in 0 examples, "
                        f"fewer than the required minimum of {presence.min_count}."
                    ),
                    details={"num_present": 0, "min_count": presence.min_count},
                )
            ]
        return []

    def _type_mismatch(self, spec: FeatureSpec, feature: FeatureStatsView) -> Anomaly:
        return Anomaly(
            path=spec.path,
            type=AnomalyType.UNEXPECTED_DATA_TYPE,
            severity=Severity.ERROR,
            description=f"Expected data of type: {spec.type} but got {feature.type}",
            details={"expected_type": spec.type.value, "observed_type": feature.type.value},
        )

    def _check_presence(
        self, spec: FeatureSpec, feature: FeatureStatsView, environment: str | None
    ) -> list[Anomaly]:
        presence = spec.presence_in(environment)
        fraction = feature.fraction_present
        count = feature.num_present

        if fraction < presence.min_fraction:
            description = (
                f"The feature was present in fewer examples than expected: "
                f"minimum fraction = {_fmt(presence.min_fraction)}, actual = {fraction:.6g}"
            )
        elif count < presence.min_count:
            description = (
                f"The feature was present in fewer examples than expected: "
                f"minimum count = {presence.min_count}, actual = {_fmt(float(count))}"
            )
        else:
            return []

        return [
            Anomaly(
                path=spec.path,
                type=AnomalyType.FEATURE_PRESENCE_TOO_LOW,
                severity=Severity.ERROR,
                description=description,
                details={
                    "fraction_present": fraction,
                    "num_present": count,
                    "min_fraction": presence.min_fraction,
                    "min_count": presence.min_count,
                },
            )
        ]

    def _check_value_count(self, spec: FeatureSpec, feature: FeatureStatsView) -> list[Anomaly]:
        value_count = spec.value_count
        if value_count is None:
            return []

        problems = []
        if value_count.min is not None and feature.min_num_values < value_count.min:
            problems.append(
                f"some examples have fewer values than expected "
                f"({feature.min_num_values} < {value_count.min})"
            )
        if value_count.max is not None and feature.max_num_values > value_count.max:
            problems.append(
                f"some examples have more values than expected "
                f"({feature.max_num_values} > {value_count.max})"
            )
        if not problems:
            return []

        return [
            Anomaly(
                path=spec.path,
                type=AnomalyType.VALUE_COUNT_OUT_OF_RANGE,
                severity=Severity.ERROR,
                description="Unexpected number of values: " + "; ".join(problems),
                details={
                    "min_num_values": feature.min_num_values,
                    "max_num_values": feature.max_num_values,
                    "declared_min": value_count.min,
                    "declared_max": value_count.max,
                },
            )
        ]

    def _check_domain(self, schema: Schema, spec: FeatureSpec, feature: FeatureStatsView) -> list[Anomaly]:
        domain = schema.domain_for(spec.path)
        if isinstance(domain, StringDomain):
            return self._check_enum(spec, feature, domain)
        if isinstance(domain, (IntDomain, FloatDomain)):
            return self._check_range(spec, feature, domain)
        if isinstance(domain, BoolDomain):
            return self._check_bool(spec, feature, domain)
        return []

    def _check_enum(self, spec: FeatureSpec, feature: FeatureStatsView, domain: StringDomain) -> list[Anomaly]:
        frequencies = feature.value_frequencies
        offending = sorted((v for v in frequencies if v.value not in domain), key=lambda v: -v.frequency)
        if not offending:
            return []

        total = sum(v.frequency for v in frequencies)
        unexpected_mass = sum(v.frequency for v in offending)
        in_domain_mass = (total - unexpected_mass) / total if total > 0 else 0.0
        if spec.min_domain_mass is not None and in_domain_mass >= spec.min_domain_mass:
            return []

        shown = offending[: self.config.max_offending_values]
        listed = ", ".join(
            f"{v.value} (~{v.frequency / total:.0%})" if total > 0 else v.value for v in shown
        )
        more = len(offending) - len(shown)
        if more > 0:
            listed += f", and {more} more"

        return [
            Anomaly(
                path=spec.path,
                type=AnomalyType.ENUM_UNEXPECTED_VALUES,
                severity=Severity.ERROR,
                description=f"Examples contain values missing from the schema: {listed}.",
                details={
                    "unexpected_values": [v.value for v in shown],
                    "num_unexpected_values": len(offending),
                    "in_domain_mass": in_domain_mass,
                    "domain": domain.name,
                },
            )
        ]

    def _check_range(
        self, spec: FeatureSpec, feature: FeatureStatsView, domain: IntDomain | FloatDomain
    ) -> list[Anomaly]:
        violations = []
        details = {}
        if domain.min is not None and feature.min is not None and feature.min < domain.min:
            violations.append(f"observed min {_fmt(feature.min)} vs declared min {_fmt(domain.min)}")
            details["observed_min"] = feature.min
            details["declared_min"] = domain.min
        if domain.max is not None and feature.max is not None and feature.max > domain.max:
            violations.append(f"observed max {_fmt(feature.max)} vs declared max {_fmt(domain.max)}")
            details["observed_max"] = feature.max
            details["declared_max"] = domain.max
        if not violations:
            return []

        return [
            Anomaly(
                path=spec.path,
                type=AnomalyType.VALUE_OUT_OF_RANGE,
                severity=Severity.ERROR,
                description="Out-of-range values: " + "; ".join(violations),
                details=details,
            )
        ]

    def _check_bool(self, spec: FeatureSpec, feature: FeatureStatsView, domain: BoolDomain) -> list[Anomaly]:
        if feature.type.is_string:
            allowed = {domain.true_value, domain.false_value}
            unexpected = [v.value for v in feature.value_frequencies if v.value not in allowed]
            if not unexpected:
                return []
            shown = unexpected[: self.config.max_offending_values]
            description = (
                f"Saw values other than {domain.true_value!r} and {domain.false_value!r}: "
                f"{', '.join(shown)}"
            )
            details = {"unexpected_values": shown}
        else:
            low, high = feature.min, feature.max
            if (low is None or low >= 0) and (high is None or high <= 1):
                return []
            description = f"Integers (such as {_fmt(high if high is not None and high > 1 else low)}) not in {{0, 1}}"
            details = {"observed_min": low, "observed_max": high}

        return [
            Anomaly(
                path=spec.path,
                type=AnomalyType.BOOL_UNEXPECTED_VALUES,
                severity=Severity.ERROR,
                description=description,
                details=details,
            )
        ]

    def _check_distribution(self, spec: FeatureSpec, feature: FeatureStatsView) -> list[Anomaly]:
        targets = (
            (
                ComparisonTarget.PREVIOUS,
                feature.get_previous(),
                spec.drift_comparator,
                self.config.drift_comparator,
            ),
            (
                ComparisonTarget.SERVING,
                feature.get_serving(),
                spec.skew_comparator,
                self.config.skew_comparator,
            ),
        )

        l_infty: list[_Comparison] = []
        jensen_shannon: list[_Comparison] = []
        for target, other, feature_comparator, default in targets:
            if other is None or (feature_comparator is None and not default.is_enabled):
                continue
            infinity_norm, js_threshold = _thresholds(feature_comparator, default)

            if feature.type.is_string and infinity_norm is not None:
                distance, value = l_infinity_distance(feature.value_frequencies, other.value_frequencies)
                if distance > infinity_norm:
                    l_infty.append(_Comparison(target, distance, infinity_norm, value))

            if feature.type.is_numeric and js_threshold is not None and (feature.histogram or other.histogram):
                divergence = jensen_shannon_divergence(feature.histogram, other.histogram)
                if divergence > js_threshold:
                    jensen_shannon.append(_Comparison(target, divergence, js_threshold))

        candidates = []
        if l_infty:
            parts = [
                f"between current and {c.target} is {c.distance:.6g}, above the threshold {_fmt(c.threshold)}"
                + (f" (largest difference at {c.value!r})" if c.value is not None else "")
                for c in l_infty
            ]
            candidates.append(
                Anomaly(
                    path=spec.path,
                    type=AnomalyType.COMPARATOR_L_INFTY_HIGH,
                    severity=Severity.WARNING,
                    description="The Linfty distance " + "; and ".join(parts) + ".",
                    details={"comparisons": [c.to_dict() for c in l_infty]},
                )
            )
        if jensen_shannon:
            parts = [
                f"between current and {c.target} is {c.distance:.6g}, above the threshold {_fmt(c.threshold)}"
                for c in jensen_shannon
            ]
            candidates.append(
                Anomaly(
                    path=spec.path,
                    type=AnomalyType.COMPARATOR_JENSEN_SHANNON_HIGH,
                    severity=Severity.WARNING,
                    description="The approximate Jensen-Shannon divergence " + "; and ".join(parts) + ".",
                    details={"comparisons": [c.to_dict() for c in jensen_shannon]},
                )
            )
        return candidates

    def _check_num_examples(self, schema: Schema, view: DatasetStatsView) -> Anomaly | None:
        minimum = schema.min_examples_count
        num_examples = view.statistics.num_examples
        if minimum is None or num_examples >= minimum:
            return None
        return Anomaly(
            path=Path(),
            type=AnomalyType.DATASET_LOW_NUM_EXAMPLES,
            severity=Severity.ERROR,
            description=f"The dataset has {num_examples} examples, fewer than the expected minimum of {minimum}.",
            details={"num_examples": num_examples, "min_examples_count": minimum},
        )


def _thresholds(
    feature_comparator: Comparator | None, default: ComparatorConfig
) -> tuple[float | None, float | None]:
    """Per-feature thresholds, falling back field by field to the configured defaults."""
    infinity_norm = default.infinity_norm
    jensen_shannon = default.jensen_shannon
    if feature_comparator is not None:
        if feature_comparator.infinity_norm is not None:
            infinity_norm = feature_comparator.infinity_norm
        if feature_comparator.jensen_shannon is not None:
            jensen_shannon = feature_comparator.jensen_shannon
    return infinity_norm, jensen_shannon


# =============================================================================
# Convenience Functions
# =============================================================================


def find_changes(
    schema: Schema,
    view: DatasetStatsView,
    config: ValidationConfig | None = None,
    paths_to_check: Iterable[PathLike] | None = None,
) -> AnomaliesReport:
    """
    Convenience function to compare statistics against a schema.

    Args:
        schema: Declared constraints
        view: Statistics under test
        config: Validation thresholds
        paths_to_check: Optional restriction to a subset of paths

    Returns:
        AnomaliesReport
    """
    engine = DiffEngine(config)
    return engine.find_changes(schema, view, paths_to_check)
