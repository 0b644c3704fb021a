"""
Feature Contracts - Schema Inference and Update

Derives FeatureSpecs from a statistics view, and widens an existing schema so
that it admits what the view observed. Widening is monotone and saturating:
an enum only grows, a range only grows, presence and value-count constraints
only relax, so applying the same statistics twice changes nothing the second
time.

Usage:
    schema = infer_schema(DatasetStatsView(stats))

    # Widen only two features, leave everything else untouched
    schema = update_schema(schema, DatasetStatsView(new_stats), paths=["age", "city"])
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import replace

from feature_contracts.shared.config import ValidationConfig
from feature_contracts.validation.path import Path, PathLike
from feature_contracts.validation.schema import (
    Domain,
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
from feature_contracts.validation.statistics import StatsType
from feature_contracts.validation.statistics_view import DatasetStatsView, FeatureStatsView

logger = logging.getLogger(__name__)


# =============================================================================
# Inference of new features
# =============================================================================


def infer_feature_spec(feature: FeatureStatsView, config: ValidationConfig) -> FeatureSpec:
    """
    Build a FeatureSpec for a feature the schema does not declare yet.

    - Type: observed type (STRING and BYTES both become BYTES)
    - Domain: enumerated values for string features with at most
      `enum_threshold` distinct values, observed [min, max] for numeric
      features, none otherwise
    - Presence: required when present in every example, optional otherwise;
      min_count never exceeds the observed present count
    - Value count: [1, 1] for single-valued features, [1, inf) otherwise
    """
    feature_type = FeatureType.from_stats_type(feature.type)

    if feature.num_missing == 0 and feature.num_present >= feature.dataset.num_examples > 0:
        presence = Presence(min_fraction=1.0, min_count=1)
    else:
        presence = Presence(min_fraction=0.0, min_count=1)
    presence = _relax_presence(presence, feature)

    value_count = None
    if feature_type is not FeatureType.STRUCT and feature.min_num_values >= 1:
        value_count = ValueCount(min=1, max=1 if feature.max_num_values == 1 else None)

    return FeatureSpec(
        path=feature.path,
        type=feature_type,
        presence=presence,
        value_count=value_count,
        domain=_infer_domain(feature, feature_type, config),
    )


def infer_feature_specs(feature: FeatureStatsView, config: ValidationConfig) -> list[FeatureSpec]:
    """Infer a feature and, for structs, every feature nested below it, in path order."""
    specs = [infer_feature_spec(feature, config)]
    for child in feature.children():
        specs.extend(infer_feature_specs(child, config))
    return specs


def _infer_domain(
    feature: FeatureStatsView, feature_type: FeatureType, config: ValidationConfig
) -> Domain | None:
    if feature_type is FeatureType.BYTES:
        distinct = feature.distinct_count
        frequencies = feature.value_frequencies
        # An enum is only inferred when the record lists every distinct value
        if distinct is not None and distinct <= config.enum_threshold and len(frequencies) >= distinct:
            ranked = sorted(frequencies, key=lambda v: -v.frequency)
            return StringDomain(values=tuple(dict.fromkeys(v.value for v in ranked)))
        return None

    if feature.min is None or feature.max is None:
        return None
    if feature_type is FeatureType.INT:
        return IntDomain(min=math.floor(feature.min), max=math.ceil(feature.max))
    if feature_type is FeatureType.FLOAT:
        return FloatDomain(min=float(feature.min), max=float(feature.max))
    return None


# =============================================================================
# Widening of existing features
# =============================================================================


def widen_feature_spec(
    spec: FeatureSpec,
    feature: FeatureStatsView,
    string_domain: StringDomain | None = None,
) -> tuple[FeatureSpec, StringDomain | None]:
    """
    Widen a FeatureSpec just enough to admit the observed feature.

    Args:
        spec: Existing spec
        feature: Observed statistics for the same path
        string_domain: Current state of the named domain the feature refers to

    Returns:
        (spec, named_domain): the widened spec and the widened named domain,
        or the inputs unchanged when nothing needs to change. Observations
        of an incompatible type leave the FeatureSpec untouched.
    """
    feature_type = spec.type
    domain = spec.domain

    # INT widens to FLOAT; every other type change is not a widening
    if spec.type is FeatureType.INT and feature.type is StatsType.FLOAT:
        feature_type = FeatureType.FLOAT
        if isinstance(domain, IntDomain):
            domain = FloatDomain(
                min=float(domain.min) if domain.min is not None else None,
                max=float(domain.max) if domain.max is not None else None,
            )
    if not feature_type.accepts(feature.type):
        return spec, string_domain

    if spec.domain_ref is not None and string_domain is not None:
        string_domain = _widen_string_domain(string_domain, feature)
    elif domain is not None:
        domain = _widen_domain(domain, feature)

    # Relax the presence that actually applied to this slice
    environment = feature.dataset.environment
    presence = spec.presence
    environment_presence = spec.environment_presence
    if any(env == environment for env, _ in environment_presence):
        environment_presence = tuple(
            (env, _relax_presence(p, feature) if env == environment else p)
            for env, p in environment_presence
        )
    else:
        presence = _relax_presence(presence, feature)

    widened = replace(
        spec,
        type=feature_type,
        domain=domain,
        presence=presence,
        environment_presence=environment_presence,
        value_count=_relax_value_count(spec.value_count, feature),
    )
    return widened, string_domain


def _widen_domain(domain: Domain, feature: FeatureStatsView) -> Domain:
    if isinstance(domain, StringDomain):
        return _widen_string_domain(domain, feature)
    if isinstance(domain, IntDomain):
        low = domain.min
        high = domain.max
        if low is not None and feature.min is not None and feature.min < low:
            low = math.floor(feature.min)
        if high is not None and feature.max is not None and feature.max > high:
            high = math.ceil(feature.max)
        return IntDomain(min=low, max=high)
    if isinstance(domain, FloatDomain):
        low = domain.min
        high = domain.max
        if low is not None and feature.min is not None and feature.min < low:
            low = float(feature.min)
        if high is not None and feature.max is not None and feature.max > high:
            high = float(feature.max)
        return FloatDomain(min=low, max=high)
    # BoolDomain has nothing to widen into
    return domain


def _widen_string_domain(domain: StringDomain, feature: FeatureStatsView) -> StringDomain:
    ranked = sorted(feature.value_frequencies, key=lambda v: -v.frequency)
    new_values = [v.value for v in ranked if v.value not in domain]
    if not new_values:
        return domain
    return replace(domain, values=domain.values + tuple(dict.fromkeys(new_values)))


def _relax_presence(presence: Presence, feature: FeatureStatsView) -> Presence:
    min_fraction = min(presence.min_fraction, feature.fraction_present)
    min_count = min(presence.min_count, math.floor(feature.num_present))
    if min_fraction == presence.min_fraction and min_count == presence.min_count:
        return presence
    return Presence(min_fraction=min_fraction, min_count=min_count)


def _relax_value_count(value_count: ValueCount | None, feature: FeatureStatsView) -> ValueCount | None:
    if value_count is None or feature.is_all_missing:
        return value_count
    low, high = value_count.min, value_count.max
    if low is not None and feature.min_num_values < low:
        low = feature.min_num_values
    if high is not None and feature.max_num_values > high:
        high = feature.max_num_values
    if (low, high) == (value_count.min, value_count.max):
        return value_count
    return ValueCount(min=low, max=high)


# =============================================================================
# Schema-level operations
# =============================================================================


def update_schema(
    schema: Schema | None,
    view: DatasetStatsView,
    config: ValidationConfig | None = None,
    paths: Iterable[PathLike] | None = None,
) -> Schema:
    """
    Create or widen FeatureSpecs so the schema admits the observed statistics.

    Args:
        schema: Existing schema (None starts from an empty schema)
        view: Statistics to accommodate; its environment gates which
            existing specs may be widened
        config: Inference thresholds
        paths: Restrict the update to these paths. None considers every
            path in the statistics.

    Returns:
        A new Schema. Existing specs keep their order and every field the
        update did not need to touch; new specs are appended in path order.
    """
    config = config or ValidationConfig()
    schema = schema or Schema()

    if paths is None:
        candidates = view.paths()
    else:
        candidates = sorted({Path.parse(p) for p in paths})

    added: dict[Path, FeatureSpec] = {}
    widened: list[FeatureSpec] = []
    named_domains: dict[str, StringDomain] = {}

    for path in candidates:
        feature = view.get_by_path(path)
        if feature is None:
            continue

        spec = schema.get_feature(path)
        if spec is None:
            for ancestor in path.ancestors():
                ancestor_view = view.get_by_path(ancestor)
                if schema.get_feature(ancestor) is None and ancestor_view is not None:
                    added.setdefault(ancestor, infer_feature_spec(ancestor_view, config))
            added.setdefault(path, infer_feature_spec(feature, config))
            continue

        if not schema.is_active(path, view.environment):
            continue

        current_domain = None
        if spec.domain_ref is not None:
            current_domain = named_domains.get(spec.domain_ref) or schema.get_string_domain(spec.domain_ref)
        new_spec, new_domain = widen_feature_spec(spec, feature, current_domain)
        if new_spec != spec:
            widened.append(new_spec)
        if new_domain is not None and new_domain != current_domain:
            named_domains[new_domain.name] = new_domain  # type: ignore[index]

    patch = SchemaPatch(
        features=tuple(widened) + tuple(added[p] for p in sorted(added)),
        string_domains=tuple(named_domains.values()),
    )

    logger.debug(
        f"Schema update: {len(added)} new, {len(widened)} widened, "
        f"{len(named_domains)} named domains widened",
        extra={"new_features": len(added), "widened_features": len(widened)},
    )

    return schema.apply(patch)


def infer_schema(view: DatasetStatsView, config: ValidationConfig | None = None) -> Schema:
    """Infer a schema from scratch."""
    return update_schema(Schema(), view, config)
