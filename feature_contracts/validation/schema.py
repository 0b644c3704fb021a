"""
Feature Contracts - Schema Model

In-memory form of a feature schema: an ordered list of per-feature
constraints (type, presence, value count, domain) plus dataset-level
settings. Nested struct features are stored flat, keyed by their full Path,
in document order (a struct is always followed by its children).

Schema values are immutable. Changes are expressed as a SchemaPatch and
applied with Schema.apply(), which returns a new Schema.

Usage:
    schema = Schema.from_dict(document)        # ParseError on malformed input
    schema.check_consistency()                 # StateError on type/domain clashes

    if schema.is_active(path, "serving"):
        domain = schema.domain_for(path)

    updated = schema.apply(SchemaPatch(features=(new_spec,)))
    document = updated.to_dict()
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum
from functools import cached_property
from typing import Any, Union

import pandas as pd

from feature_contracts.validation._parsing import (
    as_int,
    as_list,
    as_number,
    as_str_list,
    check_keys,
    require,
)
from feature_contracts.validation.errors import ParseError, StateError
from feature_contracts.validation.path import Path
from feature_contracts.validation.statistics import StatsType


class FeatureType(StrEnum):
    """Declared value type of a feature."""

    INT = "INT"
    FLOAT = "FLOAT"
    BYTES = "BYTES"
    STRUCT = "STRUCT"

    @classmethod
    def from_stats_type(cls, observed: StatsType) -> FeatureType:
        """Declared type that exactly matches an observed type."""
        if observed.is_string:
            return cls.BYTES
        return cls(observed.value)

    def accepts(self, observed: StatsType) -> bool:
        """True when data of the observed type satisfies this declared type."""
        if self is FeatureType.BYTES:
            return observed.is_string
        if self is FeatureType.FLOAT:
            return observed.is_numeric
        return observed.value == self.value


# =============================================================================
# Domains
# =============================================================================


@dataclass(frozen=True)
class StringDomain:
    """Closed set of permitted string values."""

    values: tuple[str, ...] = ()
    name: str | None = None

    def __contains__(self, value: object) -> bool:
        return value in self._value_set

    @cached_property
    def _value_set(self) -> frozenset[str]:
        return frozenset(self.values)

    def describe(self) -> str:
        if self.name:
            return f"'{self.name}'"
        return "{" + ", ".join(repr(v) for v in self.values) + "}"


@dataclass(frozen=True)
class IntDomain:
    """Inclusive integer range; a None bound is open."""

    min: int | None = None
    max: int | None = None

    def describe(self) -> str:
        return _describe_range(self.min, self.max)


@dataclass(frozen=True)
class FloatDomain:
    """Inclusive float range; a None bound is open."""

    min: float | None = None
    max: float | None = None

    def describe(self) -> str:
        return _describe_range(self.min, self.max)


@dataclass(frozen=True)
class BoolDomain:
    """Boolean values, spelled as the given strings when stored as BYTES."""

    true_value: str = "true"
    false_value: str = "false"

    def describe(self) -> str:
        return f"bool({self.true_value!r}, {self.false_value!r})"


Domain = Union[StringDomain, IntDomain, FloatDomain, BoolDomain]
RangeDomain = Union[IntDomain, FloatDomain]


def _describe_range(low: float | None, high: float | None) -> str:
    low_str = "-inf" if low is None else str(low)
    high_str = "inf" if high is None else str(high)
    return f"[{low_str}, {high_str}]"


# =============================================================================
# Feature constraints
# =============================================================================


@dataclass(frozen=True)
class Presence:
    """How often a feature must be present."""

    min_fraction: float = 0.0
    min_count: int = 0

    @property
    def is_required(self) -> bool:
        return self.min_fraction >= 1.0

    def describe(self) -> str:
        return "required" if self.is_required else "optional"


@dataclass(frozen=True)
class ValueCount:
    """Permitted number of values per example; a None bound is open."""

    min: int | None = None
    max: int | None = None

    def describe(self) -> str:
        if self.min == 1 and self.max == 1:
            return "single"
        return _describe_range(self.min, self.max)


@dataclass(frozen=True)
class Comparator:
    """Per-feature distance thresholds for skew or drift checks."""

    infinity_norm: float | None = None
    jensen_shannon: float | None = None


@dataclass(frozen=True)
class FeatureSpec:
    """Constraints declared for one feature."""

    path: Path
    type: FeatureType
    presence: Presence = field(default_factory=Presence)
    value_count: ValueCount | None = None
    domain: Domain | None = None
    # name of a schema-level StringDomain, mutually exclusive with `domain`
    domain_ref: str | None = None
    in_environment: tuple[str, ...] = ()
    not_in_environment: tuple[str, ...] = ()
    environment_presence: tuple[tuple[str, Presence], ...] = ()
    deprecated: bool = False
    min_domain_mass: float | None = None
    skew_comparator: Comparator | None = None
    drift_comparator: Comparator | None = None

    @property
    def name(self) -> str:
        return str(self.path)

    def presence_in(self, environment: str | None) -> Presence:
        """Presence constraint after applying any per-environment override."""
        if environment is not None:
            for env, presence in self.environment_presence:
                if env == environment:
                    return presence
        return self.presence


@dataclass(frozen=True)
class SchemaPatch:
    """
    Proposed additions and widenings for a schema.

    `features` holds new FeatureSpecs and replacements for existing ones;
    `string_domains` holds replacements for named string domains.
    """

    features: tuple[FeatureSpec, ...] = ()
    string_domains: tuple[StringDomain, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.features and not self.string_domains

    def paths(self) -> list[Path]:
        return [spec.path for spec in self.features]

    def to_dict(self) -> dict[str, Any]:
        """Serialize the patch, naming every feature by its full path."""
        return {
            "features": [{"path": spec.path.to_list(), **_feature_to_dict(spec)} for spec in self.features],
            "string_domains": [{"name": d.name, "values": list(d.values)} for d in self.string_domains],
        }


# =============================================================================
# Schema
# =============================================================================


_DOMAIN_KEYS = ("string_domain", "domain", "int_domain", "float_domain", "bool_domain")

_FEATURE_KEYS = (
    "name",
    "type",
    "presence",
    "value_count",
    *_DOMAIN_KEYS,
    "in_environment",
    "not_in_environment",
    "environment_presence",
    "deprecated",
    "distribution_constraints",
    "skew_comparator",
    "drift_comparator",
    "struct_domain",
)


@dataclass(frozen=True)
class Schema:
    """Ordered per-feature constraints plus dataset-level settings."""

    features: tuple[FeatureSpec, ...] = ()
    string_domains: tuple[StringDomain, ...] = ()
    default_environments: tuple[str, ...] = ()
    min_examples_count: int | None = None

    # -------------------------------------------------------------------------
    # Structural queries
    # -------------------------------------------------------------------------

    @cached_property
    def _index(self) -> dict[Path, FeatureSpec]:
        return {spec.path: spec for spec in self.features}

    @cached_property
    def _domains_by_name(self) -> dict[str, StringDomain]:
        return {d.name: d for d in self.string_domains if d.name}

    def paths(self) -> list[Path]:
        """Feature paths in schema order."""
        return [spec.path for spec in self.features]

    def get_feature(self, path: Path) -> FeatureSpec | None:
        return self._index.get(path)

    def get_string_domain(self, name: str) -> StringDomain | None:
        return self._domains_by_name.get(name)

    def domain_for(self, path: Path) -> Domain | None:
        """Domain applying to a feature, resolving named string domains."""
        spec = self.get_feature(path)
        if spec is None:
            return None
        if spec.domain_ref is not None:
            return self.get_string_domain(spec.domain_ref)
        return spec.domain

    def is_active(self, path: Path, environment: str | None) -> bool:
        """
        True when a non-deprecated FeatureSpec exists for the path and it, and
        every struct it is nested in, applies to the environment.
        """
        spec = self.get_feature(path)
        if spec is None or spec.deprecated:
            return False
        for ancestor in path.ancestors():
            parent = self.get_feature(ancestor)
            if parent is not None and not self._in_environment(parent, environment):
                return False
        return self._in_environment(spec, environment)

    def required_in(self, path: Path, environment: str | None) -> bool:
        spec = self.get_feature(path)
        return spec is not None and spec.presence_in(environment).is_required

    def _in_environment(self, spec: FeatureSpec, environment: str | None) -> bool:
        if environment is None:
            return True
        if environment in spec.in_environment:
            return True
        if environment in spec.not_in_environment:
            return False
        if spec.in_environment:
            return False
        return not self.default_environments or environment in self.default_environments

    # -------------------------------------------------------------------------
    # Patching
    # -------------------------------------------------------------------------

    def apply(self, patch: SchemaPatch) -> Schema:
        """
        Merge a patch into a new Schema.

        Existing paths keep their position; new paths are appended in the
        order the patch lists them. Named string domains are replaced by name
        or appended.
        """
        if patch.is_empty:
            return self

        replacements = {spec.path: spec for spec in patch.features}
        features = [replacements.pop(spec.path, spec) for spec in self.features]
        for spec in patch.features:
            if spec.path in replacements:
                features.append(replacements.pop(spec.path))

        domain_replacements = {d.name: d for d in patch.string_domains}
        string_domains = [domain_replacements.pop(d.name, d) for d in self.string_domains]
        for domain in patch.string_domains:
            if domain.name in domain_replacements:
                string_domains.append(domain_replacements.pop(domain.name))

        return replace(self, features=tuple(features), string_domains=tuple(string_domains))

    # -------------------------------------------------------------------------
    # Consistency
    # -------------------------------------------------------------------------

    def check_consistency(self) -> None:
        """
        Check the schema before it is compared against statistics.

        Raises:
            StateError: If a domain does not fit its feature's type, a named
                domain is unknown, or a nested feature's parent is not a STRUCT
        """
        for spec in self.features:
            if spec.path.depth > 1:
                parent = self.get_feature(spec.path.parent())
                if parent is None:
                    raise StateError(f"Feature '{spec.path}' is nested under an undeclared feature")
                if parent.type is not FeatureType.STRUCT:
                    raise StateError(
                        f"Feature '{spec.path}' is nested under '{parent.path}' "
                        f"of type {parent.type}, expected STRUCT"
                    )

            if spec.domain_ref is not None and self.get_string_domain(spec.domain_ref) is None:
                raise StateError(f"Feature '{spec.path}' references unknown domain '{spec.domain_ref}'")

            domain = self.domain_for(spec.path)
            if domain is not None and not _domain_fits(domain, spec.type):
                raise StateError(
                    f"Feature '{spec.path}' of type {spec.type} cannot carry "
                    f"a {type(domain).__name__}"
                )

    # -------------------------------------------------------------------------
    # Document conversion
    # -------------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Any) -> Schema:
        """
        Parse a schema document.

        Raises:
            ParseError: If the document is malformed or self-contradictory
        """
        where = "schema"
        check_keys(
            data,
            ("features", "string_domains", "default_environments", "dataset_constraints"),
            where,
        )

        string_domains = []
        for i, raw in enumerate(as_list(data.get("string_domains", []), f"{where}.string_domains")):
            domain_where = f"{where}.string_domains[{i}]"
            check_keys(raw, ("name", "values"), domain_where)
            name = require(raw, "name", domain_where)
            if not isinstance(name, str) or not name:
                raise ParseError(f"{domain_where}.name: expected a non-empty string")
            if any(d.name == name for d in string_domains):
                raise ParseError(f"{where}: duplicate string domain '{name}'")
            values = as_str_list(raw.get("values", []), f"{domain_where}.values")
            string_domains.append(StringDomain(values=values, name=name))

        features: list[FeatureSpec] = []
        _parse_features(data.get("features", []), Path(), features, f"{where}.features")

        seen: set[Path] = set()
        for spec in features:
            if spec.path in seen:
                raise ParseError(f"{where}: duplicate feature '{spec.path}'")
            seen.add(spec.path)

        min_examples_count = None
        if "dataset_constraints" in data:
            constraints = check_keys(
                data["dataset_constraints"], ("min_examples_count",), f"{where}.dataset_constraints"
            )
            min_examples_count = as_int(
                constraints.get("min_examples_count"),
                f"{where}.dataset_constraints.min_examples_count",
                allow_none=True,
            )

        return cls(
            features=tuple(features),
            string_domains=tuple(string_domains),
            default_environments=as_str_list(
                data.get("default_environments", []), f"{where}.default_environments"
            ),
            min_examples_count=min_examples_count,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize the schema, re-nesting struct children under their parents."""
        result: dict[str, Any] = {"features": self._features_to_dicts(Path())}
        if self.string_domains:
            result["string_domains"] = [
                {"name": d.name, "values": list(d.values)} for d in self.string_domains
            ]
        if self.default_environments:
            result["default_environments"] = list(self.default_environments)
        if self.min_examples_count is not None:
            result["dataset_constraints"] = {"min_examples_count": self.min_examples_count}
        return result

    def _features_to_dicts(self, parent: Path) -> list[dict[str, Any]]:
        children = [
            spec
            for spec in self.features
            if spec.path.depth == parent.depth + 1 and spec.path.parent() == parent
        ]
        result = []
        for spec in children:
            item = _feature_to_dict(spec)
            if spec.type is FeatureType.STRUCT:
                item["struct_domain"] = {"features": self._features_to_dicts(spec.path)}
            result.append(item)
        return result

    def to_dataframe(self) -> pd.DataFrame:
        """One row per feature: type, presence, valency and domain."""
        rows = []
        for spec in self.features:
            domain = self.domain_for(spec.path)
            rows.append(
                {
                    "Feature name": str(spec.path),
                    "Type": spec.type.value,
                    "Presence": spec.presence.describe(),
                    "Valency": spec.value_count.describe() if spec.value_count else "",
                    "Domain": domain.describe() if domain is not None else "-",
                }
            )
        columns = ["Feature name", "Type", "Presence", "Valency", "Domain"]
        return pd.DataFrame(rows, columns=columns).set_index("Feature name")


def _domain_fits(domain: Domain, feature_type: FeatureType) -> bool:
    if isinstance(domain, StringDomain):
        return feature_type is FeatureType.BYTES
    if isinstance(domain, IntDomain):
        return feature_type is FeatureType.INT
    if isinstance(domain, FloatDomain):
        return feature_type is FeatureType.FLOAT
    if isinstance(domain, BoolDomain):
        return feature_type in (FeatureType.INT, FeatureType.BYTES)
    raise StateError(f"Unknown domain kind {type(domain).__name__}")


# =============================================================================
# Parsing helpers
# =============================================================================


def _parse_features(raw: Any, parent: Path, out: list[FeatureSpec], where: str) -> None:
    for i, item in enumerate(as_list(raw, where)):
        item_where = f"{where}[{i}]"
        check_keys(item, _FEATURE_KEYS, item_where)
        name = require(item, "name", item_where)
        if not isinstance(name, str) or not name:
            raise ParseError(f"{item_where}.name: expected a non-empty string")
        path = parent.child(name)
        out.append(_parse_feature(item, path, f"feature '{path}'"))

        if "struct_domain" in item:
            struct = check_keys(item["struct_domain"], ("features",), f"feature '{path}'.struct_domain")
            _parse_features(struct.get("features", []), path, out, f"feature '{path}'.struct_domain.features")


def _parse_feature(item: dict[str, Any], path: Path, where: str) -> FeatureSpec:
    raw_type = require(item, "type", where)
    try:
        feature_type = FeatureType(raw_type)
    except ValueError as e:
        raise ParseError(f"{where}: unknown type {raw_type!r}") from e

    domain_keys = [k for k in _DOMAIN_KEYS if k in item]
    if len(domain_keys) > 1:
        raise ParseError(f"{where}: conflicting domains {domain_keys}")

    domain: Domain | None = None
    domain_ref = None
    if "domain" in item:
        domain_ref = item["domain"]
        if not isinstance(domain_ref, str) or not domain_ref:
            raise ParseError(f"{where}.domain: expected a domain name")
    elif domain_keys:
        domain = _parse_domain(domain_keys[0], item[domain_keys[0]], f"{where}.{domain_keys[0]}")

    in_environment = as_str_list(item.get("in_environment", []), f"{where}.in_environment")
    not_in_environment = as_str_list(item.get("not_in_environment", []), f"{where}.not_in_environment")
    both = sorted(set(in_environment) & set(not_in_environment))
    if both:
        raise ParseError(f"{where}: environment(s) {both} are both included and excluded")

    environment_presence = []
    raw_overrides = item.get("environment_presence", {})
    if not isinstance(raw_overrides, dict) or not all(isinstance(k, str) for k in raw_overrides):
        raise ParseError(f"{where}.environment_presence: expected a mapping keyed by environment")
    for env in sorted(raw_overrides):
        environment_presence.append(
            (env, _parse_presence(raw_overrides[env], f"{where}.environment_presence.{env}"))
        )

    deprecated = item.get("deprecated", False)
    if not isinstance(deprecated, bool):
        raise ParseError(f"{where}.deprecated: expected a boolean")

    min_domain_mass = None
    if "distribution_constraints" in item:
        constraints = check_keys(
            item["distribution_constraints"], ("min_domain_mass",), f"{where}.distribution_constraints"
        )
        min_domain_mass = _parse_fraction(
            constraints.get("min_domain_mass"), f"{where}.distribution_constraints.min_domain_mass"
        )

    return FeatureSpec(
        path=path,
        type=feature_type,
        presence=_parse_presence(item.get("presence", {}), f"{where}.presence"),
        value_count=(
            _parse_value_count(item["value_count"], f"{where}.value_count")
            if "value_count" in item
            else None
        ),
        domain=domain,
        domain_ref=domain_ref,
        in_environment=in_environment,
        not_in_environment=not_in_environment,
        environment_presence=tuple(environment_presence),
        deprecated=deprecated,
        min_domain_mass=min_domain_mass,
        skew_comparator=_parse_comparator(item.get("skew_comparator"), f"{where}.skew_comparator"),
        drift_comparator=_parse_comparator(item.get("drift_comparator"), f"{where}.drift_comparator"),
    )


def _parse_fraction(value: Any, where: str) -> float | None:
    number = as_number(value, where, allow_none=True)
    if number is not None and not 0.0 <= number <= 1.0:
        raise ParseError(f"{where}: expected a fraction in [0, 1], got {number}")
    return number


def _parse_presence(raw: Any, where: str) -> Presence:
    check_keys(raw, ("min_fraction", "min_count"), where)
    min_fraction = _parse_fraction(raw.get("min_fraction"), f"{where}.min_fraction")
    min_count = as_int(raw.get("min_count"), f"{where}.min_count", allow_none=True)
    return Presence(
        min_fraction=min_fraction if min_fraction is not None else 0.0,
        min_count=min_count if min_count is not None else 0,
    )


def _parse_bounds(raw: Any, where: str, integral: bool) -> tuple[Any, Any]:
    check_keys(raw, ("min", "max"), where)
    if integral:
        low = as_int(raw.get("min"), f"{where}.min", allow_none=True, non_negative=False)
        high = as_int(raw.get("max"), f"{where}.max", allow_none=True, non_negative=False)
    else:
        low = as_number(raw.get("min"), f"{where}.min", allow_none=True)
        high = as_number(raw.get("max"), f"{where}.max", allow_none=True)
    if low is not None and high is not None and low > high:
        raise ParseError(f"{where}: min {low} is greater than max {high}")
    return low, high


def _parse_value_count(raw: Any, where: str) -> ValueCount:
    low, high = _parse_bounds(raw, where, integral=True)
    if (low is not None and low < 0) or (high is not None and high < 0):
        raise ParseError(f"{where}: value counts cannot be negative")
    return ValueCount(min=low, max=high)


def _parse_domain(kind: str, raw: Any, where: str) -> Domain:
    if kind == "string_domain":
        check_keys(raw, ("values",), where)
        return StringDomain(values=as_str_list(raw.get("values", []), f"{where}.values"))
    if kind == "int_domain":
        low, high = _parse_bounds(raw, where, integral=True)
        return IntDomain(min=low, max=high)
    if kind == "float_domain":
        low, high = _parse_bounds(raw, where, integral=False)
        return FloatDomain(min=low, max=high)

    check_keys(raw, ("true_value", "false_value"), where)
    domain = BoolDomain(
        true_value=raw.get("true_value", "true"), false_value=raw.get("false_value", "false")
    )
    if not isinstance(domain.true_value, str) or not isinstance(domain.false_value, str):
        raise ParseError(f"{where}: true_value and false_value must be strings")
    if domain.true_value == domain.false_value:
        raise ParseError(f"{where}: true_value and false_value are both {domain.true_value!r}")
    return domain


def _parse_comparator(raw: Any, where: str) -> Comparator | None:
    if raw is None:
        return None
    check_keys(raw, ("infinity_norm", "jensen_shannon"), where)
    return Comparator(
        infinity_norm=_parse_fraction(raw.get("infinity_norm"), f"{where}.infinity_norm"),
        jensen_shannon=_parse_fraction(raw.get("jensen_shannon"), f"{where}.jensen_shannon"),
    )


# =============================================================================
# Serialization helpers
# =============================================================================


def _bounds_to_dict(low: Any, high: Any) -> dict[str, Any]:
    result = {}
    if low is not None:
        result["min"] = low
    if high is not None:
        result["max"] = high
    return result


def _presence_to_dict(presence: Presence) -> dict[str, Any]:
    result: dict[str, Any] = {}
    if presence.min_fraction:
        result["min_fraction"] = presence.min_fraction
    if presence.min_count:
        result["min_count"] = presence.min_count
    return result


def _comparator_to_dict(comparator: Comparator) -> dict[str, Any]:
    result = {}
    if comparator.infinity_norm is not None:
        result["infinity_norm"] = comparator.infinity_norm
    if comparator.jensen_shannon is not None:
        result["jensen_shannon"] = comparator.jensen_shannon
    return result


def _feature_to_dict(spec: FeatureSpec) -> dict[str, Any]:
    item: dict[str, Any] = {"name": spec.path.name, "type": spec.type.value}

    presence = _presence_to_dict(spec.presence)
    if presence:
        item["presence"] = presence
    if spec.value_count is not None:
        item["value_count"] = _bounds_to_dict(spec.value_count.min, spec.value_count.max)

    domain = spec.domain
    if spec.domain_ref is not None:
        item["domain"] = spec.domain_ref
    elif isinstance(domain, StringDomain):
        item["string_domain"] = {"values": list(domain.values)}
    elif isinstance(domain, IntDomain):
        item["int_domain"] = _bounds_to_dict(domain.min, domain.max)
    elif isinstance(domain, FloatDomain):
        item["float_domain"] = _bounds_to_dict(domain.min, domain.max)
    elif isinstance(domain, BoolDomain):
        item["bool_domain"] = {"true_value": domain.true_value, "false_value": domain.false_value}

    if spec.in_environment:
        item["in_environment"] = list(spec.in_environment)
    if spec.not_in_environment:
        item["not_in_environment"] = list(spec.not_in_environment)
    if spec.environment_presence:
        item["environment_presence"] = {
            env: _presence_to_dict(presence) for env, presence in spec.environment_presence
        }
    if spec.deprecated:
        item["deprecated"] = True
    if spec.min_domain_mass is not None:
        item["distribution_constraints"] = {"min_domain_mass": spec.min_domain_mass}
    if spec.skew_comparator is not None:
        item["skew_comparator"] = _comparator_to_dict(spec.skew_comparator)
    if spec.drift_comparator is not None:
        item["drift_comparator"] = _comparator_to_dict(spec.drift_comparator)
    return item
