"""
Tests for Schema Inference and Update

Tests inferred feature specs, monotone widening and idempotence.
"""

import pytest

from feature_contracts.shared.config import ValidationConfig
from feature_contracts.validation.inference import infer_schema, update_schema
from feature_contracts.validation.path import Path
from feature_contracts.validation.schema import (
    FeatureType,
    FloatDomain,
    IntDomain,
    Presence,
    Schema,
    StringDomain,
    ValueCount,
)
from feature_contracts.validation.statistics_view import DatasetStatsView

P = Path.parse


@pytest.fixture
def inferred(sample_statistics):
    """Schema inferred from the sample statistics."""
    return infer_schema(DatasetStatsView(sample_statistics))


def test_infer_types_and_domains(inferred):
    """Test the inferred type and domain of each sample feature."""
    age = inferred.get_feature(P("age"))
    income = inferred.get_feature(P("income"))
    city = inferred.get_feature(P("city"))
    comment = inferred.get_feature(P("comment"))

    assert age.type == FeatureType.INT
    assert age.domain == IntDomain(min=18, max=65)
    assert income.type == FeatureType.FLOAT
    assert income.domain == FloatDomain(min=1000.0, max=9000.0)
    assert city.type == FeatureType.BYTES
    assert city.domain == StringDomain(values=("boston", "cambridge", "somerville"))
    # 40 distinct values but only one listed: free text
    assert comment.domain is None


def test_infer_presence_and_value_count(inferred):
    """Test required/optional presence and single-valued value counts."""
    assert inferred.get_feature(P("age")).presence == Presence(min_fraction=1.0, min_count=1)
    assert inferred.get_feature(P("comment")).presence == Presence(min_fraction=0.0, min_count=1)
    assert inferred.get_feature(P("age")).value_count == ValueCount(min=1, max=1)


def test_inferred_schema_validates_its_own_statistics(inferred, sample_statistics):
    """Test that a schema inferred from statistics accepts them."""
    from feature_contracts.validation.diff_engine import find_changes

    inferred.check_consistency()
    assert not find_changes(inferred, DatasetStatsView(sample_statistics)).has_anomalies


def test_enum_order_frequency_then_first_seen(make_feature, make_stats):
    """Test enum ordering by descending frequency, ties in record order."""
    values = [
        {"value": "b", "frequency": 5},
        {"value": "a", "frequency": 10},
        {"value": "c", "frequency": 5},
    ]
    schema = infer_schema(DatasetStatsView(make_stats(make_feature("f", "STRING", unique=3, top_values=values))))

    assert schema.get_feature(P("f")).domain.values == ("a", "b", "c")


def test_enum_threshold(make_feature, make_stats):
    """Test that too many distinct values yields no enum."""
    values = [{"value": "a", "frequency": 1}, {"value": "b", "frequency": 1}]
    view = DatasetStatsView(make_stats(make_feature("f", "STRING", unique=2, top_values=values)))

    assert infer_schema(view, ValidationConfig(enum_threshold=1)).get_feature(P("f")).domain is None
    assert infer_schema(view, ValidationConfig(enum_threshold=2)).get_feature(P("f")).domain is not None


def test_multi_valued_feature(make_feature, make_stats):
    """Test that multi-valued features get an open value count."""
    view = DatasetStatsView(make_stats(make_feature("f", max_num_values=4)))

    assert infer_schema(view).get_feature(P("f")).value_count == ValueCount(min=1, max=None)


def test_struct_children_inferred(make_feature, make_stats):
    """Test that struct features and their children are all inferred."""
    view = DatasetStatsView(
        make_stats(
            make_feature("user", "STRUCT"),
            make_feature("user.age", "INT", min=1, max=9),
        )
    )

    schema = infer_schema(view)

    assert schema.paths() == [P("user"), P("user.age")]
    assert schema.get_feature(P("user")).type == FeatureType.STRUCT
    assert schema.get_feature(P("user")).value_count is None
    schema.check_consistency()


def test_empty_schema_from_empty_statistics(make_stats):
    """Test inference over statistics without features."""
    assert infer_schema(DatasetStatsView(make_stats())) == Schema()


# =============================================================================
# Update / Widening
# =============================================================================


def test_update_is_idempotent(inferred, make_feature, make_stats):
    """Test that applying the same statistics twice changes nothing the second time."""
    view = DatasetStatsView(
        make_stats(
            make_feature("age", min=3, max=99),
            make_feature("city", "STRING", top_values=[{"value": "quincy", "frequency": 4}]),
            make_feature("income", "FLOAT", num_non_missing=50, min=10.0, max=20.0),
            make_feature("new_one", "INT", min=0, max=1),
        )
    )

    once = update_schema(inferred, view)
    twice = update_schema(once, view)

    assert once != inferred
    assert twice == once


@pytest.mark.parametrize(
    "fields",
    [
        {"num_non_missing": 0, "num_missing": 100, "min_num_values": 0, "max_num_values": 0},
        {"weighted": {"num_non_missing": 0.25}},
    ],
    ids=["all_missing", "weighted_below_one"],
)
def test_update_is_idempotent_below_one_present(make_feature, make_stats, fields):
    """Test that features present in fewer than one example infer a stable presence."""
    view = DatasetStatsView(make_stats(make_feature("g", "STRING", **fields)))

    once = infer_schema(view)
    twice = update_schema(once, view)

    assert once.get_feature(P("g")).presence.min_count == 0
    assert twice == once


def test_weighted_feature_present_everywhere_is_required(make_feature, make_stats):
    """Test that weighted presence is judged against the weighted example total."""
    view = DatasetStatsView(make_stats(make_feature("f", weighted={"num_non_missing": 50.0})))

    presence = infer_schema(view).get_feature(P("f")).presence

    assert presence == Presence(min_fraction=1.0, min_count=1)


def test_update_widens_ranges(inferred, make_feature, make_stats):
    """Test that ranges grow to cover observed bounds."""
    view = DatasetStatsView(make_stats(make_feature("age", min=10, max=70)))

    updated = update_schema(inferred, view, paths=["age"])

    assert updated.get_feature(P("age")).domain == IntDomain(min=10, max=70)


def test_update_never_narrows(inferred, make_feature, make_stats):
    """Test that narrower observations leave the schema unchanged."""
    view = DatasetStatsView(
        make_stats(
            make_feature("age", min=30, max=31),
            make_feature("city", "STRING", top_values=[{"value": "boston", "frequency": 100}]),
        )
    )

    assert update_schema(inferred, view, paths=["age", "city"]) == inferred


def test_update_grows_enum(inferred, make_feature, make_stats):
    """Test that new string values are appended to the enum."""
    values = [{"value": "boston", "frequency": 10}, {"value": "quincy", "frequency": 5}]
    view = DatasetStatsView(make_stats(make_feature("city", "STRING", top_values=values)))

    updated = update_schema(inferred, view)

    assert updated.get_feature(P("city")).domain.values == ("boston", "cambridge", "somerville", "quincy")


def test_update_widens_named_domain_in_place(make_feature, make_stats):
    """Test that a named domain grows and the reference stays."""
    schema = Schema.from_dict(
        {
            "string_domains": [{"name": "colors", "values": ["red"]}],
            "features": [
                {"name": "a", "type": "BYTES", "domain": "colors"},
                {"name": "b", "type": "BYTES", "domain": "colors"},
            ],
        }
    )
    view = DatasetStatsView(
        make_stats(
            make_feature("a", "STRING", top_values=[{"value": "blue", "frequency": 1}]),
            make_feature("b", "STRING", top_values=[{"value": "green", "frequency": 1}]),
        )
    )

    updated = update_schema(schema, view)

    assert updated.get_string_domain("colors").values == ("red", "blue", "green")
    assert updated.get_feature(P("a")).domain_ref == "colors"
    assert update_schema(updated, view) == updated


def test_update_int_widens_to_float(inferred, make_feature, make_stats):
    """Test that float data widens an INT feature and its range."""
    view = DatasetStatsView(make_stats(make_feature("age", "FLOAT", min=17.5, max=30.0)))

    age = update_schema(inferred, view).get_feature(P("age"))

    assert age.type == FeatureType.FLOAT
    assert age.domain == FloatDomain(min=17.5, max=65.0)


def test_update_relaxes_presence(inferred, make_feature, make_stats):
    """Test that a required feature becomes optional enough to admit the data."""
    view = DatasetStatsView(make_stats(make_feature("age", num_non_missing=50, num_missing=50, min=20, max=30)))

    age = update_schema(inferred, view).get_feature(P("age"))

    assert age.presence == Presence(min_fraction=0.5, min_count=1)


def test_update_incompatible_type_untouched(inferred, make_feature, make_stats):
    """Test that observations of an incompatible type are not widened into the feature."""
    view = DatasetStatsView(make_stats(make_feature("city", "INT", min=0, max=1)))

    assert update_schema(inferred, view, paths=["city"]) == inferred


def test_update_restriction(inferred, make_feature, make_stats):
    """Test that only restricted paths are created or updated."""
    view = DatasetStatsView(
        make_stats(
            make_feature("age", min=0, max=200),
            make_feature("brand_new"),
        )
    )

    updated = update_schema(inferred, view, paths=["brand_new"])

    assert updated.get_feature(P("age")) == inferred.get_feature(P("age"))
    assert updated.paths()[-1] == P("brand_new")


def test_update_restricted_child_adds_parent(make_feature, make_stats):
    """Test that a restricted nested path brings in its undeclared struct."""
    view = DatasetStatsView(
        make_stats(
            make_feature("user", "STRUCT"),
            make_feature("user.age", min=1, max=2),
            make_feature("user.name", "STRING"),
        )
    )

    schema = update_schema(Schema(), view, paths=["user.age"])

    assert schema.paths() == [P("user"), P("user.age")]


def test_update_skips_inactive_and_deprecated(make_feature, make_stats):
    """Test that inactive and deprecated specs pass through unchanged."""
    schema = Schema.from_dict(
        {
            "features": [
                {"name": "label", "type": "INT", "int_domain": {"max": 1}, "not_in_environment": ["serving"]},
                {"name": "old", "type": "INT", "int_domain": {"max": 1}, "deprecated": True},
            ]
        }
    )
    stats = make_stats(make_feature("label", max=9), make_feature("old", max=9))

    assert update_schema(schema, DatasetStatsView(stats, environment="serving")) == schema
    widened = update_schema(schema, DatasetStatsView(stats, environment="training"))
    assert widened.get_feature(P("label")).domain == IntDomain(max=9)
    assert widened.get_feature(P("old")) == schema.get_feature(P("old"))
