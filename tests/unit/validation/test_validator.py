"""
Tests for Statistics Validator

Tests the validator facade, option handling and document entry points.
"""

import json
import logging

import pytest

from feature_contracts.shared.config import Settings
from feature_contracts.validation.anomalies import AnomalyType
from feature_contracts.validation.codec import dump_schema, dump_statistics
from feature_contracts.validation.errors import ParseError
from feature_contracts.validation.path import Path
from feature_contracts.validation.schema import Schema
from feature_contracts.validation.validator import (
    FeatureStatisticsValidator,
    ValidationOptions,
    infer_schema,
    infer_schema_document,
    update_schema,
    validate_statistics,
    validate_statistics_document,
)


@pytest.fixture
def settings():
    """Settings with built-in defaults, independent of YAML profiles."""
    return Settings()


def test_validator_initialization(test_config):
    """Test that the validator falls back to the loaded configuration."""
    validator = FeatureStatisticsValidator()

    assert validator.config.profile == test_config.profile


def test_validate_statistics_clean(sample_schema, sample_statistics, settings):
    """Test validation of matching statistics."""
    options = ValidationOptions(schema=sample_schema)

    report = validate_statistics(sample_statistics, options, settings)

    assert not report.has_anomalies


def test_validate_without_schema_flags_everything(sample_statistics, settings):
    """Test that every feature is new without a schema."""
    report = validate_statistics(sample_statistics, config=settings)

    assert {a.type for a in report.all_anomalies} == {AnomalyType.SCHEMA_NEW_FEATURE}
    assert len(report.anomalies) == sample_statistics.num_features


def test_linked_views_follow_training_weighting(make_feature, make_stats, settings):
    """Test that previous and serving views use the training view's weighting."""
    top_values = [{"value": "a", "frequency": 1}]
    weighted = {"num_non_missing": 10.0, "top_values": [{"value": "a", "frequency": 10.0}]}
    training = make_stats(make_feature("c", "STRING", top_values=top_values))
    serving = make_stats(make_feature("c", "STRING", top_values=top_values, weighted=weighted))
    validator = FeatureStatisticsValidator(settings)

    options = ValidationOptions(serving_statistics=serving, environment="serving")
    view = validator.build_view(training, options)

    assert view.by_weight is False
    assert view.serving.by_weight is False
    assert view.environment == "serving"
    assert view.previous is None


def test_validate_with_previous_statistics(make_feature, make_stats):
    """Test drift detection through the facade."""
    settings = Settings(validation={"drift_comparator": {"infinity_norm": 0.1}})
    schema = Schema.from_dict({"features": [{"name": "c", "type": "BYTES"}]})

    def categorical(a, b):
        values = [{"value": "a", "frequency": a}, {"value": "b", "frequency": b}]
        return make_stats(make_feature("c", "STRING", top_values=values))

    options = ValidationOptions(schema=schema, previous_statistics=categorical(50, 50))
    report = validate_statistics(categorical(90, 10), options, settings)

    assert report.get(Path.parse("c")).type == AnomalyType.COMPARATOR_L_INFTY_HIGH


def test_validate_logs_summary(sample_schema, sample_statistics, settings, caplog):
    """Test that each validation call logs at INFO."""
    with caplog.at_level(logging.INFO, logger="feature_contracts.validation.validator"):
        validate_statistics(sample_statistics, ValidationOptions(schema=sample_schema), settings)

    messages = [r.getMessage() for r in caplog.records]
    assert any("Validation complete for train" in m for m in messages)


def test_infer_and_update_schema(sample_statistics, make_feature, make_stats, settings):
    """Test the inference entry points."""
    schema = infer_schema(sample_statistics, settings)
    wider = make_stats(make_feature("age", min=0, max=99))

    updated = update_schema(schema, wider, ValidationOptions(paths_to_check=["age"]), settings)

    assert updated.domain_for(Path.parse("age")).max == 99
    assert updated.domain_for(Path.parse("city")) == schema.domain_for(Path.parse("city"))


def test_update_schema_passes_environment(mocker, sample_schema, sample_statistics, settings):
    """Test that the environment reaches the update engine through the view."""
    engine = mocker.patch(
        "feature_contracts.validation.inference.update_schema", return_value=sample_schema
    )

    FeatureStatisticsValidator(settings).update_schema(
        sample_schema, sample_statistics, ValidationOptions(environment="serving")
    )

    view = engine.call_args.args[1]
    assert view.environment == "serving"


# =============================================================================
# Document Entry Points
# =============================================================================


def test_validate_statistics_document(sample_schema, sample_statistics, make_feature, make_stats, settings):
    """Test validation over JSON documents, empty strings meaning not given."""
    bad = make_stats(make_feature("age", min=0, max=500))

    text = validate_statistics_document(
        dump_statistics(bad),
        schema=dump_schema(sample_schema),
        environment="",
        previous_statistics="",
        serving_statistics="",
        config=settings,
    )
    document = json.loads(text)

    types = {tuple(a["path"]): a["type"] for a in document["anomalies"]}
    assert types[("age",)] == "VALUE_OUT_OF_RANGE"
    assert types[("city",)] == "FEATURE_MISSING"


def test_validate_statistics_document_returns_proposed_enum(make_feature, make_stats):
    """Test that a new feature's inferred enum reaches the report document."""
    settings = Settings(validation={"new_features_are_warnings": True})
    values = [{"value": v, "frequency": f} for v, f in (("x", 50), ("y", 30), ("z", 20))]
    stats = make_stats(make_feature("f2", "STRING", unique=3, top_values=values))

    document = json.loads(validate_statistics_document(dump_statistics(stats), config=settings))

    proposed = document["proposed_schema_patch"]["features"]
    assert [f["path"] for f in proposed] == [["f2"]]
    assert proposed[0]["string_domain"] == {"values": ["x", "y", "z"]}


def test_validate_statistics_document_yaml_output(sample_schema, sample_statistics):
    """Test that the configured codec format is used for output."""
    settings = Settings(codec={"default_format": "yaml"})

    text = validate_statistics_document(
        dump_statistics(sample_statistics), schema=dump_schema(sample_schema), config=settings
    )

    assert text.startswith("data_missing: false")


def test_infer_schema_document(sample_statistics, settings):
    """Test schema inference over documents."""
    document = json.loads(infer_schema_document(dump_statistics(sample_statistics), settings))

    assert [f["name"] for f in document["features"]] == ["age", "city", "comment", "income"]


def test_malformed_document_raises(settings):
    """Test that malformed input documents surface as ParseError."""
    with pytest.raises(ParseError):
        infer_schema_document("{not json", settings)
