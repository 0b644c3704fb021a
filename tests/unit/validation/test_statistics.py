"""
Tests for Statistics Records

Tests parsing of statistics documents into records.
"""

import pytest

from feature_contracts.validation.errors import ParseError
from feature_contracts.validation.path import Path
from feature_contracts.validation.statistics import (
    DatasetStatistics,
    FeatureStatistics,
    StatsType,
)


@pytest.fixture
def statistics_dict():
    """A statistics document with a nested struct and weighted stats."""
    return {
        "name": "train",
        "num_examples": 10,
        "weighted_num_examples": 25.0,
        "features": [
            {
                "path": ["user"],
                "type": "STRUCT",
                "num_non_missing": 10,
            },
            {
                "path": ["user", "age"],
                "type": "INT",
                "num_non_missing": 9,
                "num_missing": 1,
                "min_num_values": 1,
                "max_num_values": 1,
                "min": 3,
                "max": 70,
                "histogram": [{"low": 3, "high": 70, "count": 9}],
                "weighted": {"num_non_missing": 20.0, "num_missing": 5.0},
            },
            {
                "name": "country",
                "type": "STRING",
                "num_non_missing": 10,
                "unique": 2,
                "top_values": [
                    {"value": "us", "frequency": 7},
                    {"value": "ca", "frequency": 3},
                ],
            },
        ],
    }


def test_from_dict(statistics_dict):
    """Test parsing a complete statistics document."""
    stats = DatasetStatistics.from_dict(statistics_dict)

    assert stats.name == "train"
    assert stats.num_examples == 10
    assert stats.weighted_num_examples == 25.0
    assert stats.num_features == 3

    age = stats.get_feature_stats(Path.parse("user.age"))
    assert age is not None
    assert age.type == StatsType.INT
    assert age.num_missing == 1
    assert age.histogram[0].count == 9
    assert age.weighted.num_non_missing == 20.0

    country = stats.get_feature_stats(Path.parse("country"))
    assert country.name == "country"
    assert [v.value for v in country.top_values] == ["us", "ca"]


def test_get_feature_stats_absent(statistics_dict):
    """Test that an absent path returns None."""
    stats = DatasetStatistics.from_dict(statistics_dict)

    assert stats.get_feature_stats(Path.parse("missing")) is None


def test_to_dict_round_trip(statistics_dict):
    """Test that to_dict output parses back into an equal record."""
    stats = DatasetStatistics.from_dict(statistics_dict)

    assert DatasetStatistics.from_dict(stats.to_dict()) == stats


def test_type_properties():
    """Test numeric and string type groups."""
    assert StatsType.INT.is_numeric and StatsType.FLOAT.is_numeric
    assert StatsType.STRING.is_string and StatsType.BYTES.is_string
    assert not StatsType.STRUCT.is_numeric and not StatsType.STRUCT.is_string


@pytest.mark.parametrize(
    "feature",
    [
        {"name": "x", "type": "DECIMAL", "num_non_missing": 1},
        {"name": "x", "type": "INT"},
        {"name": "x", "type": "INT", "num_non_missing": -1},
        {"name": "x", "type": "INT", "num_non_missing": 1, "colour": "red"},
        {"name": "x", "type": "INT", "num_non_missing": 1, "min": "low"},
        {"name": "x", "type": "INT", "num_non_missing": 1, "max": float("nan")},
        {"name": "x", "type": "INT", "num_non_missing": True},
        {"name": "x", "type": "INT", "num_non_missing": 1, "histogram": [{"low": 5, "high": 1, "count": 1}]},
        {"name": "x", "type": "STRING", "num_non_missing": 1, "top_values": [{"value": 1, "frequency": 1}]},
        {"type": "INT", "num_non_missing": 1},
    ],
)
def test_malformed_feature_raises_parse_error(feature):
    """Test that malformed feature records are rejected."""
    with pytest.raises(ParseError):
        FeatureStatistics.from_dict(feature)


def test_duplicate_paths_rejected():
    """Test that a document listing a feature twice is rejected."""
    document = {
        "num_examples": 1,
        "features": [
            {"name": "x", "type": "INT", "num_non_missing": 1},
            {"path": ["x"], "type": "INT", "num_non_missing": 1},
        ],
    }

    with pytest.raises(ParseError, match="duplicate"):
        DatasetStatistics.from_dict(document)


def test_missing_num_examples_rejected():
    """Test that num_examples is required."""
    with pytest.raises(ParseError, match="num_examples"):
        DatasetStatistics.from_dict({"features": []})


def test_non_mapping_document_rejected():
    """Test that a list is not a statistics document."""
    with pytest.raises(ParseError):
        DatasetStatistics.from_dict([1, 2, 3])
