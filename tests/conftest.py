"""
Feature Contracts - Pytest Configuration and Fixtures

Shared fixtures for all tests:
- Configuration fixtures
- Statistics and schema builders
"""

import os
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from feature_contracts.shared.config import ValidationConfig
from feature_contracts.validation.schema import Schema
from feature_contracts.validation.statistics import DatasetStatistics, FeatureStatistics

# Set test profile
os.environ["FC_PROFILE"] = "dev"

# =============================================================================
# Path Fixtures
# =============================================================================


@pytest.fixture
def project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def configs_dir(project_root: Path) -> Path:
    """Get the configs directory."""
    return project_root / "configs"


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def test_config() -> Any:
    """Get test configuration."""
    from feature_contracts.shared.config import get_config, reload_config

    # Ensure fresh config for tests
    reload_config("dev")
    return get_config("dev")


@pytest.fixture
def validation_config() -> ValidationConfig:
    """Validation thresholds with every default."""
    return ValidationConfig()


# =============================================================================
# Statistics Builders
# =============================================================================


@pytest.fixture
def make_feature() -> Callable[..., FeatureStatistics]:
    """Build FeatureStatistics from keyword fields; single-valued and fully present by default."""

    def _build(name: str, type: str = "INT", num_non_missing: int = 100, **fields: Any) -> FeatureStatistics:
        data = {
            "name": name,
            "type": type,
            "num_non_missing": num_non_missing,
            "min_num_values": 1,
            "max_num_values": 1,
            "avg_num_values": 1.0,
        }
        data.update(fields)
        return FeatureStatistics.from_dict(data)

    return _build


@pytest.fixture
def make_stats() -> Callable[..., DatasetStatistics]:
    """Build DatasetStatistics from features."""

    def _build(*features: FeatureStatistics, num_examples: int = 100, **fields: Any) -> DatasetStatistics:
        return DatasetStatistics(num_examples=num_examples, features=tuple(features), **fields)

    return _build


def string_values(*pairs: tuple[str, float]) -> list[dict[str, Any]]:
    return [{"value": v, "frequency": f} for v, f in pairs]


@pytest.fixture
def sample_statistics(make_feature, make_stats) -> DatasetStatistics:
    """A small training dataset: an int, a float and two string features."""
    return make_stats(
        make_feature("age", "INT", min=18, max=65, mean=40.0, unique=48),
        make_feature(
            "income",
            "FLOAT",
            min=1000.0,
            max=9000.0,
            mean=5000.0,
            histogram=[
                {"low": 1000.0, "high": 5000.0, "count": 50},
                {"low": 5000.0, "high": 9000.0, "count": 50},
            ],
        ),
        make_feature(
            "city",
            "STRING",
            unique=3,
            top_values=string_values(("boston", 60), ("cambridge", 30), ("somerville", 10)),
        ),
        make_feature(
            "comment",
            "STRING",
            num_non_missing=40,
            num_missing=60,
            unique=40,
            top_values=string_values(("great", 1)),
        ),
        name="train",
    )


@pytest.fixture
def sample_schema_dict() -> dict[str, Any]:
    """Schema document matching sample_statistics."""
    return {
        "features": [
            {
                "name": "age",
                "type": "INT",
                "presence": {"min_fraction": 1.0, "min_count": 1},
                "value_count": {"min": 1, "max": 1},
                "int_domain": {"min": 0, "max": 120},
            },
            {
                "name": "income",
                "type": "FLOAT",
                "presence": {"min_count": 1},
                "float_domain": {"min": 0.0},
            },
            {
                "name": "city",
                "type": "BYTES",
                "presence": {"min_fraction": 1.0, "min_count": 1},
                "string_domain": {"values": ["boston", "cambridge", "somerville"]},
            },
            {"name": "comment", "type": "BYTES", "presence": {"min_count": 1}},
        ]
    }


@pytest.fixture
def sample_schema(sample_schema_dict) -> Schema:
    """Parsed schema matching sample_statistics."""
    return Schema.from_dict(sample_schema_dict)


# =============================================================================
# Cleanup Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def cleanup_env() -> Generator[None, None, None]:
    """Clean up environment variables after each test."""
    original_env = os.environ.copy()
    yield
    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)
