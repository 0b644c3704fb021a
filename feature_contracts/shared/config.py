"""
Feature Contracts - Configuration Loader

Pydantic-based configuration management with:
- Profile-based configuration (dev/prod)
- YAML file loading with inheritance
- Environment variable overrides
- Type validation via Pydantic

Usage:
    from feature_contracts.shared.config import get_config

    config = get_config()  # Uses FC_PROFILE env var
    config = get_config("prod")  # Explicit profile

    # Access config values
    threshold = config.validation.enum_threshold
    skew = config.validation.skew_comparator.infinity_norm
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_ENUM_THRESHOLD = 400
PROFILES = ("dev", "prod")

# =============================================================================
# Configuration Models
# =============================================================================


class ProjectConfig(BaseModel):
    """Project metadata configuration."""

    name: str = "feature-contracts"
    version: str = "0.1.0"
    description: str = "Statistics-vs-schema validation and schema inference"


class ComparatorConfig(BaseModel):
    """Default distance thresholds for one comparison target.

    A threshold left as None disables that distance unless a feature
    carries its own comparator in the schema.
    """

    infinity_norm: float | None = Field(default=None, ge=0.0, le=1.0)
    jensen_shannon: float | None = Field(default=None, ge=0.0, le=1.0)

    @property
    def is_enabled(self) -> bool:
        return self.infinity_norm is not None or self.jensen_shannon is not None


class ValidationConfig(BaseModel):
    """Thresholds and switches used by the diff and inference engines."""

    enum_threshold: int = Field(default=DEFAULT_ENUM_THRESHOLD, ge=0)
    new_features_are_warnings: bool = False
    max_offending_values: int = Field(default=10, ge=1)

    # previous-span comparison
    drift_comparator: ComparatorConfig = Field(default_factory=ComparatorConfig)
    # serving-data comparison
    skew_comparator: ComparatorConfig = Field(default_factory=ComparatorConfig)


class CodecConfig(BaseModel):
    """Document codec configuration."""

    default_format: Literal["json", "yaml"] = "json"
    indent: int | None = 2


# =============================================================================
# Main Settings Class
# =============================================================================


class Settings(BaseSettings):
    """
    Main configuration class for Feature Contracts.

    Loads configuration from:
    1. YAML files in configs/profiles/
    2. Environment variables (FC_ prefix, "__" for nesting)

    Environment variables take precedence over YAML values.
    """

    model_config = SettingsConfigDict(
        env_prefix="FC_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Profile
    profile: Literal["dev", "prod"] = "dev"

    # Configuration sections
    project: ProjectConfig = Field(default_factory=ProjectConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    codec: CodecConfig = Field(default_factory=CodecConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: Any,
        env_settings: Any,
        dotenv_settings: Any,
        file_secret_settings: Any,
    ) -> tuple[Any, ...]:
        # FC_* variables override the YAML values passed in as init kwargs
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @field_validator("profile", mode="before")
    @classmethod
    def validate_profile(cls, v: str) -> str:
        """Validate profile value."""
        if v not in PROFILES:
            raise ValueError(f"Invalid profile: {v}. Must be one of: {PROFILES}")
        return v


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def _get_config_dir() -> Path | None:
    """Get the configuration directory path, or None when there is none."""
    # Repository checkout: <root>/feature_contracts/shared/config.py
    config_dir = Path(__file__).parent.parent.parent / "configs"
    if config_dir.exists():
        return config_dir

    # Try from current working directory
    config_dir = Path.cwd() / "configs"
    if config_dir.exists():
        return config_dir

    return None


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents."""
    if not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_config_for_profile(profile: str) -> dict[str, Any]:
    """Load and merge configuration for a specific profile."""
    config_dir = _get_config_dir()
    if config_dir is None:
        logger.debug("No configs directory found, using built-in defaults")
        return {"profile": profile}

    profiles_dir = config_dir / "profiles"

    base_config = _load_yaml_file(profiles_dir / "base.yaml")
    profile_config = _load_yaml_file(profiles_dir / f"{profile}.yaml")

    # Remove inheritance marker if present
    profile_config.pop("_inherit", None)

    merged = _deep_merge(base_config, profile_config)
    merged["profile"] = profile

    return merged


@lru_cache(maxsize=4)
def get_config(profile: str | None = None) -> Settings:
    """
    Get configuration for the specified profile.

    Args:
        profile: Profile name (dev, prod).
                 If None, uses FC_PROFILE env var, defaulting to "dev".

    Returns:
        Settings: Validated configuration object.

    Example:
        config = get_config()  # Uses FC_PROFILE or defaults to dev
        config = get_config("prod")

        threshold = config.validation.enum_threshold
    """
    if profile is None:
        profile = os.getenv("FC_PROFILE", "dev")
    if profile not in PROFILES:
        raise ValueError(f"Invalid profile: {profile}. Must be one of: {PROFILES}")

    yaml_config = _load_config_for_profile(profile)

    # Create Settings object (also loads env vars)
    settings = Settings(**yaml_config)
    if settings.profile != profile:
        # FC_PROFILE names a different profile than the one loaded here
        settings = settings.model_copy(update={"profile": profile})
    return settings


def reload_config(profile: str | None = None) -> Settings:
    """
    Reload configuration, clearing the cache.

    Useful for testing or when config files have changed.
    """
    get_config.cache_clear()
    return get_config(profile)
