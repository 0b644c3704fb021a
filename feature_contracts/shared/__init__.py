from feature_contracts.shared.config import (
    ComparatorConfig,
    Settings,
    ValidationConfig,
    get_config,
    reload_config,
)

__all__ = [
    "get_config",
    "reload_config",
    "Settings",
    "ValidationConfig",
    "ComparatorConfig",
]
