"""
launchd-tasker runtime settings public API.

Purpose
- Export settings loading/validation entrypoints, the immutable settings values,
  and the settings error type.
"""

from tasker.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    load_config,
    load_settings,
    normalize_paths,
    reset_runtime_settings,
    runtime_settings,
)
from tasker.config.schema import (
    DEFAULT_CONFIG,
    NAMESPACE,
    ConfigLoadError,
    ConfigValidationIssue,
    RootLayout,
    TaskerSettings,
    assert_valid_config,
    default_config,
    merge_config,
    settings_from_config,
    validate_config,
)

__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "NAMESPACE",
    "ConfigLoadError",
    "ConfigValidationIssue",
    "RootLayout",
    "TaskerSettings",
    "assert_valid_config",
    "default_config",
    "load_config",
    "load_settings",
    "merge_config",
    "normalize_paths",
    "reset_runtime_settings",
    "runtime_settings",
    "settings_from_config",
    "validate_config",
]
