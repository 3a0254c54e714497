"""Configuration layer: pydantic models, YAML and environment loading."""

from __future__ import annotations

from .exceptions import (
    ConfigError,
    ConfigLoadError,
    ConfigMergeError,
    ConfigValidationError,
    EnvLoadError,
    handle_config_error,
    suggest_config_fix,
)
from .factory import build_meter, load_meter
from .loader import ConfigLoader, EnvLoader, YamlLoader
from .manager import ConfigMerger
from .models import (
    LayoutConfig,
    LimitsConfig,
    LoggingConfig,
    MeterConfig,
    ReferencePolicyConfig,
)

__all__ = [
    # Exception classes
    "ConfigError",
    "ConfigLoadError",
    "ConfigMergeError",
    "ConfigValidationError",
    "EnvLoadError",
    # Utility functions
    "handle_config_error",
    "suggest_config_fix",
    # Loading
    "ConfigLoader",
    "ConfigMerger",
    "EnvLoader",
    "YamlLoader",
    "build_meter",
    "load_meter",
    # Models
    "LayoutConfig",
    "LimitsConfig",
    "LoggingConfig",
    "MeterConfig",
    "ReferencePolicyConfig",
]
