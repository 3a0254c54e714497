"""Configuration models module with Pydantic models for configuration validation."""

from __future__ import annotations

from .base import BaseConfig
from .meter import (
    LayoutConfig,
    LimitsConfig,
    LoggingConfig,
    MeterConfig,
    ReferencePolicyConfig,
)

__all__ = [
    # Base model
    "BaseConfig",
    # Meter configuration
    "LayoutConfig",
    "LimitsConfig",
    "LoggingConfig",
    "MeterConfig",
    "ReferencePolicyConfig",
]
