"""Configuration loader module for YAML and environment variable loading."""

from __future__ import annotations

from .config_loader import ConfigLoader
from .env_loader import EnvLoader
from .yaml_loader import YamlLoader
from ..exceptions import ConfigLoadError, EnvLoadError

__all__ = [
    "ConfigLoadError",
    "ConfigLoader",
    "EnvLoadError",
    "EnvLoader",
    "YamlLoader",
]
