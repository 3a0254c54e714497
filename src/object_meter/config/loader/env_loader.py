"""Environment variable configuration loader."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from typing import cast

from ..exceptions import EnvLoadError

DEFAULT_PREFIX = "OBJECT_METER_"
NESTING_SEPARATOR = "__"


class EnvLoader:
    """Read configuration overrides from prefixed environment variables.

    ``OBJECT_METER_STRATEGY=specification`` sets ``strategy`` and
    ``OBJECT_METER_LIMITS__MAX_OBJECTS=10000`` sets ``limits.max_objects``:
    a double underscore nests, single underscores stay part of the field name.
    """

    def __init__(
        self,
        prefix: str = DEFAULT_PREFIX,
        convert_types: bool = True,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize EnvLoader.

        Args:
            prefix: Prefix for environment variables to load
            convert_types: Whether to convert booleans, numbers, null and JSON values
            environ: Variables to read instead of ``os.environ``
        """
        self.prefix: str = prefix
        self.convert_types: bool = convert_types
        self._environ: Mapping[str, str] | None = environ

    def load(self) -> dict[str, object]:
        """Load configuration from environment variables.

        Returns:
            Nested dictionary of overrides

        Raises:
            EnvLoadError: If a variable cannot be interpreted
        """
        environ = self._environ if self._environ is not None else os.environ
        config: dict[str, object] = {}

        for env_var in sorted(environ):
            if not env_var.startswith(self.prefix):
                continue
            config_key = env_var[len(self.prefix):]
            if not config_key:
                continue

            keys = [key for key in config_key.lower().split(NESTING_SEPARATOR)]
            if not all(keys):
                raise EnvLoadError(f"Malformed nesting in {env_var}", env_var)

            raw_value = environ[env_var]
            value: object = self._convert_value(raw_value, env_var) if self.convert_types else raw_value
            self._set_nested_value(config, keys, value, env_var)

        return config

    def _convert_value(self, value: str, env_var: str) -> object:
        """Convert a string value to the Python type it spells.

        Args:
            value: String value to convert
            env_var: Environment variable name (for error reporting)

        Returns:
            Converted value

        Raises:
            EnvLoadError: If JSON parsing fails
        """
        stripped = value.strip()
        if not stripped:
            return value

        lower_value = stripped.lower()
        if lower_value in ("true", "yes", "on"):
            return True
        if lower_value in ("false", "no", "off"):
            return False
        if lower_value in ("null", "none"):
            return None

        numeric_value = self._try_numeric_conversion(stripped)
        if numeric_value is not None:
            return numeric_value

        if stripped.startswith(("[", "{")):
            try:
                return cast(object, json.loads(stripped))
            except json.JSONDecodeError as e:
                raise EnvLoadError(f"Failed to parse JSON for {env_var}: {e}", env_var) from e

        return stripped

    def _try_numeric_conversion(self, value: str) -> int | float | None:
        try:
            if "." not in value and "e" not in value.lower():
                return int(value)
            return float(value)
        except ValueError:
            return None

    def _set_nested_value(self, config: dict[str, object], keys: list[str], value: object, env_var: str) -> None:
        current: dict[str, object] = config
        for key in keys[:-1]:
            existing = current.setdefault(key, {})
            if not isinstance(existing, dict):
                raise EnvLoadError(
                    f"{env_var} nests below '{key}', which is already set to a value",
                    env_var,
                )
            current = existing  # pyright: ignore[reportUnknownVariableType]
        current[keys[-1]] = value
