"""Configuration merging for combining the file and environment sources."""

from __future__ import annotations

import copy
from typing import Any

from ..exceptions import ConfigMergeError

# Config systems need flexible types
type ConfigDict = dict[str, Any]  # pyright: ignore[reportExplicitAny]


class ConfigMerger:
    """Deep-merge configuration dictionaries, later sources taking precedence."""

    def __init__(self, track_sources: bool = False) -> None:
        """Initialize ConfigMerger.

        Args:
            track_sources: Record which source provided each value
        """
        self._track_sources: bool = track_sources
        self._audit_trail: dict[str, str] = {}

    def merge(self, base: object, override: object) -> ConfigDict:
        """Merge two configuration dictionaries with override precedence.

        Args:
            base: Base configuration dictionary
            override: Override configuration dictionary (takes precedence)

        Returns:
            New merged dictionary; neither input is modified

        Raises:
            ConfigMergeError: If an input is not a dictionary or a mapping
                would be replaced by a scalar
        """
        return self.merge_multiple([base, override], names=["base", "override"])

    def merge_multiple(self, sources: list[object], names: list[str] | None = None) -> ConfigDict:
        """Merge several configuration sources, left to right.

        Args:
            sources: Configuration dictionaries, later ones take precedence
            names: Source names recorded in the audit trail

        Returns:
            Merged configuration dictionary
        """
        result: ConfigDict = {}
        for index, source in enumerate(sources):
            if not isinstance(source, dict):
                raise ConfigMergeError(f"Source {index} must be a dictionary")
            source_name = names[index] if names and index < len(names) else f"source_{index}"
            self._deep_merge(result, source, source_name, "")  # pyright: ignore[reportUnknownArgumentType]
        return result

    def _deep_merge(self, target: ConfigDict, source: ConfigDict, source_name: str, path: str) -> None:
        for key, value in source.items():  # pyright: ignore[reportAny]
            current_path = f"{path}.{key}" if path else key
            existing = target.get(key)  # pyright: ignore[reportAny]

            if isinstance(existing, dict) and isinstance(value, dict):
                self._deep_merge(existing, value, source_name, current_path)  # pyright: ignore[reportUnknownArgumentType]
                continue
            if isinstance(existing, dict) and value is None:
                # a null section falls back to its defaults
                del target[key]
                continue
            if isinstance(existing, dict):
                raise ConfigMergeError(
                    f"Cannot replace section '{current_path}' with a {type(value).__name__}",  # pyright: ignore[reportAny]
                    current_path,
                )

            target[key] = copy.deepcopy(value)
            if self._track_sources:
                self._record(current_path, value, source_name)

    def _record(self, path: str, value: object, source_name: str) -> None:
        self._audit_trail[path] = source_name
        if isinstance(value, dict):
            for key, nested in value.items():  # pyright: ignore[reportUnknownVariableType]
                self._record(f"{path}.{key}", nested, source_name)  # pyright: ignore[reportUnknownArgumentType]

    def get_audit_trail(self) -> dict[str, str]:
        """Return which source provided each configuration path."""
        return self._audit_trail.copy()

    def clear_audit_trail(self) -> None:
        self._audit_trail.clear()
