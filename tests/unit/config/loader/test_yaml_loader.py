"""Tests for YAML configuration loader."""

from __future__ import annotations

from pathlib import Path

import pytest

from object_meter.config.exceptions import ConfigLoadError
from object_meter.config.loader.yaml_loader import YamlLoader


class TestYamlLoader:
    """Test suite for YamlLoader class."""

    def test_load_mapping(self, tmp_path: Path) -> None:
        """Test loading a valid YAML mapping."""
        config_file = tmp_path / "object_meter.yaml"
        _ = config_file.write_text(
            "strategy: specification\nlimits:\n  max_objects: 100\n",
            encoding="utf-8",
        )

        result = YamlLoader().load(config_file)

        assert result == {"strategy": "specification", "limits": {"max_objects": 100}}

    def test_empty_file_is_empty_mapping(self, tmp_path: Path) -> None:
        """Test that an empty file yields no settings."""
        config_file = tmp_path / "empty.yaml"
        _ = config_file.write_text("", encoding="utf-8")

        assert YamlLoader().load(config_file) == {}

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        """Test that an unreadable file raises ConfigLoadError."""
        missing = tmp_path / "missing.yaml"

        with pytest.raises(ConfigLoadError) as exc_info:
            _ = YamlLoader().load(missing)

        assert exc_info.value.file_path == str(missing)

    def test_invalid_yaml_raises(self, tmp_path: Path) -> None:
        """Test that a parse error raises ConfigLoadError."""
        config_file = tmp_path / "broken.yaml"
        _ = config_file.write_text("limits: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigLoadError, match="Failed to load"):
            _ = YamlLoader().load(config_file)

    def test_non_mapping_raises(self, tmp_path: Path) -> None:
        """Test that a top-level list is rejected."""
        config_file = tmp_path / "list.yaml"
        _ = config_file.write_text("- specification\n", encoding="utf-8")

        with pytest.raises(ConfigLoadError, match="must be a mapping"):
            _ = YamlLoader().load(config_file)
