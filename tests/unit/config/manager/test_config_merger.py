"""Tests for configuration merging."""

from __future__ import annotations

import pytest

from object_meter.config.exceptions import ConfigMergeError
from object_meter.config.manager.config_merger import ConfigMerger


class TestConfigMerger:
    """Test suite for ConfigMerger class."""

    def test_override_wins(self) -> None:
        """Test that later sources take precedence."""
        merger = ConfigMerger()

        result = merger.merge({"strategy": "best"}, {"strategy": "specification"})

        assert result == {"strategy": "specification"}

    def test_nested_sections_are_merged(self) -> None:
        """Test deep merging of sections."""
        merger = ConfigMerger()
        base = {"limits": {"max_objects": 10, "timeout_seconds": 1.0}}
        override = {"limits": {"max_objects": 20}}

        result = merger.merge(base, override)

        assert result == {"limits": {"max_objects": 20, "timeout_seconds": 1.0}}

    def test_inputs_are_not_modified(self) -> None:
        """Test that merging copies its inputs."""
        merger = ConfigMerger()
        base = {"reference_policy": {"excluded_type_prefixes": ["logging."]}}

        result = merger.merge(base, {})
        result["reference_policy"]["excluded_type_prefixes"].append("asyncio.")

        assert base == {"reference_policy": {"excluded_type_prefixes": ["logging."]}}

    def test_null_section_falls_back_to_defaults(self) -> None:
        """Test that a null override removes the section."""
        merger = ConfigMerger()

        result = merger.merge({"limits": {"max_objects": 10}}, {"limits": None})

        assert result == {}

    def test_scalar_over_section_raises(self) -> None:
        """Test that a section cannot be replaced by a scalar."""
        merger = ConfigMerger()

        with pytest.raises(ConfigMergeError) as exc_info:
            _ = merger.merge({"limits": {"max_objects": 10}}, {"limits": 5})

        assert exc_info.value.config_path == "limits"

    def test_non_dict_source_raises(self) -> None:
        """Test source type validation."""
        with pytest.raises(ConfigMergeError, match="must be a dictionary"):
            _ = ConfigMerger().merge({}, ["not", "a", "dict"])

    def test_merge_multiple_with_audit_trail(self) -> None:
        """Test that tracked merges record the providing source."""
        merger = ConfigMerger(track_sources=True)

        _ = merger.merge_multiple(
            [{"strategy": "best", "limits": {"max_objects": 1}}, {"strategy": "specification"}],
            names=["file", "env"],
        )
        trail = merger.get_audit_trail()

        assert trail["strategy"] == "env"
        assert trail["limits.max_objects"] == "file"

        merger.clear_audit_trail()
        assert merger.get_audit_trail() == {}
