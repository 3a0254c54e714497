"""Tests for one-time strategy selection."""

from __future__ import annotations

import logging

import pytest

from object_meter.core.errors import StrategyUnavailable
from object_meter.core.layout import MemoryLayout
from object_meter.core.strategies.instrumentation import InstrumentationStrategy
from object_meter.core.strategies.offset_probing import OffsetProbingStrategy
from object_meter.core.strategies.selection import select_strategy
from object_meter.core.strategies.specification import SpecificationStrategy
from object_meter.types.models import StrategyChoice


def broken_facility(obj: object) -> int:
    raise TypeError("no size query on this interpreter")


class TestSelectStrategy:
    """Test suite for select_strategy."""

    def test_specification_choice(self, layout: MemoryLayout) -> None:
        """Test that the specification strategy gets the given layout."""
        strategy = select_strategy(StrategyChoice.SPECIFICATION, layout)

        assert isinstance(strategy, SpecificationStrategy)
        assert strategy.layout is layout

    def test_choice_given_as_string(self, layout: MemoryLayout) -> None:
        """Test that choices can be given by value."""
        assert isinstance(select_strategy("specification", layout), SpecificationStrategy)

    def test_unknown_choice_is_rejected(self) -> None:
        """Test that an unknown choice raises ValueError."""
        with pytest.raises(ValueError):
            _ = select_strategy("fastest")

    def test_instrumentation_without_privilege_fails(self, layout: MemoryLayout) -> None:
        """Test that a single-strategy choice reports unavailability."""
        with pytest.raises(StrategyUnavailable) as exc_info:
            _ = select_strategy(StrategyChoice.INSTRUMENTATION, layout, facility=broken_facility)

        assert exc_info.value.strategy_name == "instrumentation"

    def test_fallback_spec_falls_back(self, layout: MemoryLayout) -> None:
        """Test that the specification strategy backs up instrumentation."""
        strategy = select_strategy(StrategyChoice.FALLBACK_SPEC, layout, facility=broken_facility)

        assert isinstance(strategy, SpecificationStrategy)

    def test_fallback_spec_prefers_instrumentation(self, layout: MemoryLayout) -> None:
        """Test that the first available candidate wins."""
        strategy = select_strategy(StrategyChoice.FALLBACK_SPEC, layout, facility=lambda obj: 8)

        assert isinstance(strategy, InstrumentationStrategy)

    def test_best_walks_the_whole_chain(self, layout: MemoryLayout) -> None:
        """Test that best falls through to a layout-based strategy."""
        strategy = select_strategy(StrategyChoice.BEST, layout, facility=broken_facility)

        assert isinstance(strategy, (OffsetProbingStrategy, SpecificationStrategy))

    def test_fallback_offset_probing_reports_last_failure(self, layout: MemoryLayout) -> None:
        """Test the chain ending in offset probing."""
        try:
            strategy = select_strategy(
                StrategyChoice.FALLBACK_OFFSET_PROBING,
                layout,
                facility=broken_facility,
            )
        except StrategyUnavailable as exc:
            assert exc.strategy_name == "offset_probing"
        else:
            assert isinstance(strategy, OffsetProbingStrategy)

    def test_selection_is_logged(self, layout: MemoryLayout, caplog: pytest.LogCaptureFixture) -> None:
        """Test that the chosen strategy and layout are logged at INFO."""
        caplog.set_level(logging.INFO, logger="object_meter")

        _ = select_strategy(StrategyChoice.SPECIFICATION, layout)

        assert "Using size strategy 'specification' for choice 'specification'" in caplog.text
        assert "header=16" in caplog.text
