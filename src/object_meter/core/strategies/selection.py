"""One-time selection of the size strategy."""

from __future__ import annotations

import logging
from collections.abc import Callable

from object_meter.core.errors import StrategyUnavailable
from object_meter.core.fields import FieldCache
from object_meter.core.layout import MemoryLayout
from object_meter.core.strategies.base import BaseSizeStrategy
from object_meter.core.strategies.instrumentation import InstrumentationStrategy, SizeFacility
from object_meter.core.strategies.offset_probing import OffsetProbingStrategy
from object_meter.core.strategies.specification import SpecificationStrategy
from object_meter.types.models import StrategyChoice

logger = logging.getLogger(__name__)

type StrategyBuilder = Callable[[], BaseSizeStrategy]


def _candidates(
    choice: StrategyChoice,
    layout: MemoryLayout,
    field_cache: FieldCache | None,
    facility: SizeFacility | None,
) -> list[StrategyBuilder]:
    def instrumentation() -> BaseSizeStrategy:
        return InstrumentationStrategy(facility)

    def offset_probing() -> BaseSizeStrategy:
        return OffsetProbingStrategy(layout, field_cache)

    def specification() -> BaseSizeStrategy:
        return SpecificationStrategy(layout, field_cache)

    match choice:
        case StrategyChoice.INSTRUMENTATION:
            return [instrumentation]
        case StrategyChoice.SPECIFICATION:
            return [specification]
        case StrategyChoice.OFFSET_PROBING:
            return [offset_probing]
        case StrategyChoice.FALLBACK_SPEC:
            return [instrumentation, specification]
        case StrategyChoice.FALLBACK_OFFSET_PROBING:
            return [instrumentation, offset_probing]
        case StrategyChoice.BEST:
            return [instrumentation, offset_probing, specification]


def select_strategy(
    choice: StrategyChoice | str = StrategyChoice.BEST,
    layout: MemoryLayout | None = None,
    field_cache: FieldCache | None = None,
    facility: SizeFacility | None = None,
) -> BaseSizeStrategy:
    """Construct the size strategy named by ``choice``.

    Fallback choices try each candidate in order and keep the first one whose
    capability probe succeeds. Selection happens once so that a measurement
    either runs with a working strategy or fails before any traversal.

    Args:
        choice: Strategy or fallback chain to use
        layout: Memory layout for the layout-based strategies
        field_cache: Cache of per-class field metadata
        facility: Size query for the instrumentation strategy

    Returns:
        The constructed strategy

    Raises:
        StrategyUnavailable: If no candidate in the chain is available
    """
    choice = StrategyChoice(choice)
    layout = layout or MemoryLayout.effective()

    last_error: StrategyUnavailable | None = None
    for build in _candidates(choice, layout, field_cache, facility):
        try:
            strategy = build()
        except StrategyUnavailable as exc:
            logger.debug("Strategy '%s' unavailable: %s", exc.strategy_name, exc.reason)
            last_error = exc
            continue

        logger.info(
            "Using size strategy '%s' for choice '%s' (layout: %s)",
            strategy.name,
            choice.value,
            layout.describe(),
        )
        return strategy

    assert last_error is not None
    raise last_error
