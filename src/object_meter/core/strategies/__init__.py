"""Size strategies: how large is one object, under which runtime privilege."""

from __future__ import annotations

from .base import BaseSizeStrategy
from .instrumentation import InstrumentationStrategy, SizeFacility
from .offset_probing import OffsetProbingStrategy, slot_offset
from .selection import select_strategy
from .specification import SpecificationStrategy

__all__ = [
    "BaseSizeStrategy",
    "InstrumentationStrategy",
    "OffsetProbingStrategy",
    "SizeFacility",
    "SpecificationStrategy",
    "select_strategy",
    "slot_offset",
]
