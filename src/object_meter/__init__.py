"""Estimate the memory footprint of live Python object graphs.

Quick use::

    from object_meter import measure_deep, measure_shallow

    measure_shallow(obj)  # bytes of obj alone
    measure_deep(obj)     # bytes of obj and everything reachable from it

Build a ``MeasurementSpec`` (or load one through ``object_meter.config``) to
choose the size strategy, exclusion policy and caps.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable

from object_meter.core import (
    AttributionReport,
    CannotMeasureObject,
    Guard,
    GuardPolicy,
    MeasurementAborted,
    MeasurementError,
    MeasurementSpec,
    MemoryLayout,
    MemoryMeter,
    StrategyUnavailable,
    TreePrinter,
    Unmetered,
    UnsupportedReferenceKind,
    select_strategy,
    unmetered,
)
from object_meter.types import (
    BufferMode,
    EdgeKind,
    MeasurementResult,
    ReferencePolicy,
    StrategyChoice,
)

__version__ = "0.1.0"

_default_meter: MemoryMeter | None = None
_default_lock = threading.Lock()


def default_meter() -> MemoryMeter:
    """Return the shared meter used when no spec is given, creating it once."""
    global _default_meter
    with _default_lock:
        if _default_meter is None:
            _default_meter = MemoryMeter(MeasurementSpec.build())
        return _default_meter


def _meter_for(spec: MeasurementSpec | None) -> MemoryMeter:
    return default_meter() if spec is None else MemoryMeter(spec)


def measure(roots: Iterable[object], spec: MeasurementSpec | None = None) -> MeasurementResult:
    """Measure several roots together, counting shared objects once."""
    return _meter_for(spec).measure(roots)


def measure_deep(root: object, spec: MeasurementSpec | None = None) -> int:
    """Bytes of ``root`` and every distinct object reachable from it."""
    return _meter_for(spec).measure_deep(root)


def measure_shallow(obj: object, spec: MeasurementSpec | None = None) -> int:
    """Bytes of ``obj`` alone."""
    return _meter_for(spec).measure_shallow(obj)


__all__ = [
    "AttributionReport",
    "BufferMode",
    "CannotMeasureObject",
    "EdgeKind",
    "Guard",
    "GuardPolicy",
    "MeasurementAborted",
    "MeasurementError",
    "MeasurementResult",
    "MeasurementSpec",
    "MemoryLayout",
    "MemoryMeter",
    "ReferencePolicy",
    "StrategyChoice",
    "StrategyUnavailable",
    "TreePrinter",
    "Unmetered",
    "UnsupportedReferenceKind",
    "default_meter",
    "measure",
    "measure_deep",
    "measure_shallow",
    "select_strategy",
    "unmetered",
]
