"""Type definitions and protocols shared by the measurement components.

This package provides:
- Data models (immutable dataclasses and enums)
- Protocol definitions (structural subtyping interfaces)
"""

from object_meter.types.models import (
    BufferMode,
    Diagnostic,
    DiagnosticKind,
    Edge,
    EdgeKind,
    FieldDescriptor,
    MeasurementResult,
    ReferencePolicy,
    StrategyChoice,
)
from object_meter.types.protocols import (
    ChildSink,
    Measurable,
    MeasurementListener,
    MeterListenerFactory,
    SizeStrategy,
)

__all__ = [
    # Data models
    "BufferMode",
    "Diagnostic",
    "DiagnosticKind",
    "Edge",
    "EdgeKind",
    "FieldDescriptor",
    "MeasurementResult",
    "ReferencePolicy",
    "StrategyChoice",
    # Protocols
    "ChildSink",
    "Measurable",
    "MeasurementListener",
    "MeterListenerFactory",
    "SizeStrategy",
]
