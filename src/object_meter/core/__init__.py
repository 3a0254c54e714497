"""Measurement core: strategies, enumeration, guards and the traversal engine.

Nothing in this package depends on the configuration layer; configuration is
turned into a ``MeasurementSpec`` by ``MeasurementSpec.from_config``.
"""

from __future__ import annotations

from .engine import MemoryMeter
from .enumerator import ChildCollector, ReferenceEnumerator
from .errors import (
    CannotMeasureObject,
    MeasurementAborted,
    MeasurementError,
    StrategyUnavailable,
    UnsupportedReferenceKind,
)
from .fields import ClassLayout, FieldCache, FieldInfo, Unmetered, qualified_name, unmetered
from .guards import (
    ExcludedFieldGuard,
    Guard,
    GuardFailureLog,
    GuardPolicy,
    KnownSingletonGuard,
    SharedConstantGuard,
    TypeBoundaryGuard,
    TypeMetadataGuard,
    UnmeteredGuard,
    WeakReferentGuard,
)
from .layout import MemoryLayout, round_to
from .listeners import AttributionReport, CompositeListener, NoopListener, TreePrinter
from .spec import MeasurementSpec
from .strategies import (
    InstrumentationStrategy,
    OffsetProbingStrategy,
    SpecificationStrategy,
    select_strategy,
)
from .visited import IdentityVisitedSet

__all__ = [
    # Engine
    "MeasurementSpec",
    "MemoryMeter",
    # Strategies and layout
    "InstrumentationStrategy",
    "MemoryLayout",
    "OffsetProbingStrategy",
    "SpecificationStrategy",
    "round_to",
    "select_strategy",
    # Reflection
    "ChildCollector",
    "ClassLayout",
    "FieldCache",
    "FieldInfo",
    "ReferenceEnumerator",
    "Unmetered",
    "qualified_name",
    "unmetered",
    # Guards
    "ExcludedFieldGuard",
    "Guard",
    "GuardFailureLog",
    "GuardPolicy",
    "KnownSingletonGuard",
    "SharedConstantGuard",
    "TypeBoundaryGuard",
    "TypeMetadataGuard",
    "UnmeteredGuard",
    "WeakReferentGuard",
    # Traversal state and listeners
    "AttributionReport",
    "CompositeListener",
    "IdentityVisitedSet",
    "NoopListener",
    "TreePrinter",
    # Errors
    "CannotMeasureObject",
    "MeasurementAborted",
    "MeasurementError",
    "StrategyUnavailable",
    "UnsupportedReferenceKind",
]
