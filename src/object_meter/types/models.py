"""Data models shared by the measurement core.

This module defines the immutable dataclasses and enumerations that flow
between the reference enumerator, the guard policy, the traversal engine and
its listeners.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class StrategyChoice(str, Enum):
    """Which size strategy to use, or which fallback chain to walk."""

    INSTRUMENTATION = "instrumentation"
    SPECIFICATION = "specification"
    OFFSET_PROBING = "offset_probing"
    FALLBACK_SPEC = "fallback_spec"  # instrumentation, else specification
    FALLBACK_OFFSET_PROBING = "fallback_offset_probing"  # instrumentation, else offset probing
    BEST = "best"  # instrumentation, else offset probing, else specification


class BufferMode(str, Enum):
    """How ``memoryview`` objects and the buffers they export are accounted."""

    NORMAL = "normal"  # the exporting object is followed like any other reference
    SHALLOW = "shallow"  # the exporting object is not followed
    SLICE_ONLY = "slice_only"  # only the viewed bytes are added, exporter not followed


class EdgeKind(str, Enum):
    """Kind of reference an edge represents."""

    FIELD = "field"
    SLOT = "slot"
    STORAGE = "storage"
    ELEMENT = "element"
    KEY = "key"
    VALUE = "value"
    WEAK_REFERENT = "weak_referent"
    TYPE = "type"
    STATIC = "static"
    BUFFER = "buffer"
    REFERENT = "referent"
    CHILD = "child"


class DiagnosticKind(str, Enum):
    """Kind of caveat recorded while measuring."""

    GUARD_FAILURE = "guard_failure"
    UNSUPPORTED_REFERENCE = "unsupported_reference"
    FIELD_ACCESS_FAILURE = "field_access_failure"


@dataclass(slots=True, frozen=True)
class FieldDescriptor:
    """Identifies the field, slot or container position an edge leaves through.

    ``owner`` is the class declaring the field when one is known; container
    positions carry an ``index`` instead.
    """

    name: str
    kind: EdgeKind
    owner: type | None = None
    index: int | None = None

    def __str__(self) -> str:
        if self.kind in (EdgeKind.ELEMENT, EdgeKind.KEY, EdgeKind.VALUE, EdgeKind.REFERENT):
            return f"{self.name}[{self.index}]"
        return self.name


@dataclass(slots=True, frozen=True, eq=False)
class Edge:
    """A ``(source, descriptor, target)`` reference.

    A ``target`` of ``None`` is the null placeholder: it contributes no size
    and is never traversed. Equality is identity based so that comparing
    edges never calls into the measured objects.
    """

    source: object
    descriptor: FieldDescriptor
    target: object

    @property
    def kind(self) -> EdgeKind:
        return self.descriptor.kind

    @property
    def is_null(self) -> bool:
        return self.target is None


@dataclass(slots=True, frozen=True)
class Diagnostic:
    """A caveat attached to a measurement that still completed."""

    kind: DiagnosticKind
    message: str
    source_type: str | None = None
    descriptor: str | None = None


@dataclass(slots=True, frozen=True)
class MeasurementResult:
    """Immutable outcome of one measurement call.

    Attributes:
        total_bytes: Sum of the shallow sizes of every distinct visited object
        object_count: Number of distinct objects visited
        complete: False when a cap or timeout cut the traversal short
        skipped_edges: Edges the guard policy declined to follow
        diagnostics: Caveats recorded during the measurement
        strategy_name: Name of the size strategy that produced the sizes
    """

    total_bytes: int
    object_count: int
    complete: bool = True
    skipped_edges: int = 0
    diagnostics: tuple[Diagnostic, ...] = ()
    strategy_name: str = ""

    @property
    def has_caveats(self) -> bool:
        """True when the total was produced despite skipped or failed inspections."""
        return bool(self.diagnostics) or not self.complete


@dataclass(slots=True, frozen=True)
class ReferencePolicy:
    """Which kinds of references a measurement follows.

    Attributes:
        follow_statics: Follow class-level data attributes of measured instances
        follow_arrays: Follow container elements, keys and values
        follow_weak_referents: Follow the referent of weak references
        excluded_type_prefixes: ``module.qualname`` prefixes never measured
        excluded_fields: ``(qualified type name, field name)`` pairs never followed
        ignore_known_singletons: Skip enum members and interpreter singletons
        ignore_shared_constants: Skip small ints, empty strings and similar cached constants
    """

    follow_statics: bool = False
    follow_arrays: bool = True
    follow_weak_referents: bool = False
    excluded_type_prefixes: frozenset[str] = frozenset()
    excluded_fields: frozenset[tuple[str, str]] = frozenset()
    ignore_known_singletons: bool = False
    ignore_shared_constants: bool = False
