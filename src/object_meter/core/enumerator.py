"""Structural enumeration of an object's outgoing references.

Values are read the way the interpreter lays them out: slots through their
member descriptors, instance dicts through ``object.__getattribute__`` and
containers through the builtin types' own iterators. User-level hooks such
as ``__getattr__``, properties or overridden ``__iter__`` are never invoked.
"""

from __future__ import annotations

import array
import collections
import gc
import logging
import types
import weakref
from collections.abc import Callable, Iterable, Iterator

from object_meter.core.errors import UnsupportedReferenceKind
from object_meter.core.fields import ClassLayout, FieldCache, default_field_cache, is_heap_type, qualified_name
from object_meter.types.models import (
    BufferMode,
    Diagnostic,
    DiagnosticKind,
    Edge,
    EdgeKind,
    FieldDescriptor,
    ReferencePolicy,
)

logger = logging.getLogger(__name__)

type DiagnosticSink = Callable[[Diagnostic], None]

_LEAF_TYPES: tuple[type, ...] = (
    type(None),
    bool,
    int,
    float,
    complex,
    str,
    bytes,
    bytearray,
    array.array,
    range,
    type,
    types.ModuleType,
)
_PROXY_TYPES: tuple[type, ...] = (weakref.ProxyType, weakref.CallableProxyType)
_CALLBACK = weakref.ReferenceType.__dict__["__callback__"]
_EXPORTER = memoryview.__dict__["obj"]

DEFAULT_SNAPSHOT_RETRIES = 3


def _log_diagnostic(diagnostic: Diagnostic) -> None:
    logger.debug("Enumeration diagnostic: %s", diagnostic.message)


class ChildCollector:
    """Receives the children a ``Measurable`` object reports about itself."""

    def __init__(self) -> None:
        self.edges: list[Edge] = []

    def push_object(self, parent: object, name: str, child: object) -> None:
        """Report ``child`` as referenced by ``parent`` through ``name``."""
        self.edges.append(Edge(parent, FieldDescriptor(name, EdgeKind.CHILD, owner=type(parent)), child))

    def push_elements(self, parent: object, name: str, children: Iterable[object]) -> None:
        """Report every element of ``children`` under ``name``."""
        owner = type(parent)
        for index, child in enumerate(children):
            self.edges.append(Edge(parent, FieldDescriptor(name, EdgeKind.CHILD, owner=owner, index=index), child))


class ReferenceEnumerator:
    """Produce the outgoing edges of one object at a time.

    Enumeration is lazy: ``edges_of`` returns a single-use iterator. A ``None``
    target is the null placeholder and is still yielded so that listeners can
    see unset slots; the engine never pushes it.
    """

    def __init__(
        self,
        policy: ReferencePolicy | None = None,
        field_cache: FieldCache | None = None,
        buffer_mode: BufferMode = BufferMode.NORMAL,
        snapshot_retries: int = DEFAULT_SNAPSHOT_RETRIES,
    ) -> None:
        """Initialize the enumerator.

        Args:
            policy: Which reference kinds to produce
            field_cache: Cache of per-class field metadata
            buffer_mode: Whether memoryview exporters are followed
            snapshot_retries: Attempts at copying a container mutated concurrently
        """
        self.policy: ReferencePolicy = policy or ReferencePolicy()
        self.field_cache: FieldCache = field_cache if field_cache is not None else default_field_cache
        self.buffer_mode: BufferMode = buffer_mode
        self.snapshot_retries: int = max(1, snapshot_retries)

    def edges_of(
        self,
        obj: object,
        via: Edge | None = None,
        report: DiagnosticSink | None = None,
    ) -> Iterator[Edge]:
        """Enumerate the outgoing references of ``obj``.

        Args:
            obj: Object whose references to list
            via: Edge through which ``obj`` was reached, None for roots
            report: Receives diagnostics for references that cannot be read

        Yields:
            Edges in a stable, documented order
        """
        sink = report or _log_diagnostic
        cls = type(obj)
        if not is_heap_type(cls):
            yield from self._builtin_edges(obj, cls, via, sink)
            return

        add_children = getattr(cls, "add_children_to", None)
        if callable(add_children):
            yield from self._measurable_edges(obj, add_children, sink)
            return

        yield from self._instance_edges(obj, cls, via, sink)

    def _measurable_edges(
        self,
        obj: object,
        add_children: Callable[..., object],
        sink: DiagnosticSink,
    ) -> Iterator[Edge]:
        collector = ChildCollector()
        try:
            _ = add_children(obj, collector)
        except Exception as exc:
            sink(
                Diagnostic(
                    kind=DiagnosticKind.FIELD_ACCESS_FAILURE,
                    message=f"add_children_to failed: {exc}",
                    source_type=qualified_name(type(obj)),
                    descriptor="add_children_to",
                )
            )
        yield from collector.edges

    def _instance_edges(
        self,
        obj: object,
        cls: type,
        via: Edge | None,
        sink: DiagnosticSink,
    ) -> Iterator[Edge]:
        layout = self.field_cache.layout_of(cls)
        reached: set[int] = {id(cls)}

        yield Edge(obj, FieldDescriptor("__class__", EdgeKind.TYPE), cls)

        for field in layout.slots:
            if field.is_primitive or field.unmetered:
                continue
            try:
                value = field.descriptor.__get__(obj, cls)  # pyright: ignore[reportAttributeAccessIssue, reportUnknownMemberType, reportUnknownVariableType]
            except AttributeError:
                value = None
            reached.add(id(value))  # pyright: ignore[reportUnknownArgumentType]
            yield Edge(obj, FieldDescriptor(field.name, EdgeKind.SLOT, owner=field.owner), value)

        if layout.has_dict:
            yield from self._storage_edges(obj, cls, layout, reached, sink)

        if self.policy.follow_statics:
            for owner, name in layout.statics:
                value = owner.__dict__.get(name)
                yield Edge(obj, FieldDescriptor(name, EdgeKind.STATIC, owner=owner), value)

        if layout.builtin_base is not None:
            for edge in self._builtin_edges(obj, layout.builtin_base, via, sink):
                if edge.kind is EdgeKind.REFERENT and id(edge.target) in reached:
                    continue
                yield edge

    def _storage_edges(
        self,
        obj: object,
        cls: type,
        layout: ClassLayout,
        reached: set[int],
        sink: DiagnosticSink,
    ) -> Iterator[Edge]:
        try:
            storage = object.__getattribute__(obj, "__dict__")
        except AttributeError:
            return
        if type(storage) is not dict:
            sink(
                Diagnostic(
                    kind=DiagnosticKind.FIELD_ACCESS_FAILURE,
                    message=f"instance storage is a {type(storage).__name__}, not a dict",  # pyright: ignore[reportAny]
                    source_type=qualified_name(cls),
                    descriptor="__dict__",
                )
            )
            return

        reached.add(id(storage))
        yield Edge(obj, FieldDescriptor("__dict__", EdgeKind.STORAGE, owner=cls), storage)

        items = self._snapshot(obj, lambda: tuple(dict.items(storage)), sink)  # pyright: ignore[reportUnknownArgumentType, reportUnknownLambdaType]
        skipped = layout.unmetered_fields | layout.primitive_fields
        for key, value in items:  # pyright: ignore[reportUnknownVariableType]
            name = key if isinstance(key, str) else f"<{type(key).__name__} key>"  # pyright: ignore[reportUnknownArgumentType]
            if name in skipped:
                continue
            reached.add(id(value))  # pyright: ignore[reportUnknownArgumentType]
            yield Edge(obj, FieldDescriptor(name, EdgeKind.FIELD, owner=cls), value)

    def _builtin_edges(
        self,
        obj: object,
        kind: type,
        via: Edge | None,
        sink: DiagnosticSink,
    ) -> Iterator[Edge]:
        if issubclass(kind, _LEAF_TYPES):
            return
        if issubclass(kind, (list, tuple, collections.deque, set, frozenset)):
            if self.policy.follow_arrays:
                yield from self._element_edges(obj, kind, sink)
            return
        if issubclass(kind, dict):
            if self.policy.follow_arrays:
                keys_only = via is not None and via.kind is EdgeKind.STORAGE
                yield from self._mapping_edges(obj, keys_only, sink)
            return
        if issubclass(kind, weakref.ReferenceType):
            yield from self._weak_reference_edges(obj, kind)
            return
        if issubclass(kind, _PROXY_TYPES):
            self._unsupported(obj, "weak proxies cannot be inspected without resolving them", sink)
            return
        if issubclass(kind, memoryview):
            if self.buffer_mode is BufferMode.NORMAL:
                yield from self._buffer_edges(obj)
            return
        if issubclass(kind, types.FunctionType):
            yield from self._function_edges(obj)  # pyright: ignore[reportArgumentType]
            return
        if issubclass(kind, types.MethodType):
            yield Edge(obj, FieldDescriptor("__func__", EdgeKind.FIELD, owner=kind), obj.__func__)  # pyright: ignore[reportAttributeAccessIssue]
            yield Edge(obj, FieldDescriptor("__self__", EdgeKind.FIELD, owner=kind), obj.__self__)  # pyright: ignore[reportAttributeAccessIssue]
            return
        if gc.is_tracked(obj):
            for index, referent in enumerate(gc.get_referents(obj)):
                yield Edge(obj, FieldDescriptor("referent", EdgeKind.REFERENT, owner=kind, index=index), referent)

    def _element_edges(self, obj: object, kind: type, sink: DiagnosticSink) -> Iterator[Edge]:
        base = _container_base(kind)
        items = self._snapshot(obj, lambda: tuple(base.__iter__(obj)), sink)  # pyright: ignore[reportAttributeAccessIssue, reportUnknownArgumentType, reportUnknownMemberType, reportUnknownLambdaType]
        name = base.__name__
        for index, item in enumerate(items):  # pyright: ignore[reportUnknownVariableType, reportUnknownArgumentType]
            yield Edge(obj, FieldDescriptor(name, EdgeKind.ELEMENT, owner=kind, index=index), item)

    def _mapping_edges(self, obj: object, keys_only: bool, sink: DiagnosticSink) -> Iterator[Edge]:
        items = self._snapshot(obj, lambda: tuple(dict.items(obj)), sink)  # pyright: ignore[reportArgumentType, reportUnknownArgumentType, reportUnknownLambdaType]
        owner = type(obj)
        for index, (key, value) in enumerate(items):  # pyright: ignore[reportUnknownVariableType, reportUnknownArgumentType]
            yield Edge(obj, FieldDescriptor("key", EdgeKind.KEY, owner=owner, index=index), key)
            if not keys_only:
                yield Edge(obj, FieldDescriptor("value", EdgeKind.VALUE, owner=owner, index=index), value)

    def _weak_reference_edges(self, obj: object, kind: type) -> Iterator[Edge]:
        referent = weakref.ReferenceType.__call__(obj)  # pyright: ignore[reportArgumentType]
        yield Edge(obj, FieldDescriptor("__referent__", EdgeKind.WEAK_REFERENT, owner=kind), referent)
        callback = _CALLBACK.__get__(obj, kind)  # pyright: ignore[reportAny]
        yield Edge(obj, FieldDescriptor("__callback__", EdgeKind.FIELD, owner=kind), callback)

    def _buffer_edges(self, obj: object) -> Iterator[Edge]:
        try:
            exporter = _EXPORTER.__get__(obj, memoryview)  # pyright: ignore[reportAny]
        except ValueError:
            # released view
            exporter = None
        yield Edge(obj, FieldDescriptor("obj", EdgeKind.BUFFER, owner=memoryview), exporter)

    def _function_edges(self, func: types.FunctionType) -> Iterator[Edge]:
        owner = types.FunctionType
        yield Edge(func, FieldDescriptor("__code__", EdgeKind.FIELD, owner=owner), func.__code__)
        yield Edge(func, FieldDescriptor("__defaults__", EdgeKind.FIELD, owner=owner), func.__defaults__)
        yield Edge(func, FieldDescriptor("__kwdefaults__", EdgeKind.FIELD, owner=owner), func.__kwdefaults__)
        yield Edge(func, FieldDescriptor("__closure__", EdgeKind.FIELD, owner=owner), func.__closure__)

    def _snapshot(
        self,
        obj: object,
        take: Callable[[], tuple[object, ...]],
        sink: DiagnosticSink,
    ) -> tuple[object, ...]:
        for attempt in range(1, self.snapshot_retries + 1):
            try:
                return take()
            except RuntimeError:
                logger.debug(
                    "Container of type %s changed during snapshot (attempt %d/%d)",
                    qualified_name(type(obj)),
                    attempt,
                    self.snapshot_retries,
                )
        self._unsupported(
            obj,
            f"container kept changing size during {self.snapshot_retries} snapshot attempts",
            sink,
        )
        return ()

    def _unsupported(self, obj: object, detail: str, sink: DiagnosticSink) -> None:
        error = UnsupportedReferenceKind(qualified_name(type(obj)), detail)
        logger.debug("%s", error)
        sink(
            Diagnostic(
                kind=DiagnosticKind.UNSUPPORTED_REFERENCE,
                message=str(error),
                source_type=error.object_type,
            )
        )


def _container_base(kind: type) -> type:
    for base in (list, tuple, collections.deque, set, frozenset):
        if issubclass(kind, base):
            return base
    raise TypeError(f"{kind.__name__} is not a supported container")
