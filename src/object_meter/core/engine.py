"""Traversal engine walking object graphs and accumulating their size."""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Iterable

from object_meter.core.enumerator import ReferenceEnumerator
from object_meter.core.errors import MeasurementAborted
from object_meter.core.guards import GuardFailureLog
from object_meter.core.listeners import CompositeListener, NoopListener, TreePrinter
from object_meter.core.spec import MeasurementSpec
from object_meter.core.visited import IdentityVisitedSet
from object_meter.types.models import BufferMode, Diagnostic, Edge, EdgeKind, MeasurementResult
from object_meter.types.protocols import MeasurementListener, MeterListenerFactory
from object_meter.utils.formatting import format_elapsed, format_size
from object_meter.utils.logging import measurement_id_context

logger = logging.getLogger(__name__)

SKIP_REASON_GUARD = "excluded by guard policy"

_NBYTES = memoryview.__dict__["nbytes"]


def _viewed_bytes(view: object) -> int:
    try:
        return _NBYTES.__get__(view, memoryview)  # pyright: ignore[reportAny]
    except ValueError:
        # released view
        return 0


class MemoryMeter:
    """Measure shallow and deep sizes of object graphs.

    The work list is a LIFO stack, so objects are visited depth first and
    listeners see them in that order. Each call owns its visited set, work
    list and listener; a meter can be shared between threads.

    The values of a plain dict are followed only once the stack has drained
    and no visited instance turned out to use that dict as its ``__dict__``.
    An instance's attributes are therefore always seen through its field
    edges, where excluded and unmetered fields are honored, whatever the
    order in which the instance and ``vars(instance)`` are reached.

    Example:
        >>> meter = MemoryMeter(MeasurementSpec.build("specification"))
        >>> meter.measure_deep({"key": [1, 2, 3]})
    """

    def __init__(self, spec: MeasurementSpec | None = None, debug_depth: int | None = None) -> None:
        """Initialize the meter.

        Args:
            spec: How to measure (strategy, guards, policy, caps)
            debug_depth: Render the discovery tree to this depth after each call
        """
        self.spec: MeasurementSpec = spec or MeasurementSpec.build()
        self.debug_depth: int | None = debug_depth
        self._enumerator: ReferenceEnumerator = ReferenceEnumerator(
            self.spec.reference_policy,
            self.spec.field_cache,
            self.spec.buffer_mode,
        )

    def enable_debug(self, depth: int = 3) -> MemoryMeter:
        """Return a meter that logs the discovery tree of every measurement at DEBUG.

        Args:
            depth: Deepest tree level rendered individually

        Returns:
            New meter sharing this meter's spec
        """
        return MemoryMeter(self.spec, debug_depth=depth)

    def with_listener_factory(self, factory: MeterListenerFactory | None) -> MemoryMeter:
        return MemoryMeter(dataclasses.replace(self.spec, listener_factory=factory), self.debug_depth)

    @property
    def strategy_name(self) -> str:
        return str(getattr(self.spec.strategy, "name", type(self.spec.strategy).__name__))

    def measure(self, roots: Iterable[object]) -> MeasurementResult:
        """Measure the deep size of several roots, sharing one visited set.

        Args:
            roots: Objects to start from

        Returns:
            Total of every distinct reachable object, counted once

        Raises:
            TypeError: If a root is None
            CannotMeasureObject: If the strategy fails on a reachable object
            MeasurementAborted: If a configured cap was exceeded
        """
        return self._traverse(list(roots), max_depth=None, sizes=True)

    def measure_deep(self, root: object) -> int:
        return self._traverse([root], max_depth=None, sizes=True).total_bytes

    def measure_shallow(self, obj: object) -> int:
        """Measure ``obj`` alone, without following any reference.

        Returns 0 when the guard policy excludes ``obj``.
        """
        return self._traverse([obj], max_depth=0, sizes=True).total_bytes

    def count_children(self, root: object) -> int:
        """Count the distinct objects reachable from ``root``, ``root`` included.

        The size strategy is not consulted.
        """
        return self._traverse([root], max_depth=None, sizes=False).object_count

    def _new_listener(self) -> MeasurementListener:
        listeners: list[MeasurementListener] = []
        if self.spec.listener_factory is not None:
            listeners.append(self.spec.listener_factory())
        if self.debug_depth is not None:
            listeners.append(TreePrinter(self.debug_depth))
        if not listeners:
            return NoopListener()
        if len(listeners) == 1:
            return listeners[0]
        return CompositeListener(listeners)

    def _traverse(self, roots: list[object], max_depth: int | None, sizes: bool) -> MeasurementResult:
        for root in roots:
            if root is None:
                raise TypeError("Cannot measure None")

        spec = self.spec
        strategy = spec.strategy
        guards = spec.guards
        slice_only = spec.buffer_mode is BufferMode.SLICE_ONLY
        listener = self._new_listener()
        failures = GuardFailureLog()
        diagnostics: list[Diagnostic] = []

        def report(diagnostic: Diagnostic) -> None:
            diagnostics.append(diagnostic)
            listener.on_diagnostic(diagnostic)

        visited = IdentityVisitedSet()
        stack: list[tuple[object, Edge | None, int]] = []
        # ids of dicts serving as some visited instance's attribute storage
        claimed: set[int] = set()
        # values of plain dicts, held until it is known nobody owns the dict
        held: list[tuple[int, list[Edge], int]] = []
        total = 0
        skipped = 0

        def result(complete: bool) -> MeasurementResult:
            return MeasurementResult(
                total_bytes=total,
                object_count=len(visited),
                complete=complete,
                skipped_edges=skipped,
                diagnostics=tuple(diagnostics) + tuple(failures.diagnostics),
                strategy_name=self.strategy_name,
            )

        def finish(complete: bool) -> MeasurementResult:
            for diagnostic in failures.diagnostics:
                listener.on_diagnostic(diagnostic)
            final = result(complete)
            listener.done(final)
            return final

        def abort(reason: str) -> MeasurementAborted:
            logger.warning(
                "Measurement aborted: %s (partial: %s in %d objects)",
                reason,
                format_size(total),
                len(visited),
            )
            return MeasurementAborted(reason, finish(complete=False))

        def push(children: list[Edge], depth: int) -> None:
            nonlocal skipped
            pending: list[tuple[object, Edge | None, int]] = []
            for child in children:
                if not guards.should_follow(child, failures):
                    skipped += 1
                    listener.on_skip(child, SKIP_REASON_GUARD)
                    continue
                pending.append((child.target, child, depth))
            # reversed so that children are popped in enumeration order
            stack.extend(reversed(pending))

        with measurement_id_context():
            started = time.monotonic()
            deadline = started + spec.timeout_seconds if spec.timeout_seconds is not None else None
            listener.started(roots)

            for root in reversed(roots):
                if guards.should_measure(root, failures):
                    stack.append((root, None, 0))

            while True:
                while stack:
                    obj, edge, depth = stack.pop()
                    if obj in visited:
                        continue
                    if spec.max_objects is not None and len(visited) >= spec.max_objects:
                        raise abort(f"visited more than {spec.max_objects} objects")
                    if deadline is not None and time.monotonic() > deadline:
                        raise abort(f"exceeded timeout of {spec.timeout_seconds} seconds")
                    _ = visited.try_visit(obj)

                    size = 0
                    if sizes:
                        size = strategy.measure(obj)
                        if slice_only and issubclass(type(obj), memoryview):
                            size += _viewed_bytes(obj)
                    total += size
                    listener.on_visit(obj, size, edge)

                    if max_depth is not None and depth >= max_depth:
                        continue
                    # an instance __dict__ may still be claimed by an owner found later
                    hold = type(obj) is dict and (edge is None or edge.kind is not EdgeKind.STORAGE)
                    children: list[Edge] = []
                    values: list[Edge] = []
                    for child in self._enumerator.edges_of(obj, via=edge, report=report):
                        if child.target is None:
                            continue
                        if child.kind is EdgeKind.STORAGE:
                            claimed.add(id(child.target))
                        if hold and child.kind is EdgeKind.VALUE:
                            values.append(child)
                        else:
                            children.append(child)
                    if values:
                        held.append((id(obj), values, depth + 1))
                    push(children, depth + 1)

                released = [(group, level) for dict_id, group, level in held if dict_id not in claimed]
                held.clear()
                if not released:
                    break
                for group, level in reversed(released):
                    push(group, level)

            final = finish(complete=True)
            logger.debug(
                "Measured %s in %d objects with '%s' (%d edges skipped, %d diagnostics) in %s",
                format_size(final.total_bytes),
                final.object_count,
                final.strategy_name,
                final.skipped_edges,
                len(final.diagnostics),
                format_elapsed(time.monotonic() - started),
            )
            return final
