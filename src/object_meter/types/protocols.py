"""Protocol definitions for the measurement components.

Structural interfaces let callers plug in their own size strategies and
listeners without inheriting from the built-in implementations.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Protocol, runtime_checkable

from object_meter.types.models import Diagnostic, Edge, MeasurementResult


@runtime_checkable
class SizeStrategy(Protocol):
    """Computes the shallow size of a single object."""

    @property
    def name(self) -> str:
        """Short strategy name used in logs and results."""
        ...

    def is_available(self) -> bool:
        """Whether the privilege this strategy needs was granted.

        Returns:
            True if the strategy can measure objects in this interpreter
        """
        ...

    def measure(self, obj: object) -> int:
        """Measure the bytes occupied by ``obj`` alone.

        Args:
            obj: Object to measure

        Returns:
            Non-negative size in bytes
        """
        ...


class MeasurementListener(Protocol):
    """Observer notified while a measurement walks the graph.

    Listeners are purely observational and cannot influence the total.
    """

    def started(self, roots: Sequence[object]) -> None: ...

    def on_visit(self, obj: object, size: int, edge: Edge | None) -> None:
        """Called once per newly visited object; ``edge`` is None for roots."""
        ...

    def on_skip(self, edge: Edge, reason: str) -> None: ...

    def on_diagnostic(self, diagnostic: Diagnostic) -> None: ...

    def done(self, result: MeasurementResult) -> None: ...


class ChildSink(Protocol):
    """Receiver handed to ``Measurable.add_children_to``."""

    def push_object(self, parent: object, name: str, child: object) -> None: ...


class Measurable(Protocol):
    """Objects that list their own children instead of being crawled.

    The object takes over the responsibility of reporting every child that
    should be part of the measurement.
    """

    def add_children_to(self, stack: ChildSink) -> None: ...


type MeterListenerFactory = Callable[[], MeasurementListener]
