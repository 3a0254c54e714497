"""Measurement listeners: no-op, discovery tree printer and field attribution."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import override

from object_meter.core.fields import qualified_name
from object_meter.types.models import Diagnostic, Edge, MeasurementResult
from object_meter.types.protocols import MeasurementListener
from object_meter.utils.formatting import format_size

logger = logging.getLogger(__name__)

ROOT_LABEL = "<root>"


class NoopListener:
    """Listener that ignores every notification."""

    def started(self, roots: Sequence[object]) -> None:
        pass

    def on_visit(self, obj: object, size: int, edge: Edge | None) -> None:
        pass

    def on_skip(self, edge: Edge, reason: str) -> None:
        pass

    def on_diagnostic(self, diagnostic: Diagnostic) -> None:
        pass

    def done(self, result: MeasurementResult) -> None:
        pass


class CompositeListener(NoopListener):
    """Forward every notification to several listeners in order."""

    def __init__(self, listeners: Iterable[MeasurementListener]) -> None:
        self.listeners: list[MeasurementListener] = list(listeners)

    @override
    def started(self, roots: Sequence[object]) -> None:
        for listener in self.listeners:
            listener.started(roots)

    @override
    def on_visit(self, obj: object, size: int, edge: Edge | None) -> None:
        for listener in self.listeners:
            listener.on_visit(obj, size, edge)

    @override
    def on_skip(self, edge: Edge, reason: str) -> None:
        for listener in self.listeners:
            listener.on_skip(edge, reason)

    @override
    def on_diagnostic(self, diagnostic: Diagnostic) -> None:
        for listener in self.listeners:
            listener.on_diagnostic(diagnostic)

    @override
    def done(self, result: MeasurementResult) -> None:
        for listener in self.listeners:
            listener.done(result)


@dataclass(slots=True)
class TreeNode:
    """One visited object in the discovery tree."""

    label: str
    type_name: str
    shallow_size: int
    depth: int
    children: list[TreeNode] = field(default_factory=list)

    @property
    def total_size(self) -> int:
        return self.shallow_size + sum(child.total_size for child in self.children)

    @property
    def object_count(self) -> int:
        return 1 + sum(child.object_count for child in self.children)


class TreePrinter(NoopListener):
    """Build the tree of objects in discovery order and log it when done.

    Each object hangs under the object whose edge discovered it, so the
    tree's totals add up to the measurement total. Nodes deeper than
    ``max_depth`` are folded into a one-line summary of their parent.
    """

    def __init__(self, max_depth: int = 3, log: logging.Logger | None = None) -> None:
        """Initialize the printer.

        Args:
            max_depth: Deepest level rendered individually
            log: Logger receiving the rendered tree at DEBUG
        """
        if max_depth < 0:
            raise ValueError("max_depth must be non-negative")
        self.max_depth: int = max_depth
        self.roots: list[TreeNode] = []
        self._log: logging.Logger = log or logger
        self._nodes: dict[int, TreeNode] = {}

    @override
    def started(self, roots: Sequence[object]) -> None:
        self.roots = []
        self._nodes = {}

    @override
    def on_visit(self, obj: object, size: int, edge: Edge | None) -> None:
        type_name = qualified_name(type(obj))
        parent = self._nodes.get(id(edge.source)) if edge is not None else None
        if edge is None or parent is None:
            node = TreeNode(ROOT_LABEL, type_name, size, 0)
            self.roots.append(node)
        else:
            node = TreeNode(str(edge.descriptor), type_name, size, parent.depth + 1)
            parent.children.append(node)
        self._nodes[id(obj)] = node

    @override
    def done(self, result: MeasurementResult) -> None:
        # ids are only stable while the measurement holds its objects
        self._nodes = {}
        self._log.debug(
            "Measurement tree (%s in %d objects):\n%s",
            format_size(result.total_bytes),
            result.object_count,
            self.render(),
        )

    def render(self) -> str:
        lines: list[str] = []
        for root in self.roots:
            self._render_node(root, lines)
        return "\n".join(lines)

    def _render_node(self, node: TreeNode, lines: list[str]) -> None:
        indent = "  " * node.depth
        lines.append(
            f"{indent}{node.label}: {node.type_name} "
            f"(shallow {node.shallow_size}, total {node.total_size})"
        )
        if not node.children:
            return
        if node.depth >= self.max_depth:
            hidden = sum(child.object_count for child in node.children)
            hidden_bytes = sum(child.total_size for child in node.children)
            lines.append(f"{indent}  ... {hidden} more objects, {hidden_bytes} bytes")
            return
        for child in node.children:
            self._render_node(child, lines)


class AttributionReport(NoopListener):
    """Aggregate bytes by the root field through which they were reached.

    The root's own shallow size is attributed to ``<root>``; every other
    object inherits the label of the first edge leaving a root on its
    discovery path.
    """

    def __init__(self) -> None:
        self.bytes_by_field: dict[str, int] = {}
        self.objects_by_field: dict[str, int] = {}
        self._labels: dict[int, str] = {}

    @override
    def started(self, roots: Sequence[object]) -> None:
        self.bytes_by_field = {}
        self.objects_by_field = {}
        self._labels = {}

    @override
    def on_visit(self, obj: object, size: int, edge: Edge | None) -> None:
        if edge is None:
            label = ROOT_LABEL
        else:
            source_label = self._labels.get(id(edge.source), ROOT_LABEL)
            label = edge.descriptor.name if source_label == ROOT_LABEL else source_label
        self._labels[id(obj)] = label
        self.bytes_by_field[label] = self.bytes_by_field.get(label, 0) + size
        self.objects_by_field[label] = self.objects_by_field.get(label, 0) + 1

    @override
    def done(self, result: MeasurementResult) -> None:
        self._labels = {}

    def top(self, count: int = 10) -> list[tuple[str, int]]:
        ranked = sorted(self.bytes_by_field.items(), key=lambda item: (-item[1], item[0]))
        return ranked[:count]

    def lines(self) -> list[str]:
        """Render the report, largest contributor first.

        Returns:
            One ``"N bytes reachable via field F"`` line per field
        """
        return [
            f"{size} bytes reachable via field {label}"
            for label, size in self.top(len(self.bytes_by_field))
        ]
