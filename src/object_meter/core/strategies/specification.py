"""Size strategy derived from a memory layout description and declared fields."""

from __future__ import annotations

import array
import collections
from typing import ClassVar

from object_meter.core.fields import FieldCache, default_field_cache, is_heap_type
from object_meter.core.layout import MemoryLayout
from object_meter.core.strategies.base import BaseSizeStrategy

_DIGIT_BITS = 30
_DIGIT_BYTES = 4
_ARRAY_ITEMSIZE = array.array.__dict__["itemsize"]


class SpecificationStrategy(BaseSizeStrategy):
    """Compute sizes from a ``MemoryLayout`` without asking the interpreter.

    Results are deterministic for a given layout, which makes this strategy
    the reference for tests and the last resort when nothing better is
    available.
    """

    name: ClassVar[str] = "specification"

    def __init__(
        self,
        layout: MemoryLayout | None = None,
        field_cache: FieldCache | None = None,
    ) -> None:
        """Initialize the strategy.

        Args:
            layout: Layout to size objects against (host layout when omitted)
            field_cache: Cache of per-class field metadata
        """
        self.layout: MemoryLayout = layout or MemoryLayout.effective()
        self._fields: FieldCache = field_cache if field_cache is not None else default_field_cache
        super().__init__()

    def is_available(self) -> bool:
        return True

    def measure(self, obj: object) -> int:
        if obj is None:
            return 0
        cls = type(obj)
        if is_heap_type(cls):
            return self.instance_size(obj, cls)
        return self.builtin_size(obj, cls)

    def instance_size(self, obj: object, cls: type) -> int:
        """Size of an instance of a user-defined class.

        Args:
            obj: Instance to size
            cls: ``type(obj)``

        Returns:
            Header (or builtin base size) plus declared slots plus the
            instance dict and weakref pointers, rounded to object alignment
        """
        layout = self.layout
        class_layout = self._fields.layout_of(cls)
        ref = layout.reference_size

        extra = sum(
            field.primitive_width if field.primitive_width is not None else ref
            for field in class_layout.slots
        )

        base = class_layout.builtin_base
        if base is None:
            if class_layout.has_dict:
                extra += ref
            if class_layout.has_weakref:
                extra += ref
            return layout.align_object(layout.object_header_size + extra)

        if class_layout.has_dict and base.__dictoffset__ == 0:
            extra += ref
        if class_layout.has_weakref and base.__weakrefoffset__ == 0:
            extra += ref
        return layout.align_object(self.builtin_size(obj, base) + extra)

    def builtin_size(self, obj: object, kind: type) -> int:
        """Size of ``obj`` treated as an instance of the builtin type ``kind``.

        Length queries go through ``kind``'s own slot wrappers so that
        subclasses overriding ``__len__`` or ``__iter__`` are never called.
        """
        layout = self.layout
        header = layout.object_header_size
        ref = layout.reference_size

        if issubclass(kind, int):
            digits = max(1, -(-int.bit_length(obj) // _DIGIT_BITS))  # pyright: ignore[reportArgumentType]
            return self._array(digits, _DIGIT_BYTES)
        if issubclass(kind, float):
            return layout.align_object(header + 8)
        if issubclass(kind, complex):
            return layout.align_object(header + 16)
        if issubclass(kind, str):
            return self._array(str.__len__(obj), _code_unit_width(obj))  # pyright: ignore[reportArgumentType]
        if issubclass(kind, bytes):
            return self._array(bytes.__len__(obj), 1)  # pyright: ignore[reportArgumentType]
        if issubclass(kind, bytearray):
            return self._array(bytearray.__len__(obj), 1)  # pyright: ignore[reportArgumentType]
        if issubclass(kind, array.array):
            return self._array(array.array.__len__(obj), _ARRAY_ITEMSIZE.__get__(obj))  # pyright: ignore[reportAny, reportArgumentType]
        if issubclass(kind, list):
            return self._array(list.__len__(obj), ref)  # pyright: ignore[reportArgumentType]
        if issubclass(kind, tuple):
            return self._array(tuple.__len__(obj), ref)  # pyright: ignore[reportArgumentType]
        if issubclass(kind, collections.deque):
            return self._array(collections.deque.__len__(obj), ref)  # pyright: ignore[reportArgumentType]
        if issubclass(kind, dict):
            return self._array(dict.__len__(obj), 2 * ref + layout.word_size)  # pyright: ignore[reportArgumentType]
        if issubclass(kind, set):
            return self._array(set.__len__(obj), ref + layout.word_size)  # pyright: ignore[reportArgumentType]
        if issubclass(kind, frozenset):
            return self._array(frozenset.__len__(obj), ref + layout.word_size)  # pyright: ignore[reportArgumentType]

        return self._declared_size(obj, kind)

    def _array(self, length: int, element_width: int) -> int:
        layout = self.layout
        return layout.align_array(layout.array_header_size + length * element_width)

    def _declared_size(self, obj: object, kind: type) -> int:
        size = kind.__basicsize__
        if kind.__itemsize__:
            length_slot = getattr(kind, "__len__", None)
            if length_slot is not None:
                try:
                    size += kind.__itemsize__ * length_slot(obj)
                except (TypeError, ValueError, OverflowError):
                    # no usable length, size the fixed part only
                    pass
        return self.layout.align_object(size)


def _code_unit_width(text: str) -> int:
    widest = 0
    for char in str.__iter__(text):
        widest = max(widest, ord(char))
        if widest > 0xFFFF:
            return 4
    return 2 if widest > 0xFF else 1
