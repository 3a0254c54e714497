"""Size strategy that reads real slot offsets out of CPython member descriptors."""

from __future__ import annotations

import ctypes
import logging
import sys
import threading
import types
import weakref
from typing import ClassVar

from object_meter.core.fields import FieldCache, default_field_cache, is_heap_type
from object_meter.core.layout import MemoryLayout
from object_meter.core.strategies.base import BaseSizeStrategy
from object_meter.core.strategies.specification import SpecificationStrategy

logger = logging.getLogger(__name__)

POINTER_SIZE = ctypes.sizeof(ctypes.c_void_p)

# PyMemberDescrObject: object head, d_type, d_name, d_qualname, d_member
_D_MEMBER_OFFSET = object.__basicsize__ + 3 * POINTER_SIZE
_MEMBER_DESCR_SIZE = object.__basicsize__ + 4 * POINTER_SIZE
# PyMemberDef: name, type (padded to a pointer), offset
_MEMBER_DEF_OFFSET_FIELD = 2 * POINTER_SIZE


class _Sentinel:
    __slots__ = ("first", "second")


def slot_offset(descriptor: types.MemberDescriptorType) -> int:
    """Read the byte offset of a slot from its member descriptor.

    Args:
        descriptor: Member descriptor found in a class ``__dict__``

    Returns:
        Offset of the slot from the start of the instance

    Raises:
        TypeError: If ``descriptor`` is not a member descriptor
        ValueError: If the descriptor points to no member definition
    """
    if type(descriptor) is not types.MemberDescriptorType:
        raise TypeError(f"expected member descriptor, got {type(descriptor).__name__}")
    member_def = ctypes.c_void_p.from_address(id(descriptor) + _D_MEMBER_OFFSET).value
    if not member_def:
        raise ValueError("member descriptor has no member definition")
    return ctypes.c_ssize_t.from_address(member_def + _MEMBER_DEF_OFFSET_FIELD).value


class OffsetProbingStrategy(BaseSizeStrategy):
    """Size user-class instances from the offsets the interpreter really uses.

    Only fixed-size instances of classes defined in Python are probed. Builtin
    objects and variable-size instances are delegated to a
    ``SpecificationStrategy`` built on the same layout.
    """

    name: ClassVar[str] = "offset_probing"

    def __init__(
        self,
        layout: MemoryLayout | None = None,
        field_cache: FieldCache | None = None,
        fallback: SpecificationStrategy | None = None,
    ) -> None:
        """Initialize the strategy.

        Args:
            layout: Layout used for alignment and for delegated objects
            field_cache: Cache of per-class field metadata
            fallback: Strategy for shapes that cannot be probed

        Raises:
            StrategyUnavailable: If the interpreter is not CPython or the
                probed offsets do not match the expected slot layout
        """
        self.layout: MemoryLayout = layout or MemoryLayout.effective()
        self._fields: FieldCache = field_cache if field_cache is not None else default_field_cache
        self._fallback: SpecificationStrategy = fallback or SpecificationStrategy(
            self.layout, self._fields
        )
        self._sizes: weakref.WeakKeyDictionary[type, int] = weakref.WeakKeyDictionary()
        self._lock: threading.Lock = threading.Lock()
        super().__init__()

    def is_available(self) -> bool:
        if sys.implementation.name != "cpython":
            self._unavailable_reason = f"requires CPython, running {sys.implementation.name}"
            return False
        if types.MemberDescriptorType.__basicsize__ != _MEMBER_DESCR_SIZE:
            self._unavailable_reason = "member descriptor layout is not the expected one"
            return False

        try:
            first = slot_offset(_Sentinel.__dict__["first"])
            second = slot_offset(_Sentinel.__dict__["second"])
        except (TypeError, ValueError, OSError) as exc:
            self._unavailable_reason = f"could not read slot offsets: {exc}"
            return False

        if second - first != POINTER_SIZE or first != object.__basicsize__:
            self._unavailable_reason = (
                f"unexpected slot offsets {first}/{second} for pointer size {POINTER_SIZE}"
            )
            return False
        return True

    def measure(self, obj: object) -> int:
        cls = type(obj)
        if not is_heap_type(cls) or cls.__itemsize__:
            return self._fallback.measure(obj)

        with self._lock:
            cached = self._sizes.get(cls)
        if cached is not None:
            return cached

        class_layout = self._fields.layout_of(cls)
        if class_layout.builtin_base is not None:
            return self._fallback.measure(obj)

        size = self._probe_instance_size(cls)
        with self._lock:
            self._sizes[cls] = size
        return size

    def _probe_instance_size(self, cls: type) -> int:
        end = object.__basicsize__
        for field in self._fields.layout_of(cls).slots:
            end = max(end, slot_offset(field.descriptor) + POINTER_SIZE)  # pyright: ignore[reportArgumentType]
        for offset in (cls.__dictoffset__, cls.__weakrefoffset__):
            # negative offsets are managed outside the instance body
            if offset > 0:
                end = max(end, offset + POINTER_SIZE)
        logger.debug("Probed instance size of %s: %d bytes", cls.__qualname__, end)
        return self.layout.align_object(end)
