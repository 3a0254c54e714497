"""Memory layout description used by the specification-backed strategies."""

from __future__ import annotations

import struct
import sys
from dataclasses import dataclass, field

# 32 GiB, the largest heap addressable with 4-byte references scaled by 8
DEFAULT_COMPRESSED_REFERENCE_THRESHOLD = 32 * 1024 * 1024 * 1024


def round_to(value: int, alignment: int) -> int:
    """Round ``value`` up to the next multiple of ``alignment``.

    Args:
        value: Non-negative byte count
        alignment: Power-of-two alignment in bytes

    Returns:
        Smallest multiple of ``alignment`` that is >= ``value``
    """
    if alignment <= 1:
        return value
    return (value + alignment - 1) & ~(alignment - 1)


@dataclass(slots=True, frozen=True)
class MemoryLayout:
    """Header, alignment and reference widths of the measured interpreter.

    Compressed references are static configuration: the reference width is
    halved only when ``compressed_references`` is set and the configured
    ``heap_size_bytes`` is below ``compressed_reference_threshold_bytes``.
    """

    object_header_size: int
    array_header_size: int
    object_alignment: int
    array_alignment: int
    pointer_size: int
    compressed_references: bool = False
    compressed_reference_threshold_bytes: int = DEFAULT_COMPRESSED_REFERENCE_THRESHOLD
    heap_size_bytes: int = 0
    word_size: int = field(default=0)

    def __post_init__(self) -> None:
        if self.pointer_size not in (4, 8):
            raise ValueError(f"pointer_size must be 4 or 8, got {self.pointer_size}")
        for name in ("object_alignment", "array_alignment"):
            value: int = getattr(self, name)
            if value < 1 or value & (value - 1):
                raise ValueError(f"{name} must be a positive power of two, got {value}")
        if self.object_header_size < 0 or self.array_header_size < 0:
            raise ValueError("header sizes must be non-negative")
        if self.word_size == 0:
            object.__setattr__(self, "word_size", self.pointer_size)

    @property
    def reference_size(self) -> int:
        """Width of one reference slot in bytes."""
        if (
            self.compressed_references
            and self.pointer_size == 8
            and self.heap_size_bytes < self.compressed_reference_threshold_bytes
        ):
            return 4
        return self.pointer_size

    def align_object(self, size: int) -> int:
        return round_to(size, self.object_alignment)

    def align_array(self, size: int) -> int:
        return round_to(size, self.array_alignment)

    @classmethod
    def effective(cls) -> MemoryLayout:
        """Build the layout of the running interpreter.

        The header is the size of a bare ``object`` instance; variable-size
        objects add one pointer-sized length word to it. Allocations are
        aligned to twice the pointer size on 64-bit builds.
        """
        pointer_size = struct.calcsize("P")
        header = object.__basicsize__
        alignment = 16 if sys.maxsize > 2**32 else 8
        return cls(
            object_header_size=header,
            array_header_size=header + pointer_size,
            object_alignment=alignment,
            array_alignment=alignment,
            pointer_size=pointer_size,
        )

    def describe(self) -> str:
        return (
            f"header={self.object_header_size} array_header={self.array_header_size} "
            f"alignment={self.object_alignment}/{self.array_alignment} "
            f"pointer={self.pointer_size} reference={self.reference_size}"
        )
