"""Meter configuration models."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator, model_validator

from object_meter.core.layout import DEFAULT_COMPRESSED_REFERENCE_THRESHOLD
from object_meter.types.models import BufferMode, StrategyChoice
from object_meter.utils.logging import DEFAULT_LOG_FORMAT

from .base import BaseConfig


class ReferencePolicyConfig(BaseConfig):
    """Configuration for which references a measurement follows."""

    follow_statics: bool = Field(
        default=False,
        description="Follow class-level data attributes of measured instances",
    )
    follow_arrays: bool = Field(
        default=True,
        description="Follow container elements, keys and values",
    )
    follow_weak_referents: bool = Field(
        default=False,
        description="Follow the referent of weak references",
    )
    excluded_type_prefixes: list[str] = Field(
        default_factory=list,
        description="Qualified type name prefixes whose instances are never measured",
    )
    excluded_fields: list[tuple[str, str]] = Field(
        default_factory=list,
        description="(qualified type name, field name) pairs never followed",
    )
    ignore_known_singletons: bool = Field(
        default=False,
        description="Skip enum members and interpreter singletons",
    )
    ignore_shared_constants: bool = Field(
        default=False,
        description="Skip small ints, empty strings and other interpreter-cached constants",
    )

    @field_validator("excluded_type_prefixes")
    @classmethod
    def validate_prefixes(cls, v: list[str]) -> list[str]:
        """Validate that type prefixes are not empty."""
        for prefix in v:
            if not prefix.strip():
                raise ValueError("Excluded type prefixes cannot be empty")
        return v

    @field_validator("excluded_fields")
    @classmethod
    def validate_fields(cls, v: list[tuple[str, str]]) -> list[tuple[str, str]]:
        """Validate that excluded fields name both a type and a field."""
        for type_name, field_name in v:
            if not type_name.strip() or not field_name.strip():
                raise ValueError("Excluded fields need a type name and a field name")
        return v


class LayoutConfig(BaseConfig):
    """Memory layout overrides; unset values are taken from the running interpreter."""

    object_header_size: int | None = Field(
        default=None,
        ge=0,
        le=256,
        description="Bytes of header in front of every object",
    )
    array_header_size: int | None = Field(
        default=None,
        ge=0,
        le=256,
        description="Bytes of header in front of every variable-size object",
    )
    object_alignment: int | None = Field(
        default=None,
        ge=1,
        le=4096,
        description="Alignment of fixed-size objects in bytes",
    )
    array_alignment: int | None = Field(
        default=None,
        ge=1,
        le=4096,
        description="Alignment of variable-size objects in bytes",
    )
    pointer_size: Literal[4, 8] | None = Field(
        default=None,
        description="Width of a native pointer in bytes",
    )
    compressed_references: bool = Field(
        default=False,
        description="Halve reference width when the heap is below the threshold",
    )
    compressed_reference_threshold_bytes: int = Field(
        default=DEFAULT_COMPRESSED_REFERENCE_THRESHOLD,
        ge=0,
        description="Heap size below which compressed references apply",
    )
    heap_size_bytes: int = Field(
        default=0,
        ge=0,
        description="Configured heap size used for the compressed reference decision",
    )

    @field_validator("object_alignment", "array_alignment")
    @classmethod
    def validate_alignment(cls, v: int | None) -> int | None:
        """Validate that alignments are powers of two."""
        if v is not None and v & (v - 1):
            raise ValueError(f"Alignment must be a power of two, got {v}")
        return v


class LimitsConfig(BaseConfig):
    """Soft caps aborting a measurement with a partial result."""

    max_objects: int | None = Field(
        default=None,
        ge=1,
        description="Abort after visiting this many objects (null for no cap)",
    )
    timeout_seconds: float | None = Field(
        default=None,
        gt=0.0,
        description="Abort after this much wall-clock time (null for no cap)",
    )


class LoggingConfig(BaseConfig):
    """Configuration for logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level",
    )
    format: str = Field(
        default=DEFAULT_LOG_FORMAT,
        description="Log format string",
    )
    file: str | None = Field(
        default=None,
        description="Log file path (null for console only)",
    )
    debug_tree_depth: int | None = Field(
        default=None,
        ge=0,
        le=64,
        description="Log the discovery tree of each measurement to this depth",
    )


class MeterConfig(BaseConfig):
    """Complete meter configuration."""

    strategy: StrategyChoice = Field(
        default=StrategyChoice.BEST,
        description="Size strategy or fallback chain",
    )
    reference_policy: ReferencePolicyConfig = Field(
        default_factory=ReferencePolicyConfig,
        description="Which references to follow",
    )
    layout: LayoutConfig = Field(
        default_factory=LayoutConfig,
        description="Memory layout overrides",
    )
    buffer_mode: BufferMode = Field(
        default=BufferMode.NORMAL,
        description="How memoryview exporters are accounted",
    )
    limits: LimitsConfig = Field(
        default_factory=LimitsConfig,
        description="Soft caps",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )

    @model_validator(mode="after")
    def validate_layout_consistency(self) -> MeterConfig:
        """Validate that an explicit layout is consistent with itself."""
        layout = self.layout
        if (
            layout.object_header_size is not None
            and layout.array_header_size is not None
            and layout.array_header_size < layout.object_header_size
        ):
            raise ValueError("array_header_size cannot be smaller than object_header_size")
        if layout.compressed_references and layout.pointer_size == 4:
            raise ValueError("compressed_references requires 8-byte pointers")
        return self
