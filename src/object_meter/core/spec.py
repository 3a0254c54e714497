"""Immutable description of how measurements are performed."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from object_meter.core.fields import FieldCache, default_field_cache
from object_meter.core.guards import Guard, GuardPolicy
from object_meter.core.layout import MemoryLayout
from object_meter.core.strategies import select_strategy
from object_meter.types.models import BufferMode, ReferencePolicy, StrategyChoice

if TYPE_CHECKING:
    from object_meter.types.protocols import MeterListenerFactory, SizeStrategy


class _LayoutSettings(Protocol):
    object_header_size: int | None
    array_header_size: int | None
    object_alignment: int | None
    array_alignment: int | None
    pointer_size: int | None
    compressed_references: bool
    compressed_reference_threshold_bytes: int
    heap_size_bytes: int


class _PolicySettings(Protocol):
    follow_statics: bool
    follow_arrays: bool
    follow_weak_referents: bool
    excluded_type_prefixes: list[str]
    excluded_fields: list[tuple[str, str]]
    ignore_known_singletons: bool
    ignore_shared_constants: bool


class _LimitSettings(Protocol):
    max_objects: int | None
    timeout_seconds: float | None


class MeterSettings(Protocol):
    """Shape of a validated meter configuration, as produced by the config layer."""

    strategy: StrategyChoice
    reference_policy: _PolicySettings
    layout: _LayoutSettings
    buffer_mode: BufferMode
    limits: _LimitSettings


@dataclass(slots=True, frozen=True)
class MeasurementSpec:
    """Everything a ``MemoryMeter`` needs, constructed once and reused.

    Attributes:
        strategy: Size strategy measuring single objects
        guards: Exclusion policy
        reference_policy: Which reference kinds are enumerated
        buffer_mode: How memoryview exporters are accounted
        max_objects: Abort after visiting this many objects
        timeout_seconds: Abort after this much wall-clock time
        listener_factory: Creates a fresh listener for every call
        field_cache: Per-class field metadata shared by all components
    """

    strategy: SizeStrategy
    guards: GuardPolicy
    reference_policy: ReferencePolicy = field(default_factory=ReferencePolicy)
    buffer_mode: BufferMode = BufferMode.NORMAL
    max_objects: int | None = None
    timeout_seconds: float | None = None
    listener_factory: MeterListenerFactory | None = None
    field_cache: FieldCache = field(default=default_field_cache)

    def __post_init__(self) -> None:
        if self.max_objects is not None and self.max_objects < 1:
            raise ValueError("max_objects must be positive")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

    @classmethod
    def build(
        cls,
        strategy: StrategyChoice | str | SizeStrategy = StrategyChoice.BEST,
        reference_policy: ReferencePolicy | None = None,
        layout: MemoryLayout | None = None,
        buffer_mode: BufferMode = BufferMode.NORMAL,
        max_objects: int | None = None,
        timeout_seconds: float | None = None,
        listener_factory: MeterListenerFactory | None = None,
        field_cache: FieldCache | None = None,
        guards: Iterable[Guard] = (),
    ) -> MeasurementSpec:
        """Assemble a spec from plain values.

        Args:
            strategy: Strategy choice, or an already constructed strategy
            reference_policy: Which references to follow
            layout: Layout for the layout-based strategies (host layout when omitted)
            buffer_mode: How memoryview exporters are accounted
            max_objects: Optional visited-object cap
            timeout_seconds: Optional wall-clock cap
            listener_factory: Creates a listener per call
            field_cache: Field metadata cache (the shared default when omitted)
            guards: Extra guards consulted after the ones the policy asks for

        Returns:
            Ready-to-use measurement spec

        Raises:
            StrategyUnavailable: If the chosen strategy cannot run here
        """
        policy = reference_policy or ReferencePolicy()
        cache = field_cache if field_cache is not None else default_field_cache
        if isinstance(strategy, (StrategyChoice, str)):
            size_strategy = select_strategy(strategy, layout, cache)
        else:
            size_strategy = strategy
        return cls(
            strategy=size_strategy,
            guards=GuardPolicy.from_policy(policy, cache).with_guards(*guards),
            reference_policy=policy,
            buffer_mode=buffer_mode,
            max_objects=max_objects,
            timeout_seconds=timeout_seconds,
            listener_factory=listener_factory,
            field_cache=cache,
        )

    @classmethod
    def from_config(
        cls,
        config: MeterSettings,
        listener_factory: MeterListenerFactory | None = None,
    ) -> MeasurementSpec:
        """Build a spec from a validated ``MeterConfig``.

        Layout values left unset in the configuration take the host's values.

        Args:
            config: Validated meter configuration
            listener_factory: Creates a listener per call

        Returns:
            Ready-to-use measurement spec
        """
        policy_settings = config.reference_policy
        policy = ReferencePolicy(
            follow_statics=policy_settings.follow_statics,
            follow_arrays=policy_settings.follow_arrays,
            follow_weak_referents=policy_settings.follow_weak_referents,
            excluded_type_prefixes=frozenset(policy_settings.excluded_type_prefixes),
            excluded_fields=frozenset(tuple(pair) for pair in policy_settings.excluded_fields),  # pyright: ignore[reportArgumentType]
            ignore_known_singletons=policy_settings.ignore_known_singletons,
            ignore_shared_constants=policy_settings.ignore_shared_constants,
        )
        return cls.build(
            strategy=config.strategy,
            reference_policy=policy,
            layout=layout_from_settings(config.layout),
            buffer_mode=BufferMode(config.buffer_mode),
            max_objects=config.limits.max_objects,
            timeout_seconds=config.limits.timeout_seconds,
            listener_factory=listener_factory,
        )


def layout_from_settings(settings: _LayoutSettings) -> MemoryLayout:
    """Overlay configured layout values on the host layout."""
    host = MemoryLayout.effective()
    return MemoryLayout(
        object_header_size=_pick(settings.object_header_size, host.object_header_size),
        array_header_size=_pick(settings.array_header_size, host.array_header_size),
        object_alignment=_pick(settings.object_alignment, host.object_alignment),
        array_alignment=_pick(settings.array_alignment, host.array_alignment),
        pointer_size=_pick(settings.pointer_size, host.pointer_size),
        compressed_references=settings.compressed_references,
        compressed_reference_threshold_bytes=settings.compressed_reference_threshold_bytes,
        heap_size_bytes=settings.heap_size_bytes,
    )


def _pick(value: int | None, default: int) -> int:
    return default if value is None else value
