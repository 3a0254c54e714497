"""Tests for the traversal engine."""

import itertools
import logging
import threading
import types
import weakref
from collections.abc import Callable, Sequence
from typing import Annotated

import pytest

from object_meter.core import engine as engine_module
from object_meter.core.engine import MemoryMeter
from object_meter.core.errors import CannotMeasureObject, MeasurementAborted
from object_meter.core.fields import FieldCache, Unmetered, qualified_name, unmetered
from object_meter.core.guards import Guard
from object_meter.core.listeners import NoopListener
from object_meter.core.spec import MeasurementSpec
from object_meter.core.strategies.instrumentation import InstrumentationStrategy
from object_meter.core.strategies.specification import SpecificationStrategy
from object_meter.types.models import (
    BufferMode,
    Diagnostic,
    DiagnosticKind,
    Edge,
    EdgeKind,
    MeasurementResult,
    ReferencePolicy,
)

type MeterFactory = Callable[..., MemoryMeter]


class NodeB:
    __slots__ = ()


class NodeC:
    __slots__ = ("back",)


class NodeA:
    __slots__ = ("c",)

    b = NodeB()


class Owner:
    __slots__ = ("ref",)


class Payload:
    __slots__ = ("data",)


class Pair:
    __slots__ = ("a", "b")


class Heavy:
    __slots__ = ("blob",)


class Light:
    __slots__ = ("heavy", "name")


class Fragile:
    __slots__ = ()


@unmetered
class Opaque:
    def __init__(self) -> None:
        self.blob = b"x" * 1000


class Holder:
    __slots__ = ("opaque", "kept")


class Secret:
    def __init__(self) -> None:
        self.cache = b"s" * 1000
        self.note = ["kept"]


class Memo:
    cache: Annotated[bytes, Unmetered]

    def __init__(self) -> None:
        self.cache = b"m" * 1000
        self.note = ["kept"]


class Refusing:
    """Strategy that must never be asked for a size."""

    name = "refusing"

    def is_available(self) -> bool:
        return True

    def measure(self, obj: object) -> int:
        raise AssertionError("sizes are not needed for counting")


class FragileGuard(Guard):
    name: str = "fragile"

    def should_measure(self, obj: object) -> bool:
        if isinstance(obj, Fragile):
            raise RuntimeError("cannot decide")
        return True


class Recorder(NoopListener):
    def __init__(self) -> None:
        self.started_with: int | None = None
        self.visits: list[tuple[object, int, Edge | None]] = []
        self.skips: list[tuple[Edge, str]] = []
        self.diagnostic_kinds: list[DiagnosticKind] = []
        self.results: list[MeasurementResult] = []

    def started(self, roots: Sequence[object]) -> None:
        self.started_with = len(roots)

    def on_visit(self, obj: object, size: int, edge: Edge | None) -> None:
        self.visits.append((obj, size, edge))

    def on_skip(self, edge: Edge, reason: str) -> None:
        self.skips.append((edge, reason))

    def on_diagnostic(self, diagnostic: Diagnostic) -> None:
        self.diagnostic_kinds.append(diagnostic.kind)

    def done(self, result: MeasurementResult) -> None:
        self.results.append(result)


def _build_abc() -> tuple[NodeA, NodeB, NodeC]:
    a = NodeA()
    c = NodeC()
    c.back = a
    a.c = c
    return a, NodeA.b, c


class TestReferenceScenarios:
    """Test suite for measurements with known answers on the fixed layout."""

    def test_three_object_cycle(self, make_meter: MeterFactory) -> None:
        """Test a graph where A reaches B and C and C points back to A."""
        meter = make_meter(ReferencePolicy(follow_statics=True))
        a, b, c = _build_abc()

        assert meter.measure_shallow(a) == 24
        assert meter.measure_shallow(b) == 16
        assert meter.measure_shallow(c) == 24
        assert meter.measure_deep(a) == 64

    def test_array_of_nulls(self, meter: MemoryMeter) -> None:
        """Test that null elements cost their slot but nothing else."""
        nulls = [None] * 10

        assert meter.measure_shallow(nulls) == 96
        assert meter.measure_deep(nulls) == 96

    def test_weak_referent_is_not_followed_by_default(
        self,
        meter: MemoryMeter,
        spec_strategy: SpecificationStrategy,
    ) -> None:
        """Test that only the weak reference object itself is counted."""
        payload = Payload()
        payload.data = [1, 2, 3]
        owner = Owner()
        owner.ref = weakref.ref(payload)

        assert meter.measure_deep(owner) == 24 + spec_strategy.measure(owner.ref)

    def test_weak_referent_followed_when_enabled(self, make_meter: MeterFactory, meter: MemoryMeter) -> None:
        """Test the follow_weak_referents switch."""
        following = make_meter(ReferencePolicy(follow_weak_referents=True))
        payload = Payload()
        payload.data = [1, 2, 3]
        owner = Owner()
        owner.ref = weakref.ref(payload)

        assert following.measure_deep(owner) == meter.measure_deep(owner) + meter.measure_deep(payload)

    def test_self_cycle(self, meter: MemoryMeter) -> None:
        """Test that a list containing itself is counted once."""
        looped: list[object] = []
        looped.append(looped)

        assert meter.measure_deep(looped) == meter.measure_shallow(looped) == 24

    def test_diamond_is_counted_once(self, meter: MemoryMeter) -> None:
        """Test that an object reached twice is counted once."""
        shared = [300, 301]
        pair = Pair()
        pair.a = shared
        pair.b = shared

        assert meter.measure_deep(pair) == 32 + 32 + 24 + 24
        assert meter.count_children(pair) == 4

    def test_leaf_deep_equals_shallow(self, meter: MemoryMeter) -> None:
        """Test objects without outgoing references."""
        for leaf in (b"x" * 50, "text", 12345, 1.5):
            assert meter.measure_deep(leaf) == meter.measure_shallow(leaf)

    def test_excluded_type_prefix_drops_subgraph(self, make_meter: MeterFactory, meter: MemoryMeter) -> None:
        """Test that excluding a type removes exactly its subgraph."""
        heavy = Heavy()
        heavy.blob = b"y" * 100
        light = Light()
        light.heavy = heavy
        light.name = "light"
        bounded = make_meter(ReferencePolicy(excluded_type_prefixes=frozenset({qualified_name(Heavy)})))

        result = bounded.measure([light])

        assert result.total_bytes == meter.measure_deep(light) - meter.measure_deep(heavy)
        assert result.skipped_edges >= 1

    def test_excluded_root_measures_zero(self, make_meter: MeterFactory) -> None:
        """Test that a root outside the boundary contributes nothing."""
        bounded = make_meter(ReferencePolicy(excluded_type_prefixes=frozenset({"builtins.list"})))

        assert bounded.measure_shallow([1, 2]) == 0
        assert bounded.measure_deep([1, 2]) == 0

    def test_unmetered_class_is_skipped(self, meter: MemoryMeter) -> None:
        """Test that @unmetered instances are never counted."""
        holder = Holder()
        holder.opaque = Opaque()
        holder.kept = None

        assert meter.measure_deep(holder) == meter.measure_shallow(holder)

    def test_multiple_roots_share_the_visited_set(self, meter: MemoryMeter) -> None:
        """Test that objects shared between roots are counted once."""
        shared = [7]
        first = [shared]
        second = [shared]

        result = meter.measure([first, second])

        assert result.total_bytes == 96
        assert result.object_count == 4
        assert result.complete
        assert result.strategy_name == "specification"

    def test_deep_never_less_than_shallow(self, meter: MemoryMeter) -> None:
        """Test the basic ordering between deep and shallow sizes."""
        obj = {"key": [1, 2, {"nested": (3, 4)}]}

        assert meter.measure_deep(obj) >= meter.measure_shallow(obj)


class TestInstanceStorage:
    """Test suite for instance dicts measured next to their owners."""

    @pytest.mark.parametrize("owner_first", [True, False])
    def test_excluded_field_stays_excluded_through_dict_alias(
        self,
        make_meter: MeterFactory,
        owner_first: bool,
    ) -> None:
        """Test that reaching vars(obj) as a root does not bring back an excluded field."""
        meter = make_meter(ReferencePolicy(excluded_fields=frozenset({(qualified_name(Secret), "cache")})))
        secret = Secret()
        roots = [secret, vars(secret)] if owner_first else [vars(secret), secret]

        alone = meter.measure([secret])
        together = meter.measure(roots)

        assert together.total_bytes == alone.total_bytes
        assert together.object_count == alone.object_count
        assert make_meter().measure([secret]).total_bytes - alone.total_bytes >= 1000

    @pytest.mark.parametrize("owner_first", [True, False])
    def test_unmetered_field_stays_unmetered_through_dict_alias(
        self,
        make_meter: MeterFactory,
        owner_first: bool,
    ) -> None:
        """Test that an Annotated[T, Unmetered] attribute is skipped in both root orders."""
        meter = make_meter()
        memo = Memo()
        roots = [memo, vars(memo)] if owner_first else [vars(memo), memo]

        alone = meter.measure([memo])
        together = meter.measure(roots)

        assert together.total_bytes == alone.total_bytes
        assert together.object_count == alone.object_count
        assert all(obj is not memo.cache for obj in _visited(meter, roots))

    def test_dict_reached_through_container_is_claimed_by_owner(self, make_meter: MeterFactory) -> None:
        """Test that an owner found after its dict still suppresses the dict's values."""
        meter = make_meter(ReferencePolicy(excluded_fields=frozenset({(qualified_name(Secret), "cache")})))
        secret = Secret()

        nested = meter.measure([[vars(secret)], [[secret]]])
        flat = meter.measure([[vars(secret)], [secret]])

        assert nested.total_bytes == flat.total_bytes
        assert all(obj is not secret.cache for obj in _visited(meter, [[vars(secret)], [[secret]]]))

    def test_ownerless_dict_values_are_counted(self, meter: MemoryMeter) -> None:
        """Test that a plain dict without an owner keeps its values."""
        blob = b"x" * 1000

        assert meter.measure_deep({"blob": blob}) - meter.measure_shallow({"blob": blob}) >= 1000


def _visited(meter: MemoryMeter, roots: list[object]) -> list[object]:
    recorder = Recorder()
    _ = meter.with_listener_factory(lambda: recorder).measure(roots)
    return [obj for obj, _, _ in recorder.visits]


class TestBufferModes:
    """Test suite for memoryview accounting."""

    def test_normal_follows_exporter(self, make_meter: MeterFactory, spec_strategy: SpecificationStrategy) -> None:
        """Test that the whole exporting object is counted."""
        data = bytearray(1000)
        view = memoryview(data)[10:20]

        assert make_meter().measure_deep(view) == spec_strategy.measure(view) + 1016

    def test_shallow_ignores_exporter(self, make_meter: MeterFactory, spec_strategy: SpecificationStrategy) -> None:
        """Test that the exporting object is not counted."""
        view = memoryview(bytearray(1000))[10:20]
        meter = make_meter(buffer_mode=BufferMode.SHALLOW)

        assert meter.measure_deep(view) == spec_strategy.measure(view)

    def test_slice_only_counts_viewed_bytes(
        self,
        make_meter: MeterFactory,
        spec_strategy: SpecificationStrategy,
    ) -> None:
        """Test that only the bytes the view covers are added."""
        view = memoryview(bytearray(1000))[10:20]
        meter = make_meter(buffer_mode=BufferMode.SLICE_ONLY)

        assert meter.measure_deep(view) == spec_strategy.measure(view) + 10


class TestCountChildren:
    """Test suite for count_children."""

    def test_counts_without_sizing(self, field_cache: FieldCache) -> None:
        """Test that the strategy is never consulted."""
        meter = MemoryMeter(MeasurementSpec.build(strategy=Refusing(), field_cache=field_cache))  # pyright: ignore[reportArgumentType]

        assert meter.count_children([[1000], [1001], "x"]) == 6


class TestErrorsAndCaps:
    """Test suite for failures and soft caps."""

    def test_none_root_is_rejected(self, meter: MemoryMeter) -> None:
        """Test that the null placeholder cannot be measured."""
        with pytest.raises(TypeError, match="None"):
            _ = meter.measure_deep(None)
        with pytest.raises(TypeError):
            _ = meter.measure([[1], None])

    def test_strategy_failure_propagates(self, field_cache: FieldCache) -> None:
        """Test that a strategy error aborts the call with CannotMeasureObject."""

        def refuse_lists(obj: object) -> int:
            if isinstance(obj, list):
                raise ValueError("lists are opaque")
            return 8

        spec = MeasurementSpec.build(strategy=InstrumentationStrategy(refuse_lists), field_cache=field_cache)

        with pytest.raises(CannotMeasureObject):
            _ = MemoryMeter(spec).measure_deep(("a", [1]))

    def test_max_objects_aborts_with_partial_result(self, make_meter: MeterFactory) -> None:
        """Test the object cap."""
        recorder = Recorder()
        meter = make_meter(max_objects=2, listener_factory=lambda: recorder)

        with pytest.raises(MeasurementAborted) as exc_info:
            _ = meter.measure_deep([[1000], [1001], [1002]])

        partial = exc_info.value.partial_result
        assert not partial.complete
        assert partial.object_count == 2
        assert partial.has_caveats
        assert recorder.results == [partial]
        assert exc_info.value.context["partial_objects"] == 2

    def test_timeout_aborts(self, make_meter: MeterFactory, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the wall-clock cap using a clock that jumps ahead."""
        ticks = itertools.count(0.0, 10.0)
        monkeypatch.setattr(engine_module, "time", types.SimpleNamespace(monotonic=lambda: next(ticks)))
        meter = make_meter(timeout_seconds=1.0)

        with pytest.raises(MeasurementAborted, match="timeout"):
            _ = meter.measure_deep([1, 2, 3])

    def test_guard_failure_becomes_diagnostic(self, make_meter: MeterFactory) -> None:
        """Test that a raising guard excludes its object and is reported."""
        meter = make_meter(guards=[FragileGuard()])

        result = meter.measure([[Fragile()]])

        assert result.total_bytes == 24
        assert result.complete
        assert result.has_caveats
        assert [diagnostic.kind for diagnostic in result.diagnostics] == [DiagnosticKind.GUARD_FAILURE]

    def test_guard_failure_reaches_listener_on_abort(self, make_meter: MeterFactory) -> None:
        """Test that guard failures recorded before a cap are delivered with the partial result."""
        recorder = Recorder()
        meter = make_meter(max_objects=2, guards=[FragileGuard()], listener_factory=lambda: recorder)

        with pytest.raises(MeasurementAborted) as exc_info:
            _ = meter.measure_deep([[Fragile()], [1000]])

        partial = exc_info.value.partial_result
        assert [diagnostic.kind for diagnostic in partial.diagnostics] == [DiagnosticKind.GUARD_FAILURE]
        assert recorder.diagnostic_kinds == [DiagnosticKind.GUARD_FAILURE]
        assert recorder.results == [partial]

    def test_extra_guards_leave_shared_spec_untouched(self, make_meter: MeterFactory) -> None:
        """Test that a meter built with extra guards does not change another meter's policy."""
        plain = make_meter()
        guarded = make_meter(guards=[FragileGuard()])

        assert not any(isinstance(guard, FragileGuard) for guard in plain.spec.guards.guards)
        assert isinstance(guarded.spec.guards.guards[-1], FragileGuard)
        assert plain.measure([[Fragile()]]).diagnostics == ()

    def test_unsupported_reference_becomes_diagnostic(self, make_meter: MeterFactory) -> None:
        """Test that an uninspectable reference is reported to the listener."""
        recorder = Recorder()
        meter = make_meter(listener_factory=lambda: recorder)
        target = Payload()

        result = meter.measure([[weakref.proxy(target)]])

        assert result.complete
        assert DiagnosticKind.UNSUPPORTED_REFERENCE in [diagnostic.kind for diagnostic in result.diagnostics]
        assert DiagnosticKind.UNSUPPORTED_REFERENCE in recorder.diagnostic_kinds


class TestListeners:
    """Test suite for listener notifications."""

    def test_visit_order_follows_enumeration(self, make_meter: MeterFactory) -> None:
        """Test that children are visited depth first in enumeration order."""
        recorder = Recorder()
        meter = make_meter(listener_factory=lambda: recorder)
        x = ["p"]
        y = ("q",)
        root = [x, y]

        _ = meter.measure_deep(root)

        assert [id(obj) for obj, _, _ in recorder.visits] == [id(root), id(x), id(x[0]), id(y), id(y[0])]
        assert recorder.visits[0][2] is None
        assert recorder.started_with == 1

    def test_skipped_edges_are_reported(self, make_meter: MeterFactory) -> None:
        """Test that guard-rejected edges reach on_skip."""
        recorder = Recorder()
        meter = make_meter(listener_factory=lambda: recorder)

        result = meter.measure([NodeB()])

        assert [edge.kind for edge, _ in recorder.skips] == [EdgeKind.TYPE]
        assert result.skipped_edges == 1
        assert recorder.results == [result]

    def test_each_call_gets_a_fresh_listener(self, make_meter: MeterFactory) -> None:
        """Test that the factory is invoked once per measurement."""
        created: list[Recorder] = []

        def factory() -> Recorder:
            created.append(Recorder())
            return created[-1]

        meter = make_meter(listener_factory=factory)
        _ = meter.measure_deep([1])
        _ = meter.measure_deep([2])

        assert len(created) == 2

    def test_with_listener_factory_returns_new_meter(self, meter: MemoryMeter) -> None:
        """Test that attaching a listener leaves the original meter untouched."""
        recorder = Recorder()
        listening = meter.with_listener_factory(lambda: recorder)

        _ = meter.measure_deep([1])
        _ = listening.measure_deep([1])

        assert len(recorder.results) == 1
        assert meter.spec.listener_factory is None

    def test_debug_tree_is_logged(self, meter: MemoryMeter, caplog: pytest.LogCaptureFixture) -> None:
        """Test that a debug meter logs the discovery tree."""
        caplog.set_level(logging.DEBUG, logger="object_meter")

        _ = meter.enable_debug(2).measure_deep({"key": [1, 2]})

        assert "Measurement tree" in caplog.text
        assert "<root>: builtins.dict" in caplog.text


class TestConcurrency:
    """Test suite for sharing one meter between threads."""

    def test_parallel_measurements_agree(self, meter: MemoryMeter) -> None:
        """Test that concurrent calls do not interfere."""
        graph = {"rows": [[index, str(index)] for index in range(50)]}
        expected = meter.measure_deep(graph)
        results: list[int] = []
        lock = threading.Lock()

        def work() -> None:
            size = meter.measure_deep(graph)
            with lock:
                results.append(size)

        threads = [threading.Thread(target=work) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results == [expected] * 8
