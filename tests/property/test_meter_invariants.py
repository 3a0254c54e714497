"""Property-based tests for measurement invariants using Hypothesis.

These tests check properties that hold for every object graph the meter
walks, catching accounting mistakes that example-based tests might miss.
"""

from __future__ import annotations

from typing import Annotated

from hypothesis import given, strategies as st

from object_meter.core.engine import MemoryMeter
from object_meter.core.fields import Unmetered, qualified_name
from object_meter.core.layout import round_to
from object_meter.core.spec import MeasurementSpec
from object_meter.core.visited import IdentityVisitedSet
from object_meter.types.models import ReferencePolicy, StrategyChoice

# Specification strategy: deterministic and available everywhere
METER = MemoryMeter(MeasurementSpec.build(StrategyChoice.SPECIFICATION))

leaves = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(),
    st.floats(allow_nan=False),
    st.text(max_size=20),
    st.binary(max_size=20),
)

graphs = st.recursive(
    leaves,
    lambda children: st.one_of(
        st.lists(children, max_size=5),
        st.tuples(children, children),
        st.dictionaries(st.text(max_size=5), children, max_size=5),
        st.frozensets(st.integers(), max_size=5),
    ),
    max_leaves=25,
)

# None cannot be a root, so every graph is wrapped in a list
roots = st.builds(lambda graph: [graph], graphs)


class Bag:
    hidden: Annotated[object, Unmetered]

    def __init__(self, kept: object, dropped: object, hidden: object) -> None:
        self.kept = kept
        self.dropped = dropped
        self.hidden = hidden


class SlotBag:
    __slots__ = ("kept", "dropped", "__dict__")

    hidden: Annotated[object, Unmetered]

    def __init__(self, kept: object, dropped: object, hidden: object) -> None:
        self.kept = kept
        self.dropped = dropped
        self.hidden = hidden


EXCLUDING_METER = MemoryMeter(
    MeasurementSpec.build(
        StrategyChoice.SPECIFICATION,
        reference_policy=ReferencePolicy(
            excluded_fields=frozenset({(qualified_name(Bag), "dropped"), (qualified_name(SlotBag), "dropped")})
        ),
    )
)

flat_bags = st.one_of(st.builds(Bag, graphs, graphs, graphs), st.builds(SlotBag, graphs, graphs, graphs))

# an inner bag is kept next to its own attribute dict
bags = st.recursive(
    flat_bags,
    lambda inner: st.one_of(
        st.builds(Bag, st.builds(lambda bag: [vars(bag), bag], inner), inner, graphs),
        st.builds(SlotBag, graphs, inner, st.builds(lambda bag: [bag, vars(bag)], inner)),
    ),
    max_leaves=4,
)


class TestDeepSizeInvariants:
    """Property-based tests for deep size accounting."""

    @given(roots)
    def test_deep_size_covers_shallow_size(self, root: list[object]) -> None:
        """Property: the deep size never undercuts the root's own size."""
        assert METER.measure_deep(root) >= METER.measure_shallow(root) > 0

    @given(roots)
    def test_measurement_is_deterministic(self, root: list[object]) -> None:
        """Property: measuring an unchanged graph twice gives the same result."""
        first = METER.measure([root])
        second = METER.measure([root])

        assert first.total_bytes == second.total_bytes
        assert first.object_count == second.object_count

    @given(roots)
    def test_count_matches_visited_objects(self, root: list[object]) -> None:
        """Property: count_children agrees with the objects a measurement visits."""
        assert METER.count_children(root) == METER.measure([root]).object_count

    @given(roots, graphs)
    def test_appending_never_shrinks(self, root: list[object], extra: object) -> None:
        """Property: a list holding one more element is never smaller."""
        assert METER.measure_deep([*root, extra]) >= METER.measure_deep(root)


class TestMultiRootInvariants:
    """Property-based tests for measuring several roots together."""

    @given(roots, roots)
    def test_root_order_does_not_matter(self, first: list[object], second: list[object]) -> None:
        """Property: the total is independent of root order."""
        forward = METER.measure([first, second])
        backward = METER.measure([second, first])

        assert forward.total_bytes == backward.total_bytes
        assert forward.object_count == backward.object_count

    @given(roots, roots)
    def test_shared_objects_are_counted_once(self, first: list[object], second: list[object]) -> None:
        """Property: measuring together never exceeds measuring apart."""
        together = METER.measure([first, second]).total_bytes

        assert together <= METER.measure_deep(first) + METER.measure_deep(second)
        assert together >= max(METER.measure_deep(first), METER.measure_deep(second))

    @given(roots)
    def test_repeated_root_is_counted_once(self, root: list[object]) -> None:
        """Property: the same root twice is measured like one root."""
        assert METER.measure([root, root]).total_bytes == METER.measure_deep(root)


class TestLayoutInvariants:
    """Property-based tests for alignment arithmetic."""

    @given(st.integers(min_value=0, max_value=2**40), st.integers(min_value=0, max_value=12))
    def test_round_to_is_smallest_multiple(self, value: int, exponent: int) -> None:
        """Property: round_to gives the smallest aligned value not below the input."""
        alignment = 2**exponent

        rounded = round_to(value, alignment)

        assert rounded % alignment == 0
        assert value <= rounded < value + alignment
        assert round_to(rounded, alignment) == rounded


class TestVisitedSetInvariants:
    """Property-based tests for IdentityVisitedSet."""

    @given(st.lists(st.sampled_from(range(6)), max_size=30))
    def test_size_equals_distinct_identities(self, picks: list[int]) -> None:
        """Property: each distinct object is admitted exactly once, equal or not."""
        # equal but distinct objects
        pool = [[] for _ in range(6)]
        visited = IdentityVisitedSet(key=lambda obj: 0)

        admitted = [visited.try_visit(pool[index]) for index in picks]

        assert len(visited) == len(set(picks))
        assert admitted.count(True) == len(set(picks))
        assert all(pool[index] in visited for index in picks)


class TestInstanceStorageInvariants:
    """Property-based tests for instances measured together with their attribute dicts."""

    @given(st.lists(bags, min_size=1, max_size=4), st.data())
    def test_dict_aliases_do_not_depend_on_root_order(self, owners: list[object], data: st.DataObject) -> None:
        """Property: adding vars(obj) roots in any order never changes the total."""
        aliased = [*owners, *(vars(owner) for owner in owners)]
        shuffled = data.draw(st.permutations(aliased))

        alone = EXCLUDING_METER.measure(owners)
        together = EXCLUDING_METER.measure(shuffled)

        assert together.total_bytes == alone.total_bytes
        assert together.object_count == alone.object_count

    @given(bags)
    def test_excluded_and_unmetered_fields_never_add_bytes(self, owner: object) -> None:
        """Property: the excluding meter never reports more than the plain one."""
        assert EXCLUDING_METER.measure_deep(owner) <= METER.measure_deep(owner)
