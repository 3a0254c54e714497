"""Guard policy deciding which objects and references a measurement excludes."""

from __future__ import annotations

import enum
import logging
import types
from collections.abc import Iterable

from object_meter.core.fields import FieldCache, default_field_cache, is_heap_type, qualified_name
from object_meter.types.models import Diagnostic, DiagnosticKind, Edge, EdgeKind, ReferencePolicy

logger = logging.getLogger(__name__)

_FIELD_EDGE_KINDS = frozenset({EdgeKind.SLOT, EdgeKind.FIELD, EdgeKind.STATIC, EdgeKind.CHILD})
_METADATA_TYPES: tuple[type, ...] = (type, types.ModuleType, types.CodeType)
_INTERPRETER_SINGLETONS: tuple[object, ...] = (True, False, Ellipsis, NotImplemented)


class Guard:
    """Base class for exclusion predicates.

    Both hooks default to approving everything; subclasses override the one
    they care about. Returning False from ``should_measure`` excludes the
    object and everything only reachable through it.
    """

    name: str = "guard"

    def should_measure(self, obj: object) -> bool:
        return True

    def should_follow(self, edge: Edge) -> bool:
        return True

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class TypeMetadataGuard(Guard):
    """Exclude classes, modules, code objects and the instance-to-class edge."""

    name: str = "type_metadata"

    def should_measure(self, obj: object) -> bool:
        return not issubclass(type(obj), _METADATA_TYPES)

    def should_follow(self, edge: Edge) -> bool:
        return edge.kind is not EdgeKind.TYPE


class TypeBoundaryGuard(Guard):
    """Exclude every object whose type's ``module.qualname`` starts with a prefix."""

    name: str = "type_boundary"

    def __init__(self, prefixes: Iterable[str] = ()) -> None:
        """Initialize the boundary.

        Args:
            prefixes: Qualified type name prefixes, e.g. ``"logging."``

        Raises:
            ValueError: If a prefix is empty
        """
        compiled = tuple(prefixes)
        if not all(compiled):
            raise ValueError("Type prefix must not be empty")
        self._prefixes: tuple[str, ...] = compiled

    def excludes_type(self, cls: type) -> bool:
        """Check whether instances of ``cls`` fall outside the boundary.

        Args:
            cls: Class to check

        Returns:
            True if the qualified name of ``cls`` starts with a configured prefix
        """
        if not self._prefixes:
            return False
        return qualified_name(cls).startswith(self._prefixes)

    def should_measure(self, obj: object) -> bool:
        return not self.excludes_type(type(obj))

    def get_prefix_count(self) -> int:
        return len(self._prefixes)


class WeakReferentGuard(Guard):
    """Leave the referent of weak references untraversed."""

    name: str = "weak_referent"

    def should_follow(self, edge: Edge) -> bool:
        return edge.kind is not EdgeKind.WEAK_REFERENT


class ExcludedFieldGuard(Guard):
    """Leave named fields untraversed.

    A field is identified by the qualified name of the class declaring it and
    the attribute name. The declaring class matches any class in the source
    object's MRO, so excluding ``pkg.Base.cache`` also covers subclasses.
    """

    name: str = "excluded_field"

    def __init__(self, fields: Iterable[tuple[str | type, str]] = ()) -> None:
        """Initialize the guard.

        Args:
            fields: Pairs of declaring class (or its qualified name) and
                attribute name; unmangled private names are accepted

        Raises:
            ValueError: If a pair is missing either part
        """
        excluded: set[tuple[str, str]] = set()
        for owner, field_name in fields:
            owner_name = owner if isinstance(owner, str) else qualified_name(owner)
            if not owner_name or not field_name:
                raise ValueError("Excluded field needs both a type name and a field name")
            excluded.add((owner_name, field_name))
        self._fields: frozenset[tuple[str, str]] = frozenset(excluded)

    def should_follow(self, edge: Edge) -> bool:
        if not self._fields or edge.kind not in _FIELD_EDGE_KINDS:
            return True
        field_name = edge.descriptor.name
        for klass in type(edge.source).__mro__:
            owner_name = qualified_name(klass)
            if (owner_name, field_name) in self._fields:
                return False
            private_prefix = f"_{klass.__name__.lstrip('_')}__"
            if field_name.startswith(private_prefix):
                if (owner_name, field_name[len(private_prefix) - 2 :]) in self._fields:
                    return False
        return True


class UnmeteredGuard(Guard):
    """Honor ``@unmetered`` classes and ``Annotated[T, Unmetered]`` fields."""

    name: str = "unmetered"

    def __init__(self, field_cache: FieldCache | None = None) -> None:
        self._fields: FieldCache = field_cache if field_cache is not None else default_field_cache

    def should_measure(self, obj: object) -> bool:
        cls = type(obj)
        if not is_heap_type(cls):
            return True
        return not self._fields.layout_of(cls).unmetered

    def should_follow(self, edge: Edge) -> bool:
        if edge.kind not in (EdgeKind.SLOT, EdgeKind.FIELD):
            return True
        source_type = type(edge.source)
        if not is_heap_type(source_type):
            return True
        return edge.descriptor.name not in self._fields.layout_of(source_type).unmetered_fields


class KnownSingletonGuard(Guard):
    """Exclude enum members and interpreter-wide singletons."""

    name: str = "known_singleton"

    def should_measure(self, obj: object) -> bool:
        if issubclass(type(obj), enum.Enum):
            return False
        return not any(obj is singleton for singleton in _INTERPRETER_SINGLETONS)


class SharedConstantGuard(Guard):
    """Exclude constants the interpreter caches and shares between all users.

    Small integers, booleans, the empty string, bytes, tuple and frozenset, and
    one-character latin-1 strings and bytes are allocated once per process.
    """

    name: str = "shared_constant"

    def should_measure(self, obj: object) -> bool:
        kind = type(obj)
        if kind is bool:
            return False
        if kind is int:
            return not -5 <= obj <= 256  # pyright: ignore[reportOperatorIssue]
        if kind is str:
            length = str.__len__(obj)  # pyright: ignore[reportArgumentType]
            return not (length == 0 or (length == 1 and ord(obj) < 256))  # pyright: ignore[reportArgumentType]
        if kind is bytes:
            return bytes.__len__(obj) > 1  # pyright: ignore[reportArgumentType]
        if kind is tuple:
            return tuple.__len__(obj) > 0  # pyright: ignore[reportArgumentType]
        if kind is frozenset:
            return frozenset.__len__(obj) > 0  # pyright: ignore[reportArgumentType]
        return True


class GuardFailureLog:
    """Guard failures recorded during one measurement call."""

    def __init__(self) -> None:
        self.diagnostics: list[Diagnostic] = []

    def record(self, guard: Guard, hook: str, subject: object, error: Exception) -> Diagnostic:
        diagnostic = Diagnostic(
            kind=DiagnosticKind.GUARD_FAILURE,
            message=f"Guard '{guard.name}' raised in {hook}: {error}",
            source_type=qualified_name(type(subject)),
        )
        self.diagnostics.append(diagnostic)
        return diagnostic

    def __len__(self) -> int:
        return len(self.diagnostics)


class GuardPolicy:
    """Composition of guards that must all approve.

    The type boundary is evaluated first and short-circuits the rest. A guard
    that raises counts as a veto: the failure is logged at WARNING and, when a
    ``GuardFailureLog`` is passed, recorded as a diagnostic for the call.
    """

    def __init__(
        self,
        guards: Iterable[Guard] = (),
        boundary: TypeBoundaryGuard | None = None,
    ) -> None:
        self.boundary: TypeBoundaryGuard = boundary or TypeBoundaryGuard()
        self._guards: tuple[Guard, ...] = tuple(guards)

    @classmethod
    def from_policy(cls, policy: ReferencePolicy, field_cache: FieldCache | None = None) -> GuardPolicy:
        """Build the built-in guards a ``ReferencePolicy`` asks for.

        Args:
            policy: Reference policy to honor
            field_cache: Cache of per-class field metadata

        Returns:
            Guard policy with the matching built-in guards registered
        """
        guards: list[Guard] = [TypeMetadataGuard(), UnmeteredGuard(field_cache)]
        if not policy.follow_weak_referents:
            guards.append(WeakReferentGuard())
        if policy.excluded_fields:
            guards.append(ExcludedFieldGuard(policy.excluded_fields))
        if policy.ignore_known_singletons:
            guards.append(KnownSingletonGuard())
        if policy.ignore_shared_constants:
            guards.append(SharedConstantGuard())
        return cls(guards, TypeBoundaryGuard(policy.excluded_type_prefixes))

    @property
    def guards(self) -> tuple[Guard, ...]:
        return self._guards

    def with_guards(self, *guards: Guard) -> GuardPolicy:
        """Return a policy consulting ``guards`` after this policy's own.

        The receiver is left unchanged, so a policy can be shared by specs
        and meters built from it.
        """
        return GuardPolicy((*self._guards, *guards), self.boundary)

    def should_measure(self, obj: object, failures: GuardFailureLog | None = None) -> bool:
        """Check whether ``obj`` contributes to the measurement.

        Args:
            obj: Candidate object
            failures: Per-call log receiving guard failures

        Returns:
            True only if the boundary and every guard approve
        """
        if not self._ask(self.boundary, "should_measure", obj, failures):
            return False
        return all(self._ask(guard, "should_measure", obj, failures) for guard in self._guards)

    def should_follow(self, edge: Edge, failures: GuardFailureLog | None = None) -> bool:
        """Check whether ``edge`` is traversed.

        An edge is followed only if every guard approves the edge itself and
        its target passes ``should_measure``.
        """
        if not self._ask(self.boundary, "should_measure", edge.target, failures):
            return False
        for guard in self._guards:
            if not self._ask(guard, "should_follow", edge, failures):
                return False
        return all(self._ask(guard, "should_measure", edge.target, failures) for guard in self._guards)

    def _ask(self, guard: Guard, hook: str, subject: object, failures: GuardFailureLog | None) -> bool:
        try:
            return bool(getattr(guard, hook)(subject))
        except Exception as exc:
            culprit = subject.source if isinstance(subject, Edge) else subject
            if failures is not None:
                _ = failures.record(guard, hook, culprit, exc)
            logger.warning(
                "Guard %r raised in %s for %s, excluding it: %s",
                guard,
                hook,
                qualified_name(type(culprit)),
                exc,
            )
            return False
