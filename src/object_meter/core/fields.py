"""Per-type field metadata, flattened across the MRO and cached.

Reflection over a class is done once: slots, instance dict and weakref
support, statics, primitive annotations and unmetered markers are gathered
into an immutable ``ClassLayout`` and kept in a thread-safe cache keyed
by the class.
"""

from __future__ import annotations

import ast
import ctypes
import inspect
import logging
import sys
import threading
import types
from dataclasses import dataclass
from typing import Annotated, Any, ClassVar, get_args, get_origin

if sys.version_info >= (3, 14):
    from annotationlib import Format, get_annotations

logger = logging.getLogger(__name__)

_HEAPTYPE = 1 << 9

_CTYPES_NAMES = (
    "c_bool",
    "c_char",
    "c_wchar",
    "c_byte",
    "c_ubyte",
    "c_short",
    "c_ushort",
    "c_int",
    "c_uint",
    "c_long",
    "c_ulong",
    "c_longlong",
    "c_ulonglong",
    "c_size_t",
    "c_ssize_t",
    "c_float",
    "c_double",
    "c_longdouble",
    "c_int8",
    "c_uint8",
    "c_int16",
    "c_uint16",
    "c_int32",
    "c_uint32",
    "c_int64",
    "c_uint64",
    "c_void_p",
)

PRIMITIVE_WIDTHS: dict[type, int] = {
    getattr(ctypes, name): ctypes.sizeof(getattr(ctypes, name))
    for name in _CTYPES_NAMES
    if hasattr(ctypes, name)
}
_PRIMITIVE_WIDTHS_BY_NAME: dict[str, int] = {
    name: ctypes.sizeof(getattr(ctypes, name)) for name in _CTYPES_NAMES if hasattr(ctypes, name)
}


class Unmetered:
    """Marker for fields that must not be followed.

    Use as ``Annotated`` metadata::

        cache: Annotated[dict[str, bytes], Unmetered]
    """


def unmetered[T: type](cls: T) -> T:
    """Class decorator excluding every instance of ``cls`` (and subclasses)."""
    cls.__unmetered__ = True  # pyright: ignore[reportAttributeAccessIssue]
    return cls


def qualified_name(cls: type) -> str:
    """Return ``module.qualname`` for ``cls``."""
    module = getattr(cls, "__module__", None) or "builtins"
    qualname = getattr(cls, "__qualname__", None) or getattr(cls, "__name__", "?")
    return f"{module}.{qualname}"


def is_heap_type(cls: type) -> bool:
    """True for classes created by a ``class`` statement rather than in C."""
    return bool(cls.__flags__ & _HEAPTYPE)


def mangle(owner: type, name: str) -> str:
    """Apply private name mangling the way the compiler does for ``__slots__``."""
    if not name.startswith("__") or name.endswith("__"):
        return name
    stripped = owner.__name__.lstrip("_")
    if not stripped:
        return name
    return f"_{stripped}{name}"


@dataclass(slots=True, frozen=True)
class FieldInfo:
    """One declared instance field.

    Attributes:
        owner: Class whose body declared the field
        name: Attribute name after mangling
        declared_type: Resolved annotation, if any
        primitive_width: Byte width for ctypes-annotated fields, None for references
        unmetered: True when annotated ``Annotated[T, Unmetered]``
        descriptor: Member descriptor for slots, None for instance dict attributes
    """

    owner: type
    name: str
    declared_type: object = None
    primitive_width: int | None = None
    unmetered: bool = False
    descriptor: object = None

    @property
    def is_primitive(self) -> bool:
        return self.primitive_width is not None


@dataclass(slots=True, frozen=True)
class ClassLayout:
    """Flattened, immutable view of everything the meter needs about a class."""

    cls: type
    slots: tuple[FieldInfo, ...]
    has_dict: bool
    has_weakref: bool
    builtin_base: type | None
    unmetered: bool
    unmetered_fields: frozenset[str]
    primitive_fields: frozenset[str]
    statics: tuple[tuple[type, str], ...]

    @property
    def is_heap_type(self) -> bool:
        return is_heap_type(self.cls)


def _raw_annotations(cls: type) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    if sys.version_info >= (3, 14):
        # unresolvable names come back as forward references instead of raising
        return dict(get_annotations(cls, format=Format.FORWARDREF))
    return dict(inspect.get_annotations(cls))


def _class_annotations(cls: type) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Return the annotations declared in ``cls`` itself, resolved one by one.

    String annotations are evaluated individually, so a name that only exists
    under ``TYPE_CHECKING`` leaves that one annotation as its source text.
    """
    try:
        raw = _raw_annotations(cls)
    except (TypeError, AttributeError, NameError):
        return {}
    module = sys.modules.get(cls.__module__)
    globalns: dict[str, Any] = dict(vars(module)) if module is not None else {}  # pyright: ignore[reportExplicitAny]
    localns: dict[str, Any] = dict(vars(cls))  # pyright: ignore[reportExplicitAny]
    resolved: dict[str, Any] = {}  # pyright: ignore[reportExplicitAny]
    for attr, annotation in raw.items():  # pyright: ignore[reportAny]
        if isinstance(annotation, str):
            try:
                annotation = eval(annotation, globalns, localns)
            except (NameError, SyntaxError, TypeError, AttributeError) as exc:
                logger.debug("Keeping annotation %s.%s unevaluated: %s", qualified_name(cls), attr, exc)
        resolved[attr] = annotation
    return resolved


def _tail_name(node: ast.expr) -> str | None:
    if isinstance(node, ast.Call):
        node = node.func
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    return None


def _parse_source_annotation(text: str) -> tuple[object, int | None, bool]:
    """Read ``Annotated`` markers and ctypes names from annotation source text."""
    try:
        node = ast.parse(text, mode="eval").body
    except SyntaxError:
        return text, None, False
    is_unmetered = False
    if isinstance(node, ast.Subscript) and _tail_name(node.value) == "Annotated" and isinstance(node.slice, ast.Tuple):
        elements = node.slice.elts
        if elements:
            is_unmetered = any(_tail_name(meta) == "Unmetered" for meta in elements[1:])
            node = elements[0]
    declared = ast.unparse(node)
    return declared, _PRIMITIVE_WIDTHS_BY_NAME.get(declared.removeprefix("ctypes.")), is_unmetered


def _is_class_var(annotation: object) -> bool:
    if annotation is ClassVar or get_origin(annotation) is ClassVar:
        return True
    if not isinstance(annotation, str):
        return False
    try:
        node = ast.parse(annotation, mode="eval").body
    except SyntaxError:
        return False
    if isinstance(node, ast.Subscript):
        node = node.value
    return _tail_name(node) == "ClassVar"


def _parse_annotation(annotation: object) -> tuple[object, int | None, bool]:
    """Split an annotation into (declared type, primitive width, unmetered)."""
    source = getattr(annotation, "__forward_arg__", annotation)
    if isinstance(source, str):
        return _parse_source_annotation(source)
    is_unmetered = False
    declared = annotation
    if get_origin(annotation) is Annotated:
        args = get_args(annotation)
        declared = args[0]
        is_unmetered = any(
            meta is Unmetered or isinstance(meta, Unmetered) for meta in args[1:]
        )

    width: int | None = None
    if isinstance(declared, type):
        width = PRIMITIVE_WIDTHS.get(declared)
    elif isinstance(declared, str):
        width = _PRIMITIVE_WIDTHS_BY_NAME.get(declared.removeprefix("ctypes."))
    return declared, width, is_unmetered


def _slot_names(cls: type) -> list[str]:
    raw = cls.__dict__.get("__slots__", ())
    if isinstance(raw, str):
        return [raw]
    return [str(name) for name in raw]


def _is_static_value(value: object) -> bool:
    if isinstance(value, type):
        return False
    # functions, properties, member and getset descriptors all bind via __get__
    return not hasattr(type(value), "__get__")


def _class_unmetered(cls: type) -> bool:
    return any(klass.__dict__.get("__unmetered__", False) for klass in cls.__mro__)


def build_class_layout(cls: type) -> ClassLayout:
    """Reflect over ``cls`` and its MRO.

    Slots are listed base first, in declaration order. A subclass that
    redeclares a base slot contributes a second entry under its own owner.

    Args:
        cls: Class to describe

    Returns:
        Immutable class layout
    """
    slots: list[FieldInfo] = []
    unmetered_fields: set[str] = set()
    primitive_fields: set[str] = set()
    builtin_base: type | None = None

    for klass in reversed(cls.__mro__):
        if not is_heap_type(klass):
            if klass is not object:
                builtin_base = klass
            continue

        annotations = _class_annotations(klass)
        parsed: dict[str, tuple[object, int | None, bool]] = {}
        for attr, annotation in annotations.items():  # pyright: ignore[reportAny]
            if _is_class_var(annotation):
                continue
            parsed[attr] = _parse_annotation(annotation)  # pyright: ignore[reportAny]
            if parsed[attr][2]:
                unmetered_fields.add(attr)

        for slot in _slot_names(klass):
            if slot in ("__dict__", "__weakref__"):
                continue
            name = mangle(klass, slot)
            descriptor = klass.__dict__.get(name)
            if not isinstance(descriptor, types.MemberDescriptorType):
                continue
            declared, width, is_unmetered = parsed.get(slot, (None, None, False))
            if width is not None:
                primitive_fields.add(name)
            slots.append(
                FieldInfo(
                    owner=klass,
                    name=name,
                    declared_type=declared,
                    primitive_width=width,
                    unmetered=is_unmetered,
                    descriptor=descriptor,
                )
            )

        for attr, (_, width, _) in parsed.items():
            if width is not None and attr not in _slot_names(klass):
                primitive_fields.add(attr)

    statics: list[tuple[type, str]] = []
    seen_statics: set[str] = set()
    for klass in cls.__mro__:
        if not is_heap_type(klass):
            continue
        for attr, value in klass.__dict__.items():
            if attr.startswith("__") and attr.endswith("__"):
                continue
            if attr in seen_statics:
                continue
            seen_statics.add(attr)
            if _is_static_value(value):
                statics.append((klass, attr))

    return ClassLayout(
        cls=cls,
        slots=tuple(slots),
        has_dict=cls.__dictoffset__ != 0,
        has_weakref=cls.__weakrefoffset__ != 0,
        builtin_base=builtin_base,
        unmetered=_class_unmetered(cls),
        unmetered_fields=frozenset(unmetered_fields),
        primitive_fields=frozenset(primitive_fields),
        statics=tuple(statics),
    )


class FieldCache:
    """Thread-safe cache of ``ClassLayout`` keyed by class.

    Layouts reference their class, so entries live until ``clear()``.
    """

    def __init__(self) -> None:
        self._layouts: dict[type, ClassLayout] = {}
        self._lock: threading.Lock = threading.Lock()

    def layout_of(self, cls: type) -> ClassLayout:
        """Return the cached layout for ``cls``, building it on first use."""
        with self._lock:
            cached = self._layouts.get(cls)
        if cached is not None:
            return cached

        layout = build_class_layout(cls)
        with self._lock:
            # another thread may have built it meanwhile; keep the first one
            return self._layouts.setdefault(cls, layout)

    def clear(self) -> None:
        with self._lock:
            self._layouts.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._layouts)


default_field_cache = FieldCache()
