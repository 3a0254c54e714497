"""Identity-keyed set of objects already counted during one measurement."""

from __future__ import annotations

from collections.abc import Callable

type IdentityKey = Callable[[object], int]


class IdentityVisitedSet:
    """Set of objects compared by identity, never by ``__eq__`` or ``__hash__``.

    Entries are bucketed by an identity key (``id`` by default) and compared
    with ``is`` inside a bucket, so two equal but distinct objects are two
    entries and a key collision never merges different objects. Members are
    held strongly, which keeps their ids from being reused while the set is
    alive; create one per measurement and drop it afterwards.
    """

    def __init__(self, key: IdentityKey = id) -> None:
        """Initialize an empty set.

        Args:
            key: Identity hash function, ``id`` unless testing collisions
        """
        self._key: IdentityKey = key
        self._buckets: dict[int, list[object]] = {}
        self._size: int = 0

    def try_visit(self, obj: object) -> bool:
        """Insert ``obj`` unless it is already present.

        Args:
            obj: Object to record

        Returns:
            True if ``obj`` was newly added, False if it was already visited
        """
        bucket = self._buckets.setdefault(self._key(obj), [])
        for member in bucket:
            if member is obj:
                return False
        bucket.append(obj)
        self._size += 1
        return True

    def __contains__(self, obj: object) -> bool:
        bucket = self._buckets.get(self._key(obj))
        if not bucket:
            return False
        return any(member is obj for member in bucket)

    def __len__(self) -> int:
        return self._size

    def clear(self) -> None:
        self._buckets.clear()
        self._size = 0
