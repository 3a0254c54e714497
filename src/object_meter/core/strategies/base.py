"""Base class shared by the built-in size strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar

from object_meter.core.errors import StrategyUnavailable


class BaseSizeStrategy(ABC):
    """Abstract size strategy with a one-time capability check.

    Subclasses call ``super().__init__()`` once their own state is set up;
    the availability probe runs there, so a strategy that cannot work fails
    at construction instead of in the middle of a traversal.
    """

    name: ClassVar[str] = "base"

    def __init__(self) -> None:
        self._unavailable_reason: str = ""
        if not self.is_available():
            raise StrategyUnavailable(self.name, self._unavailable_reason or "capability probe failed")

    @abstractmethod
    def is_available(self) -> bool:
        """Probe whether this strategy can measure objects in this interpreter.

        Implementations store a human readable reason in
        ``_unavailable_reason`` before returning False.
        """
        pass

    @abstractmethod
    def measure(self, obj: object) -> int:
        """Return the shallow size of ``obj`` in bytes."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
