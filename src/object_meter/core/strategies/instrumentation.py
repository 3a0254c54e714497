"""Size strategy backed by the interpreter's own size query."""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from typing import ClassVar

from object_meter.core.errors import CannotMeasureObject
from object_meter.core.fields import qualified_name
from object_meter.core.strategies.base import BaseSizeStrategy

logger = logging.getLogger(__name__)

type SizeFacility = Callable[[object], int]


class _Probe:
    __slots__ = ("value",)


class InstrumentationStrategy(BaseSizeStrategy):
    """Ask the interpreter how large an object is.

    The default facility is ``sys.getsizeof``, which reports what the
    allocator actually handed out, including the garbage collector header.
    Interpreters without a meaningful size query (PyPy raises ``TypeError``)
    make this strategy unavailable.
    """

    name: ClassVar[str] = "instrumentation"

    def __init__(self, facility: SizeFacility | None = None) -> None:
        """Initialize the strategy.

        Args:
            facility: Size query to use instead of ``sys.getsizeof``

        Raises:
            StrategyUnavailable: If the facility cannot measure a probe object
        """
        self._facility: SizeFacility = facility or sys.getsizeof
        super().__init__()

    def is_available(self) -> bool:
        try:
            probe_size = self._facility(_Probe())
        except (TypeError, NotImplementedError) as exc:
            self._unavailable_reason = f"size facility rejected probe object: {exc}"
            logger.debug("Instrumentation probe failed", exc_info=True)
            return False

        if isinstance(probe_size, bool) or not isinstance(probe_size, int) or probe_size < 0:
            self._unavailable_reason = f"size facility returned {probe_size!r} for probe object"
            return False
        return True

    def measure(self, obj: object) -> int:
        try:
            size = self._facility(obj)
        except Exception as exc:
            raise CannotMeasureObject(
                qualified_name(type(obj)),
                self.name,
                context={"error": str(exc)},
            ) from exc

        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise CannotMeasureObject(
                qualified_name(type(obj)),
                self.name,
                context={"reported_size": repr(size)},
            )
        return size
