"""Error taxonomy for the measurement core."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from object_meter.types.models import MeasurementResult


class MeasurementError(Exception):
    """Base exception for all measurement-related errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:  # pyright: ignore[reportAny] # Flexible error context
        """Initialize MeasurementError.

        Args:
            message: Error message
            context: Additional context information for debugging
        """
        super().__init__(message)
        self.context: dict[str, Any] = context or {}  # pyright: ignore[reportAny] # Flexible error context


class StrategyUnavailable(MeasurementError):
    """Raised at construction or selection time when a strategy lacks its privilege."""

    def __init__(
        self,
        strategy_name: str,
        reason: str,
        context: dict[str, Any] | None = None,  # pyright: ignore[reportAny] # Flexible error context
    ) -> None:
        """Initialize StrategyUnavailable.

        Args:
            strategy_name: Name of the strategy that cannot be used
            reason: Why the strategy is unavailable
            context: Additional context information
        """
        full_context = context or {}
        full_context["strategy"] = strategy_name
        full_context["reason"] = reason

        super().__init__(f"Size strategy '{strategy_name}' is unavailable: {reason}", full_context)
        self.strategy_name: str = strategy_name
        self.reason: str = reason


class CannotMeasureObject(MeasurementError):
    """Raised when the active strategy fails on one object during a call."""

    def __init__(
        self,
        object_type: str,
        strategy_name: str,
        context: dict[str, Any] | None = None,  # pyright: ignore[reportAny] # Flexible error context
    ) -> None:
        """Initialize CannotMeasureObject.

        Args:
            object_type: Qualified name of the type that could not be measured
            strategy_name: Name of the strategy that failed
            context: Additional context information
        """
        full_context = context or {}
        full_context["object_type"] = object_type
        full_context["strategy"] = strategy_name

        super().__init__(
            f"Strategy '{strategy_name}' cannot measure object of type {object_type}",
            full_context,
        )
        self.object_type: str = object_type
        self.strategy_name: str = strategy_name


class UnsupportedReferenceKind(MeasurementError):
    """A reference kind the enumerator cannot inspect.

    Never raised out of a measurement: the enumerator reports it and the
    engine turns it into a diagnostic on the result.
    """

    def __init__(
        self,
        object_type: str,
        detail: str,
        context: dict[str, Any] | None = None,  # pyright: ignore[reportAny] # Flexible error context
    ) -> None:
        full_context = context or {}
        full_context["object_type"] = object_type

        super().__init__(f"Unsupported reference kind in {object_type}: {detail}", full_context)
        self.object_type: str = object_type
        self.detail: str = detail


class MeasurementAborted(MeasurementError):
    """Raised when a soft cap stops a measurement before the graph was exhausted."""

    def __init__(
        self,
        reason: str,
        partial_result: MeasurementResult,
        context: dict[str, Any] | None = None,  # pyright: ignore[reportAny] # Flexible error context
    ) -> None:
        """Initialize MeasurementAborted.

        Args:
            reason: Which cap was exceeded
            partial_result: Result accumulated so far, marked incomplete
            context: Additional context information
        """
        full_context = context or {}
        full_context["reason"] = reason
        full_context["partial_bytes"] = partial_result.total_bytes
        full_context["partial_objects"] = partial_result.object_count

        super().__init__(f"Measurement aborted: {reason}", full_context)
        self.reason: str = reason
        self.partial_result: MeasurementResult = partial_result
