"""Shared utility modules: logging setup and human-readable formatting."""

from object_meter.utils.formatting import (
    format_elapsed,
    format_size,
)
from object_meter.utils.logging import (
    MeasurementIDFilter,
    configure_logging,
    get_measurement_id,
    measurement_id_context,
)

__all__ = [
    # Formatting utilities
    "format_elapsed",
    "format_size",
    # Logging
    "MeasurementIDFilter",
    "configure_logging",
    "get_measurement_id",
    "measurement_id_context",
]
