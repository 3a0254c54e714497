"""Turn a configuration file into a ready-to-use meter."""

from __future__ import annotations

from pathlib import Path

from object_meter.core.engine import MemoryMeter
from object_meter.core.spec import MeasurementSpec
from object_meter.types.protocols import MeterListenerFactory
from object_meter.utils.logging import configure_logging

from .exceptions import handle_config_error
from .loader.config_loader import ConfigLoader
from .models.meter import MeterConfig


def build_meter(
    config: MeterConfig,
    listener_factory: MeterListenerFactory | None = None,
    apply_logging: bool = False,
) -> MemoryMeter:
    """Create a ``MemoryMeter`` from a validated configuration.

    Args:
        config: Validated meter configuration
        listener_factory: Creates a listener per measurement
        apply_logging: Also install the configured logging handlers

    Returns:
        Meter honoring the configuration

    Raises:
        StrategyUnavailable: If the configured strategy cannot run here
    """
    if apply_logging:
        _ = configure_logging(
            log_level=config.logging.level,
            log_format=config.logging.format,
            log_file=config.logging.file,
        )
    spec = MeasurementSpec.from_config(config, listener_factory=listener_factory)
    return MemoryMeter(spec, debug_depth=config.logging.debug_tree_depth)


def load_meter(path: Path | str | None = None, apply_logging: bool = True) -> MemoryMeter:
    """Load configuration from ``path`` and the environment, then build a meter.

    Raises:
        ConfigError: If the configuration cannot be loaded or is invalid
    """
    try:
        config = ConfigLoader().load(path)
    except Exception as e:
        raise handle_config_error(e, "loading meter configuration") from e
    return build_meter(config, apply_logging=apply_logging)
