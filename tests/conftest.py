"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import logging
from collections.abc import Callable, Generator

import pytest

from object_meter.core.fields import FieldCache
from object_meter.core.layout import MemoryLayout
from object_meter.core.spec import MeasurementSpec
from object_meter.core.engine import MemoryMeter
from object_meter.core.strategies.specification import SpecificationStrategy
from object_meter.types.models import ReferencePolicy


@pytest.fixture
def layout() -> MemoryLayout:
    """A fixed 64-bit layout: 16-byte headers, 8-byte alignment and references."""
    return MemoryLayout(
        object_header_size=16,
        array_header_size=16,
        object_alignment=8,
        array_alignment=8,
        pointer_size=8,
    )


@pytest.fixture
def field_cache() -> FieldCache:
    """A private field cache so tests never share class metadata."""
    return FieldCache()


@pytest.fixture
def spec_strategy(layout: MemoryLayout, field_cache: FieldCache) -> SpecificationStrategy:
    """Specification strategy on the fixed layout."""
    return SpecificationStrategy(layout, field_cache)


@pytest.fixture
def make_meter(
    spec_strategy: SpecificationStrategy,
    field_cache: FieldCache,
) -> Callable[..., MemoryMeter]:
    """Factory building specification-backed meters with a custom policy."""

    def _make(policy: ReferencePolicy | None = None, **kwargs: object) -> MemoryMeter:
        spec = MeasurementSpec.build(
            strategy=spec_strategy,
            reference_policy=policy,
            field_cache=field_cache,
            **kwargs,  # pyright: ignore[reportArgumentType]
        )
        return MemoryMeter(spec)

    return _make


@pytest.fixture
def meter(make_meter: Callable[..., MemoryMeter]) -> MemoryMeter:
    """Specification-backed meter with the default reference policy."""
    return make_meter()


@pytest.fixture
def package_logger() -> Generator[logging.Logger]:
    """The library logger, with handlers and level restored after the test."""
    logger = logging.getLogger("object_meter")
    handlers = list(logger.handlers)
    level = logger.level
    try:
        yield logger
    finally:
        for handler in list(logger.handlers):
            if handler not in handlers:
                logger.removeHandler(handler)
                handler.close()
        for handler in handlers:
            if handler not in logger.handlers:
                logger.addHandler(handler)
        logger.setLevel(level)
