"""Pytest configuration and fixtures for alpaca-imaging tests.

Provides deterministic stand-ins for the pipeline's injectable
dependencies (scheduler, clock, JPEG encoder) plus ImageBytes payload
builders, so tests never depend on wall-clock timing or an event loop.
"""

from __future__ import annotations

import numpy as np
import pytest

from alpaca_imaging.config import PipelineConfig, reset_config
from alpaca_imaging.imaging.decoder import encode_image_bytes
from alpaca_imaging.imaging.frame import ElementType
from alpaca_imaging.imaging.pipeline import ImagePipeline
from alpaca_imaging.observability import reset_logging
from tests.helpers import FakeClock, ManualScheduler, MockEncoder


@pytest.fixture(autouse=True)
def reset_global_state():
    """Restore logging and configuration globals after every test.

    Business context: configure_logging() and configure() mutate
    process-wide state. Resetting keeps tests order-independent.

    Yields:
        None.
    """
    yield
    reset_logging()
    reset_config()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def encoder() -> MockEncoder:
    return MockEncoder()


@pytest.fixture
def pipeline(scheduler, clock, encoder) -> ImagePipeline:
    """ImagePipeline wired to manual scheduler, fake clock and mock encoder.

    Not started; tests that exercise the debounce call start() or use
    the ``running_pipeline`` fixture.
    """
    return ImagePipeline(
        config=PipelineConfig(),
        encoder=encoder,
        scheduler=scheduler,
        clock=clock,
    )


@pytest.fixture
def running_pipeline(pipeline):
    """Started pipeline; stopped again at teardown."""
    with pipeline:
        yield pipeline


@pytest.fixture
def ramp_columns() -> np.ndarray:
    """4x4 16-bit frame indexed [x, y] whose row-major order is 0..15.

    Column-major wire order is therefore
    [0, 4, 8, 12, 1, 5, 9, 13, 2, 6, 10, 14, 3, 7, 11, 15].
    """
    return np.arange(16, dtype=np.uint16).reshape(4, 4).T


@pytest.fixture
def ramp_bytes(ramp_columns) -> bytes:
    return encode_image_bytes(ramp_columns, ElementType.UINT16)


@pytest.fixture
def star_field_bytes() -> bytes:
    """64x48 16-bit synthetic frame with a dim background and a few stars."""
    rng = np.random.default_rng(42)
    image = rng.normal(1000, 20, size=(48, 64)).clip(0, 65535)
    for y, x in [(10, 10), (20, 40), (30, 25), (40, 55)]:
        image[y, x] = 50000
    return encode_image_bytes(image.astype(np.uint16).T, ElementType.UINT16)
