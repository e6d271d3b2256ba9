"""Digital twin camera producing synthetic ImageBytes frames.

Generates 16-bit star fields (bias, sky background, Gaussian stars and
read noise) and serializes them in the Alpaca ImageBytes layout, so the
whole decode/normalize/adjust pipeline can be exercised without hardware.

Example:
    source = DigitalTwinFrameSource(DigitalTwinConfig(width=320, height=240))
    source.expose(exposure_time=2.0, gain=100)
    payload = source.read_image_bytes()
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import cv2
import numpy as np
from numpy.typing import NDArray

from alpaca_imaging.imaging.decoder import encode_image_bytes
from alpaca_imaging.imaging.frame import ElementType
from alpaca_imaging.observability import get_logger

logger = get_logger(__name__)

# Full well of the simulated 16-bit sensor
_MAX_ADU = 65535

# Stars are drawn as single-pixel impulses then blurred into a PSF
_STAR_PSF_SIGMA = 1.5

# Gain units per doubling of signal and noise
_GAIN_DOUBLING = 100.0


@dataclass
class DigitalTwinConfig:
    """Configuration for the synthetic sensor.

    Attributes:
        width: Sensor width in pixels at binning 1.
        height: Sensor height in pixels at binning 1.
        star_count: Number of stars in the field.
        bias: Constant offset in ADU.
        sky_rate: Sky background in ADU per second of exposure.
        read_noise: Read noise standard deviation in ADU.
        seed: Seed for the star layout and noise; None for random fields.
    """

    width: int = 640
    height: int = 480
    star_count: int = 120
    bias: float = 500.0
    sky_rate: float = 200.0
    read_noise: float = 12.0
    seed: int | None = None

    def __post_init__(self) -> None:
        if self.width < 1 or self.height < 1:
            raise ValueError(
                f"width and height must be >= 1, got {self.width}x{self.height}"
            )
        if self.star_count < 0:
            raise ValueError(f"star_count must be >= 0, got {self.star_count}")


class DigitalTwinFrameSource:
    """Synthetic camera implementing the FrameSource protocol.

    ``expose()`` simulates an exposure and keeps its payload;
    ``read_image_bytes()`` returns the payload of the latest exposure,
    exposing with default settings first if none has run yet.
    """

    def __init__(self, config: DigitalTwinConfig | None = None) -> None:
        self._config = config or DigitalTwinConfig()
        self._rng = np.random.default_rng(self._config.seed)
        self._stars = self._place_stars()
        self._last_payload: bytes | None = None
        self._exposure_count = 0

    @property
    def config(self) -> DigitalTwinConfig:
        return self._config

    @property
    def exposure_count(self) -> int:
        return self._exposure_count

    def __repr__(self) -> str:
        return (
            f"DigitalTwinFrameSource(width={self._config.width}, "
            f"height={self._config.height}, exposures={self._exposure_count})"
        )

    def _place_stars(self) -> NDArray[np.float64]:
        """Star positions (x, y) in unit coordinates and peak fluxes per second."""
        count = self._config.star_count
        positions = self._rng.random((count, 2))
        # Power-law fluxes: few bright stars, many faint ones
        fluxes = 2000.0 * self._rng.pareto(1.5, count) + 300.0
        return np.column_stack([positions, fluxes])

    def render(
        self, exposure_time: float = 1.0, gain: int = 0, binning: int = 1
    ) -> NDArray[np.uint16]:
        """Simulate one exposure as a row-major (height, width) uint16 image.

        Raises:
            ValueError: If exposure_time < 0, gain < 0 or binning < 1.
        """
        if exposure_time < 0:
            raise ValueError(f"exposure_time must be >= 0, got {exposure_time}")
        if gain < 0:
            raise ValueError(f"gain must be >= 0, got {gain}")
        if binning < 1:
            raise ValueError(f"binning must be >= 1, got {binning}")

        cfg = self._config
        width = max(1, cfg.width // binning)
        height = max(1, cfg.height // binning)
        amplification = 2.0 ** (gain / _GAIN_DOUBLING)
        # Binned pixels collect the signal of binning**2 sensor pixels
        collected = exposure_time * amplification * binning * binning

        img: NDArray[Any] = np.zeros((height, width), dtype=np.float32)
        if len(self._stars):
            xs = np.minimum((self._stars[:, 0] * width).astype(int), width - 1)
            ys = np.minimum((self._stars[:, 1] * height).astype(int), height - 1)
            np.add.at(img, (ys, xs), (self._stars[:, 2] * collected).astype(np.float32))
            img = cv2.GaussianBlur(img, (0, 0), _STAR_PSF_SIGMA)
            # Restore peak brightness lost to blurring
            img *= np.float32(2.0 * np.pi * _STAR_PSF_SIGMA**2)

        img += np.float32(cfg.bias + cfg.sky_rate * collected)
        noise = self._rng.normal(0.0, cfg.read_noise * amplification, img.shape)
        img += noise.astype(np.float32)
        return np.clip(np.rint(img), 0, _MAX_ADU).astype(np.uint16)

    def expose(
        self, exposure_time: float = 1.0, gain: int = 0, binning: int = 1
    ) -> bytes:
        """Run a simulated exposure and return its ImageBytes payload."""
        image = self.render(exposure_time, gain, binning)
        self._exposure_count += 1
        # ImageBytes is indexed [x, y]
        payload = encode_image_bytes(
            image.T,
            image_element_type=ElementType.UINT16,
            transmission_element_type=ElementType.UINT16,
            server_transaction_id=self._exposure_count,
        )
        self._last_payload = payload
        logger.debug(
            "Synthetic exposure complete",
            width=image.shape[1],
            height=image.shape[0],
            exposure_time=exposure_time,
            gain=gain,
            binning=binning,
            payload_kb=round(len(payload) / 1024, 1),
        )
        return payload

    def read_image_bytes(self) -> bytes:
        if self._last_payload is None:
            return self.expose()
        return self._last_payload
