"""Data model for decoded Alpaca frames.

Defines the ImageBytes element type codes, the parsed header, the decoded
Frame and the 8-bit NormalizedCache derived from it. All objects here are
immutable; a new camera frame replaces them wholesale.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum

import numpy as np
from numpy.typing import NDArray

#: Size in bytes of the fixed ImageBytes metadata header (eleven int32s).
HEADER_SIZE = 44

#: Metadata version written by encode_image_bytes().
METADATA_VERSION = 1


class ElementType(IntEnum):
    """ASCOM ImageArrayElementTypes codes used in the ImageBytes header."""

    UNKNOWN = 0
    INT16 = 1
    INT32 = 2
    DOUBLE = 3
    SINGLE = 4
    UINT64 = 5
    BYTE = 6
    INT64 = 7
    UINT16 = 8
    UINT32 = 9


class BayerPattern(str, Enum):
    """Colour filter layout of a one-shot-colour sensor.

    Letters read the top-left 2x2 cell row by row, so RGGB has red at
    (row 0, column 0) and blue at (row 1, column 1).
    """

    RGGB = "RGGB"
    GRBG = "GRBG"
    GBRG = "GBRG"
    BGGR = "BGGR"


class StretchMethod(str, Enum):
    """Transfer curve mapping the display range onto 0..255."""

    LINEAR = "linear"
    LOG = "log"


_BITS_PER_PIXEL: dict[int, int] = {
    ElementType.INT16: 16,
    ElementType.UINT16: 16,
    ElementType.INT32: 32,
    ElementType.UINT32: 32,
    ElementType.SINGLE: 32,
    ElementType.DOUBLE: 64,
    ElementType.UINT64: 64,
    ElementType.INT64: 64,
}


def bits_per_pixel(image_element_type: int) -> int:
    """Original sensor bit depth for an image element type.

    Byte and unrecognized codes map to 8.

    Example:
        >>> bits_per_pixel(ElementType.UINT16)
        16
        >>> bits_per_pixel(42)
        8
    """
    return _BITS_PER_PIXEL.get(image_element_type, 8)


def theoretical_range(bits: int) -> tuple[float, float]:
    """Full representable range for a bit depth.

    64-bit sources are truncated to 32 bits during decode, so they share
    the 32-bit range.

    Example:
        >>> theoretical_range(16)
        (0.0, 65535.0)
    """
    if bits <= 8:
        return 0.0, 255.0
    if bits <= 16:
        return 0.0, 65535.0
    return 0.0, float(2**32 - 1)


@dataclass(frozen=True)
class ImageBytesHeader:
    """Parsed ImageBytes metadata header (all little-endian int32)."""

    metadata_version: int
    error_number: int
    client_transaction_id: int
    server_transaction_id: int
    data_start: int
    image_element_type: int
    transmission_element_type: int
    rank: int
    dimension1: int
    dimension2: int
    dimension3: int

    @property
    def is_color(self) -> bool:
        """True for rank-3 frames with three colour planes."""
        return self.rank == 3 and self.dimension3 == 3


def _empty_pixels() -> NDArray[np.uint8]:
    pixels = np.zeros(0, dtype=np.uint8)
    pixels.setflags(write=False)
    return pixels


@dataclass(frozen=True, eq=False)
class Frame:
    """One decoded camera frame.

    ``pixels`` is a flat, read-only array in the column-major order the
    camera sent it (index ``x * height + y``; for colour frames
    ``(x * height + y) * 3 + plane``). Its dtype follows the transmission
    element type.

    A frame with zero width or height means "no image". ``error_message``
    carries the device's error text when the header reported an error.
    """

    width: int
    height: int
    rank: int = 2
    image_element_type: int = ElementType.UNKNOWN
    transmission_element_type: int = ElementType.UNKNOWN
    error_code: int = 0
    error_message: str | None = None
    pixels: NDArray[np.generic] = field(default_factory=_empty_pixels, repr=False)
    planes: int = 1
    metadata_version: int = 0
    data_start: int = 0

    @classmethod
    def empty(
        cls,
        *,
        error_code: int = 0,
        error_message: str | None = None,
        header: ImageBytesHeader | None = None,
    ) -> Frame:
        """Build the zero-dimension "no image" marker.

        Header fields are carried over when available so callers can still
        inspect what the device announced.
        """
        if header is None:
            return cls(
                width=0, height=0, error_code=error_code, error_message=error_message
            )
        return cls(
            width=0,
            height=0,
            rank=header.rank,
            image_element_type=header.image_element_type,
            transmission_element_type=header.transmission_element_type,
            error_code=error_code,
            error_message=error_message,
            metadata_version=header.metadata_version,
            data_start=header.data_start,
        )

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    @property
    def is_color(self) -> bool:
        return self.planes == 3

    @property
    def pixel_count(self) -> int:
        return max(self.width, 0) * max(self.height, 0)

    @property
    def bits_per_pixel(self) -> int:
        return bits_per_pixel(self.image_element_type)

    def as_column_major(self) -> NDArray[np.generic]:
        """View of the samples indexed ``[x, y]`` (or ``[x, y, plane]``).

        This is the layout of the Alpaca ImageArray JSON representation.
        Returns an empty array for empty frames.
        """
        if self.is_empty:
            return self.pixels[:0]
        count = self.pixel_count * self.planes
        shape = (self.width, self.height, 3) if self.is_color else (
            self.width,
            self.height,
        )
        return self.pixels[:count].reshape(shape)


@dataclass(frozen=True)
class ImageStatistics:
    """Min, max and mean of the raw (possibly sampled) sample values."""

    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    sample_count: int = 0

    def to_dict(self) -> dict[str, float | int]:
        return {
            "min": self.min,
            "max": self.max,
            "mean": self.mean,
            "sample_count": self.sample_count,
        }


def _empty_raster() -> NDArray[np.uint8]:
    pixels = np.zeros((0, 0), dtype=np.uint8)
    pixels.setflags(write=False)
    return pixels


@dataclass(frozen=True, eq=False)
class NormalizedCache:
    """8-bit display data derived once from a Frame.

    Attributes:
        width: Frame width in pixels.
        height: Frame height in pixels.
        pixels: Read-only uint8 array of shape (height, width), row-major.
        source_min: Raw value mapped to 0.
        source_max: Raw value mapped to 255.
        bits_per_pixel: Original sensor bit depth.
        auto_stretched: True when the range came from auto-stretch.
        stretch_method: Transfer curve used for the 0..255 mapping.
        bayer_pattern: Mosaic the frame was debayered with, if any.
        statistics: Raw value statistics of the source frame.
    """

    width: int
    height: int
    pixels: NDArray[np.uint8] = field(default_factory=_empty_raster, repr=False)
    source_min: float = 0.0
    source_max: float = 255.0
    bits_per_pixel: int = 8
    auto_stretched: bool = False
    statistics: ImageStatistics = field(default_factory=ImageStatistics)
    stretch_method: StretchMethod = StretchMethod.LINEAR
    bayer_pattern: BayerPattern | None = None

    @classmethod
    def empty(cls) -> NormalizedCache:
        return cls(width=0, height=0)

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    @property
    def buffer(self) -> NDArray[np.uint8]:
        """Flat row-major byte sequence of length width * height."""
        return self.pixels.reshape(-1)
