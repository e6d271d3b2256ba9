"""Tone adjustment of normalized frames.

Applies levels (black/white point), brightness, contrast and gamma to a
NormalizedCache and produces an RGBA raster. Gamma goes through a
256-entry lookup table so the per-pixel work is only arithmetic and one
table lookup. Renders are pure functions of (cache, params, stride).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Any

import numpy as np
from numpy.typing import NDArray

from alpaca_imaging.imaging.colormaps import ColorMap, apply_color_map
from alpaca_imaging.imaging.frame import NormalizedCache


@dataclass(frozen=True)
class AdjustmentParams:
    """User-controlled display adjustments.

    Attributes:
        contrast: Multiplier around mid-grey (128). 1.0 is neutral.
        brightness: Offset in 8-bit units added before contrast.
        gamma: Gamma exponent denominator; output = input^(1/gamma).
        color_map: False-colour map applied last.
        black_point: Percent of the 0..255 range mapped to black.
        white_point: Percent of the 0..255 range mapped to white.
        auto_stretch: Request histogram auto-stretch during normalization.

    Raises:
        ValueError: On non-finite numbers, gamma <= 0, contrast < 0, or
            black/white points outside 0 <= black_point < white_point <= 100.
    """

    contrast: float = 1.0
    brightness: float = 0.0
    gamma: float = 1.0
    color_map: ColorMap = ColorMap.GRAYSCALE
    black_point: float = 0.0
    white_point: float = 100.0
    auto_stretch: bool = False

    def __post_init__(self) -> None:
        for name in ("contrast", "brightness", "gamma", "black_point", "white_point"):
            value = getattr(self, name)
            if not math.isfinite(value):
                raise ValueError(f"{name} must be finite, got {value}")
        if not self.gamma > 0:
            raise ValueError(f"gamma must be > 0, got {self.gamma}")
        if not self.contrast >= 0:
            raise ValueError(f"contrast must be >= 0, got {self.contrast}")
        if not 0 <= self.black_point < self.white_point <= 100:
            raise ValueError(
                "black_point and white_point must satisfy "
                f"0 <= black_point < white_point <= 100, got "
                f"{self.black_point}, {self.white_point}"
            )
        # Accept plain strings such as "viridis" from web/CLI callers
        if not isinstance(self.color_map, ColorMap):
            object.__setattr__(self, "color_map", ColorMap(self.color_map))

    def with_changes(self, **changes: Any) -> AdjustmentParams:
        """Copy with some fields replaced.

        Example:
            >>> AdjustmentParams().with_changes(gamma=2.2).gamma
            2.2
        """
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "contrast": self.contrast,
            "brightness": self.brightness,
            "gamma": self.gamma,
            "color_map": self.color_map.value,
            "black_point": self.black_point,
            "white_point": self.white_point,
            "auto_stretch": self.auto_stretch,
        }


@lru_cache(maxsize=32)
def build_gamma_lut(gamma: float) -> NDArray[np.uint8]:
    """256-entry gamma table ``clamp(round(255 * (i/255)^(1/gamma)))``.

    gamma == 1 yields the identity table. Results are cached per gamma
    and returned read-only.

    Raises:
        ValueError: If gamma is not positive.

    Example:
        >>> int(build_gamma_lut(2.0)[64])
        128
    """
    if not gamma > 0:
        raise ValueError(f"gamma must be > 0, got {gamma}")
    if gamma == 1:
        lut = np.arange(256, dtype=np.uint8)
    else:
        ramp = np.arange(256, dtype=np.float64) / 255.0
        curve = np.floor(255.0 * np.power(ramp, 1.0 / gamma) + 0.5)
        lut = np.clip(curve, 0, 255).astype(np.uint8)
    lut.setflags(write=False)
    return lut


def adjusted_values(
    cache: NormalizedCache, params: AdjustmentParams, stride: int = 1
) -> NDArray[np.uint8]:
    """Tone-adjusted 8-bit intensities at the given resolution stride.

    For every sampled pixel ``v``:

    1. levels: ``v = clamp((v - bp * 2.55) * 100 / (wp - bp), 0, 255)``
    2. ``adjusted = clamp(128 + (v + brightness - 128) * contrast, 0, 255)``
    3. ``final = lut[round(adjusted)]``

    Args:
        cache: Normalized frame. Never modified.
        params: Adjustment parameters. Never retained.
        stride: 1 for full resolution, > 1 to subsample rows and columns.

    Returns:
        uint8 array of shape (ceil(height/stride), ceil(width/stride)).

    Raises:
        ValueError: If stride < 1.
    """
    if stride < 1:
        raise ValueError(f"stride must be >= 1, got {stride}")
    if cache.is_empty:
        return np.zeros((0, 0), dtype=np.uint8)

    values = cache.pixels[::stride, ::stride].astype(np.float64)

    if params.black_point != 0 or params.white_point != 100:
        black = params.black_point * 2.55
        values = np.clip(
            (values - black) * (100.0 / (params.white_point - params.black_point)),
            0.0,
            255.0,
        )

    adjusted = 128.0 + (values + params.brightness - 128.0) * params.contrast
    adjusted = np.clip(adjusted, 0.0, 255.0)
    lut = build_gamma_lut(float(params.gamma))
    return lut[np.floor(adjusted + 0.5).astype(np.intp)]


def apply_adjustments(
    cache: NormalizedCache, params: AdjustmentParams, stride: int = 1
) -> NDArray[np.uint8]:
    """Render an RGBA raster from a normalized frame.

    Grayscale replicates the adjusted value into R, G and B; other colour
    maps translate it through their lookup table. Alpha is always 255.

    Returns:
        uint8 array of shape (rows, cols, 4); (0, 0, 4) for empty caches.

    Example:
        >>> rgba = apply_adjustments(cache, AdjustmentParams(), stride=4)
        >>> rgba.shape[2]
        4
    """
    return colorize(adjusted_values(cache, params, stride), params.color_map)


def colorize(final: NDArray[np.uint8], color_map: ColorMap) -> NDArray[np.uint8]:
    """Expand adjusted intensities of shape (rows, cols) into RGBA."""
    rows, cols = final.shape
    rgba = np.empty((rows, cols, 4), dtype=np.uint8)
    if color_map is ColorMap.GRAYSCALE:
        rgba[..., 0] = final
        rgba[..., 1] = final
        rgba[..., 2] = final
    else:
        rgba[..., :3] = apply_color_map(final, color_map)
    rgba[..., 3] = 255
    return rgba
