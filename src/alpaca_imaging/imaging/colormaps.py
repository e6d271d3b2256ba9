"""Simplified false-colour maps.

Each map is a 256-entry RGB table built by piecewise-linear interpolation
between a handful of anchor colours. The anchors follow the look of the
well-known maps but the tables are not the published colour data.
"""

from __future__ import annotations

from enum import Enum
from functools import cache

import numpy as np
from numpy.typing import NDArray


class ColorMap(str, Enum):
    """Scalar-to-RGB mapping applied after tone adjustment."""

    GRAYSCALE = "grayscale"
    HEAT = "heat"
    VIRIDIS = "viridis"
    PLASMA = "plasma"


# Anchor colours at evenly spaced positions from 0.0 to 1.0
_ANCHORS: dict[ColorMap, tuple[tuple[int, int, int], ...]] = {
    ColorMap.HEAT: (
        (0, 0, 0),
        (255, 0, 0),
        (255, 255, 0),
        (255, 255, 255),
    ),
    ColorMap.VIRIDIS: (
        (68, 1, 84),
        (59, 82, 139),
        (33, 145, 140),
        (94, 201, 98),
        (253, 231, 37),
    ),
    ColorMap.PLASMA: (
        (13, 8, 135),
        (126, 3, 168),
        (204, 71, 120),
        (248, 149, 64),
        (240, 249, 33),
    ),
}


@cache
def color_map_table(color_map: ColorMap) -> NDArray[np.uint8]:
    """256x3 uint8 lookup table for ``color_map``.

    Grayscale returns the identity ramp replicated over R, G and B.
    Tables are cached and returned read-only.

    Example:
        >>> color_map_table(ColorMap.HEAT)[255].tolist()
        [255, 255, 255]
    """
    ramp = np.arange(256, dtype=np.float64)
    if color_map is ColorMap.GRAYSCALE:
        table = np.repeat(ramp[:, None], 3, axis=1)
    else:
        anchors = np.asarray(_ANCHORS[color_map], dtype=np.float64)
        positions = np.linspace(0.0, 255.0, len(anchors))
        table = np.stack(
            [np.interp(ramp, positions, anchors[:, channel]) for channel in range(3)],
            axis=1,
        )
    result = np.floor(table + 0.5).astype(np.uint8)
    result.setflags(write=False)
    return result


def apply_color_map(
    values: NDArray[np.uint8], color_map: ColorMap
) -> NDArray[np.uint8]:
    """Map 8-bit intensities to RGB; output shape is ``values.shape + (3,)``."""
    return color_map_table(color_map)[values]
