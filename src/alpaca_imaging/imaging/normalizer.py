"""Range analysis and 8-bit normalization.

Turns a decoded Frame into a NormalizedCache: a row-major uint8 raster
that every later adjustment reads. This pass is the expensive one and runs
once per frame (per auto-stretch setting).

Range selection for frames deeper than 8 bits:

1. Scan finite samples for min/max, sampling very large frames.
2. If the span is non-finite or under the noise floor, use the full range
   of the sensor bit depth instead.
3. Optionally auto-stretch: clip the darkest 1% and brightest 0.5% of
   pixels using a 1024-bin histogram over the scanned range.

Raw one-shot-colour frames can be demosaiced first (bilinear, see
debayer()) so the colour filter grid does not show up as a checkerboard.
The chosen range is mapped linearly or logarithmically.

8-bit frames are clamped straight to [0, 255] and never stretched.
"""

from __future__ import annotations

import math
from typing import Any

import numpy as np
from numpy.typing import NDArray

from alpaca_imaging.config import (
    DEFAULT_BLACK_CLIP,
    DEFAULT_NOISE_FLOOR,
    DEFAULT_SAMPLE_THRESHOLD,
    DEFAULT_STRETCH_BINS,
    DEFAULT_WHITE_CLIP,
)
from alpaca_imaging.imaging.frame import (
    BayerPattern,
    Frame,
    ImageStatistics,
    NormalizedCache,
    StretchMethod,
    theoretical_range,
)
from alpaca_imaging.observability import get_logger

logger = get_logger(__name__)


def sample_step(pixel_count: int, threshold: int = DEFAULT_SAMPLE_THRESHOLD) -> int:
    """Stride used when scanning frames larger than ``threshold`` pixels.

    Example:
        >>> sample_step(500)
        1
        >>> sample_step(4_000_000)
        63
    """
    if pixel_count <= threshold:
        return 1
    return max(1, math.floor(math.sqrt(pixel_count / 1000)))


def to_row_major(frame: Frame) -> NDArray[Any]:
    """Reorder a frame's samples into a (height, width) raster.

    Source sample ``x * height + y`` lands at row ``y``, column ``x``.
    Colour frames are reduced to the mean of their three planes.

    Returns:
        Array of shape (height, width). Dtype follows the frame for
        monochrome data and is float64 for colour data.
    """
    if frame.is_empty:
        return np.zeros((0, 0), dtype=np.float64)
    columns = frame.as_column_major()
    if frame.is_color:
        columns = columns.astype(np.float64).mean(axis=2)
    return columns.T


def _neighbourhood_sum(values: NDArray[np.float64]) -> NDArray[np.float64]:
    """Sum over each pixel's 3x3 neighbourhood, zero outside the raster."""
    height, width = values.shape
    padded = np.pad(values, 1)
    total = np.zeros_like(values)
    for dy in range(3):
        for dx in range(3):
            total += padded[dy : dy + height, dx : dx + width]
    return total


def debayer(raster: NDArray[Any], pattern: BayerPattern | str) -> NDArray[np.float64]:
    """Bilinear demosaic of a row-major colour-filter-array raster.

    Each pixel keeps its own sample for the channel its filter passes.
    The two missing channels are the mean of the same-colour samples in
    its 3x3 neighbourhood: the four orthogonal greens at a red or blue
    site, the four diagonal blues at a red site (and vice versa), and the
    two row or column neighbours at a green site. Only neighbours inside
    the raster are averaged; a pixel with none keeps its own sample.

    Args:
        raster: (height, width) mosaic samples.
        pattern: Filter layout of the top-left 2x2 cell.

    Returns:
        Array of shape (height, width, 3) holding R, G and B planes.

    Raises:
        ValueError: If ``pattern`` is not a known Bayer layout.

    Example:
        >>> rgb = debayer(np.array([[10, 20], [30, 40]]), "RGGB")
        >>> rgb[0, 0].tolist()
        [10.0, 25.0, 40.0]
    """
    layout = BayerPattern(pattern).value
    height, width = raster.shape
    values = raster.astype(np.float64)
    rows = np.arange(height)[:, None] % 2
    cols = np.arange(width)[None, :] % 2
    site = rows * 2 + cols

    rgb = np.empty((height, width, 3), dtype=np.float64)
    for plane, channel in enumerate("RGB"):
        mask = np.isin(site, [i for i, c in enumerate(layout) if c == channel])
        samples = np.where(mask, values, 0.0)
        counts = _neighbourhood_sum(mask.astype(np.float64))
        interpolated = np.divide(
            _neighbourhood_sum(samples), counts, out=values.copy(), where=counts > 0
        )
        rgb[..., plane] = np.where(mask, values, interpolated)
    return rgb


def compute_statistics(
    values: NDArray[Any], threshold: int = DEFAULT_SAMPLE_THRESHOLD
) -> ImageStatistics:
    """Min, max and mean of the finite values (sampled above ``threshold``).

    Returns zeroed statistics when no finite value exists.
    """
    flat = values.reshape(-1)
    sampled = flat[:: sample_step(flat.size, threshold)]
    if sampled.dtype.kind == "f":
        sampled = sampled[np.isfinite(sampled)]
    if sampled.size == 0:
        return ImageStatistics()
    return ImageStatistics(
        min=float(sampled.min()),
        max=float(sampled.max()),
        mean=float(sampled.mean(dtype=np.float64)),
        sample_count=int(sampled.size),
    )


def find_display_range(
    statistics: ImageStatistics,
    bits: int,
    noise_floor: float = DEFAULT_NOISE_FLOOR,
) -> tuple[float, float]:
    """Choose the raw range mapped onto 0..255 for a deep frame.

    Falls back to the theoretical range of ``bits`` when the scanned span
    is empty, non-finite or narrower than ``noise_floor``.

    Example:
        >>> find_display_range(ImageStatistics(min=100, max=104, sample_count=9), 16)
        (0.0, 65535.0)
    """
    low, high = statistics.min, statistics.max
    if (
        statistics.sample_count == 0
        or not math.isfinite(low)
        or not math.isfinite(high)
        or high - low < noise_floor
    ):
        return theoretical_range(bits)
    return low, high


def stretch_histogram(
    values: NDArray[Any], low: float, high: float, bins: int = DEFAULT_STRETCH_BINS
) -> NDArray[np.int64]:
    """Histogram of ``values`` over [low, high] used for auto-stretch.

    Bin of value v is ``floor((v - low) * (bins - 1) / (high - low))``
    clamped to the valid index range. Non-finite values are ignored.
    """
    flat = values.reshape(-1).astype(np.float64)
    flat = flat[np.isfinite(flat)]
    span = high - low
    if span <= 0 or flat.size == 0:
        return np.zeros(bins, dtype=np.int64)
    index = np.floor((flat - low) * ((bins - 1) / span))
    index = np.clip(index, 0, bins - 1).astype(np.intp)
    return np.bincount(index, minlength=bins).astype(np.int64)


def stretch_bin_indices(
    histogram: NDArray[np.int64],
    black_clip: float = DEFAULT_BLACK_CLIP,
    white_clip: float = DEFAULT_WHITE_CLIP,
) -> tuple[int, int]:
    """Black and white point bin indices of a stretch histogram.

    The black index is the smallest bin whose cumulative population
    exceeds ``black_clip`` of the total. The white index is the largest
    bin whose population counted from the top exceeds ``white_clip``.

    Returns:
        (black_index, white_index). (0, bins - 1) for an empty histogram.

    Example:
        >>> stretch_bin_indices(np.array([0, 50, 50, 0]))
        (1, 2)
    """
    bins = histogram.size
    total = int(histogram.sum())
    if total == 0:
        return 0, bins - 1

    from_bottom = np.cumsum(histogram)
    from_top = np.cumsum(histogram[::-1])[::-1]

    black_candidates = np.flatnonzero(from_bottom > total * black_clip)
    white_candidates = np.flatnonzero(from_top > total * white_clip)
    black = int(black_candidates[0]) if black_candidates.size else 0
    white = int(white_candidates[-1]) if white_candidates.size else bins - 1
    return black, white


def auto_stretch_range(
    values: NDArray[Any],
    low: float,
    high: float,
    bins: int = DEFAULT_STRETCH_BINS,
    black_clip: float = DEFAULT_BLACK_CLIP,
    white_clip: float = DEFAULT_WHITE_CLIP,
) -> tuple[float, float] | None:
    """Auto-stretch black/white points in raw units, or None if unusable.

    None is returned when the white point does not exceed the black point,
    in which case callers keep the scanned range.
    """
    histogram = stretch_histogram(values, low, high, bins)
    black_index, white_index = stretch_bin_indices(histogram, black_clip, white_clip)
    bin_width = (high - low) / (bins - 1)
    black = low + black_index * bin_width
    white = low + white_index * bin_width
    if white <= black:
        return None
    return black, white


def normalize_frame(
    frame: Frame,
    auto_stretch: bool = False,
    display_range: tuple[float, float] | None = None,
    *,
    sample_threshold: int = DEFAULT_SAMPLE_THRESHOLD,
    noise_floor: float = DEFAULT_NOISE_FLOOR,
    stretch_bins: int = DEFAULT_STRETCH_BINS,
    black_clip: float = DEFAULT_BLACK_CLIP,
    white_clip: float = DEFAULT_WHITE_CLIP,
    bayer_pattern: BayerPattern | str | None = None,
    stretch_method: StretchMethod | str = StretchMethod.LINEAR,
) -> NormalizedCache:
    """Convert a frame into its cached 8-bit row-major representation.

    With the linear method each output pixel is
    ``round(clamp((raw - min) / (max - min), 0, 1) * 255)``
    where (min, max) is ``display_range`` if given, else the scanned or
    auto-stretched range. The log method maps
    ``log(max(1, raw))`` between ``log(max(1, min))`` and ``log(max(2, max))``
    instead. Frames of 8 bits or less are clamped directly.

    Args:
        frame: Decoded frame. Empty frames yield an empty cache.
        auto_stretch: Apply histogram clipping (frames > 8 bits only).
        display_range: Explicit (min, max) overriding the range search.
        sample_threshold: Pixel count above which scans are sampled.
        noise_floor: Minimum span before using the full bit-depth range.
        stretch_bins: Auto-stretch histogram bin count.
        black_clip: Auto-stretch black clip fraction.
        white_clip: Auto-stretch white clip fraction.
        bayer_pattern: Demosaic monochrome frames with this colour filter
            layout before reducing them to luminance. Ignored for frames
            that already carry three planes.
        stretch_method: Transfer curve, "linear" or "log".

    Returns:
        NormalizedCache with a read-only (height, width) uint8 raster.

    Example:
        >>> cache = normalize_frame(frame, display_range=(0, 15))
        >>> cache.buffer[:4]
        array([ 0, 17, 34, 51], dtype=uint8)
    """
    if frame.is_empty:
        return NormalizedCache.empty()

    method = StretchMethod(stretch_method)
    pattern = None
    raster = to_row_major(frame)
    if bayer_pattern is not None and not frame.is_color:
        pattern = BayerPattern(bayer_pattern)
        raster = debayer(raster, pattern).mean(axis=2)
    statistics = compute_statistics(raster, sample_threshold)
    bits = frame.bits_per_pixel
    stretched = False

    if bits <= 8 and display_range is None:
        low, high = 0.0, 255.0
        scaled = np.nan_to_num(raster.astype(np.float64), nan=0.0)
        pixels = np.floor(np.clip(scaled, 0, 255) + 0.5).astype(np.uint8)
    else:
        if display_range is not None:
            low, high = float(display_range[0]), float(display_range[1])
        else:
            low, high = find_display_range(statistics, bits, noise_floor)
            if auto_stretch:
                step = sample_step(raster.size, sample_threshold)
                stretch = auto_stretch_range(
                    raster.reshape(-1)[::step],
                    low,
                    high,
                    stretch_bins,
                    black_clip,
                    white_clip,
                )
                if stretch is not None:
                    low, high = stretch
                    stretched = True
        if not high > low:
            low, high = theoretical_range(bits)
        pixels = _scale_to_bytes(raster, low, high, method)

    pixels = np.ascontiguousarray(pixels)
    pixels.setflags(write=False)

    logger.debug(
        "Frame normalized",
        width=frame.width,
        height=frame.height,
        bits=bits,
        source_min=low,
        source_max=high,
        auto_stretched=stretched,
        stretch_method=method.value,
        bayer_pattern=pattern.value if pattern else None,
    )
    return NormalizedCache(
        width=frame.width,
        height=frame.height,
        pixels=pixels,
        source_min=low,
        source_max=high,
        bits_per_pixel=bits,
        auto_stretched=stretched,
        statistics=statistics,
        stretch_method=method,
        bayer_pattern=pattern,
    )


def _scale_to_bytes(
    raster: NDArray[Any],
    low: float,
    high: float,
    method: StretchMethod = StretchMethod.LINEAR,
) -> NDArray[np.uint8]:
    """Map [low, high] onto 0..255 with clamping and half-up rounding."""
    values = raster.astype(np.float64)
    if method is StretchMethod.LOG:
        log_low = math.log(max(1.0, low))
        log_high = math.log(max(2.0, high))
        if not log_high > log_low:
            return np.zeros(raster.shape, dtype=np.uint8)
        logs = np.log(np.maximum(np.clip(values, low, high), 1.0))
        scaled = (logs - log_low) / (log_high - log_low)
    else:
        scaled = (values - low) / (high - low)
    scaled = np.nan_to_num(scaled, nan=0.0, posinf=1.0, neginf=0.0)
    return np.floor(np.clip(scaled, 0.0, 1.0) * 255 + 0.5).astype(np.uint8)
