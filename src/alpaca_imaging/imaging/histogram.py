"""Intensity histograms for normalized and adjusted frames.

The engine keeps two series per bin count:

- "original": counts of the normalized 8-bit values, computed once per
  NormalizedCache and unaffected by adjustments.
- "current": counts of the adjusted values; refreshed on every
  full-resolution render and left untouched by previews.

Bin of an 8-bit value v is ``floor(v / 255 * bins)``, clamped so 255 falls
into the last bin. Raw counts are kept; smoothing is applied on request
for display only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np
from numpy.typing import NDArray

from alpaca_imaging.config import (
    COMPACT_HISTOGRAM_BINS,
    DEFAULT_SMOOTHING_RADIUS,
    DETAILED_HISTOGRAM_BINS,
)
from alpaca_imaging.imaging.frame import NormalizedCache


class HistogramVariant(str, Enum):
    ORIGINAL = "original"
    CURRENT = "current"


def _empty_bins() -> NDArray[np.int64]:
    return np.zeros(0, dtype=np.int64)


@dataclass(frozen=True, eq=False)
class HistogramResult:
    """Bin counts plus summary statistics of the binned values.

    min, max and mean are in the 8-bit display domain (0..255), the same
    values that were counted. Raw sensor statistics live on
    NormalizedCache.statistics.
    """

    bins: NDArray[np.int64] = field(default_factory=_empty_bins)
    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    sample_count: int = 0

    @property
    def bin_count(self) -> int:
        return int(self.bins.size)

    def smoothed(self, radius: int = DEFAULT_SMOOTHING_RADIUS) -> NDArray[np.float64]:
        """Display series after moving-average smoothing."""
        return smooth_histogram(self.bins, radius)

    def to_dict(
        self, smooth: bool = False, radius: int = DEFAULT_SMOOTHING_RADIUS
    ) -> dict[str, Any]:
        """JSON-friendly ``{bins, min, max, mean, sample_count}``."""
        bins = self.smoothed(radius).tolist() if smooth else self.bins.tolist()
        return {
            "bins": bins,
            "min": self.min,
            "max": self.max,
            "mean": self.mean,
            "sample_count": self.sample_count,
        }


def compute_histogram(values: NDArray[np.uint8], bin_count: int) -> HistogramResult:
    """Count 8-bit ``values`` into ``bin_count`` bins.

    The bin counts always sum to ``values.size``.

    Raises:
        ValueError: If bin_count < 1.

    Example:
        >>> compute_histogram(np.array([0, 128, 255], np.uint8), 2).bins.tolist()
        [1, 2]
    """
    if bin_count < 1:
        raise ValueError(f"bin_count must be >= 1, got {bin_count}")

    flat = np.asarray(values).reshape(-1)
    if flat.size == 0:
        return HistogramResult(bins=np.zeros(bin_count, dtype=np.int64))

    index = (flat.astype(np.int64) * bin_count) // 255
    index = np.minimum(index, bin_count - 1)
    bins = np.bincount(index, minlength=bin_count).astype(np.int64)
    return HistogramResult(
        bins=bins,
        min=float(flat.min()),
        max=float(flat.max()),
        mean=float(flat.mean(dtype=np.float64)),
        sample_count=int(flat.size),
    )


def smooth_histogram(
    bins: NDArray[Any], radius: int = DEFAULT_SMOOTHING_RADIUS
) -> NDArray[np.float64]:
    """Symmetric moving average with a window of ``2 * radius + 1`` bins.

    Near the edges the window is truncated and the sum divided by the
    number of bins actually inside it.

    Example:
        >>> smooth_histogram(np.array([0, 3, 0]), radius=1).tolist()
        [1.5, 1.0, 1.5]
    """
    series = np.asarray(bins, dtype=np.float64)
    if radius <= 0 or series.size == 0:
        return series.copy()
    size = series.size
    prefix = np.concatenate(([0.0], np.cumsum(series)))
    index = np.arange(size)
    low = np.maximum(index - radius, 0)
    high = np.minimum(index + radius + 1, size)
    return (prefix[high] - prefix[low]) / (high - low)


class HistogramEngine:
    """Tracks the original and current histograms of the live frame.

    Not thread-safe; owned by one ImagePipeline.

    Example:
        engine = HistogramEngine()
        engine.reset(cache)
        engine.original(1024)          # computed once, then cached
        engine.update_current(values)  # after each full render
        engine.current(32)
    """

    def __init__(
        self,
        bin_counts: tuple[int, ...] = (DETAILED_HISTOGRAM_BINS, COMPACT_HISTOGRAM_BINS),
    ) -> None:
        self._bin_counts = bin_counts
        self._cache: NormalizedCache = NormalizedCache.empty()
        self._original: dict[int, HistogramResult] = {}
        self._current: dict[int, HistogramResult] = {}

    @property
    def cache(self) -> NormalizedCache:
        return self._cache

    @property
    def bin_counts(self) -> tuple[int, ...]:
        return self._bin_counts

    def reset(self, cache: NormalizedCache) -> None:
        """Switch to a new normalized frame and drop both series."""
        self._cache = cache
        self._original.clear()
        self._current.clear()

    def original(self, bin_count: int = DETAILED_HISTOGRAM_BINS) -> HistogramResult:
        """Histogram of the unadjusted normalized values (memoized)."""
        if bin_count not in self._original:
            self._original[bin_count] = compute_histogram(self._cache.pixels, bin_count)
        return self._original[bin_count]

    def update_current(self, values: NDArray[np.uint8]) -> None:
        """Recompute the current series for every tracked bin count."""
        self._current = {
            bins: compute_histogram(values, bins) for bins in self._bin_counts
        }

    def current(self, bin_count: int = DETAILED_HISTOGRAM_BINS) -> HistogramResult:
        """Histogram of the last full-resolution adjusted values.

        Falls back to the original series until a full render has run.
        Bin counts not tracked by the engine are also served from the
        original series.
        """
        if bin_count in self._current:
            return self._current[bin_count]
        return self.original(bin_count)

    def get(
        self, variant: HistogramVariant | str, bin_count: int = DETAILED_HISTOGRAM_BINS
    ) -> HistogramResult:
        if HistogramVariant(variant) is HistogramVariant.ORIGINAL:
            return self.original(bin_count)
        return self.current(bin_count)
