"""Pipeline configuration.

Holds every tunable constant of the imaging pipeline in one dataclass and
exposes a process-wide default through get_config() / configure(). Tests
and embedders can also pass a PipelineConfig directly to ImagePipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

# =============================================================================
# Constants
# =============================================================================

DEFAULT_PREVIEW_STRIDE = 4
DEFAULT_DEBOUNCE_SECONDS = 0.2
DEFAULT_JPEG_QUALITY = 85
DEFAULT_THUMBNAIL_WIDTH = 160
DEFAULT_HISTORY_SIZE = 5

# Histogram widgets use the detailed series, summaries the compact one
DETAILED_HISTOGRAM_BINS = 1024
COMPACT_HISTOGRAM_BINS = 32
DEFAULT_SMOOTHING_RADIUS = 3

# Frames above this pixel count are sampled for range/statistics scans
DEFAULT_SAMPLE_THRESHOLD = 1_000_000

DEFAULT_STRETCH_BINS = 1024
DEFAULT_BLACK_CLIP = 0.01  # fraction of pixels clipped to black
DEFAULT_WHITE_CLIP = 0.005  # fraction of pixels clipped to white

# Ranges narrower than this (raw units) fall back to the full bit-depth range
DEFAULT_NOISE_FLOOR = 10.0

# Accepted values of the mosaic and transfer-curve settings
BAYER_PATTERNS = ("RGGB", "GRBG", "GBRG", "BGGR")
STRETCH_METHODS = ("linear", "log")


@dataclass(frozen=True)
class PipelineConfig:
    """Configuration for one ImagePipeline instance.

    Attributes:
        preview_stride: Subsampling step for interactive previews (>= 1).
        debounce_seconds: Quiet period after the last adjustment before
            the full-resolution render runs.
        jpeg_quality: JPEG quality 1-100 for encoded renders.
        thumbnail_width: Width in pixels of history thumbnails.
        history_size: Number of rendered frames kept in history.
        histogram_bins: Bin count of the detailed histogram series.
        compact_histogram_bins: Bin count of the compact series.
        smoothing_radius: Moving-average radius applied for display.
        sample_threshold: Pixel count above which range scans sample.
        stretch_bins: Bin count of the auto-stretch histogram.
        black_clip: Fraction of pixels clipped at the black point.
        white_clip: Fraction of pixels clipped at the white point.
        noise_floor: Minimum raw span before substituting the full range.
        bayer_pattern: Colour filter mosaic of raw monochrome frames, or
            None when the sensor has no colour filter.
        stretch_method: "linear" or "log" mapping of the display range.
    """

    preview_stride: int = DEFAULT_PREVIEW_STRIDE
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
    thumbnail_width: int = DEFAULT_THUMBNAIL_WIDTH
    history_size: int = DEFAULT_HISTORY_SIZE

    histogram_bins: int = DETAILED_HISTOGRAM_BINS
    compact_histogram_bins: int = COMPACT_HISTOGRAM_BINS
    smoothing_radius: int = DEFAULT_SMOOTHING_RADIUS

    sample_threshold: int = DEFAULT_SAMPLE_THRESHOLD
    stretch_bins: int = DEFAULT_STRETCH_BINS
    black_clip: float = DEFAULT_BLACK_CLIP
    white_clip: float = DEFAULT_WHITE_CLIP
    noise_floor: float = DEFAULT_NOISE_FLOOR

    bayer_pattern: str | None = None
    stretch_method: str = "linear"

    def __post_init__(self) -> None:
        """Validate ranges.

        Raises:
            ValueError: If any field is outside its valid range.
        """
        if self.preview_stride < 1:
            raise ValueError(f"preview_stride must be >= 1, got {self.preview_stride}")
        if self.debounce_seconds < 0:
            raise ValueError(
                f"debounce_seconds must be >= 0, got {self.debounce_seconds}"
            )
        if not 1 <= self.jpeg_quality <= 100:
            raise ValueError(f"jpeg_quality must be 1-100, got {self.jpeg_quality}")
        if self.thumbnail_width < 1:
            raise ValueError(
                f"thumbnail_width must be >= 1, got {self.thumbnail_width}"
            )
        if self.history_size < 1:
            raise ValueError(f"history_size must be >= 1, got {self.history_size}")
        for name in ("histogram_bins", "compact_histogram_bins", "stretch_bins"):
            if getattr(self, name) < 2:
                raise ValueError(f"{name} must be >= 2, got {getattr(self, name)}")
        if self.smoothing_radius < 0:
            raise ValueError(
                f"smoothing_radius must be >= 0, got {self.smoothing_radius}"
            )
        if not 0 <= self.black_clip < 1 or not 0 <= self.white_clip < 1:
            raise ValueError("black_clip and white_clip must be in [0, 1)")
        if self.bayer_pattern not in (None, *BAYER_PATTERNS):
            raise ValueError(
                f"bayer_pattern must be one of {BAYER_PATTERNS} or None, "
                f"got {self.bayer_pattern}"
            )
        if self.stretch_method not in STRETCH_METHODS:
            raise ValueError(
                f"stretch_method must be one of {STRETCH_METHODS}, "
                f"got {self.stretch_method}"
            )

    def with_overrides(self, **overrides: Any) -> PipelineConfig:
        """Return a copy with the given fields replaced (re-validated).

        Example:
            >>> cfg = PipelineConfig().with_overrides(preview_stride=2)
            >>> cfg.preview_stride
            2
        """
        return replace(self, **overrides)


# =============================================================================
# Global accessor
# =============================================================================

_config: PipelineConfig | None = None


def get_config() -> PipelineConfig:
    """Get the process-wide default configuration.

    Created with all defaults on first access. ImagePipeline instances
    built without an explicit config use this value at construction time.

    Returns:
        The current global PipelineConfig.

    Example:
        >>> get_config().jpeg_quality
        85
    """
    global _config
    if _config is None:
        _config = PipelineConfig()
    return _config


def configure(config: PipelineConfig | None = None, **overrides: Any) -> PipelineConfig:
    """Replace the global default configuration.

    Either pass a complete PipelineConfig, or keyword overrides applied to
    the current global value. Pipelines that already exist keep the config
    they were built with.

    Args:
        config: New configuration. None starts from get_config().
        **overrides: Field values to replace.

    Returns:
        The newly installed configuration.

    Raises:
        ValueError: If the resulting configuration is invalid.

    Example:
        >>> configure(debounce_seconds=0.5).debounce_seconds
        0.5
    """
    global _config
    base = config if config is not None else get_config()
    _config = base.with_overrides(**overrides) if overrides else base
    return _config


def reset_config() -> None:
    """Restore defaults (used by tests)."""
    global _config
    _config = None
