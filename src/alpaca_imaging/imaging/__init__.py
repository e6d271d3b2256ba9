"""Imaging core - ImageBytes decoding, normalization and adjustment."""

from alpaca_imaging.imaging.adjust import (
    AdjustmentParams,
    adjusted_values,
    apply_adjustments,
    colorize,
    build_gamma_lut,
)
from alpaca_imaging.imaging.cache import FrameCache
from alpaca_imaging.imaging.colormaps import ColorMap, color_map_table
from alpaca_imaging.imaging.decoder import (
    decode_image_bytes,
    encode_error_bytes,
    encode_image_bytes,
    read_header,
)
from alpaca_imaging.imaging.frame import (
    BayerPattern,
    ElementType,
    Frame,
    ImageBytesHeader,
    ImageStatistics,
    NormalizedCache,
    StretchMethod,
)
from alpaca_imaging.imaging.histogram import (
    HistogramEngine,
    HistogramResult,
    HistogramVariant,
    compute_histogram,
    smooth_histogram,
)
from alpaca_imaging.imaging.history import FrameHistory, HistoryEntry
from alpaca_imaging.imaging.normalizer import debayer, normalize_frame
from alpaca_imaging.imaging.pipeline import (
    AsyncioScheduler,
    CaptureInfo,
    Clock,
    ImagePipeline,
    RenderResult,
    ScheduledTask,
    Scheduler,
    SystemClock,
)

__all__ = [
    # Decoding
    "ElementType",
    "Frame",
    "ImageBytesHeader",
    "decode_image_bytes",
    "encode_error_bytes",
    "encode_image_bytes",
    "read_header",
    # Normalization
    "BayerPattern",
    "ImageStatistics",
    "NormalizedCache",
    "StretchMethod",
    "debayer",
    "normalize_frame",
    # Adjustment
    "AdjustmentParams",
    "ColorMap",
    "adjusted_values",
    "apply_adjustments",
    "build_gamma_lut",
    "colorize",
    "color_map_table",
    # Histogram
    "HistogramEngine",
    "HistogramResult",
    "HistogramVariant",
    "compute_histogram",
    "smooth_histogram",
    # Caches
    "FrameCache",
    "FrameHistory",
    "HistoryEntry",
    # Pipeline
    "AsyncioScheduler",
    "CaptureInfo",
    "Clock",
    "ImagePipeline",
    "RenderResult",
    "ScheduledTask",
    "Scheduler",
    "SystemClock",
]
