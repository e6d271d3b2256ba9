"""Frame processing pipeline with debounced full-resolution rendering.

ImagePipeline ties the stages together:

    raw bytes -> decode -> normalize (cached) -> adjust -> JPEG + histogram

A new frame runs every stage once at full resolution. Adjustment changes
reuse the cached normalization: they render a subsampled preview at once
and schedule a single full-resolution render after a quiet period. Every
new change cancels and replaces the pending render, so at most one is
ever outstanding.

Time and scheduling are injected (Scheduler, Clock) so tests can drive
the debounce deterministically; production uses the asyncio event loop.

Example:
    pipeline = ImagePipeline()
    with pipeline:
        pipeline.load_frame(payload, CaptureInfo(exposure_time=2.0))
        preview = pipeline.adjust(AdjustmentParams(gamma=2.2))
        # ~200 ms later a full-resolution render replaces the preview
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import numpy as np
from numpy.typing import NDArray

from alpaca_imaging.config import DETAILED_HISTOGRAM_BINS, PipelineConfig, get_config
from alpaca_imaging.imaging.adjust import AdjustmentParams, adjusted_values, colorize
from alpaca_imaging.imaging.cache import FrameCache
from alpaca_imaging.imaging.decoder import decode_image_bytes
from alpaca_imaging.imaging.frame import Frame, NormalizedCache
from alpaca_imaging.imaging.histogram import (
    HistogramEngine,
    HistogramResult,
    HistogramVariant,
)
from alpaca_imaging.imaging.history import FrameHistory, HistoryEntry
from alpaca_imaging.observability import LogContext, PipelineStats, get_logger

if TYPE_CHECKING:
    from alpaca_imaging.sources.base import FrameSource
    from alpaca_imaging.utils.image import ImageEncoder

logger = get_logger(__name__)


# --- Protocols (Injectable Dependencies) ---


@runtime_checkable
class ScheduledTask(Protocol):  # pragma: no cover
    """Handle of a delayed callback."""

    def cancel(self) -> None:
        """Prevent the callback from running; no-op if it already ran."""
        ...


@runtime_checkable
class Scheduler(Protocol):  # pragma: no cover
    """Protocol for delayed execution (injectable for testing).

    Example:
        class ManualScheduler:
            def call_later(self, delay, callback):
                self.pending.append((delay, callback))
                return handle
    """

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        """Run ``callback`` once after ``delay`` seconds."""
        ...


@runtime_checkable
class Clock(Protocol):  # pragma: no cover
    """Protocol for time functions (injectable for testing)."""

    def monotonic(self) -> float:
        """Monotonic time in seconds, for durations."""
        ...

    def now(self) -> datetime:
        """Current wall-clock time (UTC), for history timestamps."""
        ...


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop.

    Uses the given loop, or the loop running at the time of each call.
    Must therefore be used from coroutines or loop callbacks when no loop
    is given.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(
        self, delay: float, callback: Callable[[], None]
    ) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class SystemClock:
    """Clock implementation using the time and datetime modules."""

    def monotonic(self) -> float:
        return time.monotonic()

    def now(self) -> datetime:
        return datetime.now(UTC)


# --- Data ---


@dataclass(frozen=True)
class CaptureInfo:
    """Capture settings reported alongside a frame."""

    exposure_time: float | None = None
    gain: int | None = None
    binning: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "exposure_time": self.exposure_time,
            "gain": self.gain,
            "binning": self.binning,
        }


@dataclass(frozen=True, eq=False)
class RenderResult:
    """One rendered raster.

    Attributes:
        rgba: uint8 array of shape (rows, cols, 4).
        jpeg: JPEG encoding of ``rgba``; ``b""`` for empty frames.
        stride: Subsampling step used (1 for full resolution).
        params: Adjustments the raster was rendered with.
        is_preview: True for the immediate subsampled render.
    """

    rgba: NDArray[np.uint8]
    jpeg: bytes
    stride: int
    params: AdjustmentParams
    is_preview: bool

    @property
    def width(self) -> int:
        return int(self.rgba.shape[1])

    @property
    def height(self) -> int:
        return int(self.rgba.shape[0])

    @property
    def is_empty(self) -> bool:
        return self.rgba.size == 0


RenderCallback = Callable[[RenderResult], None]


class ImagePipeline:
    """Decode, normalize, adjust and encode camera frames.

    Single-threaded: all methods, including the debounced render, must
    run on the same thread or event loop.

    Timers exist only between ``start()`` and ``stop()``. When the
    pipeline is not running, ``adjust()`` renders the full-resolution
    frame synchronously right after the preview instead of scheduling it.
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        encoder: ImageEncoder | None = None,
        scheduler: Scheduler | None = None,
        clock: Clock | None = None,
        stats: PipelineStats | None = None,
        params: AdjustmentParams | None = None,
    ) -> None:
        """Create a pipeline.

        Args:
            config: Pipeline settings. Defaults to the global config.
            encoder: JPEG encoder. Defaults to CV2ImageEncoder.
            scheduler: Debounce scheduler. Defaults to AsyncioScheduler.
            clock: Time source. Defaults to SystemClock.
            stats: Stage timing collector. A private one is created if None.
            params: Initial adjustments. Defaults to neutral settings.
        """
        if encoder is None:
            from alpaca_imaging.utils.image import CV2ImageEncoder

            encoder = CV2ImageEncoder()

        self._config = config or get_config()
        self._encoder = encoder
        self._scheduler: Scheduler = scheduler or AsyncioScheduler()
        self._clock: Clock = clock or SystemClock()
        self._stats = stats or PipelineStats()
        self._params = params or AdjustmentParams()

        self._frames = FrameCache()
        self._histograms = HistogramEngine(
            (self._config.histogram_bins, self._config.compact_histogram_bins)
        )
        self._history = FrameHistory(self._config.history_size)
        self._capture = CaptureInfo()
        self._latest: RenderResult | None = None
        self._pending: ScheduledTask | None = None
        self._callbacks: list[RenderCallback] = []
        self._running = False
        self._frame_count = 0

    def __repr__(self) -> str:
        frame = self._frames.frame
        return (
            f"ImagePipeline(running={self._running}, "
            f"frame={frame.width}x{frame.height}, history={len(self._history)})"
        )

    # --- Lifecycle ---

    def start(self) -> None:
        """Enable debounced full-resolution rendering."""
        self._running = True
        logger.info(
            "Pipeline started",
            preview_stride=self._config.preview_stride,
            debounce_seconds=self._config.debounce_seconds,
        )

    def stop(self) -> None:
        """Cancel any pending render and disable scheduling."""
        self._cancel_pending()
        self._running = False
        logger.info("Pipeline stopped")

    def __enter__(self) -> ImagePipeline:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()

    @property
    def is_running(self) -> bool:
        return self._running

    # --- State ---

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def params(self) -> AdjustmentParams:
        return self._params

    @property
    def frame(self) -> Frame:
        return self._frames.frame

    @property
    def frame_count(self) -> int:
        """Number of frames loaded so far; also the ``frame_id`` in logs."""
        return self._frame_count

    @property
    def capture(self) -> CaptureInfo:
        return self._capture

    @property
    def normalized(self) -> NormalizedCache:
        """NormalizedCache for the current frame and auto-stretch setting."""
        return self._current_cache()

    @property
    def history(self) -> FrameHistory:
        return self._history

    @property
    def stats(self) -> PipelineStats:
        return self._stats

    @property
    def latest(self) -> RenderResult | None:
        """Most recent render, preview or full."""
        return self._latest

    @property
    def latest_jpeg(self) -> bytes:
        """JPEG of the most recent render; ``b""`` before the first frame."""
        return self._latest.jpeg if self._latest is not None else b""

    @property
    def last_error(self) -> str | None:
        """Device error message carried by the current frame, if any."""
        return self._frames.frame.error_message

    @property
    def has_pending_render(self) -> bool:
        return self._pending is not None

    def on_render(self, callback: RenderCallback) -> Callable[[], None]:
        """Subscribe to every render; returns an unsubscribe function."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    # --- Operations ---

    def load_frame(
        self, data: bytes | bytearray | memoryview, capture: CaptureInfo | None = None
    ) -> RenderResult:
        """Decode a new ImageBytes payload and render it at full resolution.

        Replaces the live frame and everything derived from it, computes
        the original histograms and appends a history entry for non-empty
        frames. Malformed payloads and device errors yield an empty render
        (see ``last_error``); they never raise.

        Args:
            data: ImageBytes payload.
            capture: Capture settings recorded in the history entry.

        Returns:
            The full-resolution RenderResult.
        """
        self._cancel_pending()
        self._frame_count += 1

        with LogContext(frame_id=self._frame_count):
            start = self._clock.monotonic()
            frame = decode_image_bytes(data)
            self._stats.record(
                "decode", self._elapsed_ms(start), success=frame.error_message is None
            )
            if frame.error_message is not None:
                logger.warning(
                    "Device reported image error",
                    error_code=frame.error_code,
                    error_message=frame.error_message,
                )
            return self._load(frame, capture)

    def load(self, frame: Frame, capture: CaptureInfo | None = None) -> RenderResult:
        """Like ``load_frame`` for an already decoded frame."""
        self._frame_count += 1
        with LogContext(frame_id=self._frame_count):
            return self._load(frame, capture)

    def _load(self, frame: Frame, capture: CaptureInfo | None) -> RenderResult:
        self._cancel_pending()
        self._frames.replace(frame)
        self._capture = capture or CaptureInfo()
        cache = self._current_cache()
        for bins in self._histograms.bin_counts:
            self._histograms.original(bins)

        result = self._render(stride=1, preview=False)
        if not cache.is_empty:
            self._history.add(self._history_entry(result))

        logger.info(
            "Frame loaded",
            width=frame.width,
            height=frame.height,
            bits=frame.bits_per_pixel,
            jpeg_kb=round(len(result.jpeg) / 1024, 1),
        )
        return result

    def adjust(self, params: AdjustmentParams) -> RenderResult:
        """Apply new adjustments: preview now, full resolution after a pause.

        The preview uses ``config.preview_stride`` and leaves the "current"
        histogram untouched. Any pending full render is cancelled and one
        new render is scheduled ``config.debounce_seconds`` later.

        Returns:
            The preview RenderResult.
        """
        self._params = params
        result = self._render(stride=self._config.preview_stride, preview=True)
        self._cancel_pending()
        if self._running:
            self._pending = self._scheduler.call_later(
                self._config.debounce_seconds, self._on_debounce_elapsed
            )
        else:
            self._render(stride=1, preview=False)
        return result

    def render_full(self) -> RenderResult:
        """Render at full resolution now, replacing any pending render."""
        self._cancel_pending()
        return self._render(stride=1, preview=False)

    def histogram(
        self,
        variant: HistogramVariant | str = HistogramVariant.CURRENT,
        bin_count: int = DETAILED_HISTOGRAM_BINS,
    ) -> HistogramResult:
        """Histogram of the live frame.

        Raises:
            ValueError: On an unknown variant or bin_count < 1.
        """
        self._current_cache()
        return self._histograms.get(variant, bin_count)

    def handle_exposure_complete(
        self,
        ready: bool,
        source: FrameSource,
        capture: CaptureInfo | None = None,
    ) -> RenderResult | None:
        """React to the camera's image-ready notification.

        Pulls the payload from ``source`` and loads it when ``ready`` is
        true; otherwise does nothing.

        Returns:
            The full-resolution render, or None when not ready.
        """
        if not ready:
            logger.debug("Exposure not ready, skipping download")
            return None
        data = source.read_image_bytes()
        return self.load_frame(data, capture)

    # --- Internals ---

    def _elapsed_ms(self, start: float) -> float:
        return (self._clock.monotonic() - start) * 1000

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _on_debounce_elapsed(self) -> None:
        self._pending = None
        self._render(stride=1, preview=False)

    def _current_cache(self) -> NormalizedCache:
        """NormalizedCache for the active auto-stretch flag.

        Switching the flag yields a different cache; the histogram engine
        is reset whenever its cache is not the active one.
        """
        auto_stretch = self._params.auto_stretch
        if self._frames.has_normalized(auto_stretch):
            cache = self._frames.normalized(auto_stretch, self._config)
        else:
            start = self._clock.monotonic()
            cache = self._frames.normalized(auto_stretch, self._config)
            if not self._frames.is_empty:
                self._stats.record("normalize", self._elapsed_ms(start))
        if self._histograms.cache is not cache:
            self._histograms.reset(cache)
        return cache

    def _render(self, stride: int, preview: bool) -> RenderResult:
        cache = self._current_cache()
        start = self._clock.monotonic()

        values = adjusted_values(cache, self._params, stride)
        rgba = colorize(values, self._params.color_map)
        if not preview:
            self._histograms.update_current(values)
        jpeg = b""
        if not cache.is_empty:
            jpeg = self._encoder.encode_jpeg(rgba, self._config.jpeg_quality)

        stage = "preview" if preview else "full"
        duration_ms = self._elapsed_ms(start)
        self._stats.record(stage, duration_ms)
        logger.debug(
            "Render complete",
            frame_id=self._frame_count,
            stage=stage,
            stride=stride,
            width=rgba.shape[1],
            height=rgba.shape[0],
            duration_ms=round(duration_ms, 2),
        )

        result = RenderResult(
            rgba=rgba,
            jpeg=jpeg,
            stride=stride,
            params=self._params,
            is_preview=preview,
        )
        self._latest = result
        for callback in list(self._callbacks):
            callback(result)
        return result

    def _history_entry(self, result: RenderResult) -> HistoryEntry:
        thumbnail = self._encoder.resize(result.rgba, self._config.thumbnail_width)
        return HistoryEntry(
            thumbnail=self._encoder.encode_jpeg(thumbnail, self._config.jpeg_quality),
            full_image=result.jpeg,
            timestamp=self._clock.now(),
            exposure_time=self._capture.exposure_time,
            gain=self._capture.gain,
            binning=self._capture.binning,
        )
