"""Live frame cache.

Holds exactly one decoded Frame and the NormalizedCache(s) derived from
it. Normalization is memoized per auto-stretch flag so repeated
adjustments never re-scan the raw pixels.
"""

from __future__ import annotations

from alpaca_imaging.config import PipelineConfig, get_config
from alpaca_imaging.imaging.frame import Frame, NormalizedCache
from alpaca_imaging.imaging.normalizer import normalize_frame


class FrameCache:
    """One live frame plus its memoized normalizations.

    Example:
        cache = FrameCache()
        cache.replace(decode_image_bytes(data))
        normalized = cache.normalized(auto_stretch=False)
        assert cache.normalized(auto_stretch=False) is normalized
    """

    def __init__(self) -> None:
        self._frame: Frame = Frame.empty()
        self._normalized: dict[bool, NormalizedCache] = {}

    @property
    def frame(self) -> Frame:
        return self._frame

    @property
    def is_empty(self) -> bool:
        return self._frame.is_empty

    def has_normalized(self, auto_stretch: bool = False) -> bool:
        return bool(auto_stretch) in self._normalized

    def replace(self, frame: Frame) -> None:
        """Install a new frame, dropping everything derived from the old one."""
        self._frame = frame
        self._normalized.clear()

    def normalized(
        self, auto_stretch: bool = False, config: PipelineConfig | None = None
    ) -> NormalizedCache:
        """NormalizedCache for the live frame, computed at most once per flag."""
        key = bool(auto_stretch)
        cached = self._normalized.get(key)
        if cached is None:
            cfg = config or get_config()
            cached = normalize_frame(
                self._frame,
                auto_stretch=key,
                sample_threshold=cfg.sample_threshold,
                noise_floor=cfg.noise_floor,
                stretch_bins=cfg.stretch_bins,
                black_clip=cfg.black_clip,
                white_clip=cfg.white_clip,
                bayer_pattern=cfg.bayer_pattern,
                stretch_method=cfg.stretch_method,
            )
            self._normalized[key] = cached
        return cached

    def clear(self) -> None:
        self.replace(Frame.empty())
