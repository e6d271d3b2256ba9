"""Unit tests for FrameCache and FrameHistory."""

from __future__ import annotations

from datetime import UTC, datetime

import numpy as np
import pytest

from alpaca_imaging.config import PipelineConfig
from alpaca_imaging.imaging.cache import FrameCache
from alpaca_imaging.imaging.decoder import decode_image_bytes, encode_image_bytes
from alpaca_imaging.imaging.frame import BayerPattern, StretchMethod
from alpaca_imaging.imaging.history import FrameHistory, HistoryEntry


def _entry(tag: str) -> HistoryEntry:
    return HistoryEntry(thumbnail=f"thumb-{tag}".encode(), full_image=tag.encode())


class TestFrameCache:
    """One live frame with memoized normalizations."""

    def test_starts_empty(self) -> None:
        cache = FrameCache()

        assert cache.is_empty
        assert cache.normalized().is_empty

    def test_normalization_is_memoized_per_flag(self, star_field_bytes) -> None:
        cache = FrameCache()
        cache.replace(decode_image_bytes(star_field_bytes))

        plain = cache.normalized(auto_stretch=False)
        stretched = cache.normalized(auto_stretch=True)

        assert cache.normalized(auto_stretch=False) is plain
        assert cache.normalized(auto_stretch=True) is stretched
        assert plain is not stretched
        assert cache.has_normalized(False)
        assert cache.has_normalized(True)

    def test_replace_drops_derived_data(self, star_field_bytes, ramp_bytes) -> None:
        cache = FrameCache()
        cache.replace(decode_image_bytes(star_field_bytes))
        old = cache.normalized()

        cache.replace(decode_image_bytes(ramp_bytes))

        assert not cache.has_normalized(False)
        assert cache.normalized() is not old
        assert cache.normalized().width == 4

    def test_config_controls_normalization(self) -> None:
        """A lower noise floor keeps narrow ranges instead of the full depth."""

        columns = np.full((2, 2), 100, dtype=np.uint16)
        columns[1, 1] = 104
        cache = FrameCache()
        cache.replace(decode_image_bytes(encode_image_bytes(columns)))

        narrow = cache.normalized(config=PipelineConfig(noise_floor=1.0))

        assert (narrow.source_min, narrow.source_max) == (100.0, 104.0)

    def test_config_selects_mosaic_and_transfer_curve(self, ramp_bytes) -> None:
        cache = FrameCache()
        cache.replace(decode_image_bytes(ramp_bytes))

        normalized = cache.normalized(
            config=PipelineConfig(bayer_pattern="BGGR", stretch_method="log")
        )

        assert normalized.bayer_pattern is BayerPattern.BGGR
        assert normalized.stretch_method is StretchMethod.LOG

    def test_clear(self, ramp_bytes) -> None:
        cache = FrameCache()
        cache.replace(decode_image_bytes(ramp_bytes))

        cache.clear()

        assert cache.is_empty


class TestFrameHistory:
    """Bounded FIFO of rendered JPEGs."""

    def test_bounded_at_five_by_default(self) -> None:
        history = FrameHistory()

        for index in range(7):
            history.add(_entry(str(index)))

        assert len(history) == 5
        assert history.max_entries == 5

    def test_oldest_entries_are_evicted_first(self) -> None:
        history = FrameHistory(max_entries=3)

        for index in range(5):
            history.add(_entry(str(index)))

        assert [entry.full_image for entry in history] == [b"4", b"3", b"2"]

    def test_index_zero_is_newest(self) -> None:
        history = FrameHistory()
        history.add(_entry("a"))
        history.add(_entry("b"))

        assert history[0].full_image == b"b"
        assert history[1].full_image == b"a"
        assert history[-1].full_image == b"a"
        assert history.latest is history[0]

    def test_out_of_range_raises_index_error(self) -> None:
        history = FrameHistory()
        history.add(_entry("a"))

        with pytest.raises(IndexError):
            history[1]
        with pytest.raises(IndexError):
            history[-2]

    def test_clear(self) -> None:
        history = FrameHistory()
        history.add(_entry("a"))

        history.clear()

        assert len(history) == 0
        assert history.latest is None

    def test_invalid_size_raises(self) -> None:
        with pytest.raises(ValueError, match="max_entries"):
            FrameHistory(max_entries=0)

    def test_entry_to_dict_excludes_image_bytes(self) -> None:
        entry = HistoryEntry(
            thumbnail=b"123",
            full_image=b"12345",
            timestamp=datetime(2025, 1, 15, tzinfo=UTC),
            exposure_time=2.5,
            gain=100,
            binning=2,
        )

        data = entry.to_dict()

        assert data == {
            "timestamp": "2025-01-15T00:00:00+00:00",
            "exposure_time": 2.5,
            "gain": 100,
            "binning": 2,
            "thumbnail_size": 3,
            "image_size": 5,
        }
