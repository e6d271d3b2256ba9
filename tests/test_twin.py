"""Tests for the digital twin frame source and FileFrameSource."""

import numpy as np
import pytest

from alpaca_imaging.imaging.decoder import decode_image_bytes, read_header
from alpaca_imaging.imaging.frame import ElementType
from alpaca_imaging.imaging.normalizer import to_row_major
from alpaca_imaging.sources import (
    DigitalTwinConfig,
    DigitalTwinFrameSource,
    FileFrameSource,
    FrameSource,
)
from tests.helpers import assert_implements_protocol


@pytest.fixture
def twin() -> DigitalTwinFrameSource:
    return DigitalTwinFrameSource(
        DigitalTwinConfig(width=64, height=48, star_count=10, seed=7)
    )


class TestDigitalTwinConfig:
    """Validation of the synthetic sensor settings."""

    def test_defaults(self):
        config = DigitalTwinConfig()

        assert (config.width, config.height) == (640, 480)
        assert config.seed is None

    @pytest.mark.parametrize(
        "kwargs", [{"width": 0}, {"height": -1}, {"star_count": -1}]
    )
    def test_invalid_values_raise(self, kwargs):
        with pytest.raises(ValueError):
            DigitalTwinConfig(**kwargs)


class TestDigitalTwinFrameSource:
    """Synthetic exposures in ImageBytes form."""

    def test_implements_frame_source(self, twin):
        assert_implements_protocol(twin, FrameSource)

    def test_render_shape_and_dtype(self, twin):
        image = twin.render()

        assert image.shape == (48, 64)
        assert image.dtype == np.uint16

    def test_background_near_bias_plus_sky(self, twin):
        """Median pixel sits at bias + sky_rate * exposure."""
        image = twin.render(exposure_time=2.0)

        assert abs(float(np.median(image)) - 900.0) < 30

    def test_stars_brighter_than_background(self, twin):
        image = twin.render()

        assert image.max() > np.median(image) + 200

    def test_binning_reduces_size(self, twin):
        assert twin.render(binning=2).shape == (24, 32)

    @pytest.mark.parametrize(
        "kwargs",
        [{"exposure_time": -1.0}, {"gain": -1}, {"binning": 0}],
    )
    def test_invalid_exposure_settings(self, twin, kwargs):
        with pytest.raises(ValueError):
            twin.render(**kwargs)

    def test_expose_produces_uint16_image_bytes(self, twin):
        payload = twin.expose(exposure_time=0.5)

        header = read_header(payload)
        assert header is not None
        assert header.image_element_type == ElementType.UINT16
        assert header.transmission_element_type == ElementType.UINT16
        assert (header.dimension1, header.dimension2) == (64, 48)
        assert header.server_transaction_id == 1
        assert twin.exposure_count == 1

    def test_payload_round_trips_to_row_major_image(self):
        """The decoded frame in row-major order equals the rendered image."""
        config = DigitalTwinConfig(width=32, height=16, star_count=3, seed=1)
        image = DigitalTwinFrameSource(config).render()
        payload = DigitalTwinFrameSource(config).expose()

        frame = decode_image_bytes(payload)

        assert np.array_equal(to_row_major(frame), image)

    def test_read_image_bytes_exposes_once(self, twin):
        first = twin.read_image_bytes()
        second = twin.read_image_bytes()

        assert first is second
        assert twin.exposure_count == 1

    def test_read_returns_latest_exposure(self, twin):
        twin.read_image_bytes()
        latest = twin.expose(gain=100)

        assert twin.read_image_bytes() is latest

    def test_seeded_sources_are_reproducible(self):
        config = DigitalTwinConfig(width=16, height=16, seed=3)

        assert (
            DigitalTwinFrameSource(config).expose()
            == DigitalTwinFrameSource(config).expose()
        )

    def test_repr(self, twin):
        assert repr(twin) == "DigitalTwinFrameSource(width=64, height=48, exposures=0)"


class TestFileFrameSource:
    """Payloads read from disk."""

    def test_reads_file_each_time(self, tmp_path):
        path = tmp_path / "frame.bin"
        path.write_bytes(b"one")
        source = FileFrameSource(path)

        assert source.read_image_bytes() == b"one"
        path.write_bytes(b"two")
        assert source.read_image_bytes() == b"two"

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            FileFrameSource(tmp_path / "missing.bin").read_image_bytes()

    def test_repr(self, tmp_path):
        source = FileFrameSource(str(tmp_path / "frame.bin"))

        assert repr(source).startswith("FileFrameSource(path=")
        assert source.path.name == "frame.bin"
