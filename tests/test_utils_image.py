"""Unit tests for alpaca_imaging.utils.image module.

Tests the ImageEncoder Protocol, CV2ImageEncoder and thumbnail sizing.
"""

from unittest.mock import patch

import numpy as np
import pytest

from alpaca_imaging.utils.image import CV2ImageEncoder, ImageEncoder, thumbnail_size
from tests.helpers import MockEncoder, assert_implements_protocol


class TestImageEncoderProtocol:
    """Tests for ImageEncoder Protocol runtime checking."""

    def test_implementations_satisfy_protocol(self) -> None:
        """Both the OpenCV encoder and the test double are ImageEncoders."""
        assert_implements_protocol(CV2ImageEncoder(), ImageEncoder)
        assert_implements_protocol(MockEncoder(), ImageEncoder)

    def test_protocol_rejects_incomplete_implementation(self) -> None:
        """Verify encoders without resize() fail the isinstance check."""

        class IncompleteEncoder:
            def encode_jpeg(self, img: np.ndarray, quality: int = 85) -> bytes:
                return b""

        assert not isinstance(IncompleteEncoder(), ImageEncoder)


class TestCV2ImageEncoderEncodeJpeg:
    """Tests for CV2ImageEncoder.encode_jpeg() method."""

    def test_grayscale_starts_with_jpeg_magic_bytes(self) -> None:
        encoder = CV2ImageEncoder()
        img = np.zeros((48, 64), dtype=np.uint8)

        result = encoder.encode_jpeg(img)

        assert isinstance(result, bytes)
        assert result[:2] == b"\xff\xd8"

    def test_rgba_render_encodes(self) -> None:
        """RGBA renders are converted to BGR before encoding."""
        encoder = CV2ImageEncoder()
        rgba = np.zeros((48, 64, 4), dtype=np.uint8)
        rgba[..., 0] = 255
        rgba[..., 3] = 255

        result = encoder.encode_jpeg(rgba)

        assert result[:2] == b"\xff\xd8"

    def test_rgba_channel_order(self) -> None:
        """A red RGBA image decodes as red, not blue."""
        import cv2

        encoder = CV2ImageEncoder()
        rgba = np.zeros((16, 16, 4), dtype=np.uint8)
        rgba[..., 0] = 255
        rgba[..., 3] = 255

        decoded = cv2.imdecode(
            np.frombuffer(encoder.encode_jpeg(rgba, 100), np.uint8), cv2.IMREAD_COLOR
        )

        blue, green, red = decoded[8, 8].tolist()
        assert red > 200
        assert blue < 50

    def test_low_quality_is_smaller(self) -> None:
        encoder = CV2ImageEncoder()
        img = np.random.default_rng(0).integers(0, 255, (200, 200), dtype=np.uint8)

        assert len(encoder.encode_jpeg(img, quality=10)) < len(
            encoder.encode_jpeg(img, quality=95)
        )

    @pytest.mark.parametrize("quality", [0, 101, -5])
    def test_quality_out_of_range_raises(self, quality: int) -> None:
        encoder = CV2ImageEncoder()

        with pytest.raises(ValueError, match=f"quality must be 1-100, got {quality}"):
            encoder.encode_jpeg(np.zeros((8, 8), np.uint8), quality=quality)

    def test_empty_image_raises(self) -> None:
        encoder = CV2ImageEncoder()

        with pytest.raises(ValueError, match="empty image"):
            encoder.encode_jpeg(np.zeros((0, 0, 4), np.uint8))

    def test_encoding_failure_raises(self) -> None:
        """Verify encoding failure raises ValueError with context."""
        encoder = CV2ImageEncoder()
        img = np.zeros((10, 10), dtype=np.uint8)

        with patch.object(encoder, "_cv2") as mock_cv2:
            mock_cv2.imencode.return_value = (False, None)
            mock_cv2.IMWRITE_JPEG_QUALITY = 1

            with pytest.raises(
                ValueError, match=r"JPEG encoding failed for image shape=.*dtype="
            ):
                encoder.encode_jpeg(img)


class TestCV2ImageEncoderResize:
    """Tests for CV2ImageEncoder.resize() method."""

    def test_downscale_keeps_aspect_ratio(self) -> None:
        encoder = CV2ImageEncoder()
        rgba = np.zeros((480, 640, 4), dtype=np.uint8)

        result = encoder.resize(rgba, 160)

        assert result.shape == (120, 160, 4)

    def test_narrow_image_unchanged(self) -> None:
        encoder = CV2ImageEncoder()
        img = np.zeros((30, 40), dtype=np.uint8)

        assert encoder.resize(img, 160) is img

    def test_invalid_width_raises(self) -> None:
        encoder = CV2ImageEncoder()

        with pytest.raises(ValueError, match="width must be >= 1"):
            encoder.resize(np.zeros((4, 4), np.uint8), 0)


class TestThumbnailSize:
    """Tests for thumbnail_size()."""

    @pytest.mark.parametrize(
        ("width", "height", "target", "expected"),
        [
            (640, 480, 160, (160, 120)),
            (100, 50, 160, (100, 50)),
            (1000, 1, 10, (10, 1)),
            (4656, 3520, 160, (160, 121)),
        ],
    )
    def test_sizes(self, width, height, target, expected) -> None:
        assert thumbnail_size(width, height, target) == expected
