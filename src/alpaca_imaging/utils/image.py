"""Image encoding abstractions for dependency injection.

This module provides a Protocol-based interface for the OpenCV operations
the pipeline needs (JPEG encoding and thumbnail resizing), so cv2 can be
replaced in tests by a plain mock encoder. CV2ImageEncoder is the real
implementation.

Usage:
    # Production (default)
    encoder = CV2ImageEncoder()
    jpeg_bytes = encoder.encode_jpeg(rgba, quality=85)

    # Testing
    class MockEncoder:
        def encode_jpeg(self, img, quality=85):
            return b'\xff\xd8mock_jpeg'
        def resize(self, img, width):
            return img[:, :width]

Architecture:
    ImageEncoder (Protocol) <- CV2ImageEncoder (real)
                            <- MockEncoder (tests)

cv2 is imported when CV2ImageEncoder is instantiated, not at module
import time.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from numpy.typing import NDArray

__all__ = ["ImageEncoder", "CV2ImageEncoder", "thumbnail_size"]


def thumbnail_size(width: int, height: int, target_width: int) -> tuple[int, int]:
    """(width, height) of a thumbnail that keeps the aspect ratio.

    Images already narrower than ``target_width`` keep their size. Neither
    dimension drops below 1.

    Example:
        >>> thumbnail_size(640, 480, 160)
        (160, 120)
    """
    if width <= target_width:
        return width, height
    scaled_height = max(1, round(height * target_width / width))
    return target_width, scaled_height


@runtime_checkable
class ImageEncoder(Protocol):
    """Protocol defining image encoding operations.

    Implementations accept grayscale (H, W), BGR (H, W, 3) or RGBA
    (H, W, 4) uint8 arrays.

    Example:
        >>> class MockEncoder:
        ...     def encode_jpeg(self, img, quality=85):
        ...         return b'\xff\xd8test'
        ...     def resize(self, img, width):
        ...         return img
        >>> encoder: ImageEncoder = MockEncoder()
        >>> encoder.encode_jpeg(np.zeros((100, 100), dtype=np.uint8))
        b'\xff\xd8test'
    """

    def encode_jpeg(self, img: NDArray[Any], quality: int = 85) -> bytes:
        """Encode image array as JPEG bytes.

        Business context: Every render leaves the pipeline as JPEG. The
        preview path encodes on each slider movement, so encoding speed
        matters as much as size.

        Args:
            img: uint8 array, grayscale (H, W), BGR (H, W, 3) or
                RGBA (H, W, 4). Alpha is discarded.
            quality: JPEG quality 1-100.

        Returns:
            JPEG-encoded bytes starting with 0xFFD8 magic bytes.

        Raises:
            ValueError: If quality not in 1-100 range or encoding fails.
        """
        ...  # pragma: no cover

    def resize(self, img: NDArray[Any], width: int) -> NDArray[Any]:
        """Downscale ``img`` to ``width`` columns keeping the aspect ratio.

        Used for history thumbnails. Images already narrower than
        ``width`` are returned unchanged.
        """
        ...  # pragma: no cover


class CV2ImageEncoder(ImageEncoder):
    """OpenCV-based image encoder implementation.

    Thread Safety:
        cv2 encoding and resizing are thread-safe; one encoder may be
        shared.

    Example:
        >>> encoder = CV2ImageEncoder()
        >>> rgba = np.zeros((480, 640, 4), dtype=np.uint8)
        >>> encoder.encode_jpeg(rgba)[:2]
        b'\xff\xd8'
    """

    def __init__(self) -> None:
        """Initialize encoder with lazy cv2 import.

        Raises:
            ImportError: If cv2/opencv-python-headless not installed.
        """
        import cv2

        self._cv2 = cv2

    def _to_bgr(self, img: NDArray[Any]) -> NDArray[Any]:
        if img.ndim == 3 and img.shape[2] == 4:
            return self._cv2.cvtColor(img, self._cv2.COLOR_RGBA2BGR)
        return img

    def encode_jpeg(self, img: NDArray[Any], quality: int = 85) -> bytes:
        """Encode image array as JPEG bytes using OpenCV.

        RGBA input is converted to BGR first since JPEG has no alpha
        channel and cv2 expects BGR channel order.

        Args:
            img: uint8 image array (grayscale, BGR or RGBA).
            quality: JPEG quality 1-100.

        Returns:
            JPEG bytes starting with 0xFFD8 magic bytes.

        Raises:
            ValueError: If quality not in 1-100 range or encoding fails.

        Example:
            >>> encoder = CV2ImageEncoder()
            >>> img = np.zeros((480, 640), dtype=np.uint8)
            >>> jpeg = encoder.encode_jpeg(img, quality=90)
            >>> len(jpeg) > 0 and jpeg[:2] == b'\\xff\\xd8'
            True
        """
        if not 1 <= quality <= 100:
            raise ValueError(f"quality must be 1-100, got {quality}")
        if img.size == 0:
            raise ValueError(f"JPEG encoding failed for empty image shape={img.shape}")
        success, data = self._cv2.imencode(
            ".jpg", self._to_bgr(img), [self._cv2.IMWRITE_JPEG_QUALITY, quality]
        )
        if not success:
            raise ValueError(
                f"JPEG encoding failed for image shape={img.shape}, dtype={img.dtype}"
            )
        return data.tobytes()

    def resize(self, img: NDArray[Any], width: int) -> NDArray[Any]:
        """Area-interpolated downscale to ``width`` columns.

        Raises:
            ValueError: If width < 1.
        """
        if width < 1:
            raise ValueError(f"width must be >= 1, got {width}")
        height, current_width = img.shape[:2]
        size = thumbnail_size(current_width, height, width)
        if size == (current_width, height):
            return img
        return self._cv2.resize(img, size, interpolation=self._cv2.INTER_AREA)
