"""Alpaca ImageBytes decoding.

Parses the 44-byte ImageBytes metadata header and exposes the payload as
a typed numpy view without copying. Every malformed input resolves to an
empty (0x0) Frame plus a log diagnostic; decode_image_bytes() never raises
for bad frame data.

Header layout (little-endian int32 at byte offsets):

    0  metadata version        24 transmission element type
    4  error number            28 rank
    8  client transaction id   32 dimension 1 (width)
    12 server transaction id   36 dimension 2 (height)
    16 data start              40 dimension 3 (planes)
    20 image element type

Example:
    frame = decode_image_bytes(response.content)
    if frame.is_empty:
        print(frame.error_message or "no image")
"""

from __future__ import annotations

from typing import Any

import numpy as np
from numpy.typing import ArrayLike, NDArray

from alpaca_imaging.imaging.frame import (
    HEADER_SIZE,
    METADATA_VERSION,
    ElementType,
    Frame,
    ImageBytesHeader,
)
from alpaca_imaging.observability import get_logger

logger = get_logger(__name__)

_HEADER_DTYPE = np.dtype("<i4")

# Transmission element type -> little-endian dtype of one payload element.
# 64-bit integer codes are absent on purpose: they are read as u4 pairs.
_TRANSMISSION_DTYPES: dict[int, np.dtype[Any]] = {
    ElementType.UNKNOWN: np.dtype("<u1"),
    ElementType.BYTE: np.dtype("<u1"),
    ElementType.INT16: np.dtype("<i2"),
    ElementType.UINT16: np.dtype("<u2"),
    ElementType.INT32: np.dtype("<i4"),
    ElementType.UINT32: np.dtype("<u4"),
    ElementType.SINGLE: np.dtype("<f4"),
    ElementType.DOUBLE: np.dtype("<f8"),
}

_WIDE_INTEGER_TYPES = (ElementType.UINT64, ElementType.INT64)

SUPPORTED_TRANSMISSION_TYPES: frozenset[int] = frozenset(
    [*_TRANSMISSION_DTYPES, *_WIDE_INTEGER_TYPES]
)


def read_header(data: bytes | bytearray | memoryview) -> ImageBytesHeader | None:
    """Parse the ImageBytes metadata header.

    Args:
        data: Raw response body.

    Returns:
        ImageBytesHeader, or None when the buffer is shorter than the
        44-byte header.

    Example:
        >>> header = read_header(encode_image_bytes(np.zeros((4, 3), np.uint16)))
        >>> (header.dimension1, header.dimension2)
        (4, 3)
    """
    if len(data) < HEADER_SIZE:
        return None
    fields = np.frombuffer(data, dtype=_HEADER_DTYPE, count=HEADER_SIZE // 4)
    return ImageBytesHeader(*(int(value) for value in fields))


def decode_image_bytes(data: bytes | bytearray | memoryview) -> Frame:
    """Decode an ImageBytes buffer into a Frame.

    The returned pixel array is a read-only view over ``data`` whose dtype
    is selected by the transmission element type. Samples stay in the
    camera's column-major order; the normalizer reorders them.

    64-bit integer payloads (UInt64 / Int64) are read as pairs of 32-bit
    words and only the low word of each sample is kept. This loses the
    high bits of values above 2**32 - 1, which no current sensor emits.

    Args:
        data: Complete ImageBytes response body.

    Returns:
        Decoded Frame. A 0x0 frame is returned when the device reported an
        error (``error_message`` holds its text) or the buffer is malformed
        or uses an unsupported transmission element type.

    Example:
        >>> frame = decode_image_bytes(encode_error_bytes(1, "Camera busy"))
        >>> (frame.width, frame.height, frame.error_message)
        (0, 0, 'Camera busy')
    """
    header = read_header(data)
    if header is None:
        logger.warning(
            "Image buffer too small for ImageBytes header", size=len(data)
        )
        return Frame.empty()

    if header.error_number != 0:
        start = min(max(header.data_start, HEADER_SIZE), len(data))
        message = bytes(data[start:]).decode("utf-8", errors="replace")
        logger.warning(
            "Device returned error in ImageBytes response",
            error_number=header.error_number,
            error_message=message,
        )
        return Frame.empty(
            error_code=header.error_number, error_message=message, header=header
        )

    if not HEADER_SIZE <= header.data_start <= len(data):
        logger.warning(
            "ImageBytes data start outside buffer",
            data_start=header.data_start,
            size=len(data),
        )
        return Frame.empty(header=header)

    width, height = header.dimension1, header.dimension2
    if width <= 0 or height <= 0:
        logger.warning("ImageBytes dimensions not positive", width=width, height=height)
        return Frame.empty(header=header)

    element_type = header.transmission_element_type
    if element_type not in SUPPORTED_TRANSMISSION_TYPES:
        logger.warning(
            "Unsupported transmission element type", element_type=element_type
        )
        return Frame.empty(header=header)

    planes = 3 if header.is_color else 1
    count = width * height * planes

    pixels = _read_payload(data, header.data_start, element_type, count)
    if pixels is None:
        logger.warning(
            "ImageBytes payload shorter than declared dimensions",
            width=width,
            height=height,
            planes=planes,
            element_type=element_type,
            payload_bytes=len(data) - header.data_start,
        )
        return Frame.empty(header=header)

    pixels.setflags(write=False)
    logger.debug(
        "ImageBytes decoded",
        width=width,
        height=height,
        planes=planes,
        image_element_type=header.image_element_type,
        transmission_element_type=element_type,
    )
    return Frame(
        width=width,
        height=height,
        rank=header.rank,
        image_element_type=header.image_element_type,
        transmission_element_type=element_type,
        pixels=pixels,
        planes=planes,
        metadata_version=header.metadata_version,
        data_start=header.data_start,
    )


def _read_payload(
    data: bytes | bytearray | memoryview,
    offset: int,
    element_type: int,
    count: int,
) -> NDArray[Any] | None:
    """Typed view of ``count`` samples at ``offset``, or None if too short."""
    if element_type in _WIDE_INTEGER_TYPES:
        if len(data) - offset < count * 8:
            return None
        words = np.frombuffer(data, dtype="<u4", count=count * 2, offset=offset)
        logger.debug("Truncating 64-bit samples to low 32 bits", samples=count)
        # Little-endian: the low word of each sample comes first
        return words[0::2]

    dtype = _TRANSMISSION_DTYPES[element_type]
    if len(data) - offset < count * dtype.itemsize:
        return None
    return np.frombuffer(data, dtype=dtype, count=count, offset=offset)


# =============================================================================
# Encoding
# =============================================================================


def encode_image_bytes(
    image: ArrayLike,
    image_element_type: int = ElementType.UINT16,
    transmission_element_type: int | None = None,
    *,
    client_transaction_id: int = 0,
    server_transaction_id: int = 0,
) -> bytes:
    """Build an ImageBytes buffer from an ``[x, y]`` or ``[x, y, plane]`` array.

    The array is indexed like the Alpaca ImageArray (first axis is the
    column), so flattening it in C order yields the column-major wire
    order. Used by the digital-twin camera and by tests.

    Args:
        image: Array of shape (width, height) or (width, height, 3).
        image_element_type: Element type announced as the sensor type.
        transmission_element_type: Element type of the payload. Defaults
            to ``image_element_type``.
        client_transaction_id: Value written to header offset 8.
        server_transaction_id: Value written to header offset 12.

    Returns:
        Header plus payload bytes.

    Raises:
        ValueError: If the array is not 2-D or 3-D with three planes, or
            the transmission element type is unknown.

    Example:
        >>> data = encode_image_bytes(np.arange(16, dtype=np.uint16).reshape(4, 4))
        >>> decode_image_bytes(data).width
        4
    """
    if transmission_element_type is None:
        transmission_element_type = image_element_type

    array = np.asarray(image)
    if array.ndim == 2:
        width, height = array.shape
        rank, planes = 2, 0
    elif array.ndim == 3 and array.shape[2] == 3:
        width, height, planes = array.shape
        rank = 3
    else:
        raise ValueError(
            f"image must have shape (width, height) or (width, height, 3), "
            f"got {array.shape}"
        )

    if transmission_element_type in _WIDE_INTEGER_TYPES:
        wide = "<u8" if transmission_element_type == ElementType.UINT64 else "<i8"
        payload = array.astype(wide).tobytes(order="C")
    elif transmission_element_type in _TRANSMISSION_DTYPES:
        dtype = _TRANSMISSION_DTYPES[transmission_element_type]
        payload = array.astype(dtype).tobytes(order="C")
    else:
        raise ValueError(
            f"unsupported transmission element type {transmission_element_type}"
        )

    header = np.array(
        [
            METADATA_VERSION,
            0,
            client_transaction_id,
            server_transaction_id,
            HEADER_SIZE,
            image_element_type,
            transmission_element_type,
            rank,
            width,
            height,
            planes,
        ],
        dtype=_HEADER_DTYPE,
    )
    return header.tobytes() + payload


def encode_error_bytes(error_number: int, message: str) -> bytes:
    """Build an ImageBytes error response carrying UTF-8 ``message``.

    Example:
        >>> decode_image_bytes(encode_error_bytes(0x400, "Not ready")).error_code
        1024
    """
    header = np.array(
        [METADATA_VERSION, error_number, 0, 0, HEADER_SIZE, 0, 0, 0, 0, 0, 0],
        dtype=_HEADER_DTYPE,
    )
    return header.tobytes() + message.encode("utf-8")
