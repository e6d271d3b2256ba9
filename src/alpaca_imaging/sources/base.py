"""Frame source protocol.

A frame source is anything that can hand over the ImageBytes payload of
the most recent exposure: a camera client, a file, or the digital twin.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class FrameSource(Protocol):
    """Supplier of ImageBytes payloads.

    Example:
        class StaticSource:
            def read_image_bytes(self) -> bytes:
                return payload

        pipeline.handle_exposure_complete(True, StaticSource())
    """

    def read_image_bytes(self) -> bytes:
        """Return the ImageBytes payload of the latest exposure.

        Raises:
            OSError: If the payload cannot be fetched.
        """
        ...  # pragma: no cover


class FileFrameSource:
    """Reads an ImageBytes payload from a file on every request."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def read_image_bytes(self) -> bytes:
        return self._path.read_bytes()

    def __repr__(self) -> str:
        return f"FileFrameSource(path={str(self._path)!r})"
