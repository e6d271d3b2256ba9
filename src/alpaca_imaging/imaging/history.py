"""Bounded history of rendered frames.

Only compressed renderings are kept: a thumbnail JPEG and the
full-resolution JPEG, with the capture settings that produced them. Raw
sensor pixels are never retained here.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from alpaca_imaging.config import DEFAULT_HISTORY_SIZE


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class HistoryEntry:
    """One rendered frame.

    Attributes:
        thumbnail: Small JPEG for gallery display.
        full_image: Full-resolution JPEG of the render.
        timestamp: Time the frame was loaded (UTC).
        exposure_time: Exposure in seconds, if known.
        gain: Sensor gain, if known.
        binning: Binning factor, if known.
    """

    thumbnail: bytes
    full_image: bytes
    timestamp: datetime = field(default_factory=_utc_now)
    exposure_time: float | None = None
    gain: int | None = None
    binning: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Metadata only; image bytes are served separately."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "exposure_time": self.exposure_time,
            "gain": self.gain,
            "binning": self.binning,
            "thumbnail_size": len(self.thumbnail),
            "image_size": len(self.full_image),
        }


class FrameHistory:
    """FIFO of the most recent renders; the oldest entry is evicted first.

    Index 0 and iteration order are newest-first.

    Example:
        history = FrameHistory(max_entries=5)
        history.add(entry)
        history.latest is entry  # True
    """

    def __init__(self, max_entries: int = DEFAULT_HISTORY_SIZE) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self._entries: deque[HistoryEntry] = deque(maxlen=max_entries)

    @property
    def max_entries(self) -> int:
        return self._entries.maxlen or 0

    @property
    def latest(self) -> HistoryEntry | None:
        return self._entries[-1] if self._entries else None

    def add(self, entry: HistoryEntry) -> None:
        self._entries.append(entry)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return reversed(self._entries)

    def __getitem__(self, index: int) -> HistoryEntry:
        """Entry ``index`` counting from the newest; raises IndexError."""
        size = len(self._entries)
        if not -size <= index < size:
            raise IndexError(f"history index out of range: {index}")
        if index < 0:
            index += size
        return self._entries[-1 - index]
