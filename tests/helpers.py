"""Test helpers for alpaca-imaging.

Provides protocol compliance assertions and deterministic test doubles
for the pipeline's injectable dependencies.

Example:
    from tests.helpers import ManualScheduler, assert_implements_protocol
    from alpaca_imaging.imaging.pipeline import Scheduler

    def test_manual_scheduler_is_a_scheduler():
        assert_implements_protocol(ManualScheduler(), Scheduler)
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

import numpy as np


def assert_implements_protocol(instance: object, protocol: type[Protocol]) -> None:
    """Assert that an instance implements a runtime-checkable Protocol.

    Raises:
        AssertionError: Listing the missing public members.
        TypeError: If protocol is not @runtime_checkable.
    """
    if not isinstance(instance, protocol):
        protocol_methods = {
            attr
            for attr in set(dir(protocol)) - set(dir(object))
            if not attr.startswith("_")
        }
        missing = sorted(m for m in protocol_methods if not hasattr(instance, m))
        missing_str = ", ".join(missing) if missing else "unknown"
        raise AssertionError(
            f"{type(instance).__name__} does not implement {protocol.__name__}. "
            f"Missing: {missing_str}"
        )


class ManualTask:
    """ScheduledTask handle recorded by ManualScheduler."""

    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.ran = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose time only moves when a test calls advance()."""

    def __init__(self) -> None:
        self.now = 0.0
        self.tasks: list[ManualTask] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTask:
        task = ManualTask(self.now + delay, callback)
        self.tasks.append(task)
        return task

    @property
    def pending(self) -> list[ManualTask]:
        return [t for t in self.tasks if not t.cancelled and not t.ran]

    def advance(self, seconds: float) -> int:
        """Move time forward and run due callbacks; returns how many ran."""
        self.now += seconds
        ran = 0
        for task in sorted(self.pending, key=lambda t: t.due):
            if task.due <= self.now + 1e-9:
                task.ran = True
                task.callback()
                ran += 1
        return ran


class FakeClock:
    """Clock advancing a fixed step on every monotonic() call."""

    def __init__(self, step: float = 0.001) -> None:
        self._time = 0.0
        self._step = step
        self._start = datetime(2025, 1, 15, 22, 0, tzinfo=UTC)

    def monotonic(self) -> float:
        self._time += self._step
        return self._time

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._time)


class MockEncoder:
    """ImageEncoder recording calls and returning fake JPEG bytes.

    The fake payload embeds the image shape so tests can tell renders
    apart: ``b"\\xff\\xd8" + b"<rows>x<cols>"``.
    """

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.resize_calls: list[int] = []

    def encode_jpeg(self, img: np.ndarray, quality: int = 85) -> bytes:
        if not 1 <= quality <= 100:
            raise ValueError(f"quality must be 1-100, got {quality}")
        self.calls.append({"shape": img.shape, "quality": quality})
        return b"\xff\xd8" + f"{img.shape[0]}x{img.shape[1]}".encode()

    def resize(self, img: np.ndarray, width: int) -> np.ndarray:
        self.resize_calls.append(width)
        if img.shape[1] <= width:
            return img
        step = -(-img.shape[1] // width)
        return img[::step, ::step]
