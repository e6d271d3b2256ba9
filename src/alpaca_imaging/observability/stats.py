"""Pipeline stage timing statistics.

Collects durations for each stage of the imaging pipeline (decode,
normalize, preview render, full render) in bounded rolling windows and
summarizes them on demand.

Thread-safe so a web worker thread may read summaries while the event
loop records new timings.

Example:
    stats = PipelineStats()
    stats.record("decode", duration_ms=4.2)
    stats.record("preview", duration_ms=1.1)

    summary = stats.get_summary("preview")
    print(f"p95 preview: {summary.p95_duration_ms:.1f}ms")
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# =============================================================================
# Constants
# =============================================================================

#: Default number of timing records retained per stage.
DEFAULT_STATS_WINDOW_SIZE: int = 1000

#: Stage names recorded by ImagePipeline.
PIPELINE_STAGES: tuple[str, ...] = ("decode", "normalize", "preview", "full")


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class StatsSummary:
    """Summary of timings recorded for one pipeline stage.

    Attributes:
        stage: Stage name ('decode', 'normalize', 'preview', 'full').
        count: All-time number of recorded runs.
        failures: Runs that produced no usable output (e.g. a frame that
            decoded to 0x0).
        min_duration_ms: Fastest run in the window.
        max_duration_ms: Slowest run in the window.
        avg_duration_ms: Mean over the window.
        p95_duration_ms: 95th percentile over the window.
        last_run_time: UTC time of the most recent run, or None.
    """

    stage: str
    count: int = 0
    failures: int = 0
    min_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    avg_duration_ms: float = 0.0
    p95_duration_ms: float = 0.0
    last_run_time: datetime | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary.

        Returns:
            Dict with every field; ``last_run_time`` as ISO 8601 or None.

        Example:
            >>> StatsSummary(stage="full", count=2).to_dict()["count"]
            2
        """
        return {
            "stage": self.stage,
            "count": self.count,
            "failures": self.failures,
            "min_duration_ms": self.min_duration_ms,
            "max_duration_ms": self.max_duration_ms,
            "avg_duration_ms": self.avg_duration_ms,
            "p95_duration_ms": self.p95_duration_ms,
            "last_run_time": (
                self.last_run_time.isoformat() if self.last_run_time else None
            ),
        }


@dataclass
class StageRecord:
    """Single timing record."""

    timestamp: float  # monotonic time
    duration_ms: float
    success: bool


class StageStatsCollector:
    """Rolling-window collector for a single stage."""

    def __init__(
        self,
        stage: str,
        window_size: int = DEFAULT_STATS_WINDOW_SIZE,
    ) -> None:
        """Create a collector for ``stage`` keeping ``window_size`` records.

        Args:
            stage: Stage name used to label summaries.
            window_size: Maximum timing records retained. Older records
                are discarded as new ones arrive.
        """
        self.stage = stage
        self._records: deque[StageRecord] = deque(maxlen=window_size)
        self._count = 0
        self._failures = 0
        self._last_run_time: datetime | None = None
        self._lock = threading.Lock()

    def record(self, duration_ms: float, success: bool = True) -> None:
        """Record one run of the stage.

        Args:
            duration_ms: Wall time of the run in milliseconds.
            success: False when the run produced no usable output.
        """
        record = StageRecord(
            timestamp=time.monotonic(),
            duration_ms=duration_ms,
            success=success,
        )

        with self._lock:
            self._records.append(record)
            self._count += 1
            if not success:
                self._failures += 1
            self._last_run_time = _utc_now()

    def get_summary(self) -> StatsSummary:
        """Compute a summary snapshot.

        Duration statistics use successful runs in the window only. The
        sort for the percentile happens outside the lock.

        Returns:
            StatsSummary for this stage. All durations are 0.0 when no
            successful run has been recorded.

        Example:
            >>> collector = StageStatsCollector("decode")
            >>> collector.record(2.0)
            >>> collector.record(4.0)
            >>> collector.get_summary().avg_duration_ms
            3.0
        """
        with self._lock:
            count = self._count
            failures = self._failures
            last_run_time = self._last_run_time
            durations = [r.duration_ms for r in self._records if r.success]

        if durations:
            min_dur = min(durations)
            max_dur = max(durations)
            avg_dur = sum(durations) / len(durations)
            p95_dur = _percentile(sorted(durations), 95)
        else:
            min_dur = max_dur = avg_dur = p95_dur = 0.0

        return StatsSummary(
            stage=self.stage,
            count=count,
            failures=failures,
            min_duration_ms=min_dur,
            max_duration_ms=max_dur,
            avg_duration_ms=avg_dur,
            p95_duration_ms=p95_dur,
            last_run_time=last_run_time,
        )

    def reset(self) -> None:
        """Clear all records and counters."""
        with self._lock:
            self._records.clear()
            self._count = 0
            self._failures = 0
            self._last_run_time = None


class PipelineStats:
    """Statistics manager for all pipeline stages.

    Collectors are created lazily per stage name on first record, so
    callers may record custom stage names besides PIPELINE_STAGES.

    Usage:
        stats = PipelineStats()
        pipeline = ImagePipeline(stats=stats)
        ...
        print(stats.to_dict())
    """

    def __init__(self, window_size: int = DEFAULT_STATS_WINDOW_SIZE) -> None:
        self._window_size = window_size
        self._collectors: dict[str, StageStatsCollector] = {}
        self._lock = threading.Lock()

    def _get_collector(self, stage: str) -> StageStatsCollector:
        """Get or create the collector for ``stage``."""
        with self._lock:
            if stage not in self._collectors:
                self._collectors[stage] = StageStatsCollector(
                    stage, self._window_size
                )
            return self._collectors[stage]

    def record(self, stage: str, duration_ms: float, success: bool = True) -> None:
        """Record one run of ``stage``.

        Args:
            stage: Stage name, normally one of PIPELINE_STAGES.
            duration_ms: Wall time in milliseconds.
            success: False for runs with no usable output.

        Example:
            >>> stats = PipelineStats()
            >>> stats.record("decode", 1.5)
            >>> stats.get_summary("decode").count
            1
        """
        self._get_collector(stage).record(duration_ms, success)

    def get_summary(self, stage: str) -> StatsSummary:
        """Summary for one stage (zeroed if the stage was never recorded)."""
        return self._get_collector(stage).get_summary()

    def get_all_summaries(self) -> dict[str, StatsSummary]:
        """Summaries for every stage recorded so far."""
        with self._lock:
            collectors = list(self._collectors.items())
        return {stage: collector.get_summary() for stage, collector in collectors}

    def reset(self, stage: str | None = None) -> None:
        """Reset one stage, or every stage when ``stage`` is None."""
        with self._lock:
            if stage is None:
                targets = list(self._collectors.values())
            elif stage in self._collectors:
                targets = [self._collectors[stage]]
            else:
                targets = []
        for collector in targets:
            collector.reset()

    def to_dict(self) -> dict[str, Any]:
        """Export all summaries as ``{"stages": {name: summary_dict}}``."""
        return {
            "stages": {
                stage: summary.to_dict()
                for stage, summary in self.get_all_summaries().items()
            }
        }


def _percentile(sorted_data: list[float], p: float) -> float:
    """Percentile with linear interpolation between closest ranks.

    Args:
        sorted_data: Ascending values. Must not be empty.
        p: Percentile in [0, 100].

    Returns:
        Interpolated percentile value.

    Example:
        >>> _percentile([1.0, 2.0, 3.0, 4.0], 50)
        2.5
    """
    if len(sorted_data) == 1:
        return sorted_data[0]

    k = (len(sorted_data) - 1) * (p / 100)
    f = int(k)
    c = min(f + 1, len(sorted_data) - 1)
    if f == c:
        return sorted_data[f]
    return sorted_data[f] + (sorted_data[c] - sorted_data[f]) * (k - f)
