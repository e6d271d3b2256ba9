"""Observability module for alpaca-imaging.

Provides structured logging and per-stage timing statistics for the
imaging pipeline.

Example:
    from alpaca_imaging.observability import get_logger, LogContext

    logger = get_logger(__name__)

    with LogContext(frame_id=4):
        logger.info("Frame decoded", width=1920, height=1080)

Statistics Example:
    from alpaca_imaging.observability import PipelineStats

    stats = PipelineStats()
    pipeline = ImagePipeline(stats=stats)
    ...
    print(stats.get_summary("full").avg_duration_ms)
"""

from alpaca_imaging.observability.logging import (
    LogContext,
    StructuredLogger,
    configure_logging,
    get_logger,
    reset_logging,
)
from alpaca_imaging.observability.stats import (
    PipelineStats,
    StatsSummary,
)

__all__ = [
    # Logging
    "LogContext",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    "reset_logging",
    # Statistics
    "PipelineStats",
    "StatsSummary",
]
