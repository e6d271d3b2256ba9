"""Structured logging for alpaca-imaging.

Builds on Python's standard logging module with:
- Structured data support (key-value pairs in logs)
- JSON formatting option for log aggregation
- Context management for per-frame tracking

Keyword arguments passed to a log call become structured data on the
record rather than being interpolated into the message. This keeps frame
dimensions, element types and render timings queryable.

Example:
    logger = get_logger(__name__)

    logger.info("Frame decoded", width=4144, height=2822, element_type=8)

    with LogContext(frame_id=12):
        logger.info("Normalized")  # includes frame_id=12
        logger.debug("Preview rendered", stride=4, duration_ms=3.1)

    configure_logging(json_format=True, force=True)
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import threading
from collections.abc import MutableMapping
from datetime import UTC, datetime
from typing import Any, cast

# Context variable for structured logging context
_log_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "log_context", default={}
)

ROOT_LOGGER_NAME = "alpaca_imaging"


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger(logging.Logger):
    """Logger with structured data support.

    Extends standard Logger so that keyword arguments become structured
    data on the emitted record.

    Usage:
        logger = StructuredLogger("alpaca_imaging.imaging.decoder")
        logger.warning("Unsupported element type", element_type=11)
    """

    def debug(
        self,
        msg: object,
        *args: Any,
        exc_info: Any = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        extra: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        """Log debug message with optional structured data kwargs."""
        if self.isEnabledFor(logging.DEBUG):
            self._log(
                logging.DEBUG,
                msg,
                args,
                exc_info=exc_info,
                extra=extra,
                stack_info=stack_info,
                stacklevel=stacklevel + 1,
                **kwargs,
            )

    def info(
        self,
        msg: object,
        *args: Any,
        exc_info: Any = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        extra: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        """Log info message with optional structured data kwargs."""
        if self.isEnabledFor(logging.INFO):
            self._log(
                logging.INFO,
                msg,
                args,
                exc_info=exc_info,
                extra=extra,
                stack_info=stack_info,
                stacklevel=stacklevel + 1,
                **kwargs,
            )

    def warning(
        self,
        msg: object,
        *args: Any,
        exc_info: Any = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        extra: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        """Log warning message with optional structured data kwargs."""
        if self.isEnabledFor(logging.WARNING):
            self._log(
                logging.WARNING,
                msg,
                args,
                exc_info=exc_info,
                extra=extra,
                stack_info=stack_info,
                stacklevel=stacklevel + 1,
                **kwargs,
            )

    def error(
        self,
        msg: object,
        *args: Any,
        exc_info: Any = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        extra: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        """Log error message with optional structured data kwargs."""
        if self.isEnabledFor(logging.ERROR):
            self._log(
                logging.ERROR,
                msg,
                args,
                exc_info=exc_info,
                extra=extra,
                stack_info=stack_info,
                stacklevel=stacklevel + 1,
                **kwargs,
            )

    def _log(
        self,
        level: int,
        msg: object,
        args: tuple[Any, ...] | MutableMapping[str, Any] | None = None,
        exc_info: Any = None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **kwargs: Any,
    ) -> None:
        """Log a message, capturing keyword arguments as structured data.

        Keyword arguments are merged over any active LogContext values and
        attached to the record as ``structured_data``. Explicit kwargs win
        over ambient context on key collisions.

        Args:
            level: Numeric log level.
            msg: Log message, may contain % placeholders.
            args: Arguments for % formatting.
            exc_info: Exception info, True, or None.
            extra: Additional record attributes. ``structured_data`` is
                overwritten.
            stack_info: Include stack trace if True.
            stacklevel: Frames to skip for caller attribution.
            **kwargs: Structured key-value pairs (width, stride, ...).

        Returns:
            None.

        Example:
            >>> logger = get_logger("alpaca_imaging.imaging.pipeline")
            >>> with LogContext(frame_id=3):
            ...     logger.info("Full render", duration_ms=41.7)
        """
        context = _log_context.get()
        structured_data = {**context, **kwargs}

        if extra is None:
            extra = {}
        extra["structured_data"] = structured_data

        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )


# =============================================================================
# Formatters
# =============================================================================


class StructuredFormatter(logging.Formatter):
    """Human-readable formatter with structured data.

    Format: timestamp - name - level - message | key=value key=value
    """

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        include_structured: bool = True,
    ) -> None:
        """Initialize the structured formatter.

        Args:
            fmt: Format string using LogRecord attributes. Defaults to
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'.
            datefmt: Date format for %(asctime)s.
            include_structured: Append ' | key=value ...' when True.

        Example:
            >>> handler.setFormatter(StructuredFormatter(fmt="%(message)s"))
            # Output: "Frame decoded | width=4 height=4"
        """
        if fmt is None:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        super().__init__(fmt, datefmt)
        self.include_structured = include_structured

    def format(self, record: logging.LogRecord) -> str:
        """Format a record as text, appending structured data pairs.

        Args:
            record: Record to format. A missing ``structured_data``
                attribute is treated as empty.

        Returns:
            Formatted string, e.g. '... - INFO - Decoded | width=4 height=4'.
        """
        base = super().format(record)

        if not self.include_structured:
            return base

        structured = getattr(record, "structured_data", {})
        if not structured:
            return base

        pairs = " ".join(f"{k}={_format_value(v)}" for k, v in structured.items())
        return f"{base} | {pairs}"


class JSONFormatter(logging.Formatter):
    """JSON formatter for log aggregation systems.

    Outputs each record as one JSON line with timestamp, level, logger,
    message and all structured data as top-level keys.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a single-line JSON object.

        Non-serializable values (numpy scalars, enums) fall back to str().

        Args:
            record: The LogRecord to format.

        Returns:
            Single-line JSON string.

        Example:
            >>> record.structured_data = {"width": 640}
            >>> json.loads(JSONFormatter().format(record))["width"]
            640
        """
        log_dict: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        structured = getattr(record, "structured_data", {})
        log_dict.update(structured)

        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_dict, default=str)


def _format_value(value: Any) -> str:
    """Format a value for key=value log output.

    Rules:
    - None → 'null'
    - strings containing spaces are double-quoted
    - dicts/lists are JSON-serialized
    - everything else uses str()

    Example:
        >>> _format_value("Camera busy")
        '"Camera busy"'
        >>> _format_value([1, 2])
        '[1, 2]'
    """
    if value is None:
        return "null"
    if isinstance(value, str):
        if " " in value:
            return f'"{value}"'
        return value
    if isinstance(value, dict | list):
        return json.dumps(value, default=str)
    return str(value)


# =============================================================================
# Context Management
# =============================================================================


class LogContext:
    """Context manager adding key-value pairs to all logs in its scope.

    Backed by contextvars, so nested contexts merge and restore correctly
    and values never leak across threads or tasks.

    Usage:
        with LogContext(frame_id=7):
            logger.info("Decoding")
            with LogContext(stage="normalize"):
                logger.info("Scanning range")  # frame_id and stage
    """

    def __init__(self, **kwargs: Any) -> None:
        self._kwargs = kwargs
        self._token: contextvars.Token[dict[str, Any]] | None = None

    def __enter__(self) -> LogContext:
        current = _log_context.get()
        self._token = _log_context.set({**current, **self._kwargs})
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None

    def __repr__(self) -> str:
        return f"LogContext({self._kwargs!r})"


# =============================================================================
# Configuration
# =============================================================================

_configured = False
_config_lock = threading.Lock()


def configure_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    include_structured: bool = True,
    force: bool = False,
) -> None:
    """Configure the alpaca-imaging logging system.

    Installs StructuredLogger as the logger class, attaches one stream
    handler to the ``alpaca_imaging`` logger and disables propagation to
    the root logger. Idempotent unless ``force`` is True.

    Args:
        level: Minimum level, int or name ('DEBUG', 'INFO', ...).
        json_format: Use JSONFormatter instead of StructuredFormatter.
        stream: Output stream. Defaults to sys.stderr.
        include_structured: Append key=value pairs in text mode.
        force: Reset any previous configuration first.

    Returns:
        None.

    Example:
        >>> import io
        >>> buffer = io.StringIO()
        >>> configure_logging(level="DEBUG", stream=buffer, force=True)
    """
    with _config_lock:
        if force:
            _reset_logging_impl()
        _configure_logging_impl(level, json_format, stream, include_structured)


def _configure_logging_impl(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    include_structured: bool = True,
) -> None:
    """Internal implementation of configure_logging (assumes lock is held)."""
    global _configured

    if _configured:
        return

    logging.setLoggerClass(StructuredLogger)

    if stream is None:
        stream = sys.stderr
    handler = logging.StreamHandler(stream)

    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = StructuredFormatter(include_structured=include_structured)
    handler.setFormatter(formatter)

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    root.addHandler(handler)
    root.propagate = False

    _configured = True


def _reset_logging_impl() -> None:
    """Internal implementation of reset_logging (assumes lock is held)."""
    global _configured

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    _configured = False


def reset_logging() -> None:
    """Reset logging to the unconfigured state.

    Removes all handlers from the ``alpaca_imaging`` logger. The next
    configure_logging() or get_logger() call reinitializes it. Intended
    for tests.
    """
    with _config_lock:
        _reset_logging_impl()


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for a module.

    Configures logging with defaults (INFO, text, stderr) on first use if
    configure_logging() has not been called. Configuration installs the
    StructuredLogger class before the lookup, so module-level
    ``logger = get_logger(__name__)`` always yields a StructuredLogger.

    Args:
        name: Logger name, normally ``__name__``.

    Returns:
        StructuredLogger accepting keyword structured data.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Histogram computed", bins=1024, sample_count=16)
    """
    if not _configured:
        with _config_lock:
            if not _configured:  # pragma: no branch
                _configure_logging_impl()

    logger = logging.getLogger(name)
    return cast(StructuredLogger, logger)
