"""CLI entry point for alpaca-imaging.

Provides the ``alpaca-imaging`` console script with subcommands:

- ``info``: Print the header and pixel statistics of an ImageBytes file
- ``render``: Render an ImageBytes file to JPEG with display adjustments
- ``synth``: Write a synthetic star-field ImageBytes file
- ``serve``: Run the web API with a digital-twin camera

Usage::

    alpaca-imaging synth frame.bin --width 1280 --height 960 --seed 7
    alpaca-imaging info frame.bin
    alpaca-imaging render frame.bin -o frame.jpg --auto-stretch --gamma 2.2 \\
        --color-map viridis --histogram frame-histogram.json
    alpaca-imaging serve --port 8080
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from functools import lru_cache
from pathlib import Path

from alpaca_imaging.config import BAYER_PATTERNS, STRETCH_METHODS, get_config
from alpaca_imaging.imaging.adjust import AdjustmentParams
from alpaca_imaging.imaging.colormaps import ColorMap
from alpaca_imaging.imaging.decoder import decode_image_bytes, read_header
from alpaca_imaging.imaging.frame import ElementType
from alpaca_imaging.imaging.normalizer import normalize_frame
from alpaca_imaging.imaging.pipeline import CaptureInfo, ImagePipeline
from alpaca_imaging.observability import configure_logging
from alpaca_imaging.sources.base import FileFrameSource

PROG_NAME = "alpaca-imaging"


@lru_cache(maxsize=1)
def _get_logger() -> logging.Logger:
    """Logger with message-only output for CLI feedback.

    Kept separate from the structured ``alpaca_imaging`` logger, which
    does not propagate.
    """
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    return logging.getLogger(PROG_NAME)


def _log(message: str, *, emoji: str = "") -> None:
    """Log message with optional emoji prefix for CLI feedback.

    Example:
        >>> _log("Rendered frame.jpg", emoji="✅")
    """
    prefix = f"{emoji} " if emoji else ""
    _get_logger().info(f"{prefix}{message}")


def _element_name(value: int) -> str:
    try:
        return ElementType(value).name
    except ValueError:
        return f"UNKNOWN({value})"


def run_info(path: Path) -> int:
    """Print header fields and raw statistics of an ImageBytes file.

    Returns:
        0 for a decodable frame, 1 otherwise.
    """
    data = path.read_bytes()
    header = read_header(data)
    if header is None:
        _log(f"{path}: not an ImageBytes payload ({len(data)} bytes)", emoji="❌")
        return 1

    _log(f"{path} ({len(data)} bytes)", emoji="📄")
    _log(f"  metadata version:   {header.metadata_version}")
    _log(
        f"  transaction ids:    {header.client_transaction_id}/"
        f"{header.server_transaction_id}"
    )
    _log(f"  image element:      {_element_name(header.image_element_type)}")
    _log(f"  transmission:       {_element_name(header.transmission_element_type)}")
    _log(
        f"  rank / dimensions:  {header.rank} / "
        f"{header.dimension1}x{header.dimension2}x{header.dimension3}"
    )

    frame = decode_image_bytes(data)
    if frame.error_message is not None:
        _log(f"Device error {frame.error_code}: {frame.error_message}", emoji="❌")
        return 1
    if frame.is_empty:
        _log("Frame could not be decoded", emoji="❌")
        return 1

    cache = normalize_frame(frame)
    stats = cache.statistics
    _log(f"  bit depth:          {frame.bits_per_pixel}")
    _log(f"  color:              {'yes' if frame.is_color else 'no'}")
    _log(
        f"  raw min/max/mean:   {stats.min:g} / {stats.max:g} / {stats.mean:.2f} "
        f"({stats.sample_count} samples)"
    )
    _log(f"  display range:      {cache.source_min:g} .. {cache.source_max:g}")
    return 0


def run_render(
    path: Path,
    output: Path,
    params: AdjustmentParams,
    histogram_path: Path | None = None,
    quality: int | None = None,
    bayer_pattern: str | None = None,
    stretch_method: str | None = None,
) -> int:
    """Render an ImageBytes file to JPEG.

    ``quality``, ``bayer_pattern`` and ``stretch_method`` override the
    global configuration when given.

    Returns:
        0 on success, 1 when the file holds no renderable frame.
    """
    overrides = {
        "jpeg_quality": quality,
        "bayer_pattern": bayer_pattern,
        "stretch_method": stretch_method,
    }
    config = get_config().with_overrides(
        **{name: value for name, value in overrides.items() if value is not None}
    )
    pipeline = ImagePipeline(config=config, params=params)
    source = FileFrameSource(path)
    result = pipeline.handle_exposure_complete(True, source, CaptureInfo())
    if result is None or result.is_empty:
        message = pipeline.last_error or "Frame could not be decoded"
        _log(f"{path}: {message}", emoji="❌")
        return 1

    output.write_bytes(result.jpeg)
    _log(
        f"Rendered {output} ({result.width}x{result.height}, "
        f"{len(result.jpeg) // 1024} KB)",
        emoji="✅",
    )

    if histogram_path is not None:
        payload = {
            "params": params.to_dict(),
            "original": pipeline.histogram("original").to_dict(),
            "current": pipeline.histogram("current").to_dict(),
            "compact": pipeline.histogram(
                "current", config.compact_histogram_bins
            ).to_dict(smooth=True, radius=config.smoothing_radius),
        }
        histogram_path.write_text(json.dumps(payload, indent=2) + "\n")
        _log(f"Histogram written to {histogram_path}", emoji="📊")
    return 0


def run_synth(
    output: Path,
    width: int,
    height: int,
    seed: int | None,
    exposure_time: float,
    gain: int,
    binning: int,
) -> int:
    """Write a synthetic 16-bit star field as ImageBytes."""
    from alpaca_imaging.sources.twin import DigitalTwinConfig, DigitalTwinFrameSource

    source = DigitalTwinFrameSource(
        DigitalTwinConfig(width=width, height=height, seed=seed)
    )
    payload = source.expose(exposure_time=exposure_time, gain=gain, binning=binning)
    output.write_bytes(payload)
    _log(f"Wrote {output} ({len(payload)} bytes)", emoji="✨")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROG_NAME,
        description="Decode, stretch and adjust ASCOM Alpaca ImageBytes frames",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--json-logs", action="store_true", help="Emit structured logs as JSON"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    info_parser = subparsers.add_parser("info", help="Describe an ImageBytes file")
    info_parser.add_argument("file", type=Path)

    render_parser = subparsers.add_parser("render", help="Render to JPEG")
    render_parser.add_argument("file", type=Path)
    render_parser.add_argument("-o", "--output", type=Path, required=True)
    render_parser.add_argument("--contrast", type=float, default=1.0)
    render_parser.add_argument("--brightness", type=float, default=0.0)
    render_parser.add_argument("--gamma", type=float, default=1.0)
    render_parser.add_argument(
        "--color-map",
        choices=[color_map.value for color_map in ColorMap],
        default=ColorMap.GRAYSCALE.value,
    )
    render_parser.add_argument(
        "--black-point", type=float, default=0.0, help="Percent, 0-100"
    )
    render_parser.add_argument(
        "--white-point", type=float, default=100.0, help="Percent, 0-100"
    )
    render_parser.add_argument(
        "--auto-stretch",
        action="store_true",
        help="Clip darkest 1%% and brightest 0.5%% before scaling",
    )
    render_parser.add_argument(
        "--bayer-pattern",
        choices=BAYER_PATTERNS,
        default=None,
        help="Demosaic a raw colour-sensor frame with this filter layout",
    )
    render_parser.add_argument(
        "--stretch",
        choices=STRETCH_METHODS,
        default=None,
        help="Transfer curve for the display range (default linear)",
    )
    render_parser.add_argument(
        "--quality", type=int, default=None, help="JPEG quality 1-100"
    )
    render_parser.add_argument(
        "--histogram", type=Path, default=None, help="Write histograms as JSON"
    )

    synth_parser = subparsers.add_parser("synth", help="Write a synthetic frame")
    synth_parser.add_argument("output", type=Path)
    synth_parser.add_argument("--width", type=int, default=640)
    synth_parser.add_argument("--height", type=int, default=480)
    synth_parser.add_argument("--seed", type=int, default=None)
    synth_parser.add_argument("--exposure", type=float, default=1.0, help="Seconds")
    synth_parser.add_argument("--gain", type=int, default=0)
    synth_parser.add_argument("--binning", type=int, default=1)

    serve_parser = subparsers.add_parser("serve", help="Run the web API")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=8080)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main CLI entry point for alpaca-imaging.

    Returns:
        Exit code 0 for success, non-zero for errors.

    Raises:
        SystemExit: On --help or argument errors, including invalid
            adjustment values.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        json_format=args.json_logs,
        force=True,
    )

    if args.command == "info":
        return run_info(args.file)

    if args.command == "render":
        try:
            params = AdjustmentParams(
                contrast=args.contrast,
                brightness=args.brightness,
                gamma=args.gamma,
                color_map=ColorMap(args.color_map),
                black_point=args.black_point,
                white_point=args.white_point,
                auto_stretch=args.auto_stretch,
            )
            if args.quality is not None and not 1 <= args.quality <= 100:
                raise ValueError(f"quality must be 1-100, got {args.quality}")
        except ValueError as exc:
            parser.error(str(exc))
        return run_render(
            args.file,
            args.output,
            params,
            args.histogram,
            args.quality,
            bayer_pattern=args.bayer_pattern,
            stretch_method=args.stretch,
        )

    if args.command == "synth":
        try:
            return run_synth(
                args.output,
                args.width,
                args.height,
                args.seed,
                args.exposure,
                args.gain,
                args.binning,
            )
        except ValueError as exc:
            parser.error(str(exc))

    from alpaca_imaging.web.app import main as serve_main

    serve_main(host=args.host, port=args.port)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
