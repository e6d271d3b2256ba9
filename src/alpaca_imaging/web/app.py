"""FastAPI web application exposing the imaging pipeline."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field

from alpaca_imaging.config import DETAILED_HISTOGRAM_BINS
from alpaca_imaging.imaging.colormaps import ColorMap
from alpaca_imaging.imaging.histogram import HistogramVariant
from alpaca_imaging.imaging.pipeline import CaptureInfo, ImagePipeline, RenderResult
from alpaca_imaging.observability import get_logger
from alpaca_imaging.sources import DigitalTwinFrameSource, FrameSource

logger = get_logger(__name__)

# Default bind address
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080

JPEG_MEDIA_TYPE = "image/jpeg"


class AdjustmentModel(BaseModel):
    """Partial adjustment update; omitted fields keep their current value.

    Range checks that involve several fields (black_point < white_point)
    are left to AdjustmentParams and surface as 422 responses.
    """

    model_config = ConfigDict(allow_inf_nan=False)

    contrast: float | None = Field(None, ge=0)
    brightness: float | None = None
    gamma: float | None = Field(None, gt=0)
    color_map: ColorMap | None = None
    black_point: float | None = Field(None, ge=0, le=100)
    white_point: float | None = Field(None, ge=0, le=100)
    auto_stretch: bool | None = None


def _jpeg_response(jpeg: bytes) -> Response:
    if not jpeg:
        return JSONResponse({"error": "No image available"}, status_code=404)
    return Response(content=jpeg, media_type=JPEG_MEDIA_TYPE)


def _render_summary(pipeline: ImagePipeline, result: RenderResult) -> dict:
    return {
        "width": result.width,
        "height": result.height,
        "stride": result.stride,
        "jpeg_size": len(result.jpeg),
        "error": pipeline.last_error,
        "history_count": len(pipeline.history),
    }


def create_app(
    pipeline: ImagePipeline | None = None,
    source: FrameSource | None = None,
) -> FastAPI:
    """Create the FastAPI application around one ImagePipeline.

    The pipeline is started and stopped with the application lifespan,
    so debounced renders are scheduled on the server's event loop. All
    handlers are coroutines and run on that loop, which keeps every
    pipeline call on a single thread.

    Routes:
    - GET  /api/status: frame, adjustment, history and timing state
    - POST /api/frame: load a raw ImageBytes body
    - POST /api/capture: expose and load a frame from the frame source
    - GET/PUT /api/adjustments: read or change adjustments
    - GET  /api/image: latest render as JPEG
    - GET  /api/histogram: original or current histogram
    - GET  /api/history, /api/history/{index}/thumbnail|image

    Args:
        pipeline: Pipeline to serve. A default ImagePipeline is created
            when None.
        source: Frame source used by /api/capture. Capture is
            unavailable (503) when None.

    Returns:
        Configured FastAPI application.

    Example:
        >>> app = create_app(source=DigitalTwinFrameSource())
        >>> uvicorn.run(app, host="0.0.0.0", port=8080)
    """
    if pipeline is None:
        pipeline = ImagePipeline()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Starting imaging service", source=repr(source))
        pipeline.start()
        yield
        logger.info("Shutting down imaging service")
        pipeline.stop()

    app = FastAPI(
        title="Alpaca Imaging",
        description="ImageBytes decoding, stretching and display adjustment",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline
    app.state.source = source

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        """Invalid caller input (adjustments, capture settings) -> 422."""
        return JSONResponse({"error": str(exc)}, status_code=422)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Malformed query or body -> 422 without echoing the rejected input.

        The default handler repeats the input, which cannot be rendered as
        JSON when it is NaN or Infinity.
        """
        errors = [
            {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
            for error in exc.errors()
        ]
        return JSONResponse({"detail": errors}, status_code=422)

    @app.get("/api/status")
    async def api_status() -> dict:
        """Summarize the live frame, adjustments, history and stage timings."""
        frame = pipeline.frame
        cache = pipeline.normalized
        return {
            "running": pipeline.is_running,
            "pending_render": pipeline.has_pending_render,
            "frame_count": pipeline.frame_count,
            "frame": {
                "width": frame.width,
                "height": frame.height,
                "bits_per_pixel": frame.bits_per_pixel,
                "is_color": frame.is_color,
                "error_code": frame.error_code,
                "error_message": frame.error_message,
            },
            "normalization": {
                "source_min": cache.source_min,
                "source_max": cache.source_max,
                "auto_stretched": cache.auto_stretched,
                "stretch_method": cache.stretch_method.value,
                "bayer_pattern": (
                    cache.bayer_pattern.value if cache.bayer_pattern else None
                ),
                "statistics": cache.statistics.to_dict(),
            },
            "capture": pipeline.capture.to_dict(),
            "params": pipeline.params.to_dict(),
            "history_count": len(pipeline.history),
            "stats": pipeline.stats.to_dict(),
        }

    @app.post("/api/frame")
    async def api_load_frame(
        request: Request,
        exposure_time: float | None = Query(None, ge=0, description="Seconds"),
        gain: int | None = Query(None, ge=0),
        binning: int | None = Query(None, ge=1),
    ) -> dict:
        """Load a raw ImageBytes request body as the new live frame.

        Malformed bodies and device errors are not HTTP errors: the frame
        becomes empty and ``error`` carries the device message, if any.

        Example:
            curl -X POST --data-binary @frame.bin \\
                'http://localhost:8080/api/frame?exposure_time=2&gain=100'
        """
        data = await request.body()
        capture = CaptureInfo(exposure_time=exposure_time, gain=gain, binning=binning)
        result = pipeline.load_frame(data, capture)
        return _render_summary(pipeline, result)

    @app.post("/api/capture")
    async def api_capture(
        exposure_time: float = Query(1.0, ge=0, description="Seconds"),
        gain: int = Query(0, ge=0),
        binning: int = Query(1, ge=1),
    ) -> Response:
        """Take an exposure from the frame source and load it.

        The digital twin simulates the exposure with the requested
        settings; other sources return their latest payload.
        """
        if source is None:
            return JSONResponse(
                {"error": "No frame source configured"}, status_code=503
            )
        if isinstance(source, DigitalTwinFrameSource):
            source.expose(exposure_time=exposure_time, gain=gain, binning=binning)
        capture = CaptureInfo(exposure_time=exposure_time, gain=gain, binning=binning)
        result = pipeline.handle_exposure_complete(True, source, capture)
        if result is None:
            return JSONResponse({"error": "Exposure not ready"}, status_code=503)
        return JSONResponse(_render_summary(pipeline, result))

    @app.get("/api/adjustments")
    async def api_get_adjustments() -> dict:
        return pipeline.params.to_dict()

    @app.put("/api/adjustments")
    async def api_set_adjustments(update: AdjustmentModel) -> Response:
        """Apply adjustments and return the preview JPEG.

        The full-resolution render follows after the debounce delay and is
        then served by /api/image.

        Example:
            curl -X PUT -H 'Content-Type: application/json' \\
                -d '{"gamma": 2.2, "color_map": "viridis"}' \\
                http://localhost:8080/api/adjustments > preview.jpg
        """
        params = pipeline.params.with_changes(**update.model_dump(exclude_none=True))
        result = pipeline.adjust(params)
        return _jpeg_response(result.jpeg)

    @app.get("/api/image")
    async def api_image() -> Response:
        """Latest render (preview or full resolution) as JPEG."""
        return _jpeg_response(pipeline.latest_jpeg)

    @app.get("/api/histogram")
    async def api_histogram(
        variant: HistogramVariant = Query(HistogramVariant.CURRENT),
        bins: int = Query(DETAILED_HISTOGRAM_BINS, ge=1, le=4096),
        smooth: bool = Query(False, description="Apply moving-average smoothing"),
    ) -> dict:
        """Histogram of the live frame as ``{bins, min, max, mean, sample_count}``.

        min, max and mean describe the 8-bit display values that were
        binned. ``source_statistics`` carries the raw sensor statistics.
        """
        result = pipeline.histogram(variant, bins)
        payload = result.to_dict(smooth=smooth, radius=pipeline.config.smoothing_radius)
        payload["variant"] = variant.value
        payload["source_statistics"] = pipeline.normalized.statistics.to_dict()
        return payload

    @app.get("/api/history")
    async def api_history() -> dict:
        """Metadata of retained renders, newest first."""
        entries = [
            {"index": index, **entry.to_dict()}
            for index, entry in enumerate(pipeline.history)
        ]
        return {"count": len(entries), "entries": entries}

    @app.get("/api/history/{index}/thumbnail")
    async def api_history_thumbnail(index: int) -> Response:
        try:
            entry = pipeline.history[index]
        except IndexError:
            return JSONResponse(
                {"error": f"History entry {index} not found"}, status_code=404
            )
        return Response(content=entry.thumbnail, media_type=JPEG_MEDIA_TYPE)

    @app.get("/api/history/{index}/image")
    async def api_history_image(index: int) -> Response:
        try:
            entry = pipeline.history[index]
        except IndexError:
            return JSONResponse(
                {"error": f"History entry {index} not found"}, status_code=404
            )
        return Response(content=entry.full_image, media_type=JPEG_MEDIA_TYPE)

    return app


def main(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
    """Run the imaging web server with a digital-twin frame source.

    Blocks until the server is stopped (Ctrl+C).

    Example:
        >>> # python -m alpaca_imaging.web.app
        >>> main()
    """
    app = create_app(source=DigitalTwinFrameSource())
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
