"""Frame sources feeding ImageBytes payloads into the pipeline."""

from alpaca_imaging.sources.base import FileFrameSource, FrameSource
from alpaca_imaging.sources.twin import DigitalTwinConfig, DigitalTwinFrameSource

__all__ = [
    "DigitalTwinConfig",
    "DigitalTwinFrameSource",
    "FileFrameSource",
    "FrameSource",
]
