"""Utility modules for alpaca-imaging.

The encoder classes are loaded lazily via __getattr__ so importing this
package never imports cv2.

Available exports (lazy-loaded):
    ImageEncoder: Protocol for image encoding operations
    CV2ImageEncoder: OpenCV-based implementation

Example:
    from alpaca_imaging.utils import CV2ImageEncoder
    encoder = CV2ImageEncoder()
"""

__all__ = ["ImageEncoder", "CV2ImageEncoder"]


def __getattr__(name: str) -> type:
    """Import encoder classes on first access and cache them in globals.

    Raises:
        AttributeError: If name is not a public export.
    """
    if name in ("ImageEncoder", "CV2ImageEncoder"):
        from alpaca_imaging.utils.image import CV2ImageEncoder, ImageEncoder

        globals()["ImageEncoder"] = ImageEncoder
        globals()["CV2ImageEncoder"] = CV2ImageEncoder
        return globals()[name]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return [*__all__, "__all__", "__doc__", "__name__", "__file__"]
