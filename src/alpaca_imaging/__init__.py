"""ASCOM Alpaca ImageBytes decoding, normalization and display adjustment."""

__version__ = "0.1.0"
