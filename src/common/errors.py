"""Error types raised by the tile coder and the wire codec."""

from __future__ import annotations


class TileGridError(ValueError):
    """Base class for tile grid failures."""


class InvalidCoordinate(TileGridError):
    """A document's latitude/longitude lies outside the valid geographic range."""


class InvalidEncoding(TileGridError):
    """An integer or string cannot be turned into a tile key of the requested level."""


class CodecError(TileGridError):
    """Wire bytes are truncated or malformed."""
