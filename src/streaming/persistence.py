"""Persist the reduced tile grid in its wire format."""

from __future__ import annotations

from pathlib import Path

from src.common.models import TileGridResult
from src.streaming.codec import WireCodec

RESULT_FILE = "tile_grid.bin"


class Persistence:
    """Write and read encoded tile grid results under a base folder."""

    def __init__(self, base_path: str, codec: WireCodec) -> None:
        self.base_path = Path(base_path)
        self.codec = codec

    @property
    def target(self) -> Path:
        return self.base_path / RESULT_FILE

    def write(self, result: TileGridResult) -> Path:
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.target.write_bytes(self.codec.encode(result))
        return self.target

    def read(self) -> TileGridResult:
        return self.codec.decode(self.target.read_bytes())
