"""Binary transport format for tile grid results.

Layout of an encoded result::

    required_size   vlong (0 means unbounded)
    bucket_count    vlong
    bucket * n:
        tile_id     8-byte big-endian signed integer
        doc_count   vlong
        payload     written by the sub-aggregation codec

Buckets are written in their top-K order and read back in the same order.
"""

from __future__ import annotations

import io
import struct
from typing import Any, BinaryIO, Optional, Protocol

from src.common.errors import CodecError, InvalidEncoding
from src.common.geo import DEFAULT_LEVEL_OF_DETAIL, check_level
from src.common.models import Bucket, StatsAggregation, TileGridResult, TileKey

MAX_VLONG_BYTES = 9
MAX_VLONG = 2**63 - 1
TILE_ID = struct.Struct(">q")


def read_exact(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise CodecError(f"Truncated stream: expected {size} bytes, got {len(data)}.")
    return data


def write_vlong(stream: BinaryIO, value: int) -> None:
    """Write a non-negative integer in 7-bit groups, least significant first."""

    if not 0 <= value <= MAX_VLONG:
        raise ValueError(f"Value {value} is outside the vlong range [0, {MAX_VLONG}].")
    while value > 0x7F:
        stream.write(bytes(((value & 0x7F) | 0x80,)))
        value >>= 7
    stream.write(bytes((value,)))


def read_vlong(stream: BinaryIO) -> int:
    value = 0
    for shift in range(0, 7 * MAX_VLONG_BYTES, 7):
        byte = read_exact(stream, 1)[0]
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value
    raise CodecError(f"Variable-length integer longer than {MAX_VLONG_BYTES} bytes.")


class PayloadCodec(Protocol):
    def write(self, payload: Any, stream: BinaryIO) -> None: ...

    def read(self, stream: BinaryIO) -> Any: ...


class StatsCodec:
    """Wire form of a StatsAggregation: vlong count then sum/min/max as doubles."""

    _VALUES = struct.Struct(">ddd")

    def write(self, payload: StatsAggregation, stream: BinaryIO) -> None:
        if not isinstance(payload, StatsAggregation):
            raise ValueError(f"Expected a StatsAggregation payload, got {type(payload).__name__}.")
        write_vlong(stream, payload.count)
        stream.write(self._VALUES.pack(payload.total, payload.minimum, payload.maximum))

    def read(self, stream: BinaryIO) -> StatsAggregation:
        count = read_vlong(stream)
        total, minimum, maximum = self._VALUES.unpack(read_exact(stream, self._VALUES.size))
        return StatsAggregation(count=count, total=total, minimum=minimum, maximum=maximum)


class WireCodec:
    """Serializes bucket lists for shard-to-coordinator transport.

    Tile ids carry no level of detail of their own, so every codec instance is
    bound to the level its grid was built with.
    """

    def __init__(self, payload_codec: PayloadCodec, level_of_detail: int = DEFAULT_LEVEL_OF_DETAIL) -> None:
        self.payload_codec = payload_codec
        self.level_of_detail = check_level(level_of_detail)

    def encode(self, result: TileGridResult) -> bytes:
        buffer = io.BytesIO()
        self.write_result(result, buffer)
        return buffer.getvalue()

    def decode(self, data: bytes) -> TileGridResult:
        """Decode one complete envelope; trailing bytes are rejected."""

        stream = io.BytesIO(data)
        result = self.read_result(stream)
        remaining = len(data) - stream.tell()
        if remaining:
            raise CodecError(f"{remaining} unexpected trailing bytes after tile grid result.")
        return result

    def write_result(self, result: TileGridResult, stream: BinaryIO) -> None:
        write_vlong(stream, _size_to_wire(result.required_size))
        write_vlong(stream, len(result.buckets))
        for bucket in result.buckets:
            self.write_bucket(bucket, stream)

    def read_result(self, stream: BinaryIO) -> TileGridResult:
        try:
            required_size = _size_from_wire(read_vlong(stream))
            count = read_vlong(stream)
            buckets = tuple(self.read_bucket(stream) for _ in range(count))
        except CodecError:
            raise
        except (InvalidEncoding, struct.error, ValueError) as exc:
            raise CodecError(f"Malformed tile grid stream: {exc}") from exc
        return TileGridResult(required_size=required_size, buckets=buckets)

    def write_bucket(self, bucket: Bucket, stream: BinaryIO) -> None:
        if bucket.key.level != self.level_of_detail:
            raise ValueError(
                f"Bucket {bucket.key_as_string} has level {bucket.key.level}, codec expects {self.level_of_detail}."
            )
        stream.write(TILE_ID.pack(bucket.tile_id))
        write_vlong(stream, bucket.doc_count)
        self.payload_codec.write(bucket.aggregation, stream)

    def read_bucket(self, stream: BinaryIO) -> Bucket:
        (tile_id,) = TILE_ID.unpack(read_exact(stream, TILE_ID.size))
        key = TileKey.from_integer(tile_id, self.level_of_detail)
        doc_count = read_vlong(stream)
        aggregation = self.payload_codec.read(stream)
        return Bucket(key=key, doc_count=doc_count, aggregation=aggregation)


def _size_to_wire(size: Optional[int]) -> int:
    return 0 if size is None else size


def _size_from_wire(size: int) -> Optional[int]:
    return None if size == 0 else size
