"""Dataclasses shared between the tile coder, the reducer and the Spark jobs."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Tuple

from .errors import InvalidEncoding

QUAD_DIGITS = "0123"


@dataclass(frozen=True, order=True)
class TileKey:
    """Quad-path of a single tile. The number of digits is the level of detail."""

    digits: str

    def __post_init__(self) -> None:
        if any(digit not in QUAD_DIGITS for digit in self.digits):
            raise InvalidEncoding(f"Tile key {self.digits!r} may only contain the digits 0-3.")

    def __str__(self) -> str:
        return self.digits

    @property
    def level(self) -> int:
        return len(self.digits)

    def to_integer(self) -> int:
        value = 0
        for digit in self.digits:
            value = value * 4 + int(digit)
        return value

    @classmethod
    def from_integer(cls, value: int, level: int) -> TileKey:
        """Rebuild a key from its base-4 integer, left-padding with zeros up to ``level`` digits."""

        if level < 0:
            raise InvalidEncoding(f"Level of detail must be non-negative, got {level}.")
        if value < 0 or value >= 4**level:
            raise InvalidEncoding(f"Tile id {value} cannot be represented with {level} base-4 digits.")
        digits = []
        for _ in range(level):
            value, digit = divmod(value, 4)
            digits.append(QUAD_DIGITS[digit])
        return cls("".join(reversed(digits)))


@dataclass(frozen=True)
class BoundingBox:
    """Geographic extent of a tile, in degrees."""

    north: float
    south: float
    east: float
    west: float

    def contains(self, latitude: float, longitude: float, tolerance: float = 0.0) -> bool:
        return (
            self.south - tolerance <= latitude <= self.north + tolerance
            and self.west - tolerance <= longitude <= self.east + tolerance
        )

    def contains_box(self, other: BoundingBox, tolerance: float = 0.0) -> bool:
        return (
            self.south - tolerance <= other.south
            and other.north <= self.north + tolerance
            and self.west - tolerance <= other.west
            and other.east <= self.east + tolerance
        )


@dataclass(frozen=True)
class StatsAggregation:
    """Count/sum/min/max of a document's optional numeric sub-field."""

    count: int = 0
    total: float = 0.0
    minimum: float = math.inf
    maximum: float = -math.inf

    @classmethod
    def of_values(cls, values: Iterable[Optional[float]]) -> StatsAggregation:
        present = [float(value) for value in values if value is not None]
        if not present:
            return cls()
        return cls(count=len(present), total=sum(present), minimum=min(present), maximum=max(present))

    @property
    def average(self) -> Optional[float]:
        if not self.count:
            return None
        return self.total / self.count

    @staticmethod
    def merge(aggregations: Iterable[StatsAggregation]) -> StatsAggregation:
        count = 0
        total = 0.0
        minimum = math.inf
        maximum = -math.inf
        for aggregation in aggregations:
            count += aggregation.count
            total += aggregation.total
            minimum = min(minimum, aggregation.minimum)
            maximum = max(maximum, aggregation.maximum)
        return StatsAggregation(count=count, total=total, minimum=minimum, maximum=maximum)


@dataclass(frozen=True)
class Bucket:
    """Aggregated result for one tile: key, document count and sub-aggregation."""

    key: TileKey
    doc_count: int
    aggregation: Any

    @property
    def tile_id(self) -> int:
        return self.key.to_integer()

    @property
    def key_as_string(self) -> str:
        return self.key.digits


@dataclass(frozen=True)
class TileGridResult:
    """Top-level result envelope: the requested size and the ordered buckets.

    ``required_size`` of ``None`` means the grid is not size-limited.
    """

    required_size: Optional[int]
    buckets: Tuple[Bucket, ...] = ()


@dataclass(frozen=True)
class PointDocument:
    """One input document reduced to the fields the tile grid needs."""

    doc_id: str
    latitude: Optional[float]
    longitude: Optional[float]
    value: Optional[float] = None
