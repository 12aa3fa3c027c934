"""Configuration helpers for the tile grid job."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from .geo import DEFAULT_LEVEL_OF_DETAIL, check_level


@dataclass(frozen=True)
class DatasetConfig:
    """Where the point documents live and which fields to read."""

    points_path: str
    location_field: str = "location"
    value_field: Optional[str] = "value"
    limit: Optional[int] = None


@dataclass(frozen=True)
class TileConfig:
    """Tile resolution and result sizing."""

    level_of_detail: int = DEFAULT_LEVEL_OF_DETAIL
    required_size: Optional[int] = 10000  # None = unbounded
    shard_size: Optional[int] = None  # defaults to required_size
    reduce_depth: int = 2


@dataclass(frozen=True)
class SparkConfig:
    """Session settings for the local or cluster run."""

    master: str = "local[*]"
    app_name: str = "GeoTileGrid"
    shuffle_partitions: int = 8
    num_shards: Optional[int] = None


@dataclass(frozen=True)
class OutputConfig:
    """Where the encoded tile grid is written."""

    base_path: str = "./data/output"


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class AppConfig:
    """Aggregated configuration model."""

    dataset: DatasetConfig
    tiles: TileConfig
    spark: SparkConfig
    output: OutputConfig
    logging: LoggingConfig


def load_config(path: str | Path) -> AppConfig:
    """Parse a YAML config file into an AppConfig dataclass."""

    raw = _load_yaml(path)
    dataset_cfg = raw.get("dataset", {})
    tiles_cfg = raw.get("tiles", {})
    spark_cfg = raw.get("spark", {})
    output_cfg = raw.get("output", {})
    logging_cfg = raw.get("logging", {})

    limit = dataset_cfg.get("limit")
    value_field = dataset_cfg.get("value_field", "value")
    dataset = DatasetConfig(
        points_path=str(dataset_cfg.get("points_path", "./data/points.json")),
        location_field=str(dataset_cfg.get("location_field", "location")),
        value_field=str(value_field) if value_field else None,
        limit=int(limit) if limit else None,
    )

    required_size = _size(tiles_cfg.get("required_size", 10000), "tiles.required_size")
    shard_size = tiles_cfg.get("shard_size")
    reduce_depth = int(tiles_cfg.get("reduce_depth", 2))
    if reduce_depth < 1:
        raise ValueError(f"tiles.reduce_depth must be at least 1, got {reduce_depth}.")
    tiles = TileConfig(
        level_of_detail=check_level(tiles_cfg.get("level_of_detail", DEFAULT_LEVEL_OF_DETAIL)),
        required_size=required_size,
        shard_size=required_size if shard_size is None else _size(shard_size, "tiles.shard_size"),
        reduce_depth=reduce_depth,
    )

    num_shards = spark_cfg.get("num_shards")
    spark = SparkConfig(
        master=str(spark_cfg.get("master", "local[*]")),
        app_name=str(spark_cfg.get("app_name", "GeoTileGrid")),
        shuffle_partitions=int(spark_cfg.get("shuffle_partitions", 8)),
        num_shards=int(num_shards) if num_shards else None,
    )
    output = OutputConfig(base_path=str(output_cfg.get("base_path", "./data/output")))
    logging = LoggingConfig(level=str(logging_cfg.get("level", "INFO")).upper())
    return AppConfig(dataset=dataset, tiles=tiles, spark=spark, output=output, logging=logging)


def _size(value: Any, name: str) -> Optional[int]:
    size = int(value)
    if size < 0:
        raise ValueError(f"{name} must not be negative, got {size}.")
    return size or None


def _load_yaml(path: str | Path) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a top-level mapping.")
    return data
