"""Spark tile grid aggregation: per-shard bucket collection and a tree reduce."""

from __future__ import annotations

import logging
from functools import partial
from typing import Dict, Iterable, Iterator, List, Optional

from pyspark import RDD, Accumulator
from pyspark.sql import SparkSession

from src.common.errors import InvalidCoordinate
from src.common.geo import TileCoder
from src.common.models import Bucket, PointDocument, StatsAggregation, TileGridResult, TileKey
from src.streaming.codec import StatsCodec, WireCodec
from src.streaming.reducer import BucketReducer, TopKSelector

logger = logging.getLogger(__name__)


class TileGridAggregator:
    """Counts documents per tile on every shard and reduces the shards into the top tiles."""

    def __init__(
        self,
        spark: SparkSession,
        tile_coder: TileCoder,
        required_size: Optional[int] = 10000,
        shard_size: Optional[int] = None,
        reduce_depth: int = 2,
        num_shards: Optional[int] = None,
    ) -> None:
        self.spark = spark
        self.tile_coder = tile_coder
        self.required_size = required_size or None
        self.shard_size = (shard_size or None) if shard_size is not None else self.required_size
        self.reduce_depth = max(int(reduce_depth), 1)
        self.num_shards = num_shards
        self.codec = WireCodec(StatsCodec(), tile_coder.level_of_detail)
        self.reducer = BucketReducer(StatsAggregation.merge)
        self.skipped_documents = 0

    def run(self, documents: RDD) -> TileGridResult:
        if self.num_shards:
            documents = documents.repartition(self.num_shards)
        if documents.getNumPartitions() == 0:
            return TileGridResult(required_size=self.required_size)

        skipped = self.spark.sparkContext.accumulator(0)
        shard_results = documents.mapPartitionsWithIndex(
            partial(
                _collect_shard,
                self.tile_coder,
                self.codec,
                self.shard_size,
                self.required_size,
                skipped,
            )
        )
        encoded = shard_results.treeReduce(
            partial(_reduce_pair, self.codec, self.reducer, self.required_size),
            depth=self.reduce_depth,
        )
        # Partial reduces keep every tile, so the only trim to required_size happens here.
        result = self.merge_results([self.codec.decode(encoded)])

        self.skipped_documents = skipped.value
        if self.skipped_documents:
            logger.warning("Skipped %d documents with invalid locations", self.skipped_documents)
        logger.info("Reduced %d shards into %d tiles", documents.getNumPartitions(), len(result.buckets))
        return result

    def merge_results(self, results: Iterable[TileGridResult]) -> TileGridResult:
        """Reduce already collected results on the driver."""

        merged = self.reducer.reduce((result.buckets for result in results), self.required_size)
        return TileGridResult(required_size=self.required_size, buckets=tuple(merged))


def shard_buckets(
    tile_coder: TileCoder,
    documents: Iterable[PointDocument],
    on_invalid=None,
) -> List[Bucket]:
    """Group one shard's documents into one bucket per tile, in first-seen order."""

    values: Dict[TileKey, List[Optional[float]]] = {}
    for document in documents:
        try:
            key = tile_coder.tile(document.latitude, document.longitude)
        except InvalidCoordinate as exc:
            logger.warning("Skipping document %s: %s", document.doc_id, exc)
            if on_invalid is not None:
                on_invalid(document)
            continue
        values.setdefault(key, []).append(document.value)
    return [
        Bucket(key=key, doc_count=len(tile_values), aggregation=StatsAggregation.of_values(tile_values))
        for key, tile_values in values.items()
    ]


def _collect_shard(
    tile_coder: TileCoder,
    codec: WireCodec,
    shard_size: Optional[int],
    required_size: Optional[int],
    skipped: Accumulator,
    shard_index: int,
    documents: Iterator[PointDocument],
) -> Iterator[bytes]:
    buckets = shard_buckets(tile_coder, documents, on_invalid=lambda _: skipped.add(1))
    trimmed = TopKSelector().select(buckets, shard_size)
    logger.debug("Shard %d produced %d tiles, sending %d", shard_index, len(buckets), len(trimmed))
    yield codec.encode(TileGridResult(required_size=required_size, buckets=tuple(trimmed)))


def _reduce_pair(
    codec: WireCodec,
    reducer: BucketReducer,
    required_size: Optional[int],
    left: bytes,
    right: bytes,
) -> bytes:
    partials = [codec.decode(left).buckets, codec.decode(right).buckets]
    # Intermediate results keep every tile; only the driver trims to required_size.
    merged = reducer.reduce(partials, None)
    return codec.encode(TileGridResult(required_size=required_size, buckets=tuple(merged)))
