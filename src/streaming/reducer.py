"""Merge per-shard tile buckets and keep the most populous tiles."""

from __future__ import annotations

import heapq
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from src.common.models import Bucket

MergeFn = Callable[[List[Any]], Any]


def bucket_rank(bucket: Bucket, seen: int) -> Tuple[int, int, int]:
    """Heap key where a larger tuple is a better bucket.

    Higher doc count wins, then the lower tile id, then the bucket offered first.
    """

    return (bucket.doc_count, -bucket.tile_id, -seen)


class TopKSelector:
    """Bounded min-heap selection of the highest-count buckets."""

    def select(self, buckets: Iterable[Bucket], size: Optional[int]) -> List[Bucket]:
        """Return at most ``size`` buckets, best first. ``None`` keeps every bucket."""

        if size is not None and size <= 0:
            return []

        heap: List[Tuple[Tuple[int, int, int], Bucket]] = []
        for seen, bucket in enumerate(buckets):
            entry = (bucket_rank(bucket, seen), bucket)
            if size is None or len(heap) < size:
                heapq.heappush(heap, entry)
            elif entry[0] > heap[0][0]:
                heapq.heapreplace(heap, entry)

        ordered = [heapq.heappop(heap)[1] for _ in range(len(heap))]
        ordered.reverse()
        return ordered


class BucketReducer:
    """Groups buckets from many partial results by tile id and merges each group."""

    def __init__(self, merge: MergeFn, selector: Optional[TopKSelector] = None) -> None:
        self.merge = merge
        self.selector = selector or TopKSelector()

    def reduce(self, partial_results: Iterable[Sequence[Bucket]], required_size: Optional[int]) -> List[Bucket]:
        grouped: Dict[int, List[Bucket]] = {}
        level: Optional[int] = None
        for buckets in partial_results:
            for bucket in buckets:
                if level is None:
                    level = bucket.key.level
                elif bucket.key.level != level:
                    raise ValueError(
                        f"Cannot reduce tiles of level {bucket.key.level} together with tiles of level {level}."
                    )
                grouped.setdefault(bucket.tile_id, []).append(bucket)

        merged = (self._merge_group(same_tile) for same_tile in grouped.values())
        return self.selector.select(merged, required_size)

    def _merge_group(self, same_tile: List[Bucket]) -> Bucket:
        doc_count = sum(bucket.doc_count for bucket in same_tile)
        aggregation = self.merge([bucket.aggregation for bucket in same_tile])
        return Bucket(key=same_tile[0].key, doc_count=doc_count, aggregation=aggregation)
