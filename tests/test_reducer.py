import random

import pandas as pd
import pytest

from src.common.models import Bucket, StatsAggregation, TileKey
from src.streaming.reducer import BucketReducer, TopKSelector

LEVEL = 8


def _bucket(tile_id: int, doc_count: int, value: float | None = None) -> Bucket:
    values = [value] * doc_count if value is not None else []
    return Bucket(
        key=TileKey.from_integer(tile_id, LEVEL),
        doc_count=doc_count,
        aggregation=StatsAggregation.of_values(values),
    )


def _counts(buckets):
    return {bucket.tile_id: bucket.doc_count for bucket in buckets}


def _random_buckets(rng: random.Random, size: int):
    tile_ids = rng.sample(range(4**LEVEL), size)
    return [_bucket(tile_id, rng.randint(1, 50)) for tile_id in tile_ids]


def test_reduce_sums_counts_and_merges_sub_aggregations():
    shard_a = [_bucket(5, 2, 1.0), _bucket(9, 1, 4.0)]
    shard_b = [_bucket(5, 3, 3.0), _bucket(11, 4, 2.0)]
    reducer = BucketReducer(StatsAggregation.merge)

    merged = reducer.reduce([shard_a, shard_b], required_size=10)

    assert [bucket.tile_id for bucket in merged] == [5, 11, 9]
    tile_five = merged[0]
    assert tile_five.doc_count == 5
    assert tile_five.aggregation.count == 5
    assert tile_five.aggregation.total == pytest.approx(11.0)
    assert tile_five.aggregation.minimum == 1.0
    assert tile_five.aggregation.maximum == 3.0
    assert tile_five.key == TileKey.from_integer(5, LEVEL)


def test_reduce_leaves_inputs_untouched():
    shard = [_bucket(3, 2, 1.0)]
    reducer = BucketReducer(StatsAggregation.merge)

    merged = reducer.reduce([shard, [_bucket(3, 1, 5.0)]], required_size=None)

    assert shard[0].doc_count == 2
    assert merged[0] is not shard[0]
    assert merged[0].doc_count == 3


def test_reduce_passes_each_group_to_the_merge_capability():
    calls = []

    def merge(payloads):
        calls.append(list(payloads))
        return sum(payloads)

    reducer = BucketReducer(merge)
    key = TileKey.from_integer(1, LEVEL)
    merged = reducer.reduce(
        [[Bucket(key, 1, 10)], [Bucket(key, 2, 20)], [Bucket(key, 3, 30)]],
        required_size=5,
    )

    assert calls == [[10, 20, 30]]
    assert merged == [Bucket(key, 6, 60)]


def test_reduce_is_associative_over_partial_results():
    rng = random.Random(42)
    pool = rng.sample(range(4**LEVEL), 60)
    shards = [
        [_bucket(tile_id, rng.randint(1, 9), float(rng.randint(0, 5))) for tile_id in rng.sample(pool, 40)]
        for _ in range(3)
    ]
    reducer = BucketReducer(StatsAggregation.merge)

    partial = reducer.reduce(shards[:2], required_size=None)
    staged = reducer.reduce([partial, shards[2]], required_size=None)
    single = reducer.reduce(shards, required_size=None)

    assert _counts(staged) == _counts(single)
    assert [bucket.tile_id for bucket in staged] == [bucket.tile_id for bucket in single]
    for left, right in zip(staged, single):
        assert left.aggregation.count == right.aggregation.count
        assert left.aggregation.total == pytest.approx(right.aggregation.total)


def test_reduce_rejects_mixed_levels():
    reducer = BucketReducer(StatsAggregation.merge)
    coarse = Bucket(TileKey("1"), 1, StatsAggregation())
    fine = Bucket(TileKey("01"), 1, StatsAggregation())

    with pytest.raises(ValueError):
        reducer.reduce([[coarse], [fine]], required_size=10)


def test_reduce_of_nothing_is_empty():
    reducer = BucketReducer(StatsAggregation.merge)

    assert reducer.reduce([], required_size=10) == []
    assert reducer.reduce([[], []], required_size=10) == []


@pytest.mark.parametrize("size,top_n", [(10, 3), (500, 25), (10_000, 100), (40, 100)])
def test_select_matches_a_full_sort(size, top_n):
    rng = random.Random(size + top_n)
    buckets = _random_buckets(rng, size)

    selected = TopKSelector().select(buckets, top_n)

    frame = pd.DataFrame(
        {"tile_id": [b.tile_id for b in buckets], "doc_count": [b.doc_count for b in buckets]}
    )
    expected = frame.sort_values(["doc_count", "tile_id"], ascending=[False, True]).head(top_n)
    assert len(selected) == min(top_n, size)
    assert [b.tile_id for b in selected] == expected["tile_id"].tolist()
    assert [b.doc_count for b in selected] == expected["doc_count"].tolist()


def test_select_breaks_count_ties_by_ascending_tile_id():
    buckets = [_bucket(30, 4), _bucket(2, 4), _bucket(17, 4), _bucket(5, 9)]

    selected = TopKSelector().select(buckets, 3)

    assert [b.tile_id for b in selected] == [5, 2, 17]


def test_select_keeps_first_seen_bucket_among_identical_ranks():
    first = Bucket(TileKey.from_integer(4, LEVEL), 3, "first")
    second = Bucket(TileKey.from_integer(4, LEVEL), 3, "second")

    assert TopKSelector().select([first, second], 1) == [first]
    assert TopKSelector().select([second, first], 1) == [second]
    assert TopKSelector().select([first, second], 2) == [first, second]


def test_select_size_edges():
    buckets = [_bucket(1, 1), _bucket(2, 2)]
    selector = TopKSelector()

    assert selector.select(buckets, 0) == []
    assert [b.tile_id for b in selector.select(buckets, None)] == [2, 1]
    assert [b.tile_id for b in selector.select(iter(buckets), 5)] == [2, 1]
    assert selector.select([], 3) == []


def test_bounded_reduce_matches_when_partials_keep_every_tile():
    leader_on_one_shard = _bucket(1, 3)
    spread_out = _bucket(2, 2)
    reducer = BucketReducer(StatsAggregation.merge)

    partial = reducer.reduce([[leader_on_one_shard], [spread_out]], required_size=None)
    staged = reducer.reduce([partial, [spread_out]], required_size=1)
    single = reducer.reduce([[leader_on_one_shard], [spread_out], [spread_out]], required_size=1)

    assert [(b.tile_id, b.doc_count) for b in staged] == [(2, 4)]
    assert [(b.tile_id, b.doc_count) for b in single] == [(2, 4)]
