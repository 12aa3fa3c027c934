"""Entry point for the tile grid Spark job."""

from __future__ import annotations

import argparse
import logging

from pyspark.sql import SparkSession

from src.common.config import load_config
from src.common.geo import TileCoder
from src.ingest.ingestion_service import IngestionService
from src.streaming.aggregator import TileGridAggregator
from src.streaming.persistence import Persistence
from src.streaming.rdd_builder import RDDBuilder

logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(description="Count point documents per map tile and keep the busiest tiles.")
    parser.add_argument("--config", default="config/local.yaml", help="Path to YAML config.")
    args = parser.parse_args()

    config = load_config(args.config)
    logging.basicConfig(
        level=config.logging.level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    spark = (
        SparkSession.builder.appName(config.spark.app_name)
        .master(config.spark.master)
        .config("spark.sql.shuffle.partitions", str(config.spark.shuffle_partitions))
        .getOrCreate()
    )

    try:
        ingestion = IngestionService(
            spark,
            points_path=config.dataset.points_path,
            location_field=config.dataset.location_field,
            value_field=config.dataset.value_field,
            limit=config.dataset.limit,
        )
        documents = RDDBuilder(spark, ingestion).build_documents()
        if documents.isEmpty():
            raise RuntimeError("No point documents available. Check dataset paths.")

        aggregator = TileGridAggregator(
            spark,
            TileCoder(config.tiles.level_of_detail),
            required_size=config.tiles.required_size,
            shard_size=config.tiles.shard_size,
            reduce_depth=config.tiles.reduce_depth,
            num_shards=config.spark.num_shards,
        )
        result = aggregator.run(documents)
        target = Persistence(config.output.base_path, aggregator.codec).write(result)
        logger.info("Wrote %d tiles at level %d to %s", len(result.buckets), config.tiles.level_of_detail, target)
    finally:
        spark.stop()


if __name__ == "__main__":
    main()
