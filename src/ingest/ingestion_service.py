"""Load point documents into Spark DataFrames."""

from __future__ import annotations

from typing import Optional

from pyspark.sql import Column, DataFrame, SparkSession
from pyspark.sql import functions as F

DOCUMENT_COLUMNS = ("doc_id", "location", "latitude", "longitude", "value")


class IngestionService:
    """Reads newline-delimited JSON documents that carry a location."""

    def __init__(
        self,
        spark: SparkSession,
        points_path: str,
        location_field: str = "location",
        value_field: Optional[str] = "value",
        limit: Optional[int] = None,
    ) -> None:
        self.spark = spark
        self.points_path = points_path
        self.location_field = location_field
        self.value_field = value_field
        self.limit = limit

    def load_points(self) -> DataFrame:
        """Return documents projected onto the columns the tile grid reads."""

        df = self.spark.read.json(self.points_path)
        cleaned = self.select_document_columns(df)
        if self.limit:
            cleaned = cleaned.limit(self.limit)
        return cleaned

    def select_document_columns(self, df: DataFrame) -> DataFrame:
        """Missing columns become nulls so every frame has the same shape."""

        if "id" in df.columns:
            doc_id = F.col("id").cast("string")
        else:
            doc_id = F.monotonically_increasing_id().cast("string")
        return df.select(
            doc_id.alias("doc_id"),
            _column_or_null(df, self.location_field).alias("location"),
            _column_or_null(df, "latitude", "double").alias("latitude"),
            _column_or_null(df, "longitude", "double").alias("longitude"),
            _column_or_null(df, self.value_field, "double").alias("value"),
        )


def _column_or_null(df: DataFrame, name: Optional[str], cast: Optional[str] = None) -> Column:
    if name and name in df.columns:
        column = F.col(name)
    else:
        column = F.lit(None)
    return column.cast(cast) if cast else column
