"""Build Spark RDDs of point documents from ingested rows."""

from __future__ import annotations

import json
from typing import Any, Optional, Tuple

from pyspark import RDD
from pyspark.sql import DataFrame, Row, SparkSession

from src.common.models import PointDocument
from src.ingest.ingestion_service import IngestionService

LatLon = Tuple[Optional[float], Optional[float]]


class RDDBuilder:
    """Materialises point documents for the tile grid aggregation."""

    def __init__(self, spark: SparkSession, ingestion: IngestionService) -> None:
        self.spark = spark
        self.ingestion = ingestion

    def build_documents(self) -> RDD:
        return self.ingestion.load_points().rdd.map(RDDBuilder._document)

    def build_documents_from_frame(self, frame: DataFrame) -> RDD:
        """Convert an already loaded DataFrame of raw documents."""

        documents = self.ingestion.select_document_columns(frame)
        return documents.rdd.map(RDDBuilder._document)

    @staticmethod
    def _document(row: Row) -> PointDocument:
        latitude, longitude = parse_location(row.location)
        if latitude is None or longitude is None:
            latitude, longitude = row.latitude, row.longitude
        return PointDocument(
            doc_id=row.doc_id or "unknown",
            latitude=latitude,
            longitude=longitude,
            value=row.value,
        )


def parse_location(raw_value: Any) -> LatLon:
    """Read a location given as ``{"lat", "lon"}``, ``"lat,lon"`` or ``[lon, lat]``.

    Unreadable locations come back as ``(None, None)``; range checks happen at
    tiling time.
    """

    if raw_value is None:
        return None, None
    if hasattr(raw_value, "asDict"):
        raw_value = raw_value.asDict()
    if isinstance(raw_value, dict):
        return _as_float(raw_value.get("lat")), _as_float(raw_value.get("lon"))
    if isinstance(raw_value, (list, tuple)):
        if len(raw_value) != 2:
            return None, None
        # GeoJSON order
        return _as_float(raw_value[1]), _as_float(raw_value[0])
    if isinstance(raw_value, str):
        text = raw_value.strip()
        if text.startswith(("{", "[")):
            # Spark falls back to JSON text when a column mixes shapes.
            try:
                return parse_location(json.loads(text))
            except ValueError:
                return None, None
        parts = text.split(",")
        if len(parts) != 2:
            return None, None
        return _as_float(parts[0]), _as_float(parts[1])
    return None, None


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
