"""Exporters for writing speech datasets."""

from .csv import CSVExporter
from .parquet import ParquetExporter, read_parquet
from .rows import EXPORT_COLUMNS, iter_speech_batches

__all__ = ["CSVExporter", "EXPORT_COLUMNS", "ParquetExporter", "iter_speech_batches", "read_parquet"]
