"""Parquet exporter using Polars."""

from pathlib import Path
from typing import Optional, Sequence

import polars as pl

from ..storage import Storage
from ..utils.logging import get_logger
from .rows import iter_speech_batches, validate_fields


class ParquetExporter:
    """Exports speech rows to Parquet format.

    Uses Polars for columnar storage with zstd compression by default.
    Parquet is the format to use for analytical queries and notebooks.
    """

    def __init__(self, fields: Sequence[str], compression: str = "zstd", batch_size: int = 5000):
        """Initialize the exporter.

        Args:
            fields: Columns to export, in order
            compression: Compression algorithm (zstd, snappy, gzip, lz4, uncompressed)
            batch_size: Rows read from the database per batch
        """
        self.fields = validate_fields(fields)
        self.compression = compression
        self.batch_size = batch_size
        self.logger = get_logger()

    def export(
        self,
        storage: Storage,
        output_path: Path,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> int:
        """Export speeches to a Parquet file.

        Args:
            storage: Database to read
            output_path: Path to output file
            start_date: Earliest sitting date to include
            end_date: Latest sitting date to include

        Returns:
            Number of records exported
        """
        frames = [
            pl.DataFrame(batch, infer_schema_length=None)
            for batch in iter_speech_batches(storage, self.fields, self.batch_size, start_date, end_date)
        ]
        if not frames:
            self.logger.warning("No records to export to Parquet")
            return 0

        output_path.parent.mkdir(parents=True, exist_ok=True)
        df = pl.concat(frames, how="diagonal_relaxed")

        df.write_parquet(
            output_path,
            compression=self.compression,
        )

        self.logger.info(
            f"Exported {len(df)} records to {output_path} "
            f"(compression: {self.compression})"
        )

        return len(df)


def read_parquet(path: Path) -> pl.DataFrame:
    """Read a Parquet file into a Polars DataFrame.

    Args:
        path: Path to Parquet file

    Returns:
        Polars DataFrame
    """
    return pl.read_parquet(path)
