"""CSV exporter."""

import csv
from pathlib import Path
from typing import Optional, Sequence

from ..storage import Storage
from ..utils.logging import get_logger
from .rows import iter_speech_batches, validate_fields


class CSVExporter:
    """Exports speech rows to CSV.

    The file starts with a UTF-8 byte order mark so spreadsheet tools pick
    the right encoding. Fields are quoted only when needed, with embedded
    quotes doubled.
    """

    def __init__(self, fields: Sequence[str], batch_size: int = 5000):
        self.fields = validate_fields(fields)
        self.batch_size = batch_size
        self.logger = get_logger()

    def export(
        self,
        storage: Storage,
        output_path: Path,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> int:
        """Export speeches to a CSV file.

        Args:
            storage: Database to read
            output_path: Path to output file
            start_date: Earliest sitting date to include
            end_date: Latest sitting date to include

        Returns:
            Number of rows exported
        """
        output_path.parent.mkdir(parents=True, exist_ok=True)

        count = 0
        with open(output_path, "w", encoding="utf-8-sig", newline="") as f:
            writer = csv.DictWriter(
                f,
                fieldnames=self.fields,
                quoting=csv.QUOTE_MINIMAL,
                doublequote=True,
                lineterminator="\n",
            )
            writer.writeheader()
            for batch in iter_speech_batches(storage, self.fields, self.batch_size, start_date, end_date):
                writer.writerows(batch)
                count += len(batch)
                self.logger.debug(f"Exported {count} rows to CSV")

        self.logger.info(f"Exported {count} records to {output_path}")
        return count
