import csv

import pytest

from eurowatch.collectors.meps import MepRecord
from eurowatch.exporters import CSVExporter, ParquetExporter, read_parquet
from eurowatch.processors.mep_linker import upsert_api_meps
from eurowatch.utils.hashing import compute_hash

QUOTED = 'Mr President, the minister said "not now", again.'


@pytest.fixture
def seeded(storage):
    upsert_api_meps(storage, [MepRecord(124831, "Maria Silva", country_code="PT")])
    for activity_date, rows in (
        (
            "2024-01-17",
            [
                {"speech_order": 2, "speech_content": "Second speech of the day.", "speaker_name": "Kowalski"},
                {"speech_order": 1, "speech_content": QUOTED, "speaker_name": "Silva Maria", "mep_id": 124831},
            ],
        ),
        ("2024-01-15", [{"speech_order": 1, "speech_content": "Opening.", "speaker_name": "President"}]),
    ):
        content = "x" * 200
        storage.upsert_sitting(activity_date, content, compute_hash(content))
        storage.replace_speeches(storage.sitting_for_date(activity_date).id, rows)
    return storage


def test_csv_has_bom_and_requested_field_order(seeded, tmp_path):
    path = tmp_path / "out" / "speeches.csv"

    count = CSVExporter(["date", "speech_order", "speaker_name", "country"]).export(seeded, path)

    assert count == 3
    raw = path.read_bytes()
    assert raw.startswith(b"\xef\xbb\xbf")
    assert b"\r\n" not in raw
    lines = raw.decode("utf-8-sig").split("\n")
    assert lines[0] == "date,speech_order,speaker_name,country"
    assert lines[1:4] == [
        "2024-01-15,1,President,",
        "2024-01-17,1,Silva Maria,PT",
        "2024-01-17,2,Kowalski,",
    ]


def test_csv_quotes_only_when_needed(seeded, tmp_path):
    path = tmp_path / "speeches.csv"

    CSVExporter(["speaker_name", "speech_content"]).export(seeded, path, start_date="2024-01-16")

    text = path.read_text(encoding="utf-8-sig")
    assert 'Silva Maria,"Mr President, the minister said ""not now"", again."' in text
    assert "Kowalski,Second speech of the day." in text
    with open(path, encoding="utf-8-sig", newline="") as f:
        rows = list(csv.DictReader(f))
    assert [row["speech_content"] for row in rows] == [QUOTED, "Second speech of the day."]


def test_csv_batches_and_date_range(seeded, tmp_path):
    path = tmp_path / "speeches.csv"

    count = CSVExporter(["id"], batch_size=1).export(seeded, path, "2024-01-15", "2024-01-15")

    assert count == 1


def test_unknown_fields_are_rejected():
    with pytest.raises(ValueError, match="nonsense"):
        CSVExporter(["id", "nonsense"])
    with pytest.raises(ValueError):
        ParquetExporter(["macro_cost"])


def test_parquet_export(seeded, tmp_path):
    path = tmp_path / "speeches.parquet"

    count = ParquetExporter(["id", "date", "speaker_name", "mep_id"], batch_size=2).export(seeded, path)

    assert count == 3
    df = read_parquet(path)
    assert df.columns == ["id", "date", "speaker_name", "mep_id"]
    assert df["date"].to_list() == ["2024-01-15", "2024-01-17", "2024-01-17"]
    assert df["mep_id"].to_list() == [None, 124831, None]


def test_parquet_without_rows_writes_nothing(storage, tmp_path):
    path = tmp_path / "speeches.parquet"

    assert ParquetExporter(["id"]).export(storage, path) == 0
    assert not path.exists()
