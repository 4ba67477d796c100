"""Batched reads of speech rows for the exporters."""

from typing import Iterator, Optional, Sequence

from sqlalchemy import select

from ..storage import IndividualSpeech, Mep, Sitting, Storage

EXPORT_COLUMNS = {
    "id": IndividualSpeech.id,
    "sitting_id": IndividualSpeech.sitting_id,
    "date": Sitting.activity_date,
    "speech_order": IndividualSpeech.speech_order,
    "speaker_name": IndividualSpeech.speaker_name,
    "mep_id": IndividualSpeech.mep_id,
    "country": Mep.country_code,
    "political_group": IndividualSpeech.political_group,
    "political_group_raw": IndividualSpeech.political_group_raw,
    "political_group_std": IndividualSpeech.political_group_std,
    "political_group_kind": IndividualSpeech.political_group_kind,
    "political_group_reason": IndividualSpeech.political_group_reason,
    "title": IndividualSpeech.title,
    "language": IndividualSpeech.language,
    "topic": IndividualSpeech.topic,
    "macro_topic": IndividualSpeech.macro_topic,
    "macro_specific_focus": IndividualSpeech.macro_specific_focus,
    "macro_confidence": IndividualSpeech.macro_confidence,
    "speech_content": IndividualSpeech.speech_content,
}


def validate_fields(fields: Sequence[str]) -> list[str]:
    unknown = [name for name in fields if name not in EXPORT_COLUMNS]
    if unknown:
        raise ValueError(f"Unknown export fields: {', '.join(unknown)}")
    return list(fields)


def iter_speech_batches(
    storage: Storage,
    fields: Sequence[str],
    batch_size: int = 5000,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> Iterator[list[dict]]:
    """Yield speech rows in batches, ordered by sitting date then speech order.

    Args:
        storage: Database to read
        fields: Output fields, in output order
        batch_size: Rows per batch
        start_date: Earliest sitting date to include
        end_date: Latest sitting date to include

    Yields:
        Lists of ``{field: value}`` dicts
    """
    fields = validate_fields(fields)
    stmt = (
        select(*(EXPORT_COLUMNS[name].label(name) for name in fields))
        .select_from(IndividualSpeech)
        .join(Sitting, Sitting.id == IndividualSpeech.sitting_id)
        .outerjoin(Mep, Mep.id == IndividualSpeech.mep_id)
        .order_by(Sitting.activity_date, IndividualSpeech.sitting_id, IndividualSpeech.speech_order)
    )
    if start_date:
        stmt = stmt.where(Sitting.activity_date >= start_date)
    if end_date:
        stmt = stmt.where(Sitting.activity_date <= end_date)

    offset = 0
    while True:
        with storage.session() as session:
            batch = [dict(row._mapping) for row in session.execute(stmt.limit(batch_size).offset(offset))]
        if not batch:
            return
        yield batch
        if len(batch) < batch_size:
            return
        offset += batch_size
