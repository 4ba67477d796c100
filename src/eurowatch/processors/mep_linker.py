"""Link parsed speeches to MEP records."""

from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ..collectors.meps import MepRecord
from ..storage import IndividualSpeech, Mep, Storage, epoch_ms
from ..utils.logging import get_logger

# Synthetic ids for speakers the directory does not know start above this
HISTORIC_ID_FLOOR = 1_000_000

logger = get_logger()


@dataclass
class HistoricResult:
    processed_speakers: int = 0
    created: int = 0
    linked_speeches: int = 0


def _reversed_name(name: str) -> str:
    return " ".join(reversed(name.split()))


def upsert_api_meps(storage: Storage, records: Iterable[MepRecord]) -> int:
    """Insert or refresh directory MEPs. Historic rows are never deleted.

    Returns:
        Number of MEPs written
    """
    now = epoch_ms()
    written = 0
    with storage.session() as session:
        for record in records:
            session.merge(
                Mep(
                    id=record.id,
                    label=record.label,
                    given_name=record.given_name,
                    family_name=record.family_name,
                    sort_label=record.sort_label or record.label,
                    country_code=record.country_code,
                    political_group=record.political_group,
                    is_current=record.is_current,
                    source="api",
                    last_updated=now,
                )
            )
            written += 1
    storage.update_cache_status(meps_last_updated=now)
    logger.info(f"Upserted {written} MEPs from the directory")
    return written


def _unlinked_speakers(session: Session) -> list[str]:
    stmt = (
        select(IndividualSpeech.speaker_name)
        .where(IndividualSpeech.speaker_name.is_not(None))
        .where(func.trim(IndividualSpeech.speaker_name) != "")
        .where(IndividualSpeech.mep_id.is_(None))
        .group_by(IndividualSpeech.speaker_name)
        .order_by(func.count(IndividualSpeech.id).desc(), IndividualSpeech.speaker_name)
    )
    return list(session.scalars(stmt))


def _link(session: Session, speaker_name: str, mep_id: int) -> int:
    result = session.execute(
        update(IndividualSpeech)
        .where(IndividualSpeech.speaker_name == speaker_name)
        .where(IndividualSpeech.mep_id.is_(None))
        .values(mep_id=mep_id)
    )
    return result.rowcount or 0


def match_speaker(name: str, lookup: dict[str, int], labels: list[tuple[str, int]]) -> Optional[int]:
    """Resolve a speaker name to an MEP id.

    Tries the lower-cased name and its reversed token order against the
    lookup first, then the first label that contains either form.
    """
    key = name.strip().lower()
    if not key:
        return None
    reversed_key = _reversed_name(key)
    mep_id = lookup.get(key) or lookup.get(reversed_key)
    if mep_id is not None:
        return mep_id
    for label, candidate in labels:
        if key in label or reversed_key in label:
            return candidate
    return None


def link_speeches_to_meps(storage: Storage) -> tuple[int, int]:
    """Set ``mep_id`` on speeches whose speaker matches a known MEP.

    Returns:
        ``(speakers_linked, speeches_linked)``
    """
    with storage.session() as session:
        meps = session.execute(select(Mep.id, Mep.label).order_by(Mep.id)).all()
        lookup: dict[str, int] = {}
        labels = []
        for mep in meps:
            label = (mep.label or "").strip().lower()
            if not label:
                continue
            labels.append((label, mep.id))
            lookup.setdefault(label, mep.id)
            lookup.setdefault(_reversed_name(label), mep.id)

        speakers = speeches = 0
        for speaker_name in _unlinked_speakers(session):
            mep_id = match_speaker(speaker_name, lookup, labels)
            if mep_id is None:
                continue
            speakers += 1
            speeches += _link(session, speaker_name, mep_id)

    logger.info(f"Linked {speakers} speakers ({speeches} speeches) to MEPs")
    return speakers, speeches


def create_historic_meps(storage: Storage) -> HistoricResult:
    """Create one historic MEP per speaker still unlinked, and link them.

    Ids are allocated above the larger of the current maximum and
    ``HISTORIC_ID_FLOOR`` within the same transaction as the inserts.
    """
    result = HistoricResult()
    now = epoch_ms()
    with storage.session() as session:
        lookup: dict[str, int] = {}
        for mep in session.execute(
            select(Mep.id, Mep.label, Mep.given_name, Mep.family_name).order_by(Mep.id)
        ):
            label = (mep.label or "").strip().lower()
            given = (mep.given_name or "").strip().lower()
            family = (mep.family_name or "").strip().lower()
            if label:
                lookup.setdefault(label, mep.id)
            if given and family:
                lookup.setdefault(f"{given} {family}", mep.id)
                lookup.setdefault(f"{family} {given}", mep.id)

        next_id = max(session.scalar(select(func.max(Mep.id))) or 0, HISTORIC_ID_FLOOR) + 1

        for speaker_name in _unlinked_speakers(session):
            result.processed_speakers += 1
            name = speaker_name.strip()
            parts = name.split()
            first, last = parts[0], parts[-1]
            keys = [name.lower()]
            if len(parts) >= 2:
                keys += [f"{first} {last}".lower(), f"{last} {first}".lower()]

            mep_id = next((lookup[k] for k in keys if k in lookup), None)
            if mep_id is None:
                mep_id = next_id
                next_id += 1
                group = session.scalar(
                    select(func.max(IndividualSpeech.political_group_std)).where(
                        IndividualSpeech.speaker_name == speaker_name
                    )
                )
                session.add(
                    Mep(
                        id=mep_id,
                        label=name,
                        given_name=first,
                        family_name=last,
                        sort_label=name,
                        country_code="Unknown",
                        political_group=group or "Unknown",
                        is_current=False,
                        source="historic",
                        last_updated=now,
                    )
                )
                session.flush()
                result.created += 1
                for key in keys:
                    lookup[key] = mep_id

            result.linked_speeches += _link(session, speaker_name, mep_id)

    logger.info(
        f"Created {result.created} historic MEPs for {result.processed_speakers} speakers "
        f"({result.linked_speeches} speeches linked)"
    )
    return result
