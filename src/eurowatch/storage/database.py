"""Persistence helpers built on SQLAlchemy."""

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence

from sqlalchemy import create_engine, event, func, inspect, select, text, update
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..utils.logging import get_logger
from .models import Base, CacheStatus, IndividualSpeech, Mep, Sitting, epoch_ms


@dataclass
class SittingRef:
    """Lightweight handle on a stored sitting."""

    id: str
    activity_date: str
    content_length: int
    speech_count: int


class Storage:
    """Wrapper around SQLAlchemy to store sittings, speeches and MEPs."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        self.logger = get_logger()

    @property
    def engine(self) -> Engine:
        return self._engine

    @contextmanager
    def session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ensure_schema(self) -> list[str]:
        """Create missing tables, then add any column an older file lacks.

        Returns:
            ``table.column`` names that were added
        """
        Base.metadata.create_all(self._engine)
        added = []
        inspector = inspect(self._engine)
        with self._engine.begin() as conn:
            for table in Base.metadata.sorted_tables:
                existing = {col["name"] for col in inspector.get_columns(table.name)}
                for column in table.columns:
                    if column.name in existing:
                        continue
                    col_type = column.type.compile(dialect=self._engine.dialect)
                    conn.execute(
                        text(f'ALTER TABLE {table.name} ADD COLUMN "{column.name}" {col_type}')
                    )
                    added.append(f"{table.name}.{column.name}")
        for name in added:
            self.logger.info(f"Migrated schema: added column {name}")
        return added

    def dispose(self) -> None:
        """Dispose the underlying SQLAlchemy engine."""
        self._engine.dispose()

    # Sittings

    def sitting_for_date(self, activity_date: str) -> Optional[Sitting]:
        """Return the sitting for a date, preferring the row that holds content."""
        with self.session() as session:
            stmt = (
                select(Sitting)
                .where(Sitting.activity_date == activity_date)
                .order_by(func.length(func.coalesce(Sitting.content, "")).desc())
                .limit(1)
            )
            return session.scalars(stmt).first()

    def dates_with_content(self, min_length: int = 100) -> set[str]:
        """Dates whose sitting already holds at least ``min_length`` characters."""
        with self.session() as session:
            stmt = select(Sitting.activity_date).where(
                func.length(func.coalesce(Sitting.content, "")) >= min_length
            )
            return set(session.scalars(stmt))

    def upsert_sitting(
        self,
        activity_date: str,
        content: str,
        content_hash: str,
        *,
        sitting_id: Optional[str] = None,
        type: str = "PLENARY_DEBATE",
        label: Optional[str] = None,
        doc_identifier: Optional[str] = None,
        notation_id: Optional[str] = None,
        force: bool = False,
        min_length: int = 100,
    ) -> str:
        """Store fetched content for a date.

        Keeps at most one content-bearing row per date: an existing row for
        the date is updated in place rather than duplicated.

        Returns:
            ``"stored"``, ``"unchanged"`` (same hash) or ``"kept"`` (content
            already present and ``force`` not set)
        """
        with self.session() as session:
            stmt = (
                select(Sitting)
                .where(Sitting.activity_date == activity_date)
                .order_by(func.length(func.coalesce(Sitting.content, "")).desc())
            )
            sitting = session.scalars(stmt).first()

            if sitting is None:
                sitting = Sitting(
                    id=sitting_id or f"sitting-{activity_date}",
                    activity_date=activity_date,
                )
                session.add(sitting)
            elif sitting.content and len(sitting.content) >= min_length:
                if sitting.content_hash == content_hash:
                    return "unchanged"
                if not force:
                    return "kept"

            sitting.type = sitting.type or type
            sitting.label = sitting.label or label or f"Parliamentary Sitting - {activity_date}"
            sitting.doc_identifier = sitting.doc_identifier or doc_identifier
            sitting.notation_id = sitting.notation_id or notation_id
            sitting.content = content
            sitting.content_hash = content_hash
            sitting.last_updated = epoch_ms()
            return "stored"

    def sittings_for_parse(
        self,
        *,
        dates: Optional[Sequence[str]] = None,
        since: Optional[str] = None,
        min_length: int = 100,
    ) -> list[SittingRef]:
        """Content-bearing sittings, oldest first, with their current speech counts."""
        with self.session() as session:
            counts = (
                select(IndividualSpeech.sitting_id, func.count(IndividualSpeech.id).label("n"))
                .group_by(IndividualSpeech.sitting_id)
                .subquery()
            )
            stmt = (
                select(
                    Sitting.id,
                    Sitting.activity_date,
                    func.length(Sitting.content).label("content_length"),
                    func.coalesce(counts.c.n, 0).label("speech_count"),
                )
                .outerjoin(counts, counts.c.sitting_id == Sitting.id)
                .where(func.length(func.coalesce(Sitting.content, "")) >= min_length)
                .order_by(Sitting.activity_date, Sitting.id)
            )
            if dates is not None:
                stmt = stmt.where(Sitting.activity_date.in_(list(dates)))
            if since is not None:
                stmt = stmt.where(Sitting.activity_date >= since)
            return [
                SittingRef(
                    id=row.id,
                    activity_date=row.activity_date,
                    content_length=row.content_length or 0,
                    speech_count=row.speech_count,
                )
                for row in session.execute(stmt)
            ]

    def sitting_content(self, sitting_id: str) -> Optional[str]:
        with self.session() as session:
            return session.scalar(select(Sitting.content).where(Sitting.id == sitting_id))

    def most_recent_complete_date(self) -> Optional[str]:
        """Newest sitting date whose speeches all carry a macro topic."""
        with self.session() as session:
            stmt = (
                select(Sitting.activity_date)
                .join(IndividualSpeech, IndividualSpeech.sitting_id == Sitting.id)
                .group_by(Sitting.id, Sitting.activity_date)
                .having(func.count(IndividualSpeech.id) > 0)
                .having(func.count(IndividualSpeech.macro_topic) == func.count(IndividualSpeech.id))
                .order_by(Sitting.activity_date.desc())
                .limit(1)
            )
            return session.scalar(stmt)

    # Speeches

    def replace_speeches(self, sitting_id: str, rows: Sequence[dict[str, Any]]) -> int:
        """Atomically replace every speech of a sitting.

        A row that violates a constraint is skipped and logged; the other
        rows are still written.

        Returns:
            Number of rows written
        """
        written = 0
        with self.session() as session:
            sitting = session.get(Sitting, sitting_id)
            if sitting is None:
                raise ValueError(f"Sitting {sitting_id} must exist before adding speeches")
            session.query(IndividualSpeech).filter(
                IndividualSpeech.sitting_id == sitting_id
            ).delete(synchronize_session=False)
            for row in sorted(rows, key=lambda r: r["speech_order"]):
                try:
                    with session.begin_nested():
                        session.add(IndividualSpeech(sitting_id=sitting_id, **row))
                        session.flush()
                    written += 1
                except IntegrityError as e:
                    self.logger.warning(
                        f"Skipped speech {row.get('speech_order')} of {sitting_id}: {e.orig}"
                    )
        return written

    def speech_count(self, sitting_id: Optional[str] = None) -> int:
        with self.session() as session:
            stmt = select(func.count(IndividualSpeech.id))
            if sitting_id is not None:
                stmt = stmt.where(IndividualSpeech.sitting_id == sitting_id)
            return session.scalar(stmt) or 0

    def update_speech(self, speech_id: int, **values: Any) -> bool:
        """Update one speech row in its own statement.

        Returns:
            False when the row violated a constraint and was left unchanged
        """
        try:
            with self.session() as session:
                session.execute(
                    update(IndividualSpeech).where(IndividualSpeech.id == speech_id).values(**values)
                )
            return True
        except IntegrityError as e:
            self.logger.warning(f"Skipped update of speech {speech_id}: {e.orig}")
            return False

    def stats(self) -> dict[str, int]:
        """Row counts and enrichment coverage, for status reports."""
        with self.session() as session:
            speeches = select(func.count(IndividualSpeech.id))
            return {
                "sittings": session.scalar(
                    select(func.count(Sitting.id)).where(
                        func.length(func.coalesce(Sitting.content, "")) > 0
                    )
                ) or 0,
                "speeches": session.scalar(speeches) or 0,
                "with_group": session.scalar(
                    speeches.where(IndividualSpeech.political_group_std.is_not(None))
                ) or 0,
                "with_topic": session.scalar(speeches.where(IndividualSpeech.topic.is_not(None))) or 0,
                "with_language": session.scalar(
                    speeches.where(IndividualSpeech.language.is_not(None))
                ) or 0,
                "with_macro_topic": session.scalar(
                    speeches.where(IndividualSpeech.macro_topic.is_not(None))
                ) or 0,
                "with_mep": session.scalar(speeches.where(IndividualSpeech.mep_id.is_not(None))) or 0,
                "meps": session.scalar(select(func.count(Mep.id))) or 0,
            }

    # Cache status

    def update_cache_status(self, **values: Any) -> None:
        with self.session() as session:
            status = session.get(CacheStatus, 1)
            if status is None:
                status = CacheStatus(id=1)
                session.add(status)
            for key, value in values.items():
                setattr(status, key, value)

    def cache_status(self) -> Optional[CacheStatus]:
        with self.session() as session:
            return session.get(CacheStatus, 1)


def _configure_sqlite(engine: Engine, busy_timeout_ms: int) -> None:
    """Enable foreign keys, WAL and real SAVEPOINT support on SQLite."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_storage(database_url: str, *, echo: bool = False, busy_timeout_ms: int = 30000) -> Storage:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(database_url, echo=echo)
    if url.get_backend_name() == "sqlite":
        _configure_sqlite(engine, busy_timeout_ms)
    storage = Storage(engine)
    storage.ensure_schema()
    return storage


__all__ = ["SittingRef", "Storage", "create_storage"]
