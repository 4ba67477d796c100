"""SQLAlchemy models for the plenary dataset."""

import time
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def epoch_ms() -> int:
    """Current time as epoch milliseconds, the unit of every stored timestamp."""
    return int(time.time() * 1000)


class Base(DeclarativeBase):
    """Declarative SQLAlchemy base class."""


class Mep(Base):
    """A Member of the European Parliament, from the directory or synthesized."""

    __tablename__ = "meps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    label: Mapped[str] = mapped_column(String(256), index=True)
    given_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    family_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    sort_label: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    country_code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    political_group: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    is_current: Mapped[bool] = mapped_column(Boolean, default=False)
    source: Mapped[str] = mapped_column(String(16), default="api")
    last_updated: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)


class Sitting(Base):
    """One plenary day and its verbatim report."""

    __tablename__ = "sittings"

    id: Mapped[str] = mapped_column(String(256), primary_key=True)
    activity_date: Mapped[str] = mapped_column(String(10), index=True)
    type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    label: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content_hash: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    doc_identifier: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    notation_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    last_updated: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    speeches: Mapped[List["IndividualSpeech"]] = relationship(
        back_populates="sitting",
        cascade="all, delete-orphan",
        order_by="IndividualSpeech.speech_order",
    )


class IndividualSpeech(Base):
    """A single speech parsed out of a sitting."""

    __tablename__ = "individual_speeches"
    __table_args__ = (UniqueConstraint("sitting_id", "speech_order", name="uq_sitting_order"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sitting_id: Mapped[str] = mapped_column(
        String(256), ForeignKey("sittings.id", ondelete="CASCADE"), index=True
    )
    speech_order: Mapped[int] = mapped_column(Integer)
    speaker_name: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    political_group: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    political_group_raw: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    political_group_std: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    political_group_kind: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    political_group_reason: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    title: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    speech_content: Mapped[str] = mapped_column(Text)
    language: Mapped[Optional[str]] = mapped_column(String(2), nullable=True, index=True)
    topic: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    macro_topic: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    macro_specific_focus: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    macro_confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    macro_classified_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    macro_classified_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    macro_classification_cost: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    mep_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("meps.id", ondelete="SET NULL"), nullable=True, index=True
    )

    sitting: Mapped[Sitting] = relationship(back_populates="speeches")


class CacheStatus(Base):
    """Single-row bookkeeping of upstream refresh times."""

    __tablename__ = "cache_status"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    speeches_last_updated: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    total_speeches: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    meps_last_updated: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)


class AnalyticsCacheEntry(Base):
    """A persisted analytics payload, stored as JSON text."""

    __tablename__ = "analytics_cache"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    payload: Mapped[str] = mapped_column(Text)
    updated_at: Mapped[int] = mapped_column(BigInteger)


__all__ = [
    "AnalyticsCacheEntry",
    "Base",
    "CacheStatus",
    "IndividualSpeech",
    "Mep",
    "Sitting",
    "epoch_ms",
]
