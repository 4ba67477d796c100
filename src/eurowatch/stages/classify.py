"""Classify stage: assign macro topics with the LLM classifier."""

import asyncio
import os
from collections import Counter
from typing import Optional

from sqlalchemy import func, select, update

from ..context import PipelineContext
from ..exceptions import StageError
from ..processors.classifier import Classification, TopicClassifier
from ..processors.taxonomy import format_speech_input, format_topic_input
from ..storage import IndividualSpeech, epoch_ms
from .base import BaseStage, StageResult


def classification_columns(result: Classification, cost: Optional[float] = None) -> dict:
    return {
        "macro_topic": result.label,
        "macro_specific_focus": result.specific_focus,
        "macro_confidence": result.confidence,
        "macro_classified_by": result.model,
        "macro_classified_at": epoch_ms(),
        "macro_classification_cost": result.cost if cost is None else cost,
    }


class ClassifyStage(BaseStage):
    """Classifies unclassified speeches, or distinct agenda topics.

    In ``speech`` mode every speech with a NULL macro topic is sent on its
    own. In ``topic`` mode each distinct trimmed agenda topic is sent once
    and the label is written to every unclassified speech under it; the
    request cost is split evenly across those speeches.
    """

    name = "classify"
    description = "Classifying macro topics"

    def __init__(
        self,
        mode: Optional[str] = None,
        from_id: Optional[int] = None,
        limit: Optional[int] = None,
    ):
        super().__init__()
        self.mode = mode
        self.from_id = from_id
        self.limit = limit

    def _classifier(self, ctx: PipelineContext) -> TopicClassifier:
        settings = ctx.config.classifier
        if ctx.llm_client is None and not (settings.api_key or os.environ.get("OPENAI_API_KEY")):
            raise StageError("No API key configured for the classifier (classifier.api_key or OPENAI_API_KEY)")
        return TopicClassifier(settings, client=ctx.llm_client, budget=ctx.budget)

    def _speech_items(self, ctx: PipelineContext) -> list[tuple[int, str]]:
        stmt = (
            select(
                IndividualSpeech.id,
                IndividualSpeech.speech_content,
                IndividualSpeech.speaker_name,
                IndividualSpeech.political_group_std,
                IndividualSpeech.language,
            )
            .where(IndividualSpeech.macro_topic.is_(None))
            .order_by(IndividualSpeech.id)
        )
        if self.from_id is not None:
            stmt = stmt.where(IndividualSpeech.id >= self.from_id)
        if self.limit is not None:
            stmt = stmt.limit(self.limit)
        with ctx.storage.session() as session:
            return [
                (
                    row.id,
                    format_speech_input(
                        row.speech_content, row.speaker_name, row.political_group_std, row.language
                    ),
                )
                for row in session.execute(stmt)
            ]

    def _topic_items(self, ctx: PipelineContext) -> list[tuple[str, str]]:
        topic = func.trim(IndividualSpeech.topic)
        stmt = (
            select(topic.label("topic"))
            .where(IndividualSpeech.topic.is_not(None))
            .where(topic != "")
            .where(IndividualSpeech.macro_topic.is_(None))
            .group_by(topic)
            .order_by(func.min(IndividualSpeech.id))
        )
        if self.from_id is not None:
            stmt = stmt.where(IndividualSpeech.id >= self.from_id)
        if self.limit is not None:
            stmt = stmt.limit(self.limit)
        with ctx.storage.session() as session:
            return [(title, format_topic_input(title)) for title in session.scalars(stmt)]

    def _write_speech(self, ctx: PipelineContext, speech_id: int, result: Classification) -> None:
        ctx.storage.update_speech(speech_id, **classification_columns(result))

    def _write_topic(self, ctx: PipelineContext, title: str, result: Classification) -> int:
        matches = (
            func.trim(IndividualSpeech.topic) == title,
            IndividualSpeech.macro_topic.is_(None),
        )
        with ctx.storage.session() as session:
            count = session.scalar(select(func.count(IndividualSpeech.id)).where(*matches)) or 0
            if count:
                session.execute(
                    update(IndividualSpeech)
                    .where(*matches)
                    .values(**classification_columns(result, result.cost / count))
                )
        return count

    def run(self, ctx: PipelineContext) -> StageResult:
        result = self._result()
        mode = self.mode or ctx.config.classifier.mode
        if mode not in ("speech", "topic"):
            raise StageError(f"Unknown classification mode: {mode}")

        items = self._speech_items(ctx) if mode == "speech" else self._topic_items(ctx)
        self.logger.info(f"Classifying {len(items)} {mode}s with {ctx.config.classifier.model}")
        if not items:
            return result
        if ctx.dry_run:
            result.details["would_classify"] = len(items)
            return result

        classifier = self._classifier(ctx)
        labels: Counter = Counter()
        speeches = 0
        task_id = ctx.progress.add_task(self.description, total=len(items))

        # SQLite takes one writer at a time; the loop keeps serving API calls meanwhile
        write_lock = asyncio.Lock()

        async def on_result(key, classification: Classification) -> None:
            nonlocal speeches
            async with write_lock:
                if mode == "speech":
                    await asyncio.to_thread(self._write_speech, ctx, key, classification)
                    speeches += 1
                else:
                    speeches += await asyncio.to_thread(self._write_topic, ctx, key, classification)
            labels[classification.label] += 1
            if classification.failed:
                result.failed += 1
            else:
                result.succeeded += 1
            ctx.progress.update(task_id, advance=1)

        asyncio.run(classifier.classify_many(items, on_result))

        totals = classifier.totals
        result.details.update(
            {
                "speeches": speeches,
                "labels": dict(labels.most_common()),
                "requests": totals.requests,
                "input_tokens": totals.input_tokens,
                "output_tokens": totals.output_tokens,
                "reasoning_tokens": totals.reasoning_tokens,
                "cost": round(totals.cost, 6),
            }
        )
        self.logger.info(
            f"Classified {len(items)} {mode}s ({speeches} speeches): {totals.requests} requests, "
            f"{totals.input_tokens} in / {totals.output_tokens} out tokens, ${totals.cost:.4f}"
        )
        return result
