"""Topic stage: assign agenda topics to speeches that have none."""

from collections import defaultdict
from typing import Optional

from sqlalchemy import select, update

from ..context import PipelineContext
from ..parsers.agenda import best_section, split_sections
from ..storage import IndividualSpeech
from .base import BaseStage, StageResult


class TopicStage(BaseStage):
    """Re-runs the speech-to-agenda alignment for speeches with a NULL topic."""

    name = "topics"
    description = "Mapping agenda topics"

    def __init__(self, from_id: Optional[int] = None, limit: Optional[int] = None):
        super().__init__()
        self.from_id = from_id
        self.limit = limit

    def _pending(self, ctx: PipelineContext) -> dict[str, list[tuple[int, str]]]:
        stmt = (
            select(IndividualSpeech.id, IndividualSpeech.sitting_id, IndividualSpeech.speech_content)
            .where(IndividualSpeech.topic.is_(None))
            .order_by(IndividualSpeech.id)
        )
        if self.from_id is not None:
            stmt = stmt.where(IndividualSpeech.id >= self.from_id)
        if self.limit is not None:
            stmt = stmt.limit(self.limit)

        by_sitting = defaultdict(list)
        with ctx.storage.session() as session:
            for row in session.execute(stmt):
                by_sitting[row.sitting_id].append((row.id, row.speech_content))
        return by_sitting

    def run(self, ctx: PipelineContext) -> StageResult:
        result = self._result()
        pending = self._pending(ctx)
        task_id = ctx.progress.add_task(self.description, total=len(pending))

        for sitting_id, speeches in pending.items():
            sections = split_sections(ctx.storage.sitting_content(sitting_id) or "")
            updates = []
            for speech_id, body in speeches:
                match = best_section(body, sections, ctx.config.topics) if sections else None
                if match is None:
                    result.skipped += 1
                else:
                    updates.append({"id": speech_id, "topic": match.title})

            if updates and not ctx.dry_run:
                with ctx.storage.session() as session:
                    session.execute(update(IndividualSpeech), updates)
            result.succeeded += len(updates)
            ctx.progress.update(task_id, advance=1)

        self.logger.info(
            f"Topics: {result.succeeded} speeches mapped, {result.skipped} without a matching section"
        )
        return result
