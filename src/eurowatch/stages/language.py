"""Language stage: detect the language of speeches that have none."""

from collections import Counter
from typing import Optional

from sqlalchemy import func, select, update

from ..context import PipelineContext
from ..storage import IndividualSpeech
from .base import BaseStage, StageResult


class LanguageStage(BaseStage):
    """Detects languages batch by batch over speeches with ``language IS NULL``.

    Speeches no detector is confident about keep a NULL language.
    """

    name = "language"
    description = "Detecting languages"

    def __init__(self, from_id: Optional[int] = None, limit: Optional[int] = None):
        super().__init__()
        self.from_id = from_id
        self.limit = limit

    def _base_query(self):
        stmt = select(IndividualSpeech.id, IndividualSpeech.speech_content).where(
            IndividualSpeech.language.is_(None)
        )
        if self.from_id is not None:
            stmt = stmt.where(IndividualSpeech.id >= self.from_id)
        return stmt

    def run(self, ctx: PipelineContext) -> StageResult:
        result = self._result()
        detector = ctx.language_detector()
        batch_size = ctx.config.language.batch_size

        with ctx.storage.session() as session:
            pending = session.scalar(
                select(func.count()).select_from(self._base_query().subquery())
            ) or 0
        if self.limit is not None:
            pending = min(pending, self.limit)
        task_id = ctx.progress.add_task(self.description, total=pending)

        tally: Counter = Counter()
        last_id = 0
        processed = 0
        while processed < pending:
            size = min(batch_size, pending - processed)
            with ctx.storage.session() as session:
                batch = session.execute(
                    self._base_query()
                    .where(IndividualSpeech.id > last_id)
                    .order_by(IndividualSpeech.id)
                    .limit(size)
                ).all()
            if not batch:
                break

            updates = []
            for row in batch:
                code = detector.detect_code(row.speech_content)
                if code is None:
                    result.skipped += 1
                    continue
                tally[code] += 1
                updates.append({"id": row.id, "language": code})

            if updates and not ctx.dry_run:
                with ctx.storage.session() as session:
                    session.execute(update(IndividualSpeech), updates)
            result.succeeded += len(updates)
            processed += len(batch)
            last_id = batch[-1].id
            ctx.progress.update(task_id, advance=len(batch))

        result.details["languages"] = dict(tally.most_common())
        summary = ", ".join(f"{code}: {count}" for code, count in tally.most_common(10))
        self.logger.info(
            f"Languages: {result.succeeded} detected, {result.skipped} undecided ({summary or 'none'})"
        )
        return result
