"""Main pipeline orchestrator."""

from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import List, Optional, Sequence

from rich.table import Table

from .collectors.sittings import list_dates_in_range
from .config import Config
from .context import PipelineContext
from .stages import (
    AnalyticsStage,
    BaseStage,
    ClassifyStage,
    FetchStage,
    GroupStage,
    LanguageStage,
    ParseStage,
    StageResult,
)
from .storage import Storage
from .utils.logging import get_console, setup_logging


@dataclass
class RunOptions:
    """Stage selection and scoping for one ``run`` invocation."""

    date: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    all_dates: bool = False
    refetch: bool = False
    parse_recent: bool = False
    parse_all: bool = False
    classify: bool = False
    warm_cache: bool = False
    mode: Optional[str] = None
    from_id: Optional[int] = None
    limit: Optional[int] = None
    overwrite_legacy: bool = False
    report_path: Optional[Path] = None

    @property
    def has_dates(self) -> bool:
        return bool(self.date or self.start_date or self.end_date or self.all_dates)

    @property
    def has_stage_flags(self) -> bool:
        return self.parse_recent or self.parse_all or self.classify or self.warm_cache


def resolve_dates(
    options: RunOptions,
    storage: Storage,
    config: Config,
    today: Optional[date] = None,
) -> List[str]:
    """Dates a run covers.

    A single ``--date`` wins, then an explicit range, then ``--all``, which
    covers every date whose sitting already holds content. Without any of
    these the run starts the day after the newest fully classified sitting,
    or at the earliest date on an empty store, and ends today.
    """
    today = today or date.today()
    if options.date:
        return [options.date]

    end = options.end_date or today.isoformat()
    if options.all_dates and not options.start_date:
        known = storage.dates_with_content(config.fetch.min_content_length)
        return sorted(d for d in known if d <= end)

    if options.start_date:
        start = options.start_date
    else:
        latest = storage.most_recent_complete_date()
        if latest:
            start = (date.fromisoformat(latest) + timedelta(days=1)).isoformat()
        else:
            start = config.fetch.earliest_date
    if start > end:
        return []
    return list_dates_in_range(start, end)


def build_stages(
    options: RunOptions,
    dates: Sequence[str],
    config: Config,
    today: Optional[date] = None,
) -> List[BaseStage]:
    """Stages for a run, in pipeline order.

    Without stage flags the full chain runs over ``dates``. Stage flags
    select only those stages; dates given alongside them add fetch and
    parse for those dates.
    """
    stages: List[BaseStage] = []
    full_chain = not options.has_stage_flags

    if full_chain or options.has_dates:
        stages.append(FetchStage(dates, refetch=options.refetch))
        stages.append(ParseStage(dates=dates, reparse=options.refetch))
    if options.parse_all:
        stages.append(ParseStage(reparse=True))
    elif options.parse_recent:
        stages.append(ParseStage.recent(config.parsing.recent_days, today, reparse=True))
    if full_chain:
        stages.append(
            GroupStage(
                options.from_id,
                options.limit,
                overwrite_legacy=options.overwrite_legacy,
                report_path=options.report_path,
            )
        )
        stages.append(LanguageStage(options.from_id, options.limit))
    if full_chain or options.classify:
        stages.append(ClassifyStage(options.mode, options.from_id, options.limit))
    if full_chain or options.warm_cache:
        stages.append(AnalyticsStage())
    return stages


class Pipeline:
    """Main pipeline orchestrator.

    Runs a list of stages in order against one context. A stage that
    raises is recorded as failed and the remaining stages still run.
    """

    def __init__(self, config: Config, ctx: Optional[PipelineContext] = None, dry_run: bool = False):
        """Initialize the pipeline.

        Args:
            config: Pipeline configuration
            ctx: Prepared context; one is built from ``config`` when omitted
            dry_run: Report what would change without writing
        """
        self.config = config
        self.logger = setup_logging(config.pipeline.log_level, config.pipeline.log_file)
        self.console = get_console()
        self.ctx = ctx or PipelineContext.from_config(config, console=self.console, dry_run=dry_run)

        # Statistics
        self.results: list[StageResult] = []
        self.errors: list[str] = []

    def run(self, stages: Sequence[BaseStage]) -> List[StageResult]:
        """Execute stages in order.

        Args:
            stages: Stages to run

        Returns:
            One StageResult per stage
        """
        self.results = []
        with self.ctx.progress:
            for number, stage in enumerate(stages, start=1):
                self.logger.info(f"Phase {number}: {stage.description or stage.name}")
                self.results.append(self._run_stage(stage))

        self._print_summary()
        return self.results

    def _run_stage(self, stage: BaseStage) -> StageResult:
        try:
            return stage.run(self.ctx)
        except Exception as e:
            self.logger.error(f"Stage {stage.name} failed: {e}")
            self.errors.append(f"{stage.name}: {e}")
            return StageResult(name=stage.name, failed=1, error=str(e))

    @property
    def succeeded(self) -> bool:
        return not self.errors

    def _print_summary(self) -> None:
        """Print a summary of the pipeline run."""
        if self.errors:
            self.console.print("\n[bold yellow]Pipeline finished with errors[/bold yellow]")
        elif self.ctx.dry_run:
            self.console.print("\n[bold green]Dry run completed, nothing was written[/bold green]")
        else:
            self.console.print("\n[bold green]Pipeline completed successfully![/bold green]")

        table = Table(title="Stages")
        table.add_column("Stage", style="cyan")
        table.add_column("Succeeded", justify="right", style="green")
        table.add_column("Skipped", justify="right")
        table.add_column("Failed", justify="right", style="red")
        table.add_column("Details")
        for result in self.results:
            details = ", ".join(
                f"{key}={value}" for key, value in result.details.items() if not isinstance(value, dict)
            )
            table.add_row(
                result.name,
                str(result.succeeded),
                str(result.skipped),
                str(result.failed),
                result.error or details,
            )
        self.console.print(table)

        classify = next((r for r in self.results if r.name == "classify" and "cost" in r.details), None)
        if classify is not None:
            self.console.print(
                f"LLM usage: {classify.details['input_tokens']} input / "
                f"{classify.details['output_tokens']} output tokens, ${classify.details['cost']:.4f}"
            )

        if self.errors:
            self.console.print(f"\n[bold red]Errors ({len(self.errors)}):[/bold red]")
            for error in self.errors[:5]:
                self.console.print(f"  - {error}")

    def close(self) -> None:
        self.ctx.close()
