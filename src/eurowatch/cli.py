"""Command-line interface for the EUROWATCH pipeline."""

import asyncio
from datetime import date, timedelta
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from .collectors.meps import HISTORIC_TERMS
from .collectors.sittings import SittingFetcher
from .collectors.speeches_api import SpeechMetadataClient
from .config import Config
from .exporters import CSVExporter, ParquetExporter
from .pipeline import Pipeline, RunOptions, build_stages, resolve_dates
from .processors.analytics import AnalyticsCache
from .stages import (
    BaseStage,
    FetchStage,
    GroupStage,
    LanguageStage,
    MepStage,
    ParseStage,
    TopicStage,
    render_audit,
)

app = typer.Typer(
    name="eurowatch",
    help="European Parliament plenary ingestion and enrichment pipeline",
    add_completion=False,
)

console = Console()

DEFAULT_CONFIG = Path("config/default.yaml")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from . import __version__
        console.print(f"eurowatch version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """EUROWATCH pipeline.

    Fetches European Parliament verbatim reports, splits them into
    speeches and enriches each speech with its agenda topic, political
    group, language and macro topic.
    """
    pass


def _load_config(config_path: Optional[Path], verbose: bool = False) -> Config:
    if config_path:
        if not config_path.exists():
            console.print(f"[red]Config file not found: {config_path}[/red]")
            raise typer.Exit(1)
        config = Config.from_yaml(config_path)
    elif DEFAULT_CONFIG.exists():
        config = Config.from_yaml(DEFAULT_CONFIG)
    else:
        config = Config.default()
    if verbose:
        config.pipeline.log_level = "DEBUG"
    return config


def _check_date(value: Optional[str], option: str) -> Optional[str]:
    if value is None:
        return None
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError:
        console.print(f"[red]Invalid {option} format: {value} (expected YYYY-MM-DD)[/red]")
        raise typer.Exit(1)


def _run_stages(config: Config, stages: List[BaseStage], dry_run: bool, verbose: bool) -> None:
    """Run stages in a fresh pipeline, exiting with 1 when any of them failed."""
    failed = False
    pipeline = None
    try:
        pipeline = Pipeline(config, dry_run=dry_run)
        pipeline.run(stages)
        failed = not pipeline.succeeded
    except Exception as e:
        console.print(f"[red]Pipeline failed: {e}[/red]")
        if verbose:
            console.print_exception()
        failed = True
    finally:
        if pipeline is not None:
            pipeline.close()
    if failed:
        raise typer.Exit(1)


ConfigOption = typer.Option(None, "--config", "-c", help="Path to configuration YAML file")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable verbose logging")
ApplyOption = typer.Option(True, "--apply/--dry-run", help="Write changes, or only report them")
FromIdOption = typer.Option(None, "--from-id", help="Only speeches with this id or higher")
LimitOption = typer.Option(None, "--limit", help="Process at most this many rows")


@app.command()
def run(
    config_path: Optional[Path] = ConfigOption,
    sitting_date: Optional[str] = typer.Option(None, "--date", help="Single sitting date (YYYY-MM-DD)"),
    start_date: Optional[str] = typer.Option(None, "--start-date", help="First date (YYYY-MM-DD)"),
    end_date: Optional[str] = typer.Option(None, "--end-date", help="Last date (YYYY-MM-DD)"),
    all_dates: bool = typer.Option(False, "--all", help="Every date whose sitting already holds content"),
    apply: bool = ApplyOption,
    from_id: Optional[int] = FromIdOption,
    limit: Optional[int] = LimitOption,
    parse_recent: bool = typer.Option(False, "--parse-recent", help="Re-parse sittings of the last year"),
    parse_all: bool = typer.Option(False, "--parse-all", help="Re-parse every sitting with content"),
    classify: bool = typer.Option(False, "--classify", help="Classify unclassified speeches"),
    warm_cache: bool = typer.Option(False, "--warm-cache", help="Rebuild the analytics cache"),
    refetch: bool = typer.Option(False, "--refetch", help="Download dates that already have content"),
    overwrite_legacy: bool = typer.Option(
        False, "--overwrite-legacy", help="Also rewrite the legacy political_group column"
    ),
    mode: Optional[str] = typer.Option(None, "--mode", help="Classification mode: speech or topic"),
    verbose: bool = VerboseOption,
) -> None:
    """Run the pipeline.

    Without stage flags this fetches, parses, normalizes groups, detects
    languages, classifies and warms the analytics cache for the default
    range: the day after the newest fully classified sitting through today.
    """
    config = _load_config(config_path, verbose)
    if mode is not None and mode not in ("speech", "topic"):
        console.print(f"[red]Invalid mode: {mode} (expected speech or topic)[/red]")
        raise typer.Exit(1)

    options = RunOptions(
        date=_check_date(sitting_date, "--date"),
        start_date=_check_date(start_date, "--start-date"),
        end_date=_check_date(end_date, "--end-date"),
        all_dates=all_dates,
        refetch=refetch,
        parse_recent=parse_recent,
        parse_all=parse_all,
        classify=classify,
        warm_cache=warm_cache,
        mode=mode,
        from_id=from_id,
        limit=limit,
        overwrite_legacy=overwrite_legacy,
    )

    failed = False
    pipeline = None
    try:
        pipeline = Pipeline(config, dry_run=not apply)
        dates: List[str] = []
        if options.has_dates or not options.has_stage_flags:
            dates = resolve_dates(options, pipeline.ctx.storage, config)
        stages = build_stages(options, dates, config)

        console.print("[bold]Starting EUROWATCH pipeline[/bold]")
        if dates:
            console.print(f"Date range: {dates[0]} to {dates[-1]} ({len(dates)} days)")
        console.print(f"Stages: {', '.join(stage.name for stage in stages)}")
        if not apply:
            console.print("[yellow]Dry run: nothing will be written[/yellow]")
        console.print()

        pipeline.run(stages)
        failed = not pipeline.succeeded
    except Exception as e:
        console.print(f"[red]Pipeline failed: {e}[/red]")
        if verbose:
            console.print_exception()
        failed = True
    finally:
        if pipeline is not None:
            pipeline.close()
    if failed:
        raise typer.Exit(1)


@app.command()
def discover(
    config_path: Optional[Path] = ConfigOption,
    since: Optional[str] = typer.Option(
        None, "--since", help="List dates with speeches since this date (default: 30 days ago)"
    ),
    recent: bool = typer.Option(
        False, "--recent", help="Probe the website backwards from today instead of the API"
    ),
    fetch: bool = typer.Option(False, "--fetch", help="Fetch and parse the discovered dates"),
    verbose: bool = VerboseOption,
) -> None:
    """Discover sitting dates from the open-data API or the website."""
    config = _load_config(config_path, verbose)
    since = _check_date(since, "--since") or (date.today() - timedelta(days=30)).isoformat()

    pipeline = Pipeline(config)
    try:
        storage = pipeline.ctx.storage

        async def _discover() -> List[str]:
            if recent:
                async with SittingFetcher(config) as fetcher:
                    known = storage.dates_with_content(config.fetch.min_content_length)
                    found = await fetcher.discover_recent_sitting(known)
                    return [found] if found else []
            async with SpeechMetadataClient(config, storage=storage) as client:
                return await client.discover_dates(since)

        dates = asyncio.run(_discover())
    except Exception as e:
        console.print(f"[red]Discovery failed: {e}[/red]")
        if verbose:
            console.print_exception()
        pipeline.close()
        raise typer.Exit(1)
    pipeline.close()

    if not dates:
        console.print("[yellow]No sitting dates found[/yellow]")
        return
    table = Table(title="Sitting dates")
    table.add_column("Date", style="cyan")
    for found in dates:
        table.add_row(found)
    console.print(table)

    if fetch:
        _run_stages(config, [FetchStage(dates), ParseStage(dates=dates)], dry_run=False, verbose=verbose)


@app.command()
def meps(
    config_path: Optional[Path] = ConfigOption,
    terms: Optional[List[int]] = typer.Option(
        None, "--term", "-t", help="Earlier terms to include (default: 5-9; can be repeated)"
    ),
    historic: bool = typer.Option(
        True, "--historic/--no-historic", help="Create MEPs for speakers the directory does not know"
    ),
    apply: bool = ApplyOption,
    verbose: bool = VerboseOption,
) -> None:
    """Refresh the MEP directory and link speeches to MEPs."""
    config = _load_config(config_path, verbose)
    stage = MepStage(terms or HISTORIC_TERMS, historic=historic)
    _run_stages(config, [stage], dry_run=not apply, verbose=verbose)


@app.command("map-topics")
def map_topics(
    config_path: Optional[Path] = ConfigOption,
    from_id: Optional[int] = FromIdOption,
    limit: Optional[int] = LimitOption,
    apply: bool = ApplyOption,
    verbose: bool = VerboseOption,
) -> None:
    """Assign agenda topics to speeches that have none."""
    config = _load_config(config_path, verbose)
    _run_stages(config, [TopicStage(from_id, limit)], dry_run=not apply, verbose=verbose)


@app.command("normalize-groups")
def normalize_groups(
    config_path: Optional[Path] = ConfigOption,
    from_id: Optional[int] = FromIdOption,
    limit: Optional[int] = LimitOption,
    overwrite_legacy: bool = typer.Option(
        False, "--overwrite-legacy", help="Also rewrite the legacy political_group column"
    ),
    report: Optional[Path] = typer.Option(None, "--report", help="Write the audit report as JSON"),
    apply: bool = ApplyOption,
    verbose: bool = VerboseOption,
) -> None:
    """Normalize political group affiliations and print an audit."""
    config = _load_config(config_path, verbose)
    stage = GroupStage(from_id, limit, overwrite_legacy=overwrite_legacy, report_path=report)
    _run_stages(config, [stage], dry_run=not apply, verbose=verbose)
    if stage.audit is not None:
        render_audit(console, stage.audit.to_dict(config.groups.report_top_unknowns))


@app.command("detect-language")
def detect_language(
    config_path: Optional[Path] = ConfigOption,
    from_id: Optional[int] = FromIdOption,
    limit: Optional[int] = LimitOption,
    apply: bool = ApplyOption,
    verbose: bool = VerboseOption,
) -> None:
    """Detect the language of speeches that have none."""
    config = _load_config(config_path, verbose)
    _run_stages(config, [LanguageStage(from_id, limit)], dry_run=not apply, verbose=verbose)


@app.command()
def export(
    config_path: Optional[Path] = ConfigOption,
    export_format: str = typer.Option("csv", "--format", "-f", help="Output format: csv or parquet"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file"),
    fields: Optional[str] = typer.Option(None, "--fields", help="Comma-separated fields, in output order"),
    start_date: Optional[str] = typer.Option(None, "--start-date", help="First sitting date"),
    end_date: Optional[str] = typer.Option(None, "--end-date", help="Last sitting date"),
    verbose: bool = VerboseOption,
) -> None:
    """Export speeches to CSV or Parquet."""
    config = _load_config(config_path, verbose)
    if export_format not in ("csv", "parquet"):
        console.print(f"[red]Invalid format: {export_format} (expected csv or parquet)[/red]")
        raise typer.Exit(1)
    start_date = _check_date(start_date, "--start-date")
    end_date = _check_date(end_date, "--end-date")
    columns = [f.strip() for f in fields.split(",") if f.strip()] if fields else config.export.fields
    output = output or config.export.output_dir / f"speeches.{export_format}"

    pipeline = None
    try:
        pipeline = Pipeline(config)
        if export_format == "csv":
            exporter = CSVExporter(columns, config.export.batch_size)
        else:
            exporter = ParquetExporter(columns, config.export.parquet_compression, config.export.batch_size)
        count = exporter.export(pipeline.ctx.storage, output, start_date, end_date)
    except Exception as e:
        console.print(f"[red]Export failed: {e}[/red]")
        if verbose:
            console.print_exception()
        count = None
    finally:
        if pipeline is not None:
            pipeline.close()
    if count is None:
        raise typer.Exit(1)
    console.print(f"[green]Exported {count} speeches to {output}[/green]")


@app.command()
def status(
    config_path: Optional[Path] = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Show database coverage and cache status."""
    config = _load_config(config_path, verbose)
    pipeline = Pipeline(config)
    try:
        storage = pipeline.ctx.storage
        stats = storage.stats()
        cache_status = storage.cache_status()
        cache = AnalyticsCache(storage, config.analytics)
        cache_loaded = cache.load()
    finally:
        pipeline.close()

    speeches = stats["speeches"] or 1
    table = Table(title="Database")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Coverage", justify="right")
    table.add_row("Sittings", str(stats["sittings"]), "")
    table.add_row("Speeches", str(stats["speeches"]), "")
    for key, label in (
        ("with_group", "With political group"),
        ("with_topic", "With agenda topic"),
        ("with_language", "With language"),
        ("with_macro_topic", "With macro topic"),
        ("with_mep", "Linked to an MEP"),
    ):
        table.add_row(label, str(stats[key]), f"{stats[key] / speeches * 100:.1f}%")
    table.add_row("MEPs", str(stats["meps"]), "")
    console.print(table)

    if cache_status is not None:
        console.print(
            f"Speech API refreshed: {cache_status.speeches_last_updated or 'never'} "
            f"(total {cache_status.total_speeches or 0}); "
            f"MEPs refreshed: {cache_status.meps_last_updated or 'never'}"
        )
    if cache_loaded:
        console.print(
            f"Analytics cache: {len(cache.data['allTopics'])} topics, "
            f"updated {cache.last_updated}"
        )
    else:
        console.print("[yellow]Analytics cache has not been built[/yellow]")


@app.command("validate-config")
def validate_config(
    config_path: Path = typer.Argument(
        ...,
        help="Path to configuration file to validate",
    ),
) -> None:
    """Validate a configuration file.

    Checks that the configuration file is valid YAML and conforms
    to the expected schema.
    """
    if not config_path.exists():
        console.print(f"[red]Config file not found: {config_path}[/red]")
        raise typer.Exit(1)

    try:
        config = Config.from_yaml(config_path)
    except Exception as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1)

    console.print("[green]Configuration is valid![/green]")
    console.print()

    table = Table(title="Configuration Summary")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Database", config.database.url)
    table.add_row("Earliest date", config.fetch.earliest_date)
    table.add_row("Fetch concurrency", str(config.fetch.concurrency))
    table.add_row("Min speech length", str(config.parsing.min_speech_length))
    table.add_row("Topic threshold", str(config.topics.threshold))
    table.add_row("Classifier model", config.classifier.model)
    table.add_row("Classifier mode", config.classifier.mode)
    table.add_row("Export directory", str(config.export.output_dir))

    console.print(table)


@app.command("init-config")
def init_config(
    output_path: Path = typer.Argument(
        DEFAULT_CONFIG,
        help="Path to write default configuration",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing file",
    ),
) -> None:
    """Generate a default configuration file.

    Creates a new YAML configuration file with default values
    that can be customized for your needs.
    """
    if output_path.exists() and not force:
        console.print(f"[yellow]Config file already exists: {output_path}[/yellow]")
        console.print("Use --force to overwrite")
        raise typer.Exit(1)

    config = Config.default()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    config.to_yaml(output_path)

    console.print(f"[green]Default config written to: {output_path}[/green]")


@app.command()
def info() -> None:
    """Show the pipeline stages and what each one writes."""
    console.print("[bold]EUROWATCH pipeline[/bold]")
    console.print()

    table = Table(title="Stages")
    table.add_column("Stage", style="cyan")
    table.add_column("Reads")
    table.add_column("Writes", style="green")

    table.add_row("meps", "MEP directory API", "meps, individual_speeches.mep_id")
    table.add_row("fetch", "CRE verbatim reports", "sittings.content")
    table.add_row("parse", "sittings.content", "individual_speeches")
    table.add_row("topics", "agenda sections", "individual_speeches.topic")
    table.add_row("groups", "political_group_raw", "political_group_std/kind/reason")
    table.add_row("language", "speech_content", "individual_speeches.language")
    table.add_row("classify", "speech_content or topic", "macro_topic and cost columns")
    table.add_row("analytics", "individual_speeches", "analytics_cache")

    console.print(table)

    console.print("\n[bold]Quick Start:[/bold]")
    console.print("  eurowatch run                           # Full chain since the last complete sitting")
    console.print("  eurowatch run --date 2024-01-17         # One sitting")
    console.print("  eurowatch run --classify --mode topic   # Classify agenda topics")
    console.print("  eurowatch normalize-groups --dry-run    # Audit group normalization")


if __name__ == "__main__":
    app()
