"""CLI commands for case-judge linking.

Usage:
    judgelink link run [--page-size N] [--batch-size N] [--dry-run] [--report-json PATH]
    judgelink link analyze
    judgelink link validate
    judgelink link recount [--all | --judge ID ...]
    judgelink link match NAME [--court-id ID] [--jurisdiction J] [--case-name NAME]
"""

import asyncio
import signal
import sys
from pathlib import Path

import click

from ..config import get_settings
from ..db import close_all_connections
from ..logging import setup_logging


@click.group(name="link")
def cli():
    """Case-judge linking commands."""
    # Initialize logging for CLI
    setup_logging()


def _install_cancel_handlers(cancel_event: asyncio.Event) -> None:
    """Set the cancel event on SIGINT/SIGTERM so the run stops between pages."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel_event.set)
        except (NotImplementedError, RuntimeError, ValueError):
            # Not supported on this platform or outside the main thread
            pass


@cli.command(name="run")
@click.option("--page-size", type=int, default=None, help="Cases fetched per page")
@click.option("--batch-size", type=int, default=None, help="Links written per batch")
@click.option("--max-retries", type=int, default=None, help="Retries per failed batch")
@click.option(
    "--retry-delay",
    type=float,
    default=None,
    help="Base retry delay in seconds (doubles each attempt)",
)
@click.option("--workers", type=int, default=None, help="Resolver worker threads")
@click.option(
    "--dry-run",
    is_flag=True,
    help="Resolve and report without writing links or counts",
)
@click.option(
    "--report-json",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write the report as JSON to this file",
)
def run_link(
    page_size: int | None,
    batch_size: int | None,
    max_retries: int | None,
    retry_delay: float | None,
    workers: int | None,
    dry_run: bool,
    report_json: Path | None,
):
    """Link unlinked cases to judges.

    Exits non-zero only when judges or cases cannot be read; batches
    that fail to write are reported and the run still exits 0.

    Examples:

        # Full run with defaults
        judgelink link run

        # See what would be linked, keep the report
        judgelink link run --dry-run --report-json report.json
    """
    from ..linking import LinkingError, render_report, run_linking_pipeline

    overrides = {
        "page_size": page_size,
        "update_batch_size": batch_size,
        "max_retries": max_retries,
        "retry_base_delay": retry_delay,
        "resolver_workers": workers,
    }

    async def _run():
        cancel_event = asyncio.Event()
        _install_cancel_handlers(cancel_event)
        try:
            return await run_linking_pipeline(
                cancel_event=cancel_event,
                dry_run=dry_run,
                overrides=overrides,
            )
        finally:
            await close_all_connections()

    try:
        report = asyncio.run(_run())
    except LinkingError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    for line in render_report(report):
        click.echo(line)

    if report_json is not None:
        report_json.write_text(report.model_dump_json(indent=2))
        click.echo(f"Report written to {report_json}")


@cli.command(name="analyze")
def analyze():
    """Show case and judge totals without changing anything."""
    from ..linking import SetupError, SqlLinkStore, analyze_current_state

    async def _analyze():
        try:
            return await analyze_current_state(
                SqlLinkStore(), get_settings().link_io_timeout
            )
        finally:
            await close_all_connections()

    try:
        snapshot = asyncio.run(_analyze())
    except SetupError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Total cases:    {snapshot.total_cases}")
    click.echo(f"Linked cases:   {snapshot.linked_cases} ({snapshot.link_rate:.1f}%)")
    click.echo(f"Unlinked cases: {snapshot.unlinked_cases}")
    click.echo(f"Total judges:   {snapshot.total_judges}")


@cli.command(name="validate")
def validate():
    """Run the integrity checks on the case-judge relation."""
    from ..linking import IntegrityValidator, SqlLinkStore

    settings = get_settings()

    async def _validate():
        validator = IntegrityValidator(
            SqlLinkStore(),
            sample_size=settings.integrity_sample_size,
            skew_multiple=settings.integrity_skew_multiple,
            io_timeout=settings.link_io_timeout,
            top_n=settings.report_top_n,
        )
        try:
            return await validator.validate()
        finally:
            await close_all_connections()

    report = asyncio.run(_validate())

    for check in report.checks:
        color = {"passed": "green", "warning": "yellow", "error": "red"}[check.status.value]
        click.echo(f"{check.name:<20} ", nl=False)
        click.secho(f"{check.status.value:<8}", fg=color, nl=False)
        click.echo(f" {check.message}")
        if check.error:
            click.echo(f"  {check.error}")


@cli.command(name="recount")
@click.option("--all", "recount_all", is_flag=True, help="Recount every judge")
@click.option(
    "--judge",
    "judge_ids",
    multiple=True,
    help="Judge ID to recount (repeatable)",
)
def recount(recount_all: bool, judge_ids: tuple[str, ...]):
    """Recompute judges' total case counts from the case table.

    Examples:

        judgelink link recount --all
        judgelink link recount --judge 6f1c... --judge 0b9e...
    """
    from ..linking import SqlLinkStore, StatisticsAggregator

    if not recount_all and not judge_ids:
        raise click.UsageError("Pass --all or at least one --judge")

    async def _recount():
        aggregator = StatisticsAggregator(
            SqlLinkStore(), io_timeout=get_settings().link_io_timeout
        )
        try:
            if recount_all:
                return await aggregator.recompute_all()
            return await aggregator.recompute(judge_ids)
        finally:
            await close_all_connections()

    result = asyncio.run(_recount())

    click.echo(f"Recounted {len(result.updated)}/{result.requested} judges")
    for judge_id, error in sorted(result.errors.items()):
        click.echo(f"  {judge_id}: {error}", err=True)


@cli.command(name="match")
@click.argument("name")
@click.option("--court-id", default=None, help="Case court ID")
@click.option("--jurisdiction", default=None, help="Case jurisdiction")
@click.option("--case-name", default=None, help="Case name (used when NAME is empty)")
@click.option("--external-id", default=None, help="Case external judge ID")
def match(
    name: str,
    court_id: str | None,
    jurisdiction: str | None,
    case_name: str | None,
    external_id: str | None,
):
    """Resolve one judge name against the live judge set.

    Nothing is written; useful for checking why a name does or does
    not link.

    Examples:

        judgelink link match "Hon. Maria Garcia" --jurisdiction CA

        judgelink link match "" --case-name "People v. Smith before Judge Ann Lee"
    """
    from ..linking import SetupError, SqlLinkStore, load_index, suggest_judges
    from ..models import CaseRecord
    from ..resolution import normalize, resolve

    settings = get_settings()

    async def _load():
        try:
            return await load_index(SqlLinkStore(), settings.link_io_timeout)
        finally:
            await close_all_connections()

    try:
        index = asyncio.run(_load())
    except SetupError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    case = CaseRecord(
        id="cli",
        case_name=case_name,
        judge_name=name,
        external_id=external_id,
        court_id=court_id,
        jurisdiction=jurisdiction,
    )
    decision = resolve(case, index)
    normalized = normalize(decision.name_used or name)

    click.echo(f"Name used:   {decision.name_used!r}")
    if decision.derived_from_case_name:
        click.echo("             (derived from case name)")
    click.echo(f"Folded:      {normalized.folded!r}")
    click.echo(f"Last name:   {normalized.last_name!r}")

    if decision.is_match:
        judge = index.judge(decision.judge_id)
        click.secho(
            f"Matched:     {judge.name} ({decision.judge_id}) via {decision.strategy.value}",
            fg="green",
        )
    else:
        click.secho(f"Unmatched:   {decision.unmatched_reason.value}", fg="yellow")
        suggestion = suggest_judges(
            [decision.bucket], index, settings.report_suggestion_min_score
        ).get(decision.bucket)
        if suggestion:
            click.echo(
                f"Closest:     {suggestion.name} ({suggestion.judge_id}), "
                f"score {suggestion.score:.0f}"
            )

    if decision.ambiguous_strategies:
        click.echo(
            "Ambiguous:   "
            + ", ".join(strategy.value for strategy in decision.ambiguous_strategies)
        )
