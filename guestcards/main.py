from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from . import config
from .errors import GuestCardsError
from .models import reset_engine
from .pipeline.layout import default_layouts, write_layouts
from .pipeline.render_page import split_template
from .pipeline.run import PipelineOutcome, list_batches, retry_batch, run_pipeline
from .pipeline.status import BatchComplete, JobStatus, JobStatusReporter, StatusEvent, log_events

app = typer.Typer(help="Personalized guest card generator")


class ProgressPrinter:
    """Prints a line each time a guest's last page finishes."""

    def __init__(self) -> None:
        self.total = 0
        self.finished = 0

    def __call__(self, event: StatusEvent) -> None:
        if isinstance(event, BatchComplete):
            return
        if event.status == JobStatus.PENDING:
            self.total += 1
        elif event.status.terminal:
            self.finished += 1
            if event.status == JobStatus.FAILED:
                typer.echo(f"FAILED {event.job_id}: {event.error}")
            if self.total and (self.finished == self.total or self.finished % 10 == 0):
                typer.echo(f"Progress: {self.finished}/{self.total} pages ({self.finished * 100 // self.total}%)")


def _reporter() -> JobStatusReporter:
    reporter = JobStatusReporter()
    reporter.subscribe(log_events)
    reporter.subscribe(ProgressPrinter())
    return reporter


def _use_out_dir(out: Optional[Path]) -> None:
    if out:
        config.set_out_dir(out)
        reset_engine()


def _use_font_dir(font_dir: Optional[Path]) -> None:
    if font_dir:
        config.set_font_dir(font_dir)


def _summarize(outcome: PipelineOutcome) -> None:
    result = outcome.result
    typer.echo(f"Batch {outcome.batch.id}: {outcome.batch.status.value}")
    typer.echo(f"READY: {len(result.documents)}")
    typer.echo(f"FAILED: {len(result.incomplete)}")
    for name in result.incomplete:
        typer.echo(f"FAILED: {name.output_id}")
    typer.echo(f"Bundle: {outcome.bundle_path}")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@app.command()
def layouts(
    template: Path = typer.Option(..., "--template", help="Template PDF"),
    out: Path = typer.Option(Path("layouts.json"), "--out", help="Where to write the layouts"),
) -> None:
    """Write default placements (centre of every page) for a template."""
    try:
        page_count = len(split_template(template.read_bytes()))
    except (GuestCardsError, FileNotFoundError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    write_layouts(default_layouts(page_count), out)
    typer.echo(f"Wrote {page_count} layouts to {out}")


@app.command()
def build(
    template: Path = typer.Option(..., "--template", help="Template PDF"),
    names: Path = typer.Option(..., "--names", help="Names (.csv with name[,secondary] or .txt)"),
    layouts_path: Optional[Path] = typer.Option(None, "--layouts", help="Layouts JSON"),
    out: Optional[Path] = typer.Option(None, "--out", help="Output directory"),
    workers: Optional[int] = typer.Option(None, "--workers", min=1, help="Parallel render jobs"),
    fallback_font: Optional[str] = typer.Option(None, "--fallback-font", help="Font family retried on missing glyphs"),
    font_dir: Optional[Path] = typer.Option(None, "--font-dir", help="Folder searched first for TTF fonts"),
) -> None:
    _use_out_dir(out)
    _use_font_dir(font_dir)
    try:
        outcome = run_pipeline(
            template,
            names,
            layouts_path,
            reporter=_reporter(),
            max_workers=workers,
            fallback_font_family=fallback_font,
        )
    except (GuestCardsError, OSError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    _summarize(outcome)


@app.command()
def retry(
    batch_id: int = typer.Argument(..., help="Batch to retry"),
    out: Optional[Path] = typer.Option(None, "--out", help="Output directory"),
    workers: Optional[int] = typer.Option(None, "--workers", min=1, help="Parallel render jobs"),
    fallback_font: Optional[str] = typer.Option(None, "--fallback-font", help="Font family retried on missing glyphs"),
    font_dir: Optional[Path] = typer.Option(None, "--font-dir", help="Folder searched first for TTF fonts"),
) -> None:
    _use_out_dir(out)
    _use_font_dir(font_dir)
    try:
        outcome = retry_batch(
            batch_id,
            reporter=_reporter(),
            max_workers=workers,
            fallback_font_family=fallback_font,
        )
    except (GuestCardsError, ValueError, OSError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    if outcome is None:
        typer.echo("Nothing to retry")
        return
    _summarize(outcome)


@app.command()
def history(
    out: Optional[Path] = typer.Option(None, "--out", help="Output directory"),
    limit: int = typer.Option(20, "--limit", help="Batches to show"),
) -> None:
    _use_out_dir(out)
    batches = list_batches(limit=limit)
    if not batches:
        typer.echo("No batches yet")
        return
    for batch in batches:
        typer.echo(
            f"{batch.id}\t{batch.status.value}\t{batch.template_name}\t"
            f"{batch.succeeded}/{batch.total_jobs} pages\t{batch.created_at:%Y-%m-%d %H:%M}"
        )


if __name__ == "__main__":
    app()
