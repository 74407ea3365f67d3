# -*- coding: utf-8 -*-
"""
erc-intake - command line interface

Commands:
- erc-intake extract <workbook>            - Show extracted values
- erc-intake export <workbook> -f portal   - Write a bulk/portal/hybrid export
- erc-intake batch <input> --source-dir D  - Run a batch input file
- erc-intake template [--custom]           - Write a batch input template
- erc-intake fields -f bulk                - Show an export's field table

Author: ERC Intake Team
Status: Production Ready
"""

import asyncio
import dataclasses
import json
import logging
from enum import Enum
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from erc_intake.batch_input_parser import generate_sample_template
from erc_intake.bulk_upload_fields import BULK_UPLOAD_FIELDS
from erc_intake.config import get_config
from erc_intake.custom_columns import generate_custom_template
from erc_intake.exceptions import ErcIntakeException
from erc_intake.exporters import field_summary
from erc_intake.models import BatchProgress, JobStatus
from erc_intake.portal_fields import PORTAL_FIELDS
from erc_intake.setup import ErcIntakeService
from erc_intake.strict_extractor import StrictExtractor
from erc_intake.workbook import load_workbook

app = typer.Typer(
    help="ERC workbook intake: extraction, exports and batch processing",
    no_args_is_help=True,
)
console = Console()
logger = logging.getLogger(__name__)


class ExportChoice(str, Enum):
    bulk = "bulk"
    portal = "portal"
    hybrid = "hybrid"


class FieldTableChoice(str, Enum):
    bulk = "bulk"
    portal = "portal"


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show detailed logs"),
):
    """ERC workbook intake pipeline."""
    level = logging.getLevelName(get_config().log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    if verbose:
        level = min(level, logging.INFO)
    logging.getLogger("erc_intake").setLevel(level)
    if verbose:
        logging.basicConfig(
            level=level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        console.print(f"[red]Cannot read {path}: {e}[/red]")
        raise typer.Exit(1)


def _write_or_echo(content: str, output: Optional[Path]) -> None:
    if output is None:
        typer.echo(content)
        return
    output.write_bytes(content.encode("utf-8"))
    console.print(f"[green]✓[/green] Wrote {output}")


@app.command()
def extract(
    workbook: Path = typer.Argument(..., exists=True, dir_okay=False, help="Workbook file"),
    sections: Optional[str] = typer.Option(
        None, "--sections", help="Comma-separated cell map sections (strict extraction only)",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print values as JSON"),
):
    """Extract values from a workbook and print them."""
    content = _read_bytes(workbook)
    service = ErcIntakeService()
    try:
        if sections:
            names: List[str] = [s.strip() for s in sections.split(",") if s.strip()]
            handle = load_workbook(content, file_name=workbook.name)
            result = service.extraction.strict.extract_sections(handle, names)
        else:
            result = service.extract_workbook(content, workbook.name)
    except ErcIntakeException as e:
        console.print(f"[red]Extraction failed: {e}[/red]")
        raise typer.Exit(1)

    if as_json:
        typer.echo(json.dumps(
            {
                "success": result.success,
                "strategy": result.strategy.value,
                "values": result.values,
                "warnings": result.warnings,
                "errors": result.errors,
            },
            indent=2,
            default=str,
        ))
    else:
        table = Table(
            title=f"Extracted Values ({result.strategy.value})",
            show_header=True,
            header_style="bold cyan",
        )
        table.add_column("Section", style="cyan")
        table.add_column("Field", style="white")
        table.add_column("Value", style="green")
        grouped = StrictExtractor.summarize(result.values)
        listed = set()
        for section, values in grouped.items():
            for field, value in values.items():
                table.add_row(section, field, str(value))
                listed.add(field)
        for field, value in result.values.items():
            if field not in listed:
                table.add_row("-", field, str(value))
        console.print(table)
        for warning in result.warnings:
            console.print(f"[yellow]⚠ {warning}[/yellow]")
        for error in result.errors:
            console.print(f"[red]✗ {error}[/red]")

    if not result.success:
        raise typer.Exit(1)


@app.command()
def export(
    workbook: Path = typer.Argument(..., exists=True, dir_okay=False, help="Workbook file"),
    export_format: ExportChoice = typer.Option(
        ExportChoice.bulk, "--format", "-f", help="Export format",
    ),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file"),
    remove_links: bool = typer.Option(
        False, "--remove-links", help="Blank link columns (hybrid only)",
    ),
):
    """Extract a workbook and write one export file."""
    service = ErcIntakeService()
    try:
        outcome = service.process_workbook(_read_bytes(workbook), workbook.name)
    except ErcIntakeException as e:
        console.print(f"[red]Cannot load workbook: {e}[/red]")
        raise typer.Exit(1)
    if not outcome.success or outcome.record is None:
        console.print("[red]Failed to extract data from template[/red]")
        for error in outcome.extracted.errors:
            console.print(f"[red]  - {error}[/red]")
        raise typer.Exit(1)

    if export_format == ExportChoice.bulk:
        result = service.export_bulk_upload(outcome.record)
    elif export_format == ExportChoice.portal:
        result = service.export_portal(outcome.record)
    else:
        result = service.export_hybrid(outcome.record, remove_links=remove_links)

    if not result.success:
        console.print(f"[red]{export_format.value} export failed[/red]")
        for name in result.missing_fields:
            console.print(f"[red]  - missing: {name}[/red]")
        for error in result.errors:
            console.print(f"[red]  - {error}[/red]")
        raise typer.Exit(1)
    _write_or_echo(result.content, output)


@app.command()
def batch(
    input_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Batch input CSV/Excel"),
    source_dir: Path = typer.Option(
        ..., "--source-dir", exists=True, file_okay=False, help="Directory of exported workbooks",
    ),
    output: Path = typer.Option(
        Path("batch_output.csv"), "--output", "-o", help="Combined CSV output",
    ),
    remove_links: bool = typer.Option(False, "--remove-links", help="Blank link columns"),
    delay_ms: Optional[int] = typer.Option(
        None, "--delay-ms", min=0, help="Delay between jobs in milliseconds",
    ),
    report: Optional[Path] = typer.Option(None, "--report", help="Write the JSON report here"),
):
    """Process every row of a batch input file."""
    config = get_config()
    config = dataclasses.replace(
        config,
        source_dir=str(source_dir),
        batch_inter_job_delay_ms=(
            config.batch_inter_job_delay_ms if delay_ms is None else delay_ms
        ),
    )
    service = ErcIntakeService(config)

    parsed = service.parse_batch_input(_read_bytes(input_file), input_file.name)
    for warning in parsed.warnings:
        console.print(f"[yellow]⚠ {warning}[/yellow]")
    if not parsed.success:
        console.print(f"[red]{parsed.error}[/red]")
        raise typer.Exit(1)

    session = service.create_batch_session(parsed.rows, input_file.name)
    console.print(Panel.fit(
        f"[bold cyan]Batch session[/bold cyan] {session.session_id}\n"
        f"[dim]{session.total_jobs} rows from {input_file.name}"
        f"{' (custom format)' if parsed.custom_format else ''}[/dim]",
        border_style="cyan",
    ))

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Processing...", total=session.total_jobs)

        def on_progress(event: BatchProgress) -> None:
            if event.status == JobStatus.PROCESSING:
                progress.update(task, description=event.message)
            else:
                progress.update(task, completed=event.index + 1)

        try:
            result = asyncio.run(service.run_batch(
                session.session_id, remove_links=remove_links, on_progress=on_progress,
            ))
        except ErcIntakeException as e:
            progress.stop()
            console.print(f"[red]Batch failed: {e}[/red]")
            raise typer.Exit(1)

    output.write_bytes(result.csv_content.encode("utf-8"))
    if report is not None:
        report.write_text(result.report.model_dump_json(indent=2), encoding="utf-8")

    stats = Table(title="Batch Report", show_header=True, header_style="bold green")
    stats.add_column("Metric", style="cyan")
    stats.add_column("Value", style="white")
    stats.add_row("Status", result.status.value)
    stats.add_row("Processed", f"{result.total_processed} / {result.report.total_rows}")
    stats.add_row("Succeeded", str(result.success_count))
    stats.add_row("Failed", str(result.failure_count))
    stats.add_row("Success rate", f"{result.report.success_rate:.1f}%")
    stats.add_row("Avg time/row", f"{result.report.average_processing_time_ms:.1f} ms")
    console.print(stats)
    for row_error in result.report.errors:
        console.print(f"[red]Row {row_error.row_index}: {row_error.error}[/red]")
    console.print(f"[green]✓[/green] Wrote {output}")

    if result.failure_count:
        raise typer.Exit(1)


@app.command()
def template(
    custom: bool = typer.Option(False, "--custom", help="Agreement-sheet column layout"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file"),
):
    """Write a batch input template."""
    content = generate_custom_template() if custom else generate_sample_template()
    _write_or_echo(content, output)


@app.command()
def fields(
    table_format: FieldTableChoice = typer.Option(
        FieldTableChoice.bulk, "--format", "-f", help="Field table to show",
    ),
):
    """Print the field table of an export format."""
    specs = BULK_UPLOAD_FIELDS if table_format == FieldTableChoice.bulk else PORTAL_FIELDS
    table = Table(
        title=f"{table_format.value} fields ({len(specs)})",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Name", style="white")
    table.add_column("Type", style="magenta")
    table.add_column("Required")
    table.add_column("Max", justify="right")
    table.add_column("Description", style="dim")
    for entry in field_summary(specs):
        table.add_row(
            str(entry["number"]),
            entry["name"],
            entry["data_type"],
            "[green]Yes[/green]" if entry["required"] else "No",
            str(entry["max_length"] or ""),
            entry["description"],
        )
    console.print(table)


if __name__ == "__main__":
    app()
