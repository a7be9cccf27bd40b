"""Photo Ledger pipeline CLI."""

import json
import logging
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from photoledger.config import settings
from photoledger.errors import PhotoLedgerError
from photoledger.models import ClassifiedRecord, LayoutConfig
from photoledger.pipeline import (
    apply_aliases,
    classify_report,
    load_master,
    plan_layout,
)
from photoledger.pipeline.stage_master import HierarchyMaster
from photoledger.pipeline.stage_normalize import Normalizer

app = typer.Typer(
    name="photoledger",
    help="Classify, normalize and lay out construction photo records",
    add_completion=False,
)
console = Console()
# Status and errors; stdout carries only command output
err_console = Console(stderr=True)


@app.callback()
def main(
    log_level: str = typer.Option(settings.log_level, help="Logging level"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _read_records(path: Path) -> list[dict[str, Any]]:
    try:
        data = json.loads(path.read_text(encoding="utf-8-sig"))
    except (OSError, json.JSONDecodeError) as exc:
        err_console.print(f"[red]Cannot read {path}:[/red] {exc}")
        raise typer.Exit(code=1)
    if isinstance(data, dict):
        data = data.get("records", [])
    if not isinstance(data, list):
        err_console.print(f"[red]{path} must contain a JSON array of records[/red]")
        raise typer.Exit(code=1)
    return data


def _write_json(payload: Any, output: Optional[Path]) -> None:
    text = json.dumps(payload, ensure_ascii=False, indent=2)
    if output is None:
        typer.echo(text)
    else:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text, encoding="utf-8")
        err_console.print(f"[green]Wrote[/green] {output}")


def _load_master(master_path: Optional[str]) -> Optional[HierarchyMaster]:
    path = master_path or settings.master_path
    if not path:
        return None
    try:
        return load_master(Path(path), division_keys=settings.master_division_keys)
    except PhotoLedgerError as exc:
        err_console.print(f"[red]Master load failed:[/red] {exc}")
        raise typer.Exit(code=1)


def _layout_config(photos_per_page: int) -> LayoutConfig:
    if photos_per_page not in (2, 3):
        err_console.print("[red]--photos-per-page must be 2 or 3[/red]")
        raise typer.Exit(code=1)
    return LayoutConfig(photos_per_page=photos_per_page, font_path=settings.font_path)


def _classify(
    raw_json: Path,
    master_path: Optional[str],
    alias_preset: Optional[str],
    detect: bool,
) -> list[ClassifiedRecord]:
    master = _load_master(master_path)
    report = classify_report(_read_records(raw_json), master, narrow=detect)
    records = report.records
    preset = alias_preset or settings.alias_preset
    if preset:
        records = apply_aliases(records, preset=preset)

    err_console.print(
        f"[bold blue]Classified:[/bold blue] {len(records)} records "
        f"({report.matched_count} matched, {report.unmatched_count} unmatched)"
    )
    if report.failed_count:
        err_console.print(f"[yellow]{report.failed_count} records degraded to raw values[/yellow]")
    return records


def _dump(records: list[ClassifiedRecord]) -> list[dict[str, Any]]:
    return [r.model_dump(mode="json") for r in records]


@app.command()
def classify(
    raw_json: Path = typer.Argument(..., help="JSON array of raw recognition records"),
    master: Optional[str] = typer.Option(None, help="Hierarchy master (.json, .csv or .xlsx)"),
    output: Optional[Path] = typer.Option(None, help="Output JSON file"),
    alias_preset: Optional[str] = typer.Option(None, help="Alias preset: pavement, marking, general"),
    detect: bool = typer.Option(True, "--detect/--no-detect", help="Narrow master by detected work types"),
) -> None:
    """Resolve raw guesses against the hierarchy master."""
    records = _classify(raw_json, master, alias_preset, detect)
    _write_json(_dump(records), output)


@app.command()
def normalize(
    classified_json: Path = typer.Argument(..., help="JSON array of classified records"),
    output: Optional[Path] = typer.Option(None, help="Output JSON file"),
) -> None:
    """Propagate board readings within photo sets."""
    records = [ClassifiedRecord.model_validate(r) for r in _read_records(classified_json)]
    result = Normalizer().run(records)
    stats = result.stats
    err_console.print(
        f"[bold blue]Normalized:[/bold blue] {stats.corrected_records}/{stats.total_records} "
        f"records corrected, {stats.ambiguous_sets} ambiguous sets"
    )
    _write_json(_dump(result.records), output)


@app.command()
def plan(
    classified_json: Path = typer.Argument(..., help="JSON array of classified records"),
    photos_per_page: int = typer.Option(settings.photos_per_page, help="Photos per page (2 or 3)"),
    output: Optional[Path] = typer.Option(None, help="Output JSON file"),
) -> None:
    """Compute the placement plan for the renderers."""
    config = _layout_config(photos_per_page)
    records = [ClassifiedRecord.model_validate(r) for r in _read_records(classified_json)]
    placement = plan_layout(records, config)
    err_console.print(
        f"[bold blue]Planned:[/bold blue] {placement.cell_count} photos on "
        f"{placement.page_count} pages"
    )
    _write_json(placement.model_dump(mode="json"), output)


@app.command()
def run(
    raw_json: Path = typer.Argument(..., help="JSON array of raw recognition records"),
    master: Optional[str] = typer.Option(None, help="Hierarchy master (.json, .csv or .xlsx)"),
    photos_per_page: int = typer.Option(settings.photos_per_page, help="Photos per page (2 or 3)"),
    alias_preset: Optional[str] = typer.Option(None, help="Alias preset: pavement, marking, general"),
    output: Optional[Path] = typer.Option(None, help="Output JSON file for the placement plan"),
) -> None:
    """Classify, normalize and plan a batch in one go."""
    config = _layout_config(photos_per_page)
    records = _classify(raw_json, master, alias_preset, detect=True)
    result = Normalizer().run(records)
    placement = plan_layout(result.records, config)
    err_console.print(
        f"[bold blue]Planned:[/bold blue] {placement.cell_count} photos on "
        f"{placement.page_count} pages ({result.stats.ambiguous_sets} ambiguous sets)"
    )
    _write_json(placement.model_dump(mode="json"), output)


@app.command(name="master")
def show_master(
    path: str = typer.Argument(..., help="Hierarchy master (.json, .csv or .xlsx)"),
) -> None:
    """Show a summary of the hierarchy master."""
    loaded = _load_master(path)

    console.print(
        f"[bold blue]Master:[/bold blue] {len(loaded)} pattern entries, "
        f"{len(loaded.work_types())} work types"
    )

    table = Table(title="Hierarchy Master")
    table.add_column("Category")
    table.add_column("Work type")
    table.add_column("Variety")
    table.add_column("Detail")
    table.add_column("Remark")
    table.add_column("Patterns", justify="right")

    for entry in loaded.entries:
        leaf = entry.path
        table.add_row(
            leaf.category,
            leaf.work_type,
            leaf.variety,
            leaf.detail,
            leaf.remark or "-",
            str(len(entry.patterns)),
        )
    console.print(table)


if __name__ == "__main__":
    app()
