#!/usr/bin/env python3
"""
CLI interface for the template-free statement parser.
"""
import logging
import typer
from pathlib import Path
from typing import Optional
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .core.confidence import LOW_CONFIDENCE_SCORE
from .core.config import load_config
from .core.hints import get_hint, load_hint_registry
from .core.loader import load_tokens
from .core.runner import parse_tokens
from .models.schema import ParseResult

app = typer.Typer(help="Template-free bank statement parser")
console = Console()


def _setup(config_path: Optional[Path], hint_key: Optional[str], hints_dir: Optional[Path],
           currency: Optional[str], verbose: bool):
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    
    try:
        config = load_config(config_path)
    except Exception as e:
        console.print(f"[red]Error loading config: {e}[/red]")
        raise typer.Exit(1)
    if currency:
        config = config.model_copy(update={'currency': currency.upper()})
    
    hint = None
    if hint_key:
        hint = get_hint(load_hint_registry(hints_dir), hint_key)
        if hint is None:
            console.print(f"[red]Error: hint not found: {hint_key}[/red]")
            raise typer.Exit(1)
    return config, hint


@app.command()
def parse(
    input_path: Path = typer.Argument(..., help="PDF file or JSON token dump"),
    output: Optional[Path] = typer.Option(None, "--out", "-o", help="Output JSON file path"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Engine configuration YAML"),
    hint_key: Optional[str] = typer.Option(None, "--hint", "-t", help="Institution hint key"),
    hints_dir: Optional[Path] = typer.Option(None, "--hints-dir", help="Directory of hint YAML files"),
    currency: Optional[str] = typer.Option(None, "--currency", help="ISO currency code (skips detection)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output")
):
    """Parse a statement into validated transactions as JSON."""
    
    if not input_path.exists():
        console.print(f"[red]Error: input file not found: {input_path}[/red]")
        raise typer.Exit(1)
    
    config, hint = _setup(config_path, hint_key, hints_dir, currency, verbose)
    
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console
        ) as progress:
            task = progress.add_task("Loading tokens...", total=None)
            tokens = load_tokens(input_path)
            
            progress.update(task, description=f"Parsing {len(tokens)} tokens...")
            result = parse_tokens(tokens, config, hint)
            
            if output:
                progress.update(task, description="Writing output...")
                output.write_text(result.model_dump_json(indent=2))
        
        diagnostics = result.diagnostics
        if output:
            console.print(f"[green]✓ Parsed {len(result.transactions)} transactions! Output written to: {output}[/green]")
        else:
            console.print(result.model_dump_json(indent=2))
        
        if diagnostics.low_confidence:
            console.print("[yellow]Warning: no strategy met the minimum thresholds (low confidence)[/yellow]")
        for warning in diagnostics.warnings:
            console.print(f"[yellow]{warning}[/yellow]")
    
    except Exception as e:
        console.print(f"[red]Error parsing statement: {e}[/red]")
        if verbose:
            import traceback
            console.print(traceback.format_exc())
        raise typer.Exit(1)


@app.command()
def columns(
    input_path: Path = typer.Argument(..., help="PDF file or JSON token dump"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Engine configuration YAML"),
    hint_key: Optional[str] = typer.Option(None, "--hint", "-t", help="Institution hint key"),
    hints_dir: Optional[Path] = typer.Option(None, "--hints-dir", help="Directory of hint YAML files"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output")
):
    """Show strategy scores and the resolved column map."""
    config, hint = _setup(config_path, hint_key, hints_dir, None, verbose)
    
    try:
        result = parse_tokens(load_tokens(input_path), config, hint)
    except Exception as e:
        console.print(f"[red]Error parsing statement: {e}[/red]")
        raise typer.Exit(1)
    
    diagnostics = result.diagnostics
    scores = Table(title="Strategies")
    scores.add_column("Strategy")
    scores.add_column("Success")
    scores.add_column("Score", justify="right")
    scores.add_column("Txns", justify="right")
    scores.add_column("Columns", justify="right")
    scores.add_column("Note")
    for score in diagnostics.strategy_scores:
        name = f"[bold]{score.name}[/bold]" if score.name == diagnostics.strategy else score.name
        scores.add_row(
            name,
            "✓" if score.success else "✗",
            f"{score.score:.1f}",
            str(score.metrics.transaction_count),
            str(score.metrics.column_count),
            score.note or "",
        )
    console.print(scores)
    
    column_map = Table(title="Columns")
    column_map.add_column("x0", justify="right")
    column_map.add_column("x1", justify="right")
    column_map.add_column("Type")
    column_map.add_column("Confidence", justify="right")
    for entry in diagnostics.column_map:
        column_map.add_row(f"{entry.x0:.1f}", f"{entry.x1:.1f}", entry.column_type.value, f"{entry.confidence:.2f}")
    console.print(column_map)
    
    console.print(
        f"Rows: {diagnostics.row_count} (transactions {diagnostics.transaction_rows}, "
        f"continuations {diagnostics.continuation_rows}, skipped {diagnostics.skipped_rows}, "
        f"page stitches {diagnostics.cross_page_stitches})"
    )
    console.print(
        f"Tokens: {diagnostics.total_tokens} (stitched {diagnostics.stitched_tokens}, "
        f"skipped {diagnostics.skipped_tokens}, outside tables {diagnostics.outside_tokens})"
    )
    console.print(
        f"Currency: {diagnostics.currency}  Numbers: {diagnostics.number_format}  "
        f"Order: {diagnostics.date_order}  Status: {diagnostics.overall_status.value}"
    )
    if diagnostics.average_confidence is not None:
        console.print(
            f"Confidence: {diagnostics.average_confidence:.1f} average, "
            f"{diagnostics.low_confidence_rows} row(s) below {LOW_CONFIDENCE_SCORE}"
        )


@app.command()
def hints(
    hints_dir: Optional[Path] = typer.Option(None, "--hints-dir", help="Directory of hint YAML files")
):
    """List the available institution hints."""
    registry = load_hint_registry(hints_dir)
    if not registry:
        console.print("[yellow]No hints found[/yellow]")
        return
    
    table = Table(title="Institution hints")
    table.add_column("Key")
    table.add_column("Name")
    table.add_column("Currency")
    table.add_column("Columns")
    table.add_column("Merged")
    for key, hint in registry.items():
        table.add_row(
            key,
            hint.name or "",
            hint.currency or "",
            ", ".join(t.value for t in hint.column_order),
            "yes" if hint.merged_amount else "no",
        )
    console.print(table)


@app.command()
def validate(
    json_path: Path = typer.Argument(..., help="Path to JSON file to validate")
):
    """Validate a parse result JSON file against the schema."""
    try:
        data = ParseResult.model_validate_json(json_path.read_text())
        console.print("[green]✓ JSON is valid[/green]")
        console.print(f"Strategy: {data.diagnostics.strategy}")
        console.print(f"Transactions: {len(data.transactions)}")
        console.print(f"Segments: {len(data.segments)}")
        console.print(f"Status: {data.diagnostics.overall_status.value}")
    except Exception as e:
        console.print(f"[red]Validation failed: {e}[/red]")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
