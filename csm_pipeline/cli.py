"""Command-line interface for the CSM extraction pipeline."""

import json
import logging
import sys
from pathlib import Path

import structlog
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from csm_pipeline.config.settings import ControllerConfig, get_settings
from csm_pipeline.errors import ConfigurationError
from csm_pipeline.extraction import ChunkingConfig, DocumentChunker, estimate_tokens, extract_document_text
from csm_pipeline.models import ExtractionOutput, PipelineResult

# Configure structlog for CLI
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

app = typer.Typer(
    name="csm",
    help="CSM extraction pipeline - extract governance persons from document sets",
    add_completion=False,
)
console = Console()


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, get_settings().log_level.upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(message)s")


@app.command()
def analyze(
    documents: list[Path] = typer.Argument(
        ...,
        help="Documents to analyze (.pdf or text); pages are separated by form feeds",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    output: Path = typer.Option(
        None,
        "--output",
        "-o",
        help="Output file path for the JSON result (default: <first_document>_csm.json)",
    ),
    pretty: bool = typer.Option(
        True,
        "--pretty/--compact",
        help="Pretty-print JSON output",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    """Extract CSM records from one or more documents."""
    from csm_pipeline.pipeline import PipelineController

    _configure_logging(verbose)

    console.print(
        Panel.fit(
            "[bold blue]CSM Extraction Pipeline[/bold blue]\n"
            f"Analyzing {len(documents)} document(s)...",
            border_style="blue",
        )
    )

    if output is None:
        output = documents[0].with_name(f"{documents[0].stem}_csm.json")

    console.print(f"[dim]Output:[/dim] {output}\n")

    try:
        text = "\f".join(extract_document_text(path) for path in documents)
        manifest = [path.name for path in documents]

        controller = PipelineController.from_settings()

        console.print("[yellow]Processing... (this may take a few minutes)[/yellow]\n")
        result = controller.run(text, manifest)

        console.print("[green]Processing complete![/green]")

        final = json.loads(result.final_output)
        with open(output, "w", encoding="utf-8") as f:
            if pretty:
                json.dump(final, f, indent=2, ensure_ascii=False)
            else:
                json.dump(final, f, ensure_ascii=False)

        _display_summary(result, final)

        console.print(f"\n[green]Result saved to:[/green] {output}")

    except ConfigurationError as e:
        console.print(f"\n[red]Configuration error:[/red] {e}")
        sys.exit(2)
    except Exception as e:
        console.print(f"\n[red]Error:[/red] {e}")
        if verbose:
            console.print_exception()
        sys.exit(1)


@app.command()
def chunks(
    document: Path = typer.Argument(
        ...,
        help="Document to preview",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """Show how a document would be routed and chunked."""
    try:
        config = ControllerConfig.from_settings()
        chunker = DocumentChunker(ChunkingConfig(
            pages_per_chunk=config.pages_per_chunk,
            overlap_pages=config.overlap_pages,
            page_delimiter=config.page_delimiter_pattern,
        ))
        text = extract_document_text(document)
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    tokens = estimate_tokens(text)
    chunked = config.chunking_enabled and chunker.needs_chunking(text, config.token_budget)

    console.print(f"[dim]Pages:[/dim] {len(chunker.split_pages(text))}")
    console.print(f"[dim]Estimated tokens:[/dim] {tokens} (budget {config.token_budget})")
    console.print(f"[dim]Path:[/dim] {'chunked' if chunked else 'direct'}\n")

    if not chunked:
        return

    table = Table(title="Chunk Plan")
    table.add_column("Chunk", justify="right")
    table.add_column("Pages")
    table.add_column("Overlap")
    table.add_column("Tokens", justify="right")

    for chunk in chunker.chunk(text):
        overlap = f"{chunk.overlap_start}-{chunk.overlap_end}" if chunk.has_overlap else "-"
        table.add_row(
            str(chunk.index + 1),
            f"{chunk.page_start}-{chunk.page_end}",
            overlap,
            str(estimate_tokens(chunk.text)),
        )

    console.print(table)


@app.command()
def validate(
    result_path: Path = typer.Argument(
        ...,
        help="Path to the JSON result to validate",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """Validate a result file against the output schema."""
    try:
        with open(result_path, "r", encoding="utf-8") as f:
            output = ExtractionOutput.model_validate(json.load(f))

    except ValidationError as e:
        console.print(f"[red]Validation failed:[/red] {e.error_count()} error(s)")
        for error in e.errors()[:10]:
            console.print(f"[dim]{' -> '.join(str(p) for p in error['loc'])}:[/dim] {error['msg']}")
        sys.exit(1)

    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    problems = []
    ids = [r.id for r in output.extracted_records]
    if ids != list(range(1, len(ids) + 1)):
        problems.append("ids are not sequential from 1")
    flags = [r.isCsm for r in output.extracted_records]
    if flags != sorted(flags, reverse=True):
        problems.append("CSM records are not ordered first")

    if problems:
        for problem in problems:
            console.print(f"[red]Validation failed:[/red] {problem}")
        sys.exit(1)

    console.print(
        f"[green]Validation successful![/green] {output.size} records, {output.csm_count} CSM."
    )


@app.command()
def info() -> None:
    """Display system information and configuration."""
    from csm_pipeline import __version__

    settings = get_settings()

    console.print(
        Panel.fit(
            "[bold blue]CSM Extraction Pipeline[/bold blue]",
            border_style="blue",
        )
    )

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="dim")
    table.add_column("Value")

    table.add_row("Version", __version__)
    table.add_row("LLM Model", settings.llm_model_name)
    table.add_row("Fallback Model", settings.llm_fallback_model_name)
    table.add_row("Ollama URL", settings.llm_ollama_base_url)
    table.add_row("Temperature", str(settings.llm_temperature))
    table.add_row("Chunking", f"{'on' if settings.chunking_enabled else 'off'}, budget {settings.token_budget} tokens")
    table.add_row("Chunk Size", f"{settings.pages_per_chunk} pages, {settings.overlap_pages} overlap")
    table.add_row("Batching", f"{'on' if settings.batching_enabled else 'off'}, {settings.batch_size} records")
    table.add_row("Refinement", f"{settings.max_refinement_iterations} iterations, threshold {settings.quality_threshold}")
    table.add_row("Merge Strategy", settings.merge_strategy.value)
    table.add_row("Workers", str(settings.max_workers))

    console.print(table)


def _display_summary(result: PipelineResult, final: dict) -> None:
    """Display a summary of the run.

    Args:
        result: The pipeline result.
        final: Parsed final output.
    """
    console.print("\n[bold]Extraction Summary[/bold]")
    console.print("-" * 40)

    records = final.get("extracted_records", []) if isinstance(final, dict) else []

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", justify="right")

    table.add_row("Path", result.path.value)
    table.add_row("Chunks", str(result.chunk_count))
    table.add_row("Batches", str(result.batch_count))
    table.add_row("Records", str(len(records)))
    table.add_row("CSM Records", str(sum(1 for r in records if r.get("isCsm"))))
    table.add_row("Review Score", f"{result.review.score:.2f}")
    table.add_row("Quality Met", "yes" if result.quality_met else "no")
    table.add_row("Refinements", str(result.refinement_iterations))

    console.print(table)

    if result.merge_stats:
        stats = result.merge_stats
        console.print(
            f"\n[dim]Merged {stats.total_before} -> {stats.total_after} candidates "
            f"({stats.overlap_duplicates} overlap duplicates)[/dim]"
        )

    if result.errors or result.warnings:
        console.print(f"\n[yellow]Warnings/Errors:[/yellow] {len(result.errors) + len(result.warnings)}")

    console.print(
        f"\n[dim]Processed in {result.duration_seconds:.1f}s with {result.step_calls} step calls[/dim]"
    )


if __name__ == "__main__":
    app()
