"""CLI interface for img-optimize using Typer.

Main entry point for the application. Handles command definitions,
argument parsing, progress bars, and Rich console output.
"""

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn
from rich.table import Table

from .cache import DEFAULT_MAX_AGE_SECONDS
from .config import ConfigError, build_config, load_settings
from .models import ProcessingResult
from .processor import ImageProcessor, ProcessingError, batch_process
from .utils import (
    console,
    copy_to_clipboard,
    format_file_size,
    format_output,
    is_supported_image,
    print_error,
    print_success,
    print_warning,
)


app = typer.Typer(
    name="img-optimize",
    help="Generate responsive, cached image variants with blur placeholders",
    add_completion=False,
)


def setup_logging(verbose: bool) -> None:
    """Route library logging through Rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def parse_options(pairs: list[str]) -> dict:
    """Parse KEY=VALUE pairs into an options bag.

    Values are decoded as JSON when possible, otherwise kept as strings.

    Raises:
        typer.BadParameter: If a pair has no '='
    """
    options = {}
    for pair in pairs:
        if '=' not in pair:
            raise typer.BadParameter(f"Expected KEY=VALUE, got: {pair}")
        key, value = pair.split('=', 1)
        try:
            options[key] = json.loads(value)
        except json.JSONDecodeError:
            options[key] = value
    return options


def load_processor(config_path: Path | None) -> ImageProcessor:
    """Build a processor from the settings file."""
    settings = load_settings(config_path)
    return ImageProcessor(build_config(settings))


def variants_table(name: str, result: ProcessingResult) -> Table:
    table = Table(title=name)
    table.add_column("Suffix", style="cyan")
    table.add_column("Format")
    table.add_column("Size", justify="right")
    table.add_column("Bytes", justify="right")
    table.add_column("URL", style="green")

    for v in result.variants:
        table.add_row(v.suffix, v.format, f"{v.width}x{v.height}", format_file_size(v.byte_size), v.url)

    return table


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show debug logging",
    ),
) -> None:
    setup_logging(verbose)


@app.command()
def process(
    files: list[Path] = typer.Argument(
        ...,
        help="Image files to process",
        exists=True,
        dir_okay=False,
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        help="Path to settings JSON",
    ),
    option: list[str] = typer.Option(
        [],
        "--option",
        help="Processing option KEY=VALUE (part of the cache key)",
    ),
    output_format: str = typer.Option(
        "plain",
        "--output-format",
        "-o",
        help="Output format: plain|json|html",
    ),
    copy: bool = typer.Option(
        True,
        "--copy/--no-copy",
        help="Copy output to clipboard",
    ),
) -> None:
    """Process images into responsive variants."""
    try:
        processor = load_processor(config)
        options = parse_options(option)

        outputs = []
        for file_path in files:
            with console.status(f"[bold green]Processing {file_path.name}..."):
                result = processor.process_image(file_path, options)

            console.print(variants_table(file_path.name, result))
            if result.blur_placeholder is None:
                print_warning(f"No blur placeholder for {file_path.name}")
            if result.processing_time_ms:
                console.print(f"[dim]Processed in {result.processing_time_ms:.0f}ms[/dim]")
            else:
                console.print("[dim]Served from cache[/dim]")

            outputs.append(format_output(result, output_format))

        output = '\n\n'.join(outputs)
        console.print("")
        console.print(output, soft_wrap=True, markup=False, highlight=False)

        if copy and copy_to_clipboard(output):
            console.print("\n[dim]Output copied to clipboard[/dim]")

    except ConfigError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)
    except ProcessingError as e:
        print_error(str(e))
        raise typer.Exit(1)


@app.command("optimize-all")
def optimize_all(
    directory: Optional[Path] = typer.Option(
        None,
        "--dir",
        "-d",
        help="Folder to scan (default: configured upload_dir)",
        file_okay=False,
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        help="Path to settings JSON",
    ),
    workers: int = typer.Option(
        4,
        "--workers",
        "-w",
        help="Parallel workers",
        min=1,
    ),
) -> None:
    """Batch-process every image in the upload folder."""
    try:
        processor = load_processor(config)
    except ConfigError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)

    source_dir = directory or processor.config.upload_dir
    if not source_dir.is_dir():
        print_error(f"Folder not found: {source_dir}")
        raise typer.Exit(1)

    image_files = sorted(
        (p for p in source_dir.iterdir() if p.is_file() and is_supported_image(p)),
        key=lambda p: p.name.lower(),
    )

    if not image_files:
        console.print("[yellow]No images found[/yellow]")
        raise typer.Exit(0)

    console.print(f"[dim]Found {len(image_files)} images to process[/dim]\n")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("[cyan]Optimizing images...", total=len(image_files))
        results = batch_process(
            processor,
            image_files,
            max_workers=workers,
            on_complete=lambda path, outcome: progress.advance(task),
        )

    total_saved = 0
    processed_count = 0
    for path in image_files:
        outcome = results[path]
        if isinstance(outcome, Exception):
            print_error(f"Error processing {path.name}: {outcome}")
            continue

        processed_count += 1
        if outcome.variants:
            smallest = min(v.byte_size for v in outcome.variants)
            saved = outcome.original.byte_size - smallest
            total_saved += saved
            percent = saved / outcome.original.byte_size * 100 if outcome.original.byte_size else 0
            print_success(
                f"{path.name}: {len(outcome.variants)} variants, {percent:.1f}% size reduction"
            )
        else:
            print_warning(f"{path.name}: no variants produced")

    table = Table(title="Optimization Summary")
    table.add_column("Images processed", justify="right")
    table.add_column("Total space saved", justify="right")
    table.add_row(f"{processed_count}/{len(image_files)}", format_file_size(total_saved))
    console.print(table)

    if processed_count < len(image_files):
        raise typer.Exit(1)


@app.command()
def cleanup(
    max_age_days: float = typer.Option(
        DEFAULT_MAX_AGE_SECONDS / 86400,
        "--max-age-days",
        help="Delete cache entries older than this many days",
        min=0,
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        help="Path to settings JSON",
    ),
) -> None:
    """Delete old cached manifests."""
    try:
        processor = load_processor(config)
    except ConfigError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)

    with console.status("[bold green]Sweeping cache..."):
        deleted = processor.cleanup_cache(max_age_days * 86400)

    if deleted:
        print_success(f"Deleted {len(deleted)} cache entries")
    else:
        console.print("[dim]Nothing to clean up[/dim]")


@app.command()
def check(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        help="Path to settings JSON",
    ),
) -> None:
    """Validate configuration and create the output folders."""
    try:
        processor = load_processor(config)
    except ConfigError as e:
        console.print(f"[red]✗[/red] Configuration error: {e}")
        raise typer.Exit(1)

    cfg = processor.config
    console.print("[green]✓[/green] Configuration valid")

    table = Table(title="Effective configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("formats", ", ".join(cfg.formats))
    table.add_row(
        "sizes",
        ", ".join(f"{s.suffix}={s.width or 'native'}" for s in cfg.sizes),
    )
    table.add_row("quality", ", ".join(f"{fmt}={cfg.quality_for(fmt)}" for fmt in cfg.formats))
    table.add_row("upload_dir", str(cfg.upload_dir))
    table.add_row("processed_dir", str(cfg.processed_dir))
    table.add_row("cache_dir", str(cfg.cache_dir))
    table.add_row("delete_original", str(cfg.delete_original))
    table.add_row("url_prefix", cfg.url_prefix or "/")
    console.print(table)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
