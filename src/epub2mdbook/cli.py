"""Main CLI application."""

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from epub2mdbook.core.pipeline import convert_epub_to_mdbook
from epub2mdbook.errors import ConversionError
from epub2mdbook.logger import setup_logging
from epub2mdbook.models.output import ConversionOptions, ConversionReport

app = typer.Typer(
    name="epub2mdbook",
    help="Convert an EPUB file into an mdBook source tree.",
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)

# Warnings listed individually in the summary panel before truncating
MAX_LISTED_WARNINGS = 10


def print_report(report: ConversionReport, console: Console) -> None:
    """Show the conversion summary."""
    lines = [
        f"[bold]{escape(report.title)}[/]",
        "",
        f"[dim]Output directory:[/] {escape(str(report.book_dir))}",
        f"[dim]Table of contents:[/] {report.navigation_source.value}",
        f"[dim]Chapters written:[/] {report.documents_written}",
        f"[dim]Resources copied:[/] {report.resources_copied}",
    ]

    if report.skipped:
        lines.append("")
        lines.append(f"[red]Skipped {len(report.skipped)} document(s):[/]")
        for item in report.skipped:
            lines.append(f"[red]  {escape(item.source_path)}: {escape(item.reason)}[/]")

    if report.warnings:
        lines.append("")
        for warning in report.warnings[:MAX_LISTED_WARNINGS]:
            lines.append(f"[yellow]! {escape(warning)}[/]")
        hidden = len(report.warnings) - MAX_LISTED_WARNINGS
        if hidden > 0:
            lines.append(f"[dim]... and {hidden} more warning(s)[/]")

    console.print(
        Panel(
            "\n".join(lines),
            title="Conversion completed successfully!",
            border_style="yellow" if report.skipped else "green",
        )
    )


@app.command()
def main(
    input_epub: Annotated[
        Path,
        typer.Option(
            "--input-epub",
            "-i",
            help="The path to the input EPUB file",
            dir_okay=False,
        ),
    ],
    output_dir: Annotated[
        Optional[Path],
        typer.Option(
            "--output-dir",
            "-o",
            help="The path to the output directory (default: current directory)",
            file_okay=False,
        ),
    ] = None,
    flat: Annotated[
        bool,
        typer.Option(
            "--flat",
            help="Write book.toml and src/ directly into the output directory",
        ),
    ] = False,
    name: Annotated[
        Optional[str],
        typer.Option(
            "--name",
            "-n",
            help="Book directory name (default: derived from the title)",
        ),
    ] = None,
    workers: Annotated[
        Optional[int],
        typer.Option(
            "--workers",
            "-j",
            help="Worker threads for converting and copying (default: Python's choice)",
            min=1,
        ),
    ] = None,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-v",
            count=True,
            help="Increase log output (-v info, -vv debug)",
        ),
    ] = 0,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Only print errors",
        ),
    ] = False,
) -> None:
    """Convert an EPUB file to an mdBook."""
    setup_logging(verbosity=verbose, quiet=quiet, console=err_console)

    options = ConversionOptions(flat=flat, max_workers=workers, book_name=name)
    try:
        report = convert_epub_to_mdbook(input_epub, output_dir, options)
    except ConversionError as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/]", highlight=False)
        raise typer.Exit(1)

    if not quiet:
        print_report(report, console)


if __name__ == "__main__":
    app()
