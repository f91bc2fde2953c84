"""
Command-line interface for the PDF annotation merger.

Usage:
    pdf-annotations stats FILE [--per-page]
    pdf-annotations merge FILE FILE... [-o OUTPUT]
    pdf-annotations strip FILE [-e SUBTYPE]... [-o OUTPUT]
"""

import json
import logging
import os
import sys

import click
import pikepdf
from click.shell_completion import get_completion_class
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import (
    DEFAULT_KEPT_SUBTYPES,
    DEFAULT_MERGE_OUTPUT,
    DEFAULT_STRIP_OUTPUT,
    DEFAULT_TOLERANCE,
    ENV_PREFIX,
)
from .document import AnnotatedDocument, check_output_path
from .exceptions import AnnotationMergerError
from .matcher import AnnotationMatcher
from .merger import merge_pdf_annotations
from .stats import StatsReport, collect_stats
from .stripper import strip_pdf_annotations

PROG_NAME = "pdf-annotations"

CONTEXT_SETTINGS = {
    'auto_envvar_prefix': ENV_PREFIX,
    'help_option_names': ['-h', '--help'],
}


def configure_logging(verbose: int = 0, quiet: bool = False) -> None:
    """Send package log records to stderr through rich."""
    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logger = logging.getLogger("pdf_annotation_merger")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.addHandler(RichHandler(console=Console(stderr=True), show_path=False))
    logger.setLevel(level)


def make_console(color: str) -> Console:
    if color == "always":
        return Console(force_terminal=True)
    if color == "never":
        return Console(no_color=True)
    return Console()


def fail(console: Console, error: Exception) -> None:
    console.print(f"\n[bold red]✗ Error:[/bold red] {escape(str(error))}")
    sys.exit(1)


def confirm_overwrite(path: str, force: bool) -> bool:
    if force or not os.path.exists(path):
        return True
    return click.confirm(f"Output file {path} already exists. Do you want to overwrite it?",
                         default=False)


def build_stats_table(report: StatsReport, file: str) -> Table:
    """Render a stats report as a table, one column per subtype."""
    subtypes = report.subtypes
    table = Table(title=f"Annotations stats for: {escape(file)}", border_style="green")

    if report.per_page:
        table.add_column("Page no.", style="cyan")
        for subtype in subtypes:
            table.add_column(subtype, justify="right")
        for index, counter in enumerate(report.pages):
            if not counter:
                continue
            row = [str(index + 1)]
            for subtype in subtypes:
                count = counter.get(subtype, 0)
                row.append(str(count) if count else "[dim]0[/dim]")
            table.add_row(*row)
    else:
        for subtype in subtypes:
            table.add_column(subtype, justify="right")
        table.add_row(*(str(report.totals[subtype]) for subtype in subtypes))

    return table


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(version=__version__, prog_name=PROG_NAME)
@click.option('--verbose', '-v', count=True, help='Increase log verbosity (-v info, -vv debug)')
@click.option('--quiet', '-q', is_flag=True, help='Only log errors')
@click.option(
    '--color',
    type=click.Choice(['auto', 'always', 'never']),
    default='auto',
    show_default=True,
    help='When to colorize output',
)
@click.pass_context
def cli(ctx, verbose, quiet, color):
    """
    Work with PDF annotations: statistics, merging and stripping.
    """
    configure_logging(verbose, quiet)
    ctx.obj = make_console(color)


@cli.command(name="stats")
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
@click.option('--per-page', '-p', is_flag=True, help='Show per page statistics')
@click.option('--json', 'as_json', is_flag=True, help='Print the statistics as JSON')
@click.pass_obj
def stats_command(console, file, per_page, as_json):
    """
    Show annotation counts by subtype.

    Examples:

        pdf-annotations stats input.pdf

        pdf-annotations stats input.pdf --per-page
    """
    try:
        with AnnotatedDocument.load(file) as document:
            report = collect_stats(document, per_page=per_page)
    except (AnnotationMergerError, pikepdf.PdfError) as e:
        fail(console, e)

    if as_json:
        click.echo(json.dumps(report.as_dict(), indent=2, ensure_ascii=False))
        return

    if report.is_empty:
        console.print("No annotation was found in the given file.")
        return

    console.print(build_stats_table(report, file))


@cli.command(name="merge")
@click.argument('files', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option(
    '--output', '-o',
    default=DEFAULT_MERGE_OUTPUT,
    show_default=True,
    type=click.Path(dir_okay=False),
    help='Output file where the merged PDF is written',
)
@click.option(
    '--exclude', '-e',
    multiple=True,
    help='Only keep annotations of this subtype from the first file (repeatable)',
)
@click.option(
    '--tolerance', '-t',
    default=DEFAULT_TOLERANCE,
    show_default=True,
    type=click.FloatRange(min=0),
    help='Rectangle tolerance (PDF points) when detecting duplicates',
)
@click.option('--verify-pages', is_flag=True, help='Warn when aligned pages have different text')
@click.option('--force', '-f', is_flag=True, help='Overwrite output file if it exists')
@click.pass_obj
def merge_command(console, files, output, exclude, tolerance, verify_pages, force):
    """
    Merge annotations from multiple versions of the same PDF.

    The first file is used as the base, and unique annotations from all
    other files are merged into it.

    Examples:

        pdf-annotations merge mine.pdf theirs.pdf -o merged.pdf

        pdf-annotations merge a.pdf b.pdf c.pdf -e Link
    """
    if len(files) < 2:
        raise click.UsageError("Need at least 2 input files to merge")

    try:
        check_output_path(output, files)
    except AnnotationMergerError as e:
        fail(console, e)

    if not confirm_overwrite(output, force):
        console.print("[yellow]Output file left untouched.[/yellow]")
        return

    try:
        result = merge_pdf_annotations(
            output,
            list(files),
            matcher=AnnotationMatcher(tolerance),
            skip_subtypes=exclude,
            verify_content=verify_pages,
        )
    except (AnnotationMergerError, pikepdf.PdfError) as e:
        fail(console, e)

    console.print(f"\n[bold green]✓ Merged annotations from {result.files_processed} files[/bold green]")
    console.print(f"  Base annotations: {result.base_annotations}")
    console.print(f"  New annotations merged: {result.merged_annotations}")
    console.print(f"  Duplicates skipped: {result.duplicate_annotations}")
    if result.skipped_annotations:
        console.print(f"  Excluded by subtype: {result.skipped_annotations}")
    if result.mismatched_pages:
        pages = ", ".join(str(index + 1) for index in result.mismatched_pages)
        console.print(f"  [yellow]Pages with differing text: {pages}[/yellow]")
    console.print(f"[dim]Output: {escape(os.path.abspath(output))}[/dim]")


@cli.command(name="strip")
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
@click.option(
    '--exclude', '-e',
    multiple=True,
    default=sorted(DEFAULT_KEPT_SUBTYPES),
    show_default=True,
    help='Annotation subtype to keep (repeatable)',
)
@click.option(
    '--output', '-o',
    default=DEFAULT_STRIP_OUTPUT,
    show_default=True,
    type=click.Path(dir_okay=False),
    help='Output file where the stripped PDF is written',
)
@click.option('--force', '-f', is_flag=True, help='Overwrite output file if it exists')
@click.pass_obj
def strip_command(console, file, exclude, output, force):
    """
    Remove annotations from a PDF, keeping the excluded subtypes.

    Examples:

        pdf-annotations strip input.pdf

        pdf-annotations strip input.pdf -e Link -e Highlight -o clean.pdf
    """
    try:
        check_output_path(output, [file])
    except AnnotationMergerError as e:
        fail(console, e)

    if not confirm_overwrite(output, force):
        console.print("[yellow]Output file left untouched.[/yellow]")
        return

    try:
        result = strip_pdf_annotations(file, output, exclude)
    except (AnnotationMergerError, pikepdf.PdfError) as e:
        fail(console, e)

    console.print(f"\n[bold green]✓ Stripped {result.removed} annotation(s), "
                  f"kept {result.kept}[/bold green]")
    console.print(f"[dim]Output: {escape(os.path.abspath(output))}[/dim]")


@cli.command(name="completions")
@click.argument('shell', type=click.Choice(['bash', 'zsh', 'fish'], case_sensitive=False))
@click.pass_context
def completions_command(ctx, shell):
    """
    Print the tab-completion script for SHELL.

    Example:

        pdf-annotations completions bash >> ~/.bashrc
    """
    completion_class = get_completion_class(shell.lower())
    complete_var = "_" + PROG_NAME.replace("-", "_").upper() + "_COMPLETE"
    completion = completion_class(ctx.find_root().command, {}, PROG_NAME, complete_var)
    click.echo(completion.source())


def main():
    cli(prog_name=PROG_NAME)


if __name__ == "__main__":
    main()
