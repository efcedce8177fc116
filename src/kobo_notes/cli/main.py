#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Command-line interface for kobo-notes.

Provides commands for listing the books of a Kobo database, exporting their
highlights and notes chapter by chapter, and managing configuration.
"""

import sys
import logging
from typing import Optional, Tuple

import click

from kobo_notes.core.content_schema import ContentSchemaAdapter
from kobo_notes.core.database import KoboDatabase, open_database_file
from kobo_notes.core.errors import KoboNotesError, log_error, user_message
from kobo_notes.core.exporter import ExportOrchestrator, write_document
from kobo_notes.core.library import export_summaries_to_csv, sort_library
from kobo_notes.core.models import ExportFormat, ExportStructure
from kobo_notes.processors.renderer import DocumentRenderer
from kobo_notes.utils.config import Config
from kobo_notes.utils.export_helpers import create_output_path, timestamped_filename

logger = logging.getLogger(__name__)


def setup_logging(config: Config):
    """Setup logging based on configuration."""
    level = getattr(logging, str(config.get('logging.level', 'INFO')).upper(), logging.INFO)
    format_str = config.get('logging.format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    log_file = config.get('logging.file')

    handlers = []

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(format_str))
    handlers.append(console_handler)

    # File handler if specified
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(format_str))
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)


def _fail(error: Exception):
    """Report an error and exit."""
    log_error(error)
    click.echo(f"❌ {user_message(error)}", err=True)
    if isinstance(error, KoboNotesError):
        click.echo(f"   {error.message}", err=True)
    sys.exit(1)


def _open_database(config: Config, database: Optional[str]) -> KoboDatabase:
    """Open the database given on the command line or in the configuration."""
    path = database or config.get('kobo.database_path')
    if not path:
        click.echo("No database given. Use --database or set kobo.database_path.", err=True)
        sys.exit(1)

    try:
        return open_database_file(path, max_size_mb=config.get('kobo.max_file_size_mb', 100))
    except KoboNotesError as e:
        _fail(e)


def _make_orchestrator(config: Config, db: KoboDatabase, fmt: ExportFormat) -> ExportOrchestrator:
    renderer = DocumentRenderer(
        fmt=fmt,
        include_empty_chapters=bool(config.get('export.include_empty_chapters', True)),
    )
    return ExportOrchestrator(
        ContentSchemaAdapter(db),
        renderer=renderer,
        workers=config.get('export.workers', 1),
        include_export_date=bool(config.get('export.include_export_date', False)),
    )


@click.group()
@click.option('--config', '-c', help='Path to configuration file')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """kobo-notes - Export highlights and notes from a Kobo e-reader database."""

    ctx.ensure_object(dict)
    ctx.obj['config'] = Config(config)

    if verbose:
        ctx.obj['config'].set('logging.level', 'DEBUG')

    setup_logging(ctx.obj['config'])

    issues = ctx.obj['config'].validate()
    if issues and ctx.invoked_subcommand != 'config':
        click.echo("Configuration issues found:", err=True)
        for issue in issues:
            click.echo(f"  - {issue}", err=True)
        click.echo("\nRun 'kobo-notes config check' for details.", err=True)
        sys.exit(1)


@cli.group()
@click.pass_context
def config(ctx):
    """Configuration management commands."""
    pass


@config.command('init')
@click.option('--output', '-o', default='config.yaml', help='Output configuration file path')
def config_init(output: str):
    """Initialize configuration file with example settings."""

    try:
        Config().create_example_config(output)
    except OSError as e:
        click.echo(f"Failed to create configuration: {e}", err=True)
        sys.exit(1)

    click.echo(f"Configuration template created: {output}")
    click.echo("\nNext steps:")
    click.echo(f"1. Edit {output} and set kobo.database_path")
    click.echo("2. Run 'kobo-notes config check' to validate")


@config.command('check')
@click.pass_context
def config_check(ctx):
    """Check configuration for issues."""

    config_obj = ctx.obj['config']
    issues = config_obj.validate()

    if issues:
        click.echo("Configuration issues found:", err=True)
        for issue in issues:
            click.echo(f"  - {issue}", err=True)
        sys.exit(1)

    click.echo("Configuration is valid")
    click.echo("\nKey settings:")
    click.echo(f"  Database path: {config_obj.get('kobo.database_path')}")
    click.echo(f"  Export format: {config_obj.get('export.format')}")
    click.echo(f"  Export structure: {config_obj.get('export.structure')}")
    click.echo(f"  Log level: {config_obj.get('logging.level')}")


@config.command('show')
@click.option('--section', help='Show only specific configuration section')
@click.pass_context
def config_show(ctx, section: Optional[str]):
    """Show current configuration."""

    config_obj = ctx.obj['config']

    if section:
        data = config_obj.get_section(section)
        if not data:
            click.echo(f"Configuration section '{section}' not found", err=True)
            sys.exit(1)
        click.echo(f"Configuration section '{section}':")
        _print_config_section(data)
    else:
        click.echo(f"Configuration loaded from: {config_obj.config_path or 'defaults'}")
        click.echo("\nFull configuration:")
        _print_config_section(config_obj.config_data)


def _print_config_section(data, indent=0):
    """Print configuration section with indentation."""
    for key, value in data.items():
        if isinstance(value, dict):
            click.echo("  " * indent + f"{key}:")
            _print_config_section(value, indent + 1)
        else:
            click.echo("  " * indent + f"{key}: {value}")


@cli.command('books')
@click.option('--database', '-d', help='Path to KoboReader.sqlite (overrides config)')
@click.option('--csv', 'csv_path', help='Export the library listing to a CSV file')
@click.pass_context
def books(ctx, database: Optional[str], csv_path: Optional[str]):
    """List the books of the library with their highlight and note counts."""

    config_obj = ctx.obj['config']
    with _open_database(config_obj, database) as db:
        try:
            summaries = sort_library(ContentSchemaAdapter(db).list_books_with_counts())
        except KoboNotesError as e:
            _fail(e)

    if csv_path:
        count = export_summaries_to_csv(summaries, csv_path)
        click.echo(f"✅ Exported {count} books to {csv_path}")
        return

    if not summaries:
        click.echo("No books found in your library.")
        return

    click.echo(f"📚 {len(summaries)} books\n")
    for summary in summaries:
        book = summary.book
        last_read = book.last_read.strftime('%Y-%m-%d') if book.last_read else 'never'
        click.echo(f"{book.title or 'Untitled'}")
        click.echo(f"   Author: {book.author or 'Unknown'}")
        click.echo(f"   Highlights: {summary.total_highlights}  Notes: {summary.total_notes}  Last read: {last_read}")
        click.echo(f"   ID: {book.content_id}")


@cli.command('notes')
@click.argument('book_id')
@click.option('--database', '-d', help='Path to KoboReader.sqlite (overrides config)')
@click.option('--format', 'output_format', type=click.Choice(['markdown', 'text']), help='Output format (default from config)')
@click.option('--output', '-o', help='Write to this file or directory instead of stdout')
@click.pass_context
def notes(ctx, book_id: str, database: Optional[str], output_format: Optional[str], output: Optional[str]):
    """Export the highlights and notes of one book, ordered by chapter."""

    config_obj = ctx.obj['config']
    fmt = ExportFormat(output_format or config_obj.get('export.format', 'markdown'))

    with _open_database(config_obj, database) as db:
        document = _make_orchestrator(config_obj, db, fmt).export_book(book_id, fmt)

    if document.failed:
        click.echo(f"❌ Could not export {book_id}: {document.error_message}", err=True)
        sys.exit(1)

    if output:
        path = write_document(document, create_output_path(output, document.filename))
        click.echo(f"✅ Notes written to {path}")
    else:
        click.echo(document.content, nl=False)


@cli.command('export')
@click.option('--database', '-d', help='Path to KoboReader.sqlite (overrides config)')
@click.option('--book-id', '-b', 'book_ids', multiple=True, help='Book to export (repeatable, default: all books)')
@click.option('--format', 'output_format', type=click.Choice(['markdown', 'text']), help='Output format (default from config)')
@click.option('--structure', type=click.Choice(['single', 'zip']), help='One combined file or one file per book in a ZIP')
@click.option('--output', '-o', help='Output file or directory')
@click.pass_context
def export(ctx, database: Optional[str], book_ids: Tuple[str, ...], output_format: Optional[str],
           structure: Optional[str], output: Optional[str]):
    """Export the highlights and notes of several books."""

    config_obj = ctx.obj['config']
    fmt = ExportFormat(output_format or config_obj.get('export.format', 'markdown'))
    structure = ExportStructure(structure or config_obj.get('export.structure', 'single'))

    if structure is ExportStructure.ZIP:
        default_name = timestamped_filename('kobo-notes', 'zip')
    else:
        default_name = timestamped_filename('all-books', fmt.extension)
    output_path = create_output_path(output or config_obj.get('export.output_directory'), default_name)

    def show_progress(current: int, total: int):
        click.echo(f"  [{current}/{total}]", err=True)

    with _open_database(config_obj, database) as db:
        orchestrator = _make_orchestrator(config_obj, db, fmt)
        try:
            documents = orchestrator.export(structure, output_path, list(book_ids) or None, fmt, show_progress)
        except KoboNotesError as e:
            _fail(e)

    failed = [doc for doc in documents if doc.failed]
    click.echo(f"✅ Export written to {output_path}")
    if failed:
        click.echo("⚠️  Some books could not be exported:", err=True)
        for doc in failed:
            click.echo(f"  - {doc.error_message}", err=True)


if __name__ == '__main__':
    cli()
