#!/usr/bin/env python3
"""
FeedRelay - Content Feed Relay
==============================

Main application entry point with CLI interface.

Usage:
    python main.py --help                          # Show all commands
    python main.py -c config.json check-config     # Validate configuration
    python main.py -c config.json init-db          # Initialize database
    python main.py -c config.json run              # Ingest, publish and deliver one feed
    python main.py -c config.json show-items       # Inspect stored items
"""

import sys
import asyncio
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from feedrelay.config.settings import FeedRelaySettings, load_settings
from feedrelay.database.connection import DatabaseConnection
from feedrelay.database.models import ItemStatus
from feedrelay.database.schema import DatabaseSchema
from feedrelay.runner import FeedRunner
from feedrelay.storage.content_store import ContentStore
from feedrelay.utils.exceptions import FeedRelayError, handle_exception
from feedrelay.utils.logging import configure_application_logging, get_logger_for_component

console = Console()


def _load(ctx, validate: bool = True) -> FeedRelaySettings:
    settings = load_settings(ctx.obj.get('config_path'), validate=validate)
    if ctx.obj.get('debug'):
        settings.debug = True
    return settings


def _configure_logging(settings: FeedRelaySettings) -> None:
    configure_application_logging(
        log_level=settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
        max_file_size_mb=settings.logging.max_file_size_mb,
        backup_count=settings.logging.backup_count,
        mask_sensitive=settings.logging.mask_sensitive,
    )


@click.group(invoke_without_command=True)
@click.option('--config', '-c', help='JSON configuration file path')
@click.option('--debug', is_flag=True, help='Enable debug mode')
@click.pass_context
def cli(ctx, config, debug):
    """FeedRelay - relay upstream content into a bounded, filtered feed."""
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.pass_context
def check_config(ctx):
    """Validate configuration file and environment variables."""
    console.print("[bold blue]🔧 Checking FeedRelay Configuration[/bold blue]")

    try:
        settings = _load(ctx)
    except FeedRelayError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)

    table = Table(title="Configuration Status")
    table.add_column("Section", style="cyan")
    table.add_column("Details")

    source = settings.source
    storage = settings.storage
    table.add_row("Source", f"{source.name} ({source.platform}/{source.feed_type}) {source.url}")
    table.add_row(
        "Feed",
        f"{settings.feed.file_name}: {settings.feed.items_per_run} per run, "
        f"max {settings.feed.max_total_items}, onboarding {settings.feed.onboarding_limit}",
    )
    table.add_row(
        "Filtering",
        f"enabled ({settings.filtering.term_list_url})" if settings.filtering.enabled else "disabled",
    )
    if storage.backend.value == "s3":
        cdn = storage.cloudfront_distribution_id or "no CloudFront"
        table.add_row("Storage", f"s3://{storage.s3_bucket}/{storage.s3_folder} ({storage.aws_region}, {cdn})")
    else:
        table.add_row("Storage", f"file: {storage.output_dir}")
    table.add_row("Database", settings.database.path)
    table.add_row("Logging", f"{settings.get_effective_log_level()} -> {settings.logging.file_path or 'console only'}")

    console.print(table)
    console.print("[bold green]✅ All configuration checks passed![/bold green]")


@cli.command()
@click.pass_context
def init_db(ctx):
    """Initialize database with schema."""
    console.print("[bold blue]🗄️ Initializing FeedRelay Database[/bold blue]")

    try:
        settings = _load(ctx, validate=False)
        schema = DatabaseSchema(settings.database.path)
        schema.create_tables()

        if not schema.verify_schema():
            console.print("[bold red]❌ Database schema verification failed[/bold red]")
            sys.exit(1)

        console.print("[bold green]✅ Database initialized successfully![/bold green]")

        db = DatabaseConnection(settings.database.path, settings.database.pool_size)
        try:
            info = db.get_database_info()
        finally:
            db.close_all_connections()

        info_table = Table(title="Database Information")
        info_table.add_column("Property", style="cyan")
        info_table.add_column("Value", style="green")

        info_table.add_row("Database Path", settings.database.path)
        info_table.add_row("Size", f"{info['database_size_mb']:.2f} MB")
        info_table.add_row("Page Size", f"{info['page_size']} bytes")
        info_table.add_row("Stored Items", str(info['item_count']))

        console.print(info_table)

    except FeedRelayError as e:
        console.print(f"[bold red]❌ Database initialization error: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.pass_context
def run(ctx):
    """Ingest the configured source, decide pending items and deliver the feed."""
    try:
        settings = _load(ctx)
    except FeedRelayError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)

    _configure_logging(settings)
    run_logger = get_logger_for_component('cli', source=settings.source.name)

    console.print(f"[bold blue]🚀 Running feed for {settings.source.name}[/bold blue]")

    try:
        result = asyncio.run(FeedRunner(settings).run())
    except Exception as e:
        error = handle_exception(e, run_logger, "feed run")
        console.print(f"[bold red]❌ Feed processing failed: {error}[/bold red]")
        sys.exit(1)

    table = Table(title="Run Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Source Status", "NEW" if result.is_new_source else "EXISTING")
    table.add_row("Ingested", str(result.ingested))
    table.add_row("Updated", str(result.updated))
    table.add_row("Published", str(result.processed))
    table.add_row("Skipped", str(result.skipped))
    table.add_row("Feed Items", str(result.feed_items))
    table.add_row("Storage", f"{result.storage_type}: {result.storage_location}")
    table.add_row("CloudFront Invalidated", "yes" if result.cloudfront_invalidated else "no")
    table.add_row("Duration", f"{result.duration_seconds:.1f}s")

    console.print(table)

    if result.errors:
        console.print(f"[yellow]⚠️ {len(result.errors)} items skipped with errors[/yellow]")
        for message in result.errors:
            console.print(f"  • {message}")

    console.print("[bold green]✅ Feed processed successfully[/bold green]")


@cli.command()
@click.option('--status', type=click.Choice([s.value for s in ItemStatus]), help='Only items with this status')
@click.option('--limit', default=20, show_default=True, help='Maximum items to show')
@click.pass_context
def show_items(ctx, status, limit):
    """Show stored items for the configured source."""
    try:
        settings = _load(ctx)
        DatabaseSchema(settings.database.path).create_tables()
        db = DatabaseConnection(settings.database.path, settings.database.pool_size)
        try:
            store = ContentStore(db)
            counts = store.status_counts(settings.source.name, settings.source.feed_type)
            items = store.list_items(
                settings.source.name,
                status=ItemStatus(status) if status else None,
                limit=limit,
            )
        finally:
            db.close_all_connections()
    except FeedRelayError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        sys.exit(1)

    console.print(
        f"[bold blue]📋 {settings.source.name}[/bold blue] "
        + ", ".join(f"{name}: {count}" for name, count in counts.items())
    )

    table = Table(title=f"Items ({len(items)})")
    table.add_column("Hash", style="cyan")
    table.add_column("Status")
    table.add_column("Title")
    table.add_column("Published Upstream")
    table.add_column("Skip Reason")

    for item in items:
        table.add_row(
            item.content_hash[:12],
            item.status.value,
            item.title[:60],
            item.item_published_at.isoformat() if item.item_published_at else "-",
            item.skip_reason or "",
        )

    console.print(table)


if __name__ == '__main__':
    cli()
