"""
Command-line interface for the blacklist cache.

Builds the storage handle, sources and RPCs from settings, then runs one
update cycle or answers a query.

Usage:
    blacklist update                  # Refresh stale sources
    blacklist check ip 10.0.0.1       # Query the cache (and RPCs)
    blacklist sources                 # List available source names
    blacklist init-db                 # Create the registry table
    blacklist health                  # Check database connectivity
"""

import asyncio
import json
import os
import sys
from pathlib import Path

import click
import structlog

from blacklist.config.settings import Settings, get_settings
from blacklist.entries.schemas import EntryType
from blacklist.entries.validators import EntryTypeRegistry, UnknownEntryTypeError
from blacklist.ingestion.config import PipelineConfig
from blacklist.observability.logging import bind_context, setup_logging
from blacklist.observability.metrics import get_metrics
from blacklist.queues.error_sink import log_error_handler
from blacklist.rpc.config import SafeBrowsingConfig
from blacklist.rpc.safebrowsing import SafeBrowsingRPC
from blacklist.services.blacklist_service import BlacklistService
from blacklist.sources.http_client import RetryConfig
from blacklist.sources.line_separated import file_list
from blacklist.sources.registry import default_source_registry
from blacklist.storage.base import Handle
from blacklist.storage.database import Database
from blacklist.storage.memory import InMemoryHandle
from blacklist.storage.postgres import PostgresHandle

logger = structlog.get_logger(__name__)


class ErrorCounter:
    """Error handler that logs each error and counts them by type."""

    def __init__(self) -> None:
        self.counts: dict[str, int] = {}

    def __call__(self, error: Exception) -> None:
        log_error_handler(error)
        name = type(error).__name__
        self.counts[name] = self.counts.get(name, 0) + 1

    @property
    def total(self) -> int:
        return sum(self.counts.values())


async def _open_handle(settings: Settings) -> Handle:
    if settings.storage_backend == "memory":
        return InMemoryHandle()
    database = Database(settings=settings)
    await database.connect()
    return PostgresHandle(database)


def _resolve_type(types: EntryTypeRegistry, name: str, param_hint: str) -> EntryType:
    try:
        return types.get(name)
    except (UnknownEntryTypeError, ValueError) as e:
        raise click.BadParameter(str(e), param_hint=param_hint) from e


def _retry_config(settings: Settings) -> RetryConfig:
    return RetryConfig(
        max_retries=settings.max_http_retries,
        max_backoff_seconds=settings.max_backoff_seconds,
    )


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Blacklist cache - mirrors threat-intel feeds for fast lookups."""
    if debug:
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()


@main.command()
@click.option(
    "--file-list",
    "file_lists",
    type=(str, str, click.Path(exists=True, dir_okay=False, path_type=Path)),
    multiple=True,
    metavar="NAME TYPE PATH",
    help="Add a custom list read from a local file (repeatable)",
)
@click.option("--metrics/--no-metrics", default=False, help="Enable metrics server")
def update(file_lists: tuple[tuple[str, str, Path], ...], metrics: bool) -> None:
    """Run one update cycle over the configured sources."""
    settings = get_settings()
    bind_context(command="update")
    errors = ErrorCounter()
    types = EntryTypeRegistry.with_defaults()

    custom = []
    for name, type_name, path in file_lists:
        entry_type = _resolve_type(types, type_name, "--file-list")
        custom.append(file_list(entry_type, name, path))

    async def run():
        if metrics:
            get_metrics().start_server()

        registry = default_source_registry(_retry_config(settings))
        sources = registry.create_many(settings.source_names, on_unknown=errors)

        handle = await _open_handle(settings)
        service = BlacklistService(
            handle, error_handler=errors, type_registry=types, config=PipelineConfig()
        )
        service.set_sources(sources + custom)
        try:
            return await service.update()
        finally:
            await service.close()

    summary = asyncio.run(run())

    click.echo("\nUpdate Results:")
    click.echo("-" * 40)
    click.echo(f"  Registered: {', '.join(summary.registered) or '-'}")
    click.echo(f"  Refreshed:  {', '.join(summary.refreshed) or '-'}")
    click.echo(f"  Fresh:      {', '.join(summary.fresh) or '-'}")
    click.echo(f"  Removed:    {', '.join(summary.removed) or '-'}")
    click.echo(f"  Failed:     {', '.join(summary.failed) or '-'}")
    click.echo("-" * 40)

    if errors.total:
        for name, count in sorted(errors.counts.items()):
            click.echo(click.style(f"  {name}: {count}", fg="red"))
        sys.exit(1)

    click.echo(click.style("Update finished without errors", fg="green"))


@main.command()
@click.argument("entry_type_name", metavar="ENTRY_TYPE")
@click.argument("indexes", nargs=-1, required=True)
def check(entry_type_name: str, indexes: tuple[str, ...]) -> None:
    """Check INDEXES of ENTRY_TYPE against the cache and RPCs."""
    settings = get_settings()
    bind_context(command="check")
    types = EntryTypeRegistry.with_defaults()
    entry_type = _resolve_type(types, entry_type_name, "ENTRY_TYPE")

    async def run():
        handle = await _open_handle(settings)
        service = BlacklistService(handle, type_registry=types)

        sb_config = SafeBrowsingConfig()
        if sb_config.enabled:
            service.set_rpcs([SafeBrowsingRPC(sb_config)])

        try:
            return await service.check_entries(entry_type, *indexes)
        finally:
            await service.close()

    results = asyncio.run(run())
    output = {
        index: [r.model_dump() for r in hits]
        for index, hits in results.items()
    }
    click.echo(json.dumps(output, indent=2))


@main.command()
def sources() -> None:
    """List the available source names."""
    settings = get_settings()
    enabled = set(settings.source_names)
    for name in default_source_registry().names():
        marker = "*" if name in enabled else " "
        click.echo(f"{marker} {name}")


@main.command("init-db")
def init_db() -> None:
    """Create the list registry table."""
    settings = get_settings()

    async def run():
        async with Database(settings=settings) as db:
            await PostgresHandle(db).create_tables()
        click.echo("Database initialized successfully")

    asyncio.run(run())


@main.command()
def health() -> None:
    """Check database connectivity."""
    settings = get_settings()

    async def run() -> bool:
        try:
            async with Database(settings=settings) as db:
                return await db.health_check()
        except Exception as e:
            logger.error("Postgres health check failed", error=str(e))
            return False

    if asyncio.run(run()):
        click.echo(click.style("postgres: healthy", fg="green"))
        sys.exit(0)
    click.echo(click.style("postgres: unhealthy", fg="red"))
    sys.exit(1)


if __name__ == "__main__":
    main()
