#!/usr/bin/env python3
"""
Command line interface for inspecting and managing a SQLite-backed cache.

    pricache --db cache.sqlite stats
    pricache --db cache.sqlite set quotes '{"AAPL": 189.2}' --priority high --tag market
    pricache --db cache.sqlite clear-tags market
    pricache --db cache.sqlite fetch https://api.example.com/market --ttl 1
"""

import asyncio
import json
import sys
from pathlib import Path

import click
from loguru import logger
from rich.console import Console
from rich.table import Table

from pricache.core.cache_models import CachePolicy, FetchPolicy, PriorityClass
from pricache.core.config import CacheEngineSettings
from pricache.core.engine import CacheEngine
from pricache.core.errors import FetchError
from pricache.core.logging import configure_logging
from pricache.core.statistics import format_size

console = Console()

PRIORITY_CHOICES = click.Choice([p.value for p in PriorityClass], case_sensitive=False)


def _open_engine(ctx: click.Context) -> CacheEngine:
    settings: CacheEngineSettings = ctx.obj["settings"]
    return CacheEngine(settings)


def _close_engine(engine: CacheEngine) -> None:
    asyncio.run(engine.shutdown())


@click.group()
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="PRICACHE_SQLITE_PATH",
    required=True,
    help="SQLite database holding the cache",
)
@click.option("--limit-bytes", type=int, default=None, help="Override the byte budget")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option(
    "--debug-scope",
    "debug_scopes",
    multiple=True,
    help="Module to log at DEBUG, e.g. fetch or core.eviction (repeatable)",
)
@click.pass_context
def cli(
    ctx: click.Context,
    db_path: Path,
    limit_bytes: int | None,
    verbose: bool,
    debug_scopes: tuple[str, ...],
):
    """pricache cache management CLI."""
    overrides: dict[str, object] = {"sqlite_path": db_path}
    if limit_bytes is not None:
        overrides["limit_bytes"] = limit_bytes
    settings = CacheEngineSettings(**overrides)
    configure_logging(
        "DEBUG" if verbose else settings.log_level,
        debug_scopes=(*settings.debug_scopes, *debug_scopes),
        colorize=True,
    )
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
@click.pass_context
def stats(ctx: click.Context, as_json: bool):
    """Show usage, hit rate and registered entries."""
    engine = _open_engine(ctx)
    try:
        snapshot = engine.get_cache_stats()
        if as_json:
            console.print_json(json.dumps(snapshot.to_dict()))
            return

        console.print(f"[bold]{snapshot.summary()}[/bold]")
        table = Table(title="Registered entries")
        table.add_column("Key", style="cyan")
        table.add_column("Priority")
        table.add_column("Size", justify="right")
        table.add_column("Hits", justify="right")
        table.add_column("Tags")
        for metadata in sorted(
            engine.registry, key=lambda m: (-m.priority.rank, m.key)
        ):
            table.add_row(
                metadata.key,
                metadata.priority.value,
                format_size(metadata.size_bytes),
                str(metadata.hit_count),
                ", ".join(sorted(metadata.tags)),
            )
        console.print(table)
    finally:
        _close_engine(engine)


@cli.command()
@click.argument("key")
@click.pass_context
def get(ctx: click.Context, key: str):
    """Print the cached value for KEY."""
    engine = _open_engine(ctx)
    try:
        if key in engine.registry:
            value = engine.get_priority_cache(key)
        else:
            value = engine.get_cache(key)
        if value is None:
            console.print(f"[yellow]No cached value for {key}[/yellow]")
            sys.exit(1)
        console.print_json(json.dumps(value))
    finally:
        _close_engine(engine)


@cli.command(name="set")
@click.argument("key")
@click.argument("value")
@click.option("--ttl", type=float, default=None, help="TTL in minutes")
@click.option("--priority", type=PRIORITY_CHOICES, default="medium")
@click.option("--tag", "tags", multiple=True, help="Tag (repeatable)")
@click.pass_context
def set_value(
    ctx: click.Context,
    key: str,
    value: str,
    ttl: float | None,
    priority: str,
    tags: tuple[str, ...],
):
    """Cache the JSON document VALUE under KEY."""
    try:
        data = json.loads(value)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"VALUE is not valid JSON: {e}") from e

    engine = _open_engine(ctx)
    try:
        policy = CachePolicy(
            priority=PriorityClass.parse(priority),
            ttl_minutes=engine.settings.default_ttl_minutes if ttl is None else ttl,
            tags=frozenset(tags),
        )
        if not engine.set_priority_cache(key, data, policy):
            console.print(f"[red]Failed to cache {key}[/red]")
            sys.exit(1)
        console.print(f"[green]Cached {key}[/green]")
    finally:
        _close_engine(engine)


@cli.command(name="clear-tags")
@click.argument("tags", nargs=-1, required=True)
@click.pass_context
def clear_tags(ctx: click.Context, tags: tuple[str, ...]):
    """Remove every entry carrying any of TAGS."""
    engine = _open_engine(ctx)
    try:
        count = engine.clear_cache_by_tags(tags)
        console.print(f"Cleared {count} entries")
    finally:
        _close_engine(engine)


@cli.command(name="clear-below")
@click.argument("priority", type=PRIORITY_CHOICES)
@click.pass_context
def clear_below(ctx: click.Context, priority: str):
    """Remove every entry below PRIORITY."""
    engine = _open_engine(ctx)
    try:
        count = engine.clear_cache_below_priority(priority)
        console.print(f"Cleared {count} entries")
    finally:
        _close_engine(engine)


@cli.command()
@click.pass_context
def purge(ctx: click.Context):
    """Run one maintenance pass."""
    engine = _open_engine(ctx)
    try:
        report = engine.run_maintenance()
        console.print(report.summary())
    finally:
        _close_engine(engine)


@cli.command()
@click.argument("url")
@click.option("--key", "cache_key", default=None, help="Cache key (default: from URL)")
@click.option("--ttl", type=float, default=None, help="TTL in minutes")
@click.option("--priority", type=PRIORITY_CHOICES, default="medium")
@click.option("--timeout", type=float, default=None, help="Timeout in seconds")
@click.pass_context
def fetch(
    ctx: click.Context,
    url: str,
    cache_key: str | None,
    ttl: float | None,
    priority: str,
    timeout: float | None,
):
    """Fetch URL through the cache and print the JSON response."""

    async def _fetch():
        engine = _open_engine(ctx)
        try:
            policy = FetchPolicy(
                priority=PriorityClass.parse(priority),
                ttl_minutes=engine.settings.fetch_ttl_minutes if ttl is None else ttl,
                cache_key=cache_key,
                timeout_seconds=timeout,
            )
            return await engine.fetch_with_priority_cache(url, cache_options=policy)
        finally:
            await engine.shutdown()

    try:
        data = asyncio.run(_fetch())
    except FetchError as e:
        console.print(f"[red]Fetch failed: {e}[/red]")
        sys.exit(1)
    console.print_json(json.dumps(data))


def main():
    """Main CLI entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error")
        console.print(f"[red]Unexpected error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
