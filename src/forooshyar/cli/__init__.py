"""CLI commands for the forooshyar cache.

Provides command-line interface using Typer:
- forooshyar-cache stats: Show cache statistics
- forooshyar-cache flush: Delete every entry under the cache prefix
- forooshyar-cache cleanup: Purge expired entries
- forooshyar-cache invalidate-product: Invalidate products and their relatives
- forooshyar-cache invalidate-category: Invalidate categories and their products
- forooshyar-cache invalidate-pattern: Invalidate keys by glob or prefix

Usage:
    forooshyar-cache --help
    forooshyar-cache stats --json
    forooshyar-cache invalidate-product 42 43
    forooshyar-cache invalidate-pattern products_
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import orjson
import typer
from rich.console import Console
from rich.table import Table

from forooshyar.cache.backends import create_backend
from forooshyar.cache.invalidation import InvalidationCoordinator
from forooshyar.cache.service import CacheService
from forooshyar.catalog.woocommerce import WooCommerceCatalog
from forooshyar.config import settings
from forooshyar.observability.logging import configure_logging

app = typer.Typer(
    name="forooshyar-cache",
    help="Forooshyar product cache: inspect and invalidate cached catalog data",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)

JSON_OPTION = typer.Option(False, "--json", help="Print machine-readable JSON")


@app.callback()
def callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
) -> None:
    """Forooshyar product cache: inspect and invalidate cached catalog data."""
    configure_logging(
        json_format=settings.log_json,
        level="DEBUG" if verbose else settings.log_level,
    )


@asynccontextmanager
async def _open_coordinator() -> AsyncIterator[InvalidationCoordinator]:
    """Build the cache stack from settings and release it afterwards."""
    if settings.cache_backend == "memory":
        # An in-memory store lives and dies with this process
        err_console.print(
            "[yellow]Warning:[/yellow] CACHE_BACKEND=memory gives this command its own empty "
            "cache; set CACHE_BACKEND=redis to act on the shared application cache"
        )
    backend = await create_backend(settings)
    catalog = WooCommerceCatalog.from_settings(settings) if settings.wc_url else None
    cache = CacheService(backend, catalog)
    try:
        yield InvalidationCoordinator(cache)
    finally:
        if catalog is not None:
            await catalog.close()
        await backend.close()


def _run(operation: Callable[[InvalidationCoordinator], Awaitable[Any]]) -> Any:
    async def runner() -> Any:
        async with _open_coordinator() as coordinator:
            return await operation(coordinator)

    return asyncio.run(runner())


def _print_json(data: Any) -> None:
    typer.echo(orjson.dumps(data, option=orjson.OPT_INDENT_2).decode())


def _report(action: str, success: bool, affected: int, as_json: bool) -> None:
    if as_json:
        _print_json({"action": action, "success": success, "affected_keys": affected})
    elif success:
        console.print(f"[green]✓[/green] {action}: {affected} keys invalidated")
    else:
        console.print(f"[red]✗[/red] {action} failed, cache backend unavailable")

    if not success:
        raise typer.Exit(code=1)


@app.command()
def stats(as_json: bool = JSON_OPTION) -> None:
    """Show cache configuration and entry counts."""

    async def operation(coordinator: InvalidationCoordinator) -> dict[str, Any]:
        cache = coordinator.cache
        data = await cache.get_stats()
        data["backend_reachable"] = cache.backend is not None and await cache.backend.ping()
        return data

    data = _run(operation)

    if as_json:
        _print_json(data)
        return

    table = Table(title="Cache statistics")
    table.add_column("Setting")
    table.add_column("Value", justify="right")
    for name, value in data.items():
        if name == "bulk_operations":
            continue
        table.add_row(name, str(value))
    console.print(table)


@app.command()
def flush(as_json: bool = JSON_OPTION) -> None:
    """Delete every entry under the cache prefix."""

    async def operation(coordinator: InvalidationCoordinator) -> tuple[bool, int]:
        success = await coordinator.flush_all()
        return success, coordinator.cache.last_invalidated_count

    success, affected = _run(operation)
    _report("flush", success, affected, as_json)


@app.command()
def cleanup(as_json: bool = JSON_OPTION) -> None:
    """Purge expired entries the backend does not expire itself."""
    removed = _run(lambda coordinator: coordinator.cache.cleanup_expired())

    if as_json:
        _print_json({"action": "cleanup", "removed": removed})
    else:
        console.print(f"Removed {removed} expired entries")


@app.command("invalidate-product")
def invalidate_product(
    product_ids: list[int] = typer.Argument(..., help="Product or variation IDs"),
    as_json: bool = JSON_OPTION,
) -> None:
    """Invalidate products, their variations or parents, and all lists."""

    async def operation(coordinator: InvalidationCoordinator) -> tuple[bool, int]:
        if len(product_ids) == 1:
            success = await coordinator.on_product_saved(product_ids[0])
        else:
            success = await coordinator.on_bulk_products_saved(product_ids)
        return success, coordinator.cache.last_invalidated_count

    success, affected = _run(operation)
    _report("invalidate-product", success, affected, as_json)


@app.command("invalidate-category")
def invalidate_category(
    category_ids: list[int] = typer.Argument(..., help="Product category IDs"),
    as_json: bool = JSON_OPTION,
) -> None:
    """Invalidate categories, their products, and all lists."""

    async def operation(coordinator: InvalidationCoordinator) -> tuple[bool, int]:
        if len(category_ids) == 1:
            success = await coordinator.on_category_changed(category_ids[0])
        else:
            success = await coordinator.on_bulk_categories_changed(category_ids)
        return success, coordinator.cache.last_invalidated_count

    success, affected = _run(operation)
    _report("invalidate-category", success, affected, as_json)


@app.command("invalidate-pattern")
def invalidate_pattern(
    pattern: str = typer.Argument(..., help="Glob pattern, or a key prefix"),
    as_json: bool = JSON_OPTION,
) -> None:
    """Invalidate keys matching a glob pattern or prefix."""

    async def operation(coordinator: InvalidationCoordinator) -> tuple[bool, int]:
        success = await coordinator.invalidate_pattern(pattern)
        return success, coordinator.cache.last_invalidated_count

    success, affected = _run(operation)
    _report("invalidate-pattern", success, affected, as_json)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
