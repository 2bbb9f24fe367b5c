"""Maintenance commands for the content store.

    content-store migrate       apply pending migrations
    content-store status        list applied / pending migrations
    content-store check         ping store and cache
    content-store flush-cache   drop every items:* cache key

Exit codes: 0 success, 1 store/cache failure, 2 migration failure.
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Annotated, Any, Optional, TypeVar

import typer
from rich.console import Console

from config.settings import Settings, settings
from src.cs_common.database import PoolManager
from src.cs_common.errors import AppError, CacheUnavailableError, MigrationFailedError
from src.cs_common.redis_client import CacheClient
from src.cs_content.application.repository import ContentRepository
from src.main import build_runner

logger = logging.getLogger("cs.cli")

app = typer.Typer(
    name="content-store",
    help="Content Store maintenance commands.",
    no_args_is_help=True,
)

console = Console()

T = TypeVar("T")


def _run(work: Coroutine[Any, Any, T]) -> T:
    """Run one command body; AppError becomes a non-zero exit."""
    try:
        return asyncio.run(work)
    except MigrationFailedError as err:
        logger.error("%s", err.message)
        console.print(f"[red]Error:[/red] {err.message}")
        raise typer.Exit(2) from err
    except AppError as err:
        logger.error("%s (code %d)", err.message, err.code)
        console.print(f"[red]Error:[/red] {err.message}")
        raise typer.Exit(1) from err


# ---------------------------------------------------------------------------
# Command bodies
# ---------------------------------------------------------------------------


async def migrate_store(cfg: Settings) -> list[str]:
    pool = PoolManager.from_settings(cfg)
    try:
        return await build_runner(pool, cfg).run()
    finally:
        await pool.dispose()


async def migration_status(cfg: Settings) -> tuple[list[str], list[str]]:
    """(applied, pending). Read-only: never creates the tracking table."""
    pool = PoolManager.from_settings(cfg)
    try:
        runner = build_runner(pool, cfg)
        return await runner.applied(), await runner.pending()
    finally:
        await pool.dispose()


async def check_connections(cfg: Settings) -> list[tuple[str, bool, str]]:
    """Ping the store and the cache once each, without retries."""
    results: list[tuple[str, bool, str]] = []

    pool = PoolManager.from_settings(cfg)
    try:
        version = await pool.ping()
        results.append(("store", True, version))
    except AppError as err:
        results.append(("store", False, err.message))
    finally:
        await pool.dispose()

    cache = CacheClient(
        cfg.REDIS_URL,
        max_reconnect_attempts=0,
        socket_timeout=cfg.REDIS_SOCKET_TIMEOUT,
    )
    try:
        await cache.connect()
        results.append(("cache", True, "ready"))
    except CacheUnavailableError as err:
        results.append(("cache", False, err.message))
    finally:
        await cache.close()
    return results


async def flush_cache(cfg: Settings) -> int:
    pool = PoolManager.from_settings(cfg)
    cache = CacheClient.from_settings(cfg)
    try:
        await cache.connect()
        repository = ContentRepository(pool, cache, ttl=cfg.CACHE_DEFAULT_TTL)
        return await repository.flush_cache()
    finally:
        await cache.close()
        await pool.dispose()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.callback()
def main(
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", help="Override LOG_LEVEL for this run."),
    ] = None,
) -> None:
    """Content Store maintenance commands."""
    logging.basicConfig(
        level=(log_level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def migrate() -> None:
    """Apply pending migrations in name order."""
    applied = _run(migrate_store(settings))
    console.print(f"[green]Applied {len(applied)} migration(s)[/green]")
    for name in applied:
        console.print(f"  + {name}")


@app.command()
def status() -> None:
    """List applied and pending migrations."""
    applied, pending = _run(migration_status(settings))
    for name in applied:
        console.print(f"  [green]applied[/green]  {name}")
    for name in pending:
        console.print(f"  [yellow]pending[/yellow]  {name}")
    if not applied and not pending:
        console.print("[yellow]No migrations found.[/yellow]")


@app.command()
def check() -> None:
    """Ping the store and the cache."""
    results = _run(check_connections(settings))
    for component, ok, detail in results:
        mark = "[green]ok[/green]" if ok else "[red]FAILED[/red]"
        console.print(f"{component}: {mark} ({detail})")
    if not all(ok for _, ok, _ in results):
        raise typer.Exit(1)


@app.command("flush-cache")
def flush_cache_command() -> None:
    """Drop every cached content key."""
    removed = _run(flush_cache(settings))
    console.print(f"Removed {removed} cached key(s)")


if __name__ == "__main__":
    app()
