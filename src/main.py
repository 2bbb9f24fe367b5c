"""Process bootstrap: build, migrate, connect, and tear down the services.

Startup order (see lifespan()):
  1. Build the store pool from settings
  2. Run migrations: fatal on failure, nothing is served
  3. Connect the cache: on failure, log and continue store-only
  4. Hand the injected ContentRepository to the caller (routes, jobs)

Maintenance commands live in src/cli.py.
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from config.settings import Settings, settings
from src.cs_common.database import PoolManager
from src.cs_common.errors import CacheUnavailableError, MigrationFailedError
from src.cs_common.redis_client import CacheClient
from src.cs_content.application.repository import ContentRepository
from src.cs_migrations.runner import MigrationRunner
from src.cs_migrations.scripts import load_scripts

logger = logging.getLogger("cs.main")


@dataclass
class ContentServices:
    """Explicit handles, built once per process and passed to callers."""

    pool: PoolManager
    cache: CacheClient
    repository: ContentRepository


def build_runner(pool: PoolManager, cfg: Settings) -> MigrationRunner:
    return MigrationRunner(
        pool,
        load_scripts(cfg.MIGRATIONS_DIR),
        table=cfg.MIGRATIONS_TABLE,
        check_order=cfg.MIGRATIONS_CHECK_ORDER,
    )


async def connect_cache(cache: CacheClient) -> None:
    """Connect, or degrade to store-only when the cache cannot be reached."""
    try:
        await cache.connect()
    except CacheUnavailableError as err:
        logger.warning("Starting without cache: %s", err.message)


async def startup(cfg: Settings = settings) -> ContentServices:
    pool = PoolManager.from_settings(cfg)
    try:
        await build_runner(pool, cfg).run()
    except MigrationFailedError:
        await pool.dispose()
        raise

    cache = CacheClient.from_settings(cfg)
    await connect_cache(cache)
    repository = ContentRepository(pool, cache, ttl=cfg.CACHE_DEFAULT_TTL)
    return ContentServices(pool=pool, cache=cache, repository=repository)


async def shutdown(services: ContentServices) -> None:
    await services.cache.close()
    await services.pool.dispose()


@asynccontextmanager
async def lifespan(cfg: Settings = settings) -> AsyncIterator[ContentServices]:
    """Startup: migrate, connect. Shutdown: close cache, dispose pool."""
    services = await startup(cfg)
    try:
        yield services
    finally:
        await shutdown(services)


