# tests/unit/test_cli.py
"""Tests for the content-store maintenance commands."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from src import cli
from src.cs_common.errors import (
    CacheUnavailableError,
    MigrationFailedError,
    StoreConnectionError,
)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def pool():
    pool = MagicMock()
    pool.dispose = AsyncMock()
    pool.ping = AsyncMock(return_value="PostgreSQL 16.2")
    return pool


@pytest.fixture
def cache():
    cache = MagicMock()
    cache.connect = AsyncMock()
    cache.close = AsyncMock()
    cache.delete_pattern = AsyncMock(return_value=3)
    return cache


@pytest.fixture
def migrations():
    migrations = MagicMock()
    migrations.run = AsyncMock(return_value=["001_create_common_functions"])
    migrations.applied = AsyncMock(return_value=["001_create_common_functions"])
    migrations.pending = AsyncMock(return_value=["002_create_content_items"])
    return migrations


@pytest.fixture
def wired(pool, cache, migrations):
    with patch.object(cli.PoolManager, "from_settings", return_value=pool), \
            patch.object(cli.CacheClient, "from_settings", return_value=cache), \
            patch.object(cli, "build_runner", return_value=migrations):
        yield


class TestHelp:
    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli.app, ["--help"])
        assert result.exit_code == 0
        for command in ("migrate", "status", "check", "flush-cache"):
            assert command in result.output

    def test_unknown_command_rejected(self, runner):
        result = runner.invoke(cli.app, ["rollback"])
        assert result.exit_code != 0


class TestMigrate:
    def test_reports_applied_and_disposes_pool(self, runner, wired, pool):
        result = runner.invoke(cli.app, ["migrate"])

        assert result.exit_code == 0
        assert "Applied 1 migration(s)" in result.output
        assert "001_create_common_functions" in result.output
        pool.dispose.assert_awaited_once()

    def test_migration_failure_exits_2(self, runner, wired, migrations, pool):
        migrations.run.side_effect = MigrationFailedError("002_create_content_items", "boom")

        result = runner.invoke(cli.app, ["migrate"])

        assert result.exit_code == 2
        pool.dispose.assert_awaited_once()


class TestStatus:
    def test_lists_applied_and_pending(self, runner, wired):
        result = runner.invoke(cli.app, ["status"])

        assert result.exit_code == 0
        assert "applied" in result.output
        assert "002_create_content_items" in result.output

    def test_store_outage_exits_1_without_traceback(self, runner, wired, migrations):
        migrations.applied.side_effect = StoreConnectionError("connection refused")

        result = runner.invoke(cli.app, ["status"])

        assert result.exit_code == 1
        assert "connection refused" in result.output
        assert not isinstance(result.exception, StoreConnectionError)


class TestCheck:
    def test_both_reachable(self, runner, pool):
        client = MagicMock()
        client.connect = AsyncMock()
        client.close = AsyncMock()
        with patch.object(cli.PoolManager, "from_settings", return_value=pool), \
                patch.object(cli, "CacheClient", return_value=client):
            result = runner.invoke(cli.app, ["check"])

        assert result.exit_code == 0
        assert "PostgreSQL 16.2" in result.output

    def test_cache_down_exits_1(self, runner, pool):
        client = MagicMock()
        client.connect = AsyncMock(side_effect=CacheUnavailableError("refused"))
        client.close = AsyncMock()
        with patch.object(cli.PoolManager, "from_settings", return_value=pool), \
                patch.object(cli, "CacheClient", return_value=client):
            result = runner.invoke(cli.app, ["check"])

        assert result.exit_code == 1
        assert "FAILED" in result.output
        client.close.assert_awaited_once()


class TestFlushCache:
    def test_flushes_through_repository(self, runner, wired, cache):
        with patch.object(
            cli.ContentRepository, "flush_cache", AsyncMock(return_value=3)
        ) as flush:
            result = runner.invoke(cli.app, ["flush-cache"])

        assert result.exit_code == 0
        assert "Removed 3 cached key(s)" in result.output
        flush.assert_awaited_once()
        cache.close.assert_awaited_once()

    def test_sweeps_item_keys(self, runner, wired, cache):
        result = runner.invoke(cli.app, ["flush-cache"])

        assert result.exit_code == 0
        cache.delete_pattern.assert_awaited_once_with("items:*")

    def test_cache_unreachable_exits_1(self, runner, wired, cache, pool):
        cache.connect.side_effect = CacheUnavailableError("refused")

        result = runner.invoke(cli.app, ["flush-cache"])

        assert result.exit_code == 1
        cache.close.assert_awaited_once()
        pool.dispose.assert_awaited_once()
