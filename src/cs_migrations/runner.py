"""MigrationRunner — ordered, idempotent, fail-fast schema migrations.

Run once at process startup, before any traffic:

  1. CREATE TABLE IF NOT EXISTS <tracking table>
  2. Order scripts by name
  3. Per script, in its own transaction: skip if its name is recorded,
     otherwise execute its statements and record the name, then COMMIT
  4. On any error: ROLLBACK that script and abort the run

Recording happens in the same transaction as the script, so "applied" and
"recorded" are atomic together. Re-running after a full success is a no-op.

Not safe for concurrent runs against the same store. Deployments with more
than one instance must serialize runs externally (leader election, advisory
lock, a dedicated release job).
"""

import logging
import re
from collections.abc import Iterable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from src.cs_common.database import ConnectionPoolProtocol
from src.cs_common.datetime_utils import utc_now
from src.cs_common.errors import AppError, MigrationFailedError
from src.cs_migrations.scripts import MigrationScript, order_scripts

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


class MigrationRunner:
    def __init__(
        self,
        pool: ConnectionPoolProtocol,
        scripts: Iterable[MigrationScript],
        table: str = "schema_migrations",
        check_order: bool = True,
    ) -> None:
        if not _IDENTIFIER_RE.match(table):
            raise MigrationFailedError(None, f"invalid tracking table name: {table!r}")
        self._pool = pool
        self._scripts = order_scripts(scripts)
        self._table = table
        self._check_order = check_order

        self._create_table_sql = text(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id          SERIAL          PRIMARY KEY,
                name        TEXT            NOT NULL UNIQUE,
                applied_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW()
            )
        """)
        self._is_applied_sql = text(f"SELECT 1 FROM {table} WHERE name = :name")
        self._record_sql = text(
            f"INSERT INTO {table} (name, applied_at) VALUES (:name, :applied_at)"
        )
        self._list_applied_sql = text(f"SELECT name FROM {table} ORDER BY name")
        self._table_exists_sql = text("SELECT to_regclass(:table) IS NOT NULL")

    @property
    def script_names(self) -> list[str]:
        return [s.name for s in self._scripts]

    async def run(self) -> list[str]:
        """Apply pending scripts in order. Returns the names applied by this run.

        Raises MigrationFailedError on any failure; the caller must not serve
        traffic afterwards.
        """
        try:
            await self._ensure_table()
            if self._check_order:
                await self._verify_order()
        except MigrationFailedError:
            raise
        except Exception as err:
            logger.error("Migration bootstrap failed: %s", err)
            raise MigrationFailedError(None, str(err)) from err

        applied: list[str] = []
        for script in self._scripts:
            if await self._apply(script):
                applied.append(script.name)

        logger.info(
            "Migrations complete: %d applied, %d already up to date",
            len(applied),
            len(self._scripts) - len(applied),
        )
        return applied

    async def applied(self) -> list[str]:
        """Names recorded in the tracking table, in name order.

        Read-only: a store without the tracking table has applied nothing.
        """
        async with self._pool.connection() as conn:
            exists = await conn.execute(self._table_exists_sql, {"table": self._table})
            if not exists.scalar():
                return []
            result = await conn.execute(self._list_applied_sql)
            return [row.name for row in result.fetchall()]

    async def pending(self) -> list[str]:
        done = set(await self.applied())
        return [name for name in self.script_names if name not in done]

    async def _ensure_table(self) -> None:
        async with self._pool.transaction() as conn:
            await conn.execute(self._create_table_sql)

    async def _verify_order(self) -> None:
        """Reject a pending script that sorts before an already-applied one."""
        done = await self.applied()
        if not done:
            return
        newest = max(done)
        applied_set = set(done)
        for name in self.script_names:
            if name not in applied_set and name < newest:
                raise MigrationFailedError(
                    name, f"not yet applied but sorts before applied migration {newest}"
                )

    async def _apply(self, script: MigrationScript) -> bool:
        """Apply one script in its own transaction. False when already recorded."""
        try:
            async with self._pool.transaction() as conn:
                if await self._is_recorded(conn, script.name):
                    logger.debug("Migration %s already applied; skipping", script.name)
                    return False
                for statement in script.statements:
                    logger.debug("Migration %s: %s", script.name, statement)
                    await conn.exec_driver_sql(statement)
                await conn.execute(
                    self._record_sql, {"name": script.name, "applied_at": utc_now()}
                )
        except Exception as err:
            detail = err.message if isinstance(err, AppError) else str(err)
            logger.error("Migration %s failed, rolled back: %s", script.name, detail)
            raise MigrationFailedError(script.name, detail) from err

        logger.info("Applied migration %s", script.name)
        return True

    async def _is_recorded(self, conn: AsyncConnection, name: str) -> bool:
        result = await conn.execute(self._is_applied_sql, {"name": name})
        return result.fetchone() is not None
