"""Local replace-and-import stage.

Wipes the local target database, loads the dump with the engine's
client, then deletes the dump (when asked), migrates and runs the
post-import hooks. A failed import leaves the local database empty and
keeps the dump file so the run can be retried with --dump-file.
"""

import shutil
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from dbsync.core.context import ExecutionContext
from dbsync.core.exceptions import FileSystemError, LocalSubprocessError
from dbsync.core.executor import CommandExecutor, mask_secrets
from dbsync.drivers import DatabaseDriver, MySQLDriver, PostgreSQLDriver
from dbsync.services.hooks import HookRunner
from dbsync.services.migrations import MigrationRunner
from dbsync.services.plan import SyncPlan
from dbsync.services.progress import (
    MonotonicProgress,
    ProgressSink,
    ProgressUnit,
    null_sink,
)

PG_WIPE_SQL = "DROP SCHEMA public CASCADE; CREATE SCHEMA public;"
MYSQL_LIST_TABLES_SQL = "SHOW FULL TABLES"


def quote_mysql_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def mysql_drop_statements(listing: str) -> Optional[str]:
    """Build one batch dropping every table and view of a ``SHOW FULL TABLES`` listing.

    Foreign key checks are disabled for the batch so tables can be dropped
    in any order.
    """
    drops = []
    for line in listing.splitlines():
        if not line.strip():
            continue
        name, _, table_type = line.partition("\t")
        kind = "VIEW" if table_type.strip().upper() == "VIEW" else "TABLE"
        drops.append(f"DROP {kind} IF EXISTS {quote_mysql_identifier(name)};")

    if not drops:
        return None
    return " ".join(["SET FOREIGN_KEY_CHECKS=0;", *drops, "SET FOREIGN_KEY_CHECKS=1;"])


def parse_pv_line(line: str) -> Optional[int]:
    """Percentage from a ``pv -n`` line, None for any other output."""
    value = line.strip()
    if value.isdigit():
        return int(value)
    return None


class LocalImportStage:
    """Replace the local database with a dump."""

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        plan: SyncPlan,
        driver: DatabaseDriver,
        *,
        progress: ProgressSink = null_sink,
        hooks: Optional[HookRunner] = None,
        migrations: Optional[MigrationRunner] = None,
    ) -> None:
        self.ctx = ctx
        self.executor = executor
        self.plan = plan
        self.driver = driver
        self.progress = progress
        self.hooks = hooks or HookRunner(ctx.console)
        self.migrations = migrations or MigrationRunner(executor, plan.migrations)

    @property
    def _secrets(self) -> tuple[str, ...]:
        password = self.plan.target.password
        if not password:
            return ()
        return (password, quote(password, safe=""))

    def wipe(self) -> None:
        """Drop every object of the local target database.

        Raises:
            ExecutionError: If the database client fails
        """
        target = self.plan.target

        match self.driver:
            case PostgreSQLDriver():
                self.executor.run(
                    self.driver.build_query_command(target, PG_WIPE_SQL),
                    description="Dropping local database...",
                    secrets=self._secrets,
                )
            case MySQLDriver():
                listing = self.executor.run(
                    self.driver.build_query_command(target, MYSQL_LIST_TABLES_SQL),
                    description="Dropping local database...",
                    secrets=self._secrets,
                )
                statements = mysql_drop_statements(listing.stdout)
                if statements is None:
                    self.ctx.console.debug("Local database is already empty")
                    return
                self.executor.run(
                    self.driver.build_query_command(target, statements),
                    secrets=self._secrets,
                )
            case _:
                raise TypeError(f"Unsupported driver: {self.driver!r}")

    def import_dump(self, dump: Path) -> None:
        """Load the dump into the local database.

        Input goes through ``pv -n`` when the binary is installed so the
        import reports progress; otherwise it is redirected directly.

        Raises:
            LocalSubprocessError: If the import exits non-zero
        """
        progress_binary = None
        if self.driver.supports_piped_input:
            progress_binary = shutil.which(self.plan.bins.pv)

        command = self.driver.build_import_command(
            self.plan.target,
            str(dump),
            progress_binary=progress_binary,
        )
        tracker = MonotonicProgress(
            self.progress, "import", total=100, unit=ProgressUnit.PERCENT
        )

        def on_line(line: str) -> bool:
            percent = parse_pv_line(line) if progress_binary else None
            if percent is None:
                return False
            tracker.update(percent)
            return True

        result = self.executor.stream(
            ["sh", "-c", command],
            on_line=on_line,
            description="Importing...",
            secrets=self._secrets,
        )

        if not result.success:
            raise LocalSubprocessError(
                "There was an error during the import.",
                command=mask_secrets(command, self._secrets),
                return_code=result.return_code,
                stderr=result.stdout or None,
                hint=f"The local database may be empty. The dump was kept: retry with --dump-file {dump}",
            )
        tracker.finish()

    def delete_dump(self, dump: Path) -> None:
        try:
            dump.unlink(missing_ok=True)
        except OSError as e:
            raise FileSystemError(
                f"Cannot delete local dump: {dump}",
                details=[str(e)],
            ) from e
        self.ctx.console.info("Local dump deleted.")

    def run(self, dump: Path) -> None:
        """Wipe, import, then the post-import steps, in that order."""
        self.wipe()
        self.import_dump(dump)

        if self.plan.delete_local_dump:
            self.delete_dump(dump)

        if self.plan.run_migrations:
            self.migrations.apply(self.plan.connection)

        self.hooks.run_post_import(self.plan.post_import)
