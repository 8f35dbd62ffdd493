"""Run pending schema migrations after an import."""

from dbsync.core.config import MigrationsConfig
from dbsync.core.exceptions import ExecutionError, MigrationError
from dbsync.core.executor import CommandExecutor

# Environment variable naming the connection being migrated
CONNECTION_ENV = "DBSYNC_CONNECTION"


class MigrationRunner:
    """Apply migrations with the configured command."""

    def __init__(self, executor: CommandExecutor, config: MigrationsConfig) -> None:
        self.executor = executor
        self.config = config

    def apply(self, connection: str) -> bool:
        """Run the migration command for a connection.

        Returns:
            False when no command is configured, True after a successful run

        Raises:
            MigrationError: If the command fails
        """
        if not self.config.command:
            self.executor.ctx.console.warn(
                "No migration command configured, skipping migrations."
            )
            return False

        try:
            result = self.executor.run(
                list(self.config.command),
                description="Running migrations...",
                check=False,
                env={CONNECTION_ENV: connection},
                cwd=self.config.cwd,
            )
        except ExecutionError as e:
            raise MigrationError(e.message, hint=e.hint, details=e.details) from e

        if not result.success:
            output = (result.stderr or result.stdout).strip()
            raise MigrationError(
                "Migrations failed.",
                details=[f"Exit code: {result.return_code}"] + ([output] if output else []),
                hint="The local database holds the imported data but its schema is not migrated",
            )

        self.executor.ctx.console.success("Migrations applied.")
        return True
