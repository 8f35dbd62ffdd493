"""Run options and the resolved, immutable plan for one sync run.

The plan is built once from the loaded configuration and the command line
options, then handed to every stage. Stages never read configuration on
their own.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dbsync.core.config import (
    AppConfig,
    BinConfig,
    ConnectionProfile,
    DumpOptions,
    HookSetConfig,
    MigrationsConfig,
    SSHConfig,
)
from dbsync.core.exceptions import ConfigurationError, SyncError


@dataclass(frozen=True)
class SyncOptions:
    """Options recognized by the synchronize operation."""
    no_migrations: bool = False
    dump_file: Optional[Path] = None
    delete_local_dump: bool = False
    tables_no_data: tuple[str, ...] = ()
    keep_definers: Optional[bool] = None
    connection: Optional[str] = None


@dataclass(frozen=True)
class SyncPlan:
    """Everything a run needs, resolved up front.

    Attributes:
        connection: Name of the local connection being replaced
        target: Local connection profile the dump is imported into
        source: Remote database profile, as reachable from the SSH host
        ssh: Remote SSH settings
        dump_options: Dump tuning for the target's engine
        run_migrations: False when --no-migrations was given or a
            non-default connection is targeted
    """

    connection: str
    target: ConnectionProfile
    source: ConnectionProfile
    ssh: SSHConfig
    dump_options: DumpOptions
    bins: BinConfig
    post_dump: HookSetConfig
    post_import: HookSetConfig
    migrations: MigrationsConfig
    run_migrations: bool = True
    delete_local_dump: bool = False
    dump_file: Optional[Path] = None

    @property
    def engine(self) -> str:
        return self.target.driver

    @classmethod
    def resolve(cls, app_config: AppConfig, options: SyncOptions) -> "SyncPlan":
        """Build the plan for a run.

        Raises:
            ConfigurationError: If the connection is unknown or an override
                is invalid
        """
        settings = app_config.config
        connection = options.connection or settings.default_connection
        target = settings.connection(connection)

        run_migrations = (
            not options.no_migrations and connection == settings.default_connection
        )

        return cls(
            connection=connection,
            target=target,
            source=settings.database.to_profile(target.driver),
            ssh=settings.ssh,
            dump_options=_resolve_dump_options(app_config, target.driver, options),
            bins=settings.bin,
            post_dump=settings.post_dump_scripts,
            post_import=settings.post_scripts,
            migrations=settings.migrations,
            run_migrations=run_migrations,
            delete_local_dump=options.delete_local_dump,
            dump_file=options.dump_file,
        )


def _resolve_dump_options(
    app_config: AppConfig,
    engine: str,
    options: SyncOptions,
) -> DumpOptions:
    """Merge engine defaults, the remote database section and run overrides.

    Precedence, lowest first: engine defaults, dump_options.<engine>,
    database.max_allowed_packet / database.tables_no_data, command line.
    """
    settings = app_config.config
    merged = settings.dump_options.for_engine(engine).model_dump()

    if settings.database.max_allowed_packet:
        merged["max_allowed_packet"] = settings.database.max_allowed_packet
    if settings.database.tables_no_data:
        merged["tables_no_data"] = tuple(settings.database.tables_no_data)
    if options.tables_no_data:
        merged["tables_no_data"] = tuple(options.tables_no_data)
    if options.keep_definers is not None:
        merged["keep_definers"] = options.keep_definers

    try:
        return DumpOptions(**merged)
    except SyncError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Invalid dump options: {e}",
            details=[str(e)],
        ) from e
