"""Main CLI entry point using Typer.

This module defines the root CLI application, the sync command and the
config command group.
"""

from pathlib import Path
from typing import Optional, Annotated

import typer
from rich.console import Console

from dbsync import __version__
from dbsync.core.audit import (
    AuditEventType,
    AuditResult,
    configure_audit_logger,
)
from dbsync.core.context import ExecutionContext, create_context
from dbsync.core.output import console as app_console
from dbsync.core.config import (
    DEFAULT_CONFIG_PATH,
    AppConfig,
    SyncSettings,
    get_example_config,
    init_config,
)
from dbsync.core.exceptions import SyncError
from dbsync.drivers import SUPPORTED_ENGINES
from dbsync.services.pipeline import run_sync
from dbsync.services.plan import SyncOptions
from dbsync.services.progress import ProgressRenderer


# Create the main Typer app
app = typer.Typer(
    name="dbsync",
    help="Database Sync CLI - Replace a local database with a copy of a remote one.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

config_app = typer.Typer(
    name="config",
    help="Configuration management.",
    no_args_is_help=True,
)

app.add_typer(config_app, name="config")


# Type aliases for common options
ForceOption = Annotated[
    bool,
    typer.Option(
        "--force",
        "-f",
        help="Overwrite an existing configuration file.",
        is_flag=True,
    ),
]

YesOption = Annotated[
    bool,
    typer.Option(
        "--yes",
        "-y",
        help="Skip the production confirmation prompt.",
        is_flag=True,
    ),
]

VerboseOption = Annotated[
    int,
    typer.Option(
        "--verbose",
        "-v",
        count=True,
        help="Increase output verbosity. Can be repeated (-v, -vv).",
    ),
]

QuietOption = Annotated[
    bool,
    typer.Option(
        "--quiet",
        "-q",
        help="Suppress non-essential output. Only show errors.",
        is_flag=True,
    ),
]

NoColorOption = Annotated[
    bool,
    typer.Option(
        "--no-color",
        help="Disable colored output.",
        is_flag=True,
    ),
]

NoAuditOption = Annotated[
    bool,
    typer.Option(
        "--no-audit",
        help="Do not write the audit log.",
        is_flag=True,
    ),
]

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help=f"Path to configuration file. Default: {DEFAULT_CONFIG_PATH}",
        exists=False,
        file_okay=True,
        dir_okay=False,
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console = Console()
        console.print(f"dbsync version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Database Sync CLI - Replace a local database with a copy of a remote one.

    Dumps the remote database over SSH, downloads it, wipes the local
    database and imports the dump, then runs migrations and hooks.

    [bold]Examples:[/bold]
        dbsync sync
        dbsync sync --dump-file /tmp/backup.sql.gz --delete-local-dump
        dbsync sync --connection reporting --tables-no-data sessions
        dbsync config show
    """
    pass


def get_context(
    yes: bool = False,
    verbose: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    audit: bool = True,
    config: Optional[Path] = None,
) -> ExecutionContext:
    """Create execution context from CLI options.

    This is a helper for commands to create a context from global options.
    """
    return create_context(
        yes=yes,
        verbose=verbose,
        quiet=quiet,
        no_color=no_color,
        audit=audit,
        config=config,
    )


def handle_error(error: SyncError) -> None:
    """Handle a SyncError by printing formatted error and exiting."""
    app_console.error(error.message)

    if error.details:
        for detail in error.details:
            app_console.detail(detail)

    if error.hint:
        app_console.hint(error.hint)

    raise typer.Exit(error.exit_code)


# ============================================================================
# Sync command
# ============================================================================

@app.command("sync")
def sync_cmd(
    no_migrations: Annotated[
        bool,
        typer.Option(
            "--no-migrations",
            help="Do not execute pending migrations.",
            is_flag=True,
        ),
    ] = False,
    dump_file: Annotated[
        Optional[Path],
        typer.Option(
            "--dump-file",
            help="Directly import the database from this file (.sql or .sql.gz).",
            dir_okay=False,
        ),
    ] = None,
    delete_local_dump: Annotated[
        bool,
        typer.Option(
            "--delete-local-dump",
            help="Delete the local dump after the import is completed.",
            is_flag=True,
        ),
    ] = False,
    tables_no_data: Annotated[
        Optional[list[str]],
        typer.Option(
            "--tables-no-data",
            "-t",
            help="Dump this table's structure without its rows. Can be repeated.",
        ),
    ] = None,
    keep_definers: Annotated[
        Optional[bool],
        typer.Option(
            "--keep-definers/--strip-definers",
            help="Keep or strip DEFINER clauses (MySQL/MariaDB). Default from config.",
            show_default=False,
        ),
    ] = None,
    connection: Annotated[
        Optional[str],
        typer.Option(
            "--connection",
            help="Connection to import the database to. Migrations only run on the default one.",
        ),
    ] = None,
    yes: YesOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    no_audit: NoAuditOption = False,
    config: ConfigOption = None,
) -> None:
    """Replace a local database with the remote one.

    [bold]Steps:[/bold]
    - Dump the remote database over SSH (or use --dump-file)
    - Download and decompress the dump
    - Drop every table of the local database
    - Import the dump, then run migrations and post scripts

    [bold red]Destructive:[/bold red] the local database is wiped before
    the import. A failed import leaves it empty.

    [bold]Examples:[/bold]

        # Full sync into the default connection
        dbsync sync

        # Import an existing dump and remove it afterwards
        dbsync sync --dump-file /tmp/prod.sql.gz --delete-local-dump

        # Skip rows of large tables
        dbsync sync -t sessions -t audit_log
    """
    ctx = get_context(
        yes=yes,
        verbose=verbose,
        quiet=quiet,
        no_color=no_color,
        audit=not no_audit,
        config=config,
    )
    audit = configure_audit_logger(enabled=ctx.audit)

    options = SyncOptions(
        no_migrations=no_migrations,
        dump_file=dump_file,
        delete_local_dump=delete_local_dump,
        tables_no_data=tuple(tables_no_data or ()),
        keep_definers=keep_definers,
        connection=connection,
    )

    try:
        if ctx.config.is_production and ctx.should_confirm:
            ctx.console.warn("Application in production.")
            if not ctx.console.confirm("Do you really wish to run this command?"):
                audit.log_operation(
                    AuditEventType.SYNC_START,
                    AuditResult.BLOCKED,
                    target_type="connection",
                    target_name=connection or ctx.config.config.default_connection,
                    operation="sync",
                    message="Declined at the production confirmation",
                )
                ctx.console.warn("Command cancelled.")
                raise typer.Exit(1)

        with ProgressRenderer(ctx.console) as progress:
            run_sync(ctx, options, progress=progress)

    except SyncError as e:
        handle_error(e)


# ============================================================================
# Config commands
# ============================================================================

@config_app.command("show")
def config_show(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Show current configuration.

    Displays the loaded configuration from the config file.
    Passwords are masked.
    """
    ctx = get_context(verbose=verbose, no_color=no_color, config=config)

    try:
        app_config = ctx.config

        ctx.console.print()
        ctx.console.print(f"[bold]Configuration file:[/bold] {ctx.config_path}")
        ctx.console.print(f"[bold]File exists:[/bold] {ctx.config_path.exists()}")
        ctx.console.print()

        ctx.console.yaml(app_config.config.to_yaml(), title="Configuration")

        # Show secrets status (not values)
        ctx.console.summary("Secrets (from environment)", {
            "SYNC_SSH_PASSWORD": "Set" if app_config.secrets.ssh_password else "Not set",
            "SYNC_DATABASE_PASSWORD": "Set" if app_config.secrets.database_password else "Not set",
        })

    except SyncError as e:
        handle_error(e)


@config_app.command("init")
def config_init(
    config: ConfigOption = None,
    force: ForceOption = False,
    no_color: NoColorOption = False,
) -> None:
    """Initialize a new configuration file.

    Creates a configuration file with example values and comments.
    """
    ctx = get_context(no_color=no_color, config=config)
    config_path = ctx.config_path

    try:
        init_config(config_path, force=force)
        ctx.console.success(f"Configuration file created: {config_path}")
        ctx.console.info("Edit the file to point at your servers, then run: dbsync sync")
        ctx.console.hint("Set passwords via SYNC_SSH_PASSWORD / SYNC_DATABASE_PASSWORD")

    except SyncError as e:
        handle_error(e)


@config_app.command("validate")
def config_validate(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Validate configuration file.

    Checks that the configuration file exists, is valid YAML,
    and all values pass validation.
    """
    ctx = get_context(verbose=verbose, no_color=no_color, config=config)

    try:
        # Raises ConfigurationError if missing or invalid
        settings = AppConfig(
            config_path=ctx.config_path,
            config=SyncSettings.load(ctx.config_path),
        ).config

        ctx.console.success(f"Configuration is valid: {ctx.config_path}")

        if ctx.is_verbose:
            ctx.console.yaml(settings.to_yaml())

        # Check for missing recommended settings
        warnings = []

        if settings.default_connection not in settings.connections:
            warnings.append(
                f"Default connection '{settings.default_connection}' is not configured"
            )

        for name, profile in settings.connections.items():
            if profile.driver not in SUPPORTED_ENGINES:
                warnings.append(f"Connection '{name}' uses unsupported driver '{profile.driver}'")

        missing_ssh = settings.ssh.missing_fields()
        if missing_ssh:
            warnings.append(f"SSH settings incomplete: {', '.join(missing_ssh)}")

        if not settings.database.name or not settings.database.user:
            warnings.append("Remote database name or user not set")

        if not settings.migrations.command:
            warnings.append("No migration command configured, migrations will be skipped")

        if warnings:
            ctx.console.print()
            for warning in warnings:
                ctx.console.warn(warning)

    except SyncError as e:
        handle_error(e)


@config_app.command("example")
def config_example(no_color: NoColorOption = False) -> None:
    """Print example configuration file.

    Outputs a complete example configuration with comments.
    Useful as a starting point for creating your own config.
    """
    ctx = get_context(no_color=no_color)
    example = get_example_config()
    ctx.console.print(example, markup=False)


if __name__ == "__main__":
    app()
