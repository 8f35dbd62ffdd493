"""Per-engine dump/import command builders."""

from typing import Callable, Optional

from dbsync.core.config import BinConfig
from dbsync.core.exceptions import DriverNotFoundError
from dbsync.drivers.base import DatabaseDriver
from dbsync.drivers.mysql import MySQLDriver, probe_client_version
from dbsync.drivers.postgresql import PostgreSQLDriver, build_uri

SUPPORTED_ENGINES = ("mysql", "mariadb", "pgsql")


def select_driver(
    engine: Optional[str],
    bins: Optional[BinConfig] = None,
    *,
    version_probe: Optional[Callable[[str], str]] = None,
) -> MySQLDriver | PostgreSQLDriver:
    """Pick the command builder for a connection's declared engine.

    Args:
        engine: Driver name from the local connection profile
        bins: Client binary overrides
        version_probe: Replacement for the mysql ``--version`` probe

    Raises:
        DriverNotFoundError: If the engine is not supported
    """
    bins = bins or BinConfig()
    match engine:
        case "mysql" | "mariadb":
            return MySQLDriver(
                name=engine,
                mysql_bin=bins.mysql,
                mysqldump_bin=bins.mysqldump,
                version_probe=version_probe or probe_client_version,
            )
        case "pgsql":
            return PostgreSQLDriver(
                name="pgsql",
                pg_dump_bin=bins.pg_dump,
                pg_restore_bin=bins.pg_restore,
                psql_bin=bins.psql,
            )
        case _:
            raise DriverNotFoundError(
                f'Driver "{engine}" not found.',
                hint=f"Supported drivers: {', '.join(SUPPORTED_ENGINES)}",
            )


__all__ = [
    "DatabaseDriver",
    "MySQLDriver",
    "PostgreSQLDriver",
    "SUPPORTED_ENGINES",
    "build_uri",
    "select_driver",
]
