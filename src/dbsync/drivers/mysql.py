"""MySQL / MariaDB command builder.

Dumps use mysqldump with a consistent snapshot (``--single-transaction``).
Tables listed as "no data" are excluded from the main pass and dumped
again structure-only, appended to the same file, because a single
mysqldump run cannot both ignore a table and include its structure.

Import disables TLS for the local connection. MariaDB and MySQL clients
spell that flag differently, so the installed client is probed once.
"""

import re
import shlex
import subprocess
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Callable, ClassVar, Optional

from dbsync.core.config import ConnectionProfile, DumpOptions
from dbsync.core.exceptions import PrerequisiteError
from dbsync.drivers.base import (
    feed_input,
    redirect_output,
    require_profile,
    shell_join,
)

# Blanks DEFINER=`user`@`host` clauses up to the closing comment marker
DEFINER_FILTER = r"sed -e 's/DEFINER[ ]*=[ ]*[^*]*\*/\*/'"

# Scratch file next to the dump while the filter rewrites it
FILTERED_SUFFIX = ".filtered"

# --ssl-mode appeared in MySQL 5.7.11; older clients only know --ssl=0
SSL_MODE_MIN_VERSION = (5, 7, 11)

DISTRIB_PATTERN = re.compile(r"Distrib\s+(\d+)\.(\d+)\.(\d+)")
VER_PATTERN = re.compile(r"Ver\s+(\d+)\.(\d+)\.(\d+)")


@lru_cache(maxsize=None)
def probe_client_version(binary: str) -> str:
    """Return the ``--version`` banner of a mysql client binary.

    Raises:
        PrerequisiteError: If the binary cannot be executed
    """
    try:
        result = subprocess.run(
            [binary, "--version"],
            capture_output=True,
            text=True,
            timeout=30,
        )
    except (FileNotFoundError, PermissionError, subprocess.TimeoutExpired) as e:
        raise PrerequisiteError(
            f"Cannot run MySQL client: {binary}",
            hint="Install the mysql/mariadb client or set bin.mysql in the configuration",
            details=[str(e)],
        ) from e
    return (result.stdout or result.stderr).strip()


def parse_client_version(banner: str) -> Optional[tuple[int, int, int]]:
    """Extract the client version from a ``mysql --version`` banner.

    ``Distrib`` wins over ``Ver`` because old banners report the protocol
    version ("Ver 14.14 Distrib 5.7.10").
    """
    match = DISTRIB_PATTERN.search(banner) or VER_PATTERN.search(banner)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2)), int(match.group(3))


def tls_disable_flag(banner: str) -> Optional[str]:
    """Pick the TLS-disable flag understood by the probed client."""
    if not banner:
        return None
    if "mariadb" in banner.lower():
        return "--skip-ssl"
    version = parse_client_version(banner)
    if version is not None and version < SSL_MODE_MIN_VERSION:
        return "--ssl=0"
    return "--ssl-mode=DISABLED"


def client_args(profile: ConnectionProfile) -> list[str]:
    """Host, port, user and password flags shared by mysql and mysqldump."""
    args = ["-h", profile.host]
    if profile.port:
        args.extend(["-P", str(profile.port)])
    args.extend(["-u", profile.username])
    if profile.password:
        # -p takes its value attached; a space would prompt instead
        args.append(f"-p{profile.password}")
    return args


@dataclass(frozen=True)
class MySQLDriver:
    """Command builder for MySQL and MariaDB."""

    name: str = "mysql"
    mysql_bin: str = "mysql"
    mysqldump_bin: str = "mysqldump"
    version_probe: Callable[[str], str] = field(default=probe_client_version, repr=False)

    supports_piped_input: ClassVar[bool] = True

    def _output_filter(self, options: DumpOptions) -> Optional[str]:
        # Qualifier removal and DEFINER stripping are alternative policies
        if options.remove_database_qualifier:
            return rf"sed -e 's/`{options.remove_database_qualifier}`\.//g'"
        if not options.keep_definers:
            return DEFINER_FILTER
        return None

    def _dump_line(self, args: list[str], output_path: str, *, append: bool) -> str:
        return redirect_output(shell_join(args), output_path, append=append)

    def _filter_line(self, options: DumpOptions, output_path: str) -> Optional[str]:
        """Rewrite the finished dump in place through the output filter.

        Runs as its own command so that a failed mysqldump is not masked
        by the exit status of sed.
        """
        output_filter = self._output_filter(options)
        if output_filter is None:
            return None
        path = shlex.quote(output_path)
        filtered = shlex.quote(output_path + FILTERED_SUFFIX)
        return (
            f"{output_filter} {path} > {filtered} && mv {filtered} {path}"
            f" || {{ rm -f {filtered}; exit 1; }}"
        )

    def build_dump_commands(
        self,
        source: ConnectionProfile,
        options: DumpOptions,
        output_path: str,
    ) -> list[str]:
        """Build the mysqldump command lines, run in order on the remote host.

        The first line writes the full dump minus the rows of every
        "no data" table; each following line appends one of those tables
        structure-only. When a DEFINER or qualifier filter applies, a last
        line rewrites the whole file through sed.
        """
        require_profile(source, "remote")

        base = [self.mysqldump_bin]
        if options.max_allowed_packet:
            base.append(f"--max_allowed_packet={options.max_allowed_packet}")
        base.extend(["--no-tablespaces", "--single-transaction"])
        base.extend(client_args(source))

        ignored = [
            f"--ignore-table={source.database}.{table}"
            for table in options.tables_no_data
        ]
        commands = [
            self._dump_line(base + ignored + [source.database], output_path, append=False)
        ]
        for table in options.tables_no_data:
            commands.append(
                self._dump_line(
                    base + ["--no-data", source.database, table],
                    output_path,
                    append=True,
                )
            )
        filter_line = self._filter_line(options, output_path)
        if filter_line:
            commands.append(filter_line)
        return commands

    def _connection_args(self, target: ConnectionProfile) -> list[str]:
        args = [self.mysql_bin, *client_args(target)]
        flag = tls_disable_flag(self.version_probe(self.mysql_bin))
        if flag:
            args.append(flag)
        return args

    def build_import_command(
        self,
        target: ConnectionProfile,
        input_path: str,
        *,
        progress_binary: Optional[str] = None,
    ) -> str:
        """Build the mysql command line that loads the dump locally."""
        require_profile(target, "local", require_password=False, require_port=False)
        command = shell_join(self._connection_args(target) + [target.database])
        return feed_input(command, input_path, progress_binary=progress_binary)

    def build_query_command(self, target: ConnectionProfile, sql: str) -> list[str]:
        """argv running sql in batch mode without column headers."""
        require_profile(target, "local", require_password=False, require_port=False)
        return self._connection_args(target) + ["-N", "-B", "-e", sql, target.database]
