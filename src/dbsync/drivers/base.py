"""Shared pieces of the per-engine command builders.

Drivers only build command lines; nothing here executes anything.
Arguments are shell-quoted individually and joined with the redirections
and pipes the dump/import steps need.
"""

import shlex
from typing import Protocol, Sequence

from dbsync.core.config import ConnectionProfile, DumpOptions
from dbsync.core.exceptions import ConfigurationError


class DatabaseDriver(Protocol):
    """Interface shared by every engine variant."""

    name: str
    supports_piped_input: bool

    def build_dump_commands(
        self,
        source: ConnectionProfile,
        options: DumpOptions,
        output_path: str,
    ) -> list[str]:
        """Shell command lines that write the dump to output_path, in order."""
        ...

    def build_import_command(
        self,
        target: ConnectionProfile,
        input_path: str,
        *,
        progress_binary: str | None = None,
    ) -> str:
        """Shell command line that loads input_path into the target."""
        ...

    def build_query_command(self, target: ConnectionProfile, sql: str) -> list[str]:
        """argv running sql against the target with tab separated output."""
        ...


def shell_join(args: Sequence[str]) -> str:
    """Quote each argument for a POSIX shell and join them."""
    return " ".join(shlex.quote(arg) for arg in args)


def redirect_output(command: str, path: str, *, append: bool = False) -> str:
    operator = ">>" if append else ">"
    return f"{command} {operator} {shlex.quote(path)}"


def feed_input(
    command: str,
    path: str,
    *,
    progress_binary: str | None = None,
) -> str:
    """Feed a file to command, through ``pv -n`` when a binary is given."""
    if progress_binary:
        return f"{shlex.quote(progress_binary)} -n {shlex.quote(path)} | {command}"
    return f"{command} < {shlex.quote(path)}"


def require_profile(
    profile: ConnectionProfile,
    role: str,
    *,
    require_password: bool = True,
    require_port: bool = True,
) -> None:
    """Fail before any command is built when connection fields are missing.

    Raises:
        ConfigurationError: If a required field is empty
    """
    missing = profile.missing_fields(
        require_password=require_password, require_port=require_port
    )
    if missing:
        raise ConfigurationError(
            f"Missing {role} database configuration.",
            details=[f"Missing: {', '.join(missing)}"],
        )
