"""SSH command execution and SFTP transfer against the remote host.

One authenticated SSH session runs remote commands, each on its own
channel so its exit status is known; an SFTP session on the same host
handles stat, download and delete. Nothing is retried: a failure half
way through a remote dump must not be replayed against a remote state
that may have changed.
"""

import shlex
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from types import TracebackType
from typing import Callable, Optional, Sequence

import paramiko

from dbsync.core.config import SSHConfig
from dbsync.core.exceptions import ConfigurationError, RemoteExecutionError, TransportError
from dbsync.core.executor import mask_secrets
from dbsync.core.output import Console, console

# Output kept from a failing remote command
REMOTE_OUTPUT_LIMIT = 4000

ByteProgress = Callable[[int, int], None]


@dataclass
class RemoteResult:
    """Outcome of one remote command."""
    command: str
    exit_status: int
    output: str

    @property
    def success(self) -> bool:
        return self.exit_status == 0


class SecureTransport:
    """Paramiko SSH + SFTP sessions to one host.

    Usage:
        with SecureTransport(ssh_config) as transport:
            transport.run("gzip /tmp/dump.sql")
            size = transport.stat("/tmp/dump.sql.gz")
            transport.download("/tmp/dump.sql.gz", Path("/tmp/local.sql.gz"))
    """

    def __init__(
        self,
        config: SSHConfig,
        *,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
        output: Optional[Console] = None,
    ) -> None:
        self.config = config
        self._client_factory = client_factory
        self._console = output or console
        self._client: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None

    # Connection handling
    def _connect_kwargs(self) -> dict:
        kwargs: dict = {
            "hostname": self.config.host,
            "port": self.config.port,
            "username": self.config.user,
            "timeout": self.config.timeout,
            "banner_timeout": self.config.timeout,
            "auth_timeout": self.config.timeout,
        }
        if self.config.key:
            if not Path(self.config.key).exists():
                raise ConfigurationError(
                    "SSH key not found.",
                    details=[f"Key path: {self.config.key}"],
                )
            kwargs["key_filename"] = str(self.config.key)
            # Passphrase for the key, when both are set
            if self.config.password:
                kwargs["passphrase"] = self.config.password
            kwargs["look_for_keys"] = False
        else:
            kwargs["password"] = self.config.password
            kwargs["look_for_keys"] = False
            kwargs["allow_agent"] = False
        return kwargs

    def connect(self) -> "SecureTransport":
        """Open and verify both sessions.

        Raises:
            TransportError: If either session is not connected and authenticated
        """
        kwargs = self._connect_kwargs()
        self._console.debug(
            f"Connecting to {self.config.user}@{self.config.host}:{self.config.port}"
        )

        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        self._client = client
        try:
            client.connect(**kwargs)
        except (paramiko.SSHException, OSError) as e:
            raise TransportError(
                "SSH connection cannot be established.",
                details=[str(e)],
                hint="Check the ssh host, port, user and credentials",
            ) from e

        transport = client.get_transport()
        if transport is None or not transport.is_active() or not transport.is_authenticated():
            raise TransportError("SSH connection cannot be established.")

        try:
            self._sftp = client.open_sftp()
        except (paramiko.SSHException, OSError) as e:
            raise TransportError(
                "SFTP connection cannot be established.",
                details=[str(e)],
            ) from e

        channel = self._sftp.get_channel()
        if channel is None or channel.closed:
            raise TransportError("SFTP connection cannot be established.")

        return self

    def close(self) -> None:
        """Close both sessions."""
        if self._sftp is not None:
            self._sftp.close()
            self._sftp = None
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "SecureTransport":
        try:
            return self.connect()
        except BaseException:
            self.close()
            raise

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()

    @property
    def client(self) -> paramiko.SSHClient:
        if self._client is None:
            raise TransportError("SSH session is not open.")
        return self._client

    @property
    def sftp(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            raise TransportError("SFTP session is not open.")
        return self._sftp

    # Operations
    def run(
        self,
        command: str,
        *,
        check: bool = True,
        secrets: Sequence[str] = (),
    ) -> RemoteResult:
        """Run a command on its own channel and wait for its exit status.

        Args:
            command: Shell command line
            check: Raise on non-zero exit status
            secrets: Values masked in logs and errors

        Raises:
            RemoteExecutionError: If the command fails and check=True
            TransportError: If the session breaks
        """
        display = mask_secrets(command, secrets)
        self._console.debug(f"Remote: {display}")

        try:
            _, stdout, stderr = self.client.exec_command(command)
            out = stdout.read().decode("utf-8", errors="replace")
            err = stderr.read().decode("utf-8", errors="replace")
            status = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as e:
            raise TransportError(
                "SSH session failed while running a remote command.",
                details=[display, str(e)],
            ) from e

        output = mask_secrets((out + err).strip(), secrets)
        result = RemoteResult(command=display, exit_status=status, output=output)

        if check and not result.success:
            raise RemoteExecutionError(
                "Remote command failed.",
                command=display,
                return_code=status,
                stderr=output[-REMOTE_OUTPUT_LIMIT:] or None,
            )
        return result

    def stat(self, path: str | PurePosixPath) -> int:
        """Size of a remote file in bytes.

        Raises:
            RemoteExecutionError: If the file does not exist
        """
        try:
            attrs = self.sftp.stat(str(path))
        except FileNotFoundError as e:
            raise RemoteExecutionError(
                f"Remote file not found: {path}",
                hint="The dump command may have written nothing",
            ) from e
        except (paramiko.SSHException, OSError) as e:
            raise TransportError(
                f"Cannot stat remote file: {path}",
                details=[str(e)],
            ) from e
        return int(attrs.st_size or 0)

    def download(
        self,
        remote_path: str | PurePosixPath,
        local_path: Path,
        on_progress: Optional[ByteProgress] = None,
    ) -> None:
        """Copy a remote file locally, reporting bytes as chunks arrive.

        Reported byte counts never decrease and the final count is always
        reported once the copy completes.
        """
        state = {"reported": -1, "total": 0}

        def callback(transferred: int, total: int) -> None:
            state["total"] = total
            if on_progress is not None and transferred > state["reported"]:
                state["reported"] = transferred
                on_progress(transferred, total)

        try:
            self.sftp.get(str(remote_path), str(local_path), callback=callback)
        except (paramiko.SSHException, OSError) as e:
            raise TransportError(
                f"Download failed: {remote_path}",
                details=[str(e)],
            ) from e

        if on_progress is not None and state["reported"] < state["total"]:
            on_progress(state["total"], state["total"])
        elif on_progress is not None and state["reported"] < 0:
            on_progress(0, 0)

    def delete(self, path: str | PurePosixPath, *, missing_ok: bool = False) -> None:
        """Remove a remote file."""
        try:
            self.sftp.remove(str(path))
        except FileNotFoundError:
            if not missing_ok:
                raise RemoteExecutionError(f"Remote file not found: {path}") from None
        except (paramiko.SSHException, OSError) as e:
            raise TransportError(
                f"Cannot delete remote file: {path}",
                details=[str(e)],
            ) from e


def quote_path(path: str | PurePosixPath) -> str:
    return shlex.quote(str(path))
