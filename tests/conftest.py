"""Shared fixtures for the dbsync tests.

No SSH server or database is needed: the transport is replaced by
FakeTransport and local commands by a mocked CommandExecutor.
"""

import gzip
from pathlib import Path
from typing import Callable, Optional
from unittest.mock import MagicMock

import pytest

from dbsync.core.config import (
    AppConfig,
    ConnectionProfile,
    HookSetConfig,
    MigrationsConfig,
    RemoteDatabaseConfig,
    SecretsConfig,
    SSHConfig,
    SyncSettings,
)
from dbsync.core.context import ExecutionContext
from dbsync.core.exceptions import RemoteExecutionError, TransportError
from dbsync.core.executor import CommandResult
from dbsync.services.transport import RemoteResult


DUMP_SQL = b"CREATE TABLE users (id int);\nINSERT INTO users VALUES (1);\n"

MYSQL_BANNER = "mysql  Ver 8.0.36 for Linux on x86_64 (MySQL Community Server - GPL)"


@pytest.fixture(autouse=True)
def audit_log(tmp_path, monkeypatch) -> Path:
    """Send the audit log to a temp file."""
    path = tmp_path / "audit.log"
    monkeypatch.setattr("dbsync.core.audit.DEFAULT_LOG_PATH", path)
    monkeypatch.setattr("dbsync.core.audit._audit_logger", None)
    return path


@pytest.fixture(autouse=True)
def clean_secrets(monkeypatch) -> None:
    monkeypatch.delenv("SYNC_SSH_PASSWORD", raising=False)
    monkeypatch.delenv("SYNC_DATABASE_PASSWORD", raising=False)


class FakeTransport:
    """In-memory stand-in for SecureTransport.

    Records every call in ``calls``. ``fail_on`` makes the first remote
    command containing that text exit non-zero.
    """

    def __init__(
        self,
        config: SSHConfig,
        *,
        dump_content: bytes = DUMP_SQL,
        fail_on: Optional[str] = None,
        fail_download: bool = False,
    ) -> None:
        self.config = config
        self.dump_content = dump_content
        self.fail_on = fail_on
        self.fail_download = fail_download
        self.calls: list[tuple] = []
        self.secrets: list[tuple[str, ...]] = []

    def __enter__(self) -> "FakeTransport":
        self.calls.append(("connect",))
        return self

    def __exit__(self, *exc) -> None:
        self.calls.append(("close",))

    def run(self, command: str, *, check: bool = True, secrets=()) -> RemoteResult:
        self.calls.append(("run", command))
        self.secrets.append(tuple(secrets))
        if self.fail_on and self.fail_on in command:
            raise RemoteExecutionError(
                "Remote command failed.",
                command=command,
                return_code=2,
                stderr="mysqldump: Got error: 1045: Access denied",
            )
        return RemoteResult(command=command, exit_status=0, output="")

    def _compressed(self) -> bytes:
        return gzip.compress(self.dump_content)

    def stat(self, path) -> int:
        self.calls.append(("stat", str(path)))
        return len(self._compressed())

    def download(self, remote_path, local_path: Path, on_progress=None) -> None:
        self.calls.append(("download", str(remote_path), str(local_path)))
        data = self._compressed()
        Path(local_path).write_bytes(data[: len(data) // 2])
        if self.fail_download:
            raise TransportError("Download failed: connection reset")
        Path(local_path).write_bytes(data)
        if on_progress is not None:
            on_progress(len(data) // 2, len(data))
            on_progress(len(data), len(data))

    def delete(self, path, *, missing_ok: bool = False) -> None:
        self.calls.append(("delete", str(path), missing_ok))

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]


class TransportRecorder:
    """Transport factory keeping the transports it created."""

    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.created: list[FakeTransport] = []

    def __call__(self, config: SSHConfig) -> FakeTransport:
        transport = FakeTransport(config, **self.kwargs)
        self.created.append(transport)
        return transport

    @property
    def transport(self) -> FakeTransport:
        assert len(self.created) == 1
        return self.created[0]


@pytest.fixture
def transport_factory() -> TransportRecorder:
    return TransportRecorder()


@pytest.fixture
def version_probe() -> Callable[[str], str]:
    """mysql --version stand-in so no client binary is needed."""
    return lambda binary: MYSQL_BANNER


@pytest.fixture
def console_mock() -> MagicMock:
    return MagicMock()


def make_settings(driver: str = "mysql", **overrides) -> SyncSettings:
    """Complete configuration for a sync into a local ``default`` connection."""
    port = 5432 if driver == "pgsql" else 3306
    data = {
        "environment": "development",
        "default_connection": "default",
        "connections": {
            "default": ConnectionProfile(
                driver=driver,
                host="127.0.0.1",
                port=port,
                username="app",
                password="localpw",
                database="app_local",
            ),
            "reporting": ConnectionProfile(
                driver=driver,
                host="127.0.0.1",
                port=port,
                username="app",
                password="localpw",
                database="reporting",
            ),
        },
        "ssh": SSHConfig(host="prod.example.com", user="deploy", password="sshpw"),
        "database": RemoteDatabaseConfig(
            host="127.0.0.1",
            port=port,
            name="app",
            user="app",
            password="remotepw",
        ),
        "migrations": MigrationsConfig(command=["alembic", "upgrade", "head"]),
        "post_dump_scripts": HookSetConfig(),
        "post_scripts": HookSetConfig(),
    }
    data.update(overrides)
    return SyncSettings(**data)


@pytest.fixture
def settings_factory() -> Callable[..., SyncSettings]:
    return make_settings


@pytest.fixture
def make_ctx(console_mock) -> Callable[[SyncSettings], ExecutionContext]:
    """Build a context around an in-memory configuration."""

    def factory(settings: SyncSettings, **kwargs) -> ExecutionContext:
        app_config = AppConfig(config=settings, secrets=SecretsConfig())
        return ExecutionContext(_config=app_config, _console=console_mock, **kwargs)

    return factory


@pytest.fixture
def executor(console_mock) -> MagicMock:
    """CommandExecutor double whose commands all succeed."""
    mock = MagicMock()
    mock.ctx.console = console_mock
    mock.run.side_effect = lambda command, **kwargs: CommandResult(command, 0, "", "")
    mock.stream.side_effect = lambda command, **kwargs: CommandResult(command, 0, "", "")
    return mock
