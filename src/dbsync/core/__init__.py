"""Core framework components for the Database Sync CLI."""

from dbsync.core.exceptions import (
    SyncError,
    ConfigurationError,
    ValidationError,
    DriverNotFoundError,
    FileSystemError,
    PrerequisiteError,
    TransportError,
    ExecutionError,
    RemoteExecutionError,
    LocalSubprocessError,
    MigrationError,
    HookError,
)

from dbsync.core.context import ExecutionContext, create_context
from dbsync.core.output import console, Console, Verbosity
from dbsync.core.config import (
    AppConfig,
    BinConfig,
    ConnectionProfile,
    DumpOptions,
    SSHConfig,
    SyncSettings,
)
from dbsync.core.audit import AuditLogger, AuditEvent, AuditEventType, AuditResult, get_audit_logger
from dbsync.core.executor import CleanupStack, CommandExecutor, CommandResult

__all__ = [
    # Exceptions
    "SyncError",
    "ConfigurationError",
    "ValidationError",
    "DriverNotFoundError",
    "FileSystemError",
    "PrerequisiteError",
    "TransportError",
    "ExecutionError",
    "RemoteExecutionError",
    "LocalSubprocessError",
    "MigrationError",
    "HookError",
    # Context
    "ExecutionContext",
    "create_context",
    # Output
    "console",
    "Console",
    "Verbosity",
    # Config
    "AppConfig",
    "BinConfig",
    "ConnectionProfile",
    "DumpOptions",
    "SSHConfig",
    "SyncSettings",
    # Audit
    "AuditLogger",
    "AuditEvent",
    "AuditEventType",
    "AuditResult",
    "get_audit_logger",
    # Executor
    "CleanupStack",
    "CommandExecutor",
    "CommandResult",
]
