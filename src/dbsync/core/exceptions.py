"""Custom exceptions for the Database Sync CLI.

All exceptions provide:
- Clear error messages
- Optional hints for resolution
- Optional details for debugging
- Exit codes for proper shell integration

Precondition failures (configuration, driver selection, missing files)
share exit code 1 so that scripts can tell them apart from failures that
happen after the remote or local side has been touched.
"""

from typing import Optional


class SyncError(Exception):
    """Base exception for all database sync errors.

    Attributes:
        message: Human-readable error description
        hint: Suggested action to resolve the error
        details: Additional context for debugging
        exit_code: Shell exit code (1-127)
    """

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        *,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or []

    def __str__(self) -> str:
        return self.message


class ConfigurationError(SyncError):
    """Configuration file or settings errors.

    Raised when:
    - Config file not found or unreadable
    - Invalid YAML syntax
    - Missing SSH or database settings
    - Unknown connection name
    """
    exit_code = 1


class ValidationError(SyncError):
    """Input validation errors.

    Raised when:
    - Invalid table or database names
    - Invalid port numbers
    - Invalid packet sizes
    """
    exit_code = 1


class DriverNotFoundError(SyncError):
    """The target connection declares an unsupported database engine."""
    exit_code = 1


class FileSystemError(SyncError):
    """Local file problems.

    Raised when:
    - Supplied dump file does not exist
    - Decompression fails
    - Local dump cannot be deleted
    """
    exit_code = 1


class PrerequisiteError(SyncError):
    """Missing prerequisites.

    Raised when:
    - Required client binary not found
    """
    exit_code = 1


class TransportError(SyncError):
    """SSH/SFTP connection, authentication or transfer failures."""
    exit_code = 3


class ExecutionError(SyncError):
    """Command execution failures.

    Raised when:
    - Shell command returns non-zero exit code
    - Local wipe fails
    """
    exit_code = 5

    def __init__(
        self,
        message: str,
        *,
        command: Optional[str] = None,
        return_code: Optional[int] = None,
        stderr: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        if not details:
            details = []
        if return_code is not None:
            details.append(f"Exit code: {return_code}")
        if stderr:
            details.append(f"Error output: {stderr}")
        super().__init__(message, hint=hint, details=details)
        self.command = command
        self.return_code = return_code
        self.stderr = stderr


class RemoteExecutionError(ExecutionError):
    """A command run on the remote host exited non-zero."""
    exit_code = 4


class LocalSubprocessError(ExecutionError):
    """The local import subprocess exited non-zero."""
    exit_code = 5


class MigrationError(SyncError):
    """The migration command failed after import."""
    exit_code = 6


class HookError(SyncError):
    """A resolved post-dump or post-import hook raised."""
    exit_code = 7
