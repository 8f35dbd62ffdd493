"""Audit logging for sync runs.

Provides:
- JSON-formatted audit logs
- Run tracking with a session ID
- Sensitive data redaction
- Automatic log rotation

Audit problems are reported at debug level and never abort a run.
"""

import fcntl
import getpass
import json
import os
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Generator, Optional

from dbsync.core.output import console


# Default paths
DEFAULT_LOG_PATH = Path.home() / ".dbsync" / "audit.log"
DEFAULT_MAX_SIZE_MB = 10
DEFAULT_BACKUP_COUNT = 5


class AuditEventType(Enum):
    """Types of auditable events."""
    SYNC_START = "sync.start"
    SYNC_DUMP = "sync.dump"
    SYNC_IMPORT = "sync.import"
    SYNC_END = "sync.end"


class AuditResult(Enum):
    """Result of an audited operation."""
    SUCCESS = "success"
    FAILURE = "failure"
    BLOCKED = "blocked"


# Keys that contain sensitive data
SENSITIVE_KEYS = frozenset({
    "password", "secret", "key", "token", "credential",
    "pass", "passwd",
})


def _sanitize_value(key: str, value: Any) -> Any:
    """Sanitize a value, redacting sensitive data.

    Args:
        key: Parameter key name
        value: Value to sanitize

    Returns:
        Sanitized value
    """
    key_lower = key.lower()

    if any(s in key_lower for s in SENSITIVE_KEYS):
        return "***REDACTED***"

    if isinstance(value, dict):
        return {k: _sanitize_value(k, v) for k, v in value.items()}

    if isinstance(value, (list, tuple)):
        return [_sanitize_value(key, v) for v in value]

    return value


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return str(os.getuid())


@dataclass
class AuditEvent:
    """Represents a single audit event."""
    event_type: AuditEventType
    result: AuditResult
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    actor_username: str = field(default_factory=_current_user)

    target_type: Optional[str] = None
    target_name: Optional[str] = None

    operation: Optional[str] = None
    parameters: dict[str, Any] = field(default_factory=dict)

    message: Optional[str] = None
    error: Optional[str] = None

    session_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event_type": self.event_type.value,
            "result": self.result.value,
            "timestamp": self.timestamp.isoformat(),
            "actor": self.actor_username,
            "target": {
                "type": self.target_type,
                "name": self.target_name,
            },
            "operation": self.operation,
            "parameters": {k: _sanitize_value(k, v) for k, v in self.parameters.items()},
            "message": self.message,
            "error": self.error,
            "session_id": self.session_id,
        }

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), default=str)


class AuditLogger:
    """Audit logger for tracking sync runs.

    Features:
    - Append-only JSON log file
    - Atomic writes with file locking
    - Automatic log rotation
    """

    def __init__(
        self,
        log_path: Optional[Path] = None,
        max_size_mb: int = DEFAULT_MAX_SIZE_MB,
        backup_count: int = DEFAULT_BACKUP_COUNT,
        enabled: bool = True,
    ) -> None:
        self.log_path = log_path or DEFAULT_LOG_PATH
        self.max_size_bytes = max_size_mb * 1024 * 1024
        self.backup_count = backup_count
        self.enabled = enabled
        self.session_id = str(uuid.uuid4())

    def _ensure_log_directory(self) -> bool:
        try:
            self.log_path.parent.mkdir(mode=0o750, parents=True, exist_ok=True)
            if not self.log_path.exists():
                self.log_path.touch(mode=0o640)
            return True
        except OSError as e:
            console.debug(f"Cannot create audit log directory: {e}")
            return False

    def log(self, event: AuditEvent) -> None:
        """Log an audit event."""
        if not self.enabled:
            return

        event.session_id = self.session_id
        log_line = event.to_json() + "\n"

        if not self._ensure_log_directory():
            return

        try:
            with self._atomic_append() as f:
                f.write(log_line)
        except OSError as e:
            console.debug(f"Failed to write audit log: {e}")
            return

        self._rotate_if_needed()

    @contextmanager
    def _atomic_append(self) -> Generator:
        """Context manager for atomic append with file locking."""
        fd = os.open(
            self.log_path,
            os.O_WRONLY | os.O_APPEND | os.O_CREAT,
            0o640,
        )
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            f = os.fdopen(fd, "a")
        except Exception:
            os.close(fd)
            raise
        with f:
            yield f
            f.flush()
            os.fsync(fd)

    def _rotate_if_needed(self) -> None:
        try:
            if self.log_path.stat().st_size > self.max_size_bytes:
                self._rotate_logs()
        except OSError as e:
            console.debug(f"Audit log rotation failed: {e}")

    def _rotate_logs(self) -> None:
        oldest = self.log_path.with_suffix(f".{self.backup_count}")
        if oldest.exists():
            oldest.unlink()

        for i in range(self.backup_count - 1, 0, -1):
            src = self.log_path.with_suffix(f".{i}")
            dst = self.log_path.with_suffix(f".{i + 1}")
            if src.exists():
                src.rename(dst)

        self.log_path.rename(self.log_path.with_suffix(".1"))
        self.log_path.touch(mode=0o640)

    # Convenience methods
    def log_operation(
        self,
        event_type: AuditEventType,
        result: AuditResult,
        target_type: str,
        target_name: str,
        operation: str,
        parameters: Optional[dict[str, Any]] = None,
        message: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        """Log an operation with common fields."""
        self.log(AuditEvent(
            event_type=event_type,
            result=result,
            target_type=target_type,
            target_name=target_name,
            operation=operation,
            parameters=parameters or {},
            message=message,
            error=error,
        ))

    def log_success(
        self,
        event_type: AuditEventType,
        target_type: str,
        target_name: str,
        message: Optional[str] = None,
    ) -> None:
        """Log a successful operation."""
        self.log(AuditEvent(
            event_type=event_type,
            result=AuditResult.SUCCESS,
            target_type=target_type,
            target_name=target_name,
            message=message,
        ))

    def log_failure(
        self,
        event_type: AuditEventType,
        target_type: str,
        target_name: str,
        error: str,
    ) -> None:
        """Log a failed operation."""
        self.log(AuditEvent(
            event_type=event_type,
            result=AuditResult.FAILURE,
            target_type=target_type,
            target_name=target_name,
            error=error,
        ))


# Global audit logger instance
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get or create global audit logger."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def configure_audit_logger(
    log_path: Optional[Path] = None,
    enabled: bool = True,
) -> AuditLogger:
    """Configure and return the global audit logger."""
    global _audit_logger
    _audit_logger = AuditLogger(log_path=log_path, enabled=enabled)
    return _audit_logger
