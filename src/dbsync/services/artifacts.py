"""Dump artifact naming, lifecycle and local decompression.

Every run derives all of its temporary paths from one random token, so
concurrent runs never collide and cleanup knows exactly what to delete.
"""

import gzip
import secrets
import shutil
import zlib
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path, PurePosixPath

from dbsync.core.exceptions import FileSystemError

# Prefix identifying this tool's temp files
ARTIFACT_PREFIX = "dbsync"
GZIP_SUFFIX = ".gz"
DEFAULT_REMOTE_DIR = PurePosixPath("/tmp")
DEFAULT_LOCAL_DIR = Path("/tmp")


class ArtifactState(IntEnum):
    """Where the dump currently lives. States only move forward."""
    PLANNED = 0
    REMOTE_RAW = 1
    REMOTE_COMPRESSED = 2
    LOCAL_COMPRESSED = 3
    LOCAL_DECOMPRESSED = 4
    CONSUMED = 5


def new_token() -> str:
    """Random 32 hex character token."""
    return secrets.token_hex(16)


@dataclass
class DumpArtifact:
    """The single dump flowing through one run."""

    token: str
    remote_dir: PurePosixPath = DEFAULT_REMOTE_DIR
    local_dir: Path = DEFAULT_LOCAL_DIR
    state: ArtifactState = field(default=ArtifactState.PLANNED)

    @classmethod
    def for_run(
        cls,
        remote_dir: PurePosixPath = DEFAULT_REMOTE_DIR,
        local_dir: Path = DEFAULT_LOCAL_DIR,
    ) -> "DumpArtifact":
        return cls(token=new_token(), remote_dir=remote_dir, local_dir=local_dir)

    @property
    def filename(self) -> str:
        return f"{ARTIFACT_PREFIX}-{self.token}.sql"

    @property
    def remote_raw(self) -> PurePosixPath:
        return self.remote_dir / self.filename

    @property
    def remote_compressed(self) -> PurePosixPath:
        return self.remote_raw.with_name(self.remote_raw.name + GZIP_SUFFIX)

    @property
    def local_compressed(self) -> Path:
        return self.local_dir / f"local-{self.filename}{GZIP_SUFFIX}"

    @property
    def local_decompressed(self) -> Path:
        return decompressed_path(self.local_compressed)

    def advance(self, state: ArtifactState) -> None:
        """Move to a later lifecycle state.

        Raises:
            ValueError: If the state would go backwards
        """
        if state < self.state:
            raise ValueError(
                f"Dump artifact cannot go from {self.state.name} back to {state.name}"
            )
        self.state = state


def decompressed_path(path: Path) -> Path:
    """Path with a trailing .gz removed."""
    if path.suffix == GZIP_SUFFIX:
        return path.with_suffix("")
    return path


def decompress_file(path: Path) -> Path:
    """Decompress a .gz file next to itself and remove the archive.

    Behaves like ``gzip -fd``: an existing output file is overwritten.

    Returns:
        Path of the decompressed file

    Raises:
        FileSystemError: If the archive is missing or corrupt
    """
    target = decompressed_path(path)
    if target == path:
        return path

    try:
        with gzip.open(path, "rb") as src, open(target, "wb") as dst:
            shutil.copyfileobj(src, dst, length=1024 * 1024)
    except (OSError, EOFError, zlib.error) as e:
        target.unlink(missing_ok=True)
        raise FileSystemError(
            f"Failed to decompress {path}",
            details=[str(e)],
        ) from e

    path.unlink()
    return target


def format_bytes(size_bytes: float) -> str:
    """Format bytes as human-readable string.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted string (e.g., "1.5 GB")
    """
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if abs(size_bytes) < 1024:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024
    return f"{size_bytes:.1f} PB"
