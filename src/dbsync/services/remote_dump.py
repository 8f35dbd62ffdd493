"""Remote dump stage: dump, compress, download, decompress.

Runs strictly in order against one SSH host. Remote artifacts are
removed on every exit path once the transport is open; the local
compressed copy is removed if download or decompression fails.
"""

from pathlib import Path
from typing import Callable, Optional

from dbsync.core.config import ConnectionProfile, SSHConfig
from dbsync.core.context import ExecutionContext
from dbsync.core.exceptions import ConfigurationError
from dbsync.core.executor import CleanupStack
from dbsync.drivers import DatabaseDriver
from dbsync.services.artifacts import (
    ArtifactState,
    DumpArtifact,
    decompress_file,
    format_bytes,
)
from dbsync.services.hooks import HookRunner
from dbsync.services.plan import SyncPlan
from dbsync.services.progress import MonotonicProgress, ProgressSink, null_sink
from dbsync.services.transport import SecureTransport, quote_path

TransportFactory = Callable[[SSHConfig], SecureTransport]


def validate_remote_config(ssh: SSHConfig, source: ConnectionProfile) -> None:
    """Check SSH and remote database settings before anything is opened.

    Raises:
        ConfigurationError: If a required field is missing
    """
    missing = ssh.missing_fields()
    if missing:
        raise ConfigurationError(
            "Missing ssh configuration.",
            details=[f"Missing: {', '.join(missing)}"],
            hint="Set them in the 'ssh' section of the configuration file",
        )

    missing = source.missing_fields()
    if missing:
        raise ConfigurationError(
            "Missing database configuration.",
            details=[f"Missing: {', '.join(missing)}"],
            hint="Set them in the 'database' section (password: SYNC_DATABASE_PASSWORD)",
        )


class RemoteDumpStage:
    """Produce a local, decompressed dump of the remote database."""

    def __init__(
        self,
        ctx: ExecutionContext,
        plan: SyncPlan,
        driver: DatabaseDriver,
        *,
        transport_factory: Optional[TransportFactory] = None,
        progress: ProgressSink = null_sink,
        hooks: Optional[HookRunner] = None,
        artifact: Optional[DumpArtifact] = None,
    ) -> None:
        self.ctx = ctx
        self.plan = plan
        self.driver = driver
        self.transport_factory = transport_factory or SecureTransport
        self.progress = progress
        self.hooks = hooks or HookRunner(ctx.console)
        self.artifact = artifact

    @property
    def _secrets(self) -> tuple[str, ...]:
        return tuple(s for s in (self.plan.source.password, self.plan.ssh.password) if s)

    def run(self) -> Path:
        """Run the stage and return the local decompressed dump path."""
        console = self.ctx.console
        validate_remote_config(self.plan.ssh, self.plan.source)

        artifact = self.artifact or DumpArtifact.for_run()
        self.artifact = artifact
        commands = self.driver.build_dump_commands(
            self.plan.source,
            self.plan.dump_options,
            str(artifact.remote_raw),
        )

        with self.transport_factory(self.plan.ssh) as transport, \
                CleanupStack(console) as cleanup:
            remote_raw = cleanup.add(
                f"Delete {artifact.remote_raw}",
                lambda: transport.delete(artifact.remote_raw, missing_ok=True),
            )
            remote_gz = cleanup.add(
                f"Delete {artifact.remote_compressed}",
                lambda: transport.delete(artifact.remote_compressed, missing_ok=True),
            )

            console.step("Dumping...")
            for command in commands:
                transport.run(command, secrets=self._secrets)
            artifact.advance(ArtifactState.REMOTE_RAW)

            console.step("Compressing...")
            transport.run(f"gzip -f {quote_path(artifact.remote_raw)}")
            cleanup.discard(remote_raw)
            artifact.advance(ArtifactState.REMOTE_COMPRESSED)

            size = transport.stat(artifact.remote_compressed)
            console.step(f"Downloading ({format_bytes(size)})...")

            local_gz = cleanup.add(
                f"Delete {artifact.local_compressed}",
                lambda: artifact.local_compressed.unlink(missing_ok=True),
            )
            tracker = MonotonicProgress(self.progress, "download", total=size)
            transport.download(
                artifact.remote_compressed,
                artifact.local_compressed,
                on_progress=lambda done, total: tracker.update(done, total),
            )
            tracker.finish()
            artifact.advance(ArtifactState.LOCAL_COMPRESSED)

            transport.delete(artifact.remote_compressed)
            cleanup.discard(remote_gz)
            console.info("Remote dump deleted.")

            local_path = decompress_file(artifact.local_compressed)
            cleanup.discard(local_gz)
            artifact.advance(ArtifactState.LOCAL_DECOMPRESSED)
            console.info("Dump extracted.")

        self.hooks.run_post_dump(self.plan.post_dump, local_path)
        return local_path
