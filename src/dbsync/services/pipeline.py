"""Sync pipeline orchestration.

Picks the driver, chooses between a remote dump and a supplied dump
file, and runs the local import. Every failure surfaces as a SyncError
whose ``exit_code`` is the process exit status.
"""

from pathlib import Path
from typing import Callable, Optional

from dbsync.core.audit import AuditEventType, AuditResult, get_audit_logger
from dbsync.core.context import ExecutionContext
from dbsync.core.exceptions import FileSystemError, SyncError
from dbsync.core.executor import CommandExecutor
from dbsync.drivers import DatabaseDriver, select_driver
from dbsync.services.artifacts import (
    GZIP_SUFFIX,
    ArtifactState,
    DumpArtifact,
    decompress_file,
)
from dbsync.services.hooks import HookRunner
from dbsync.services.local_import import LocalImportStage
from dbsync.services.plan import SyncOptions, SyncPlan
from dbsync.services.progress import ProgressSink, null_sink
from dbsync.services.remote_dump import RemoteDumpStage, TransportFactory
from dbsync.services.transport import SecureTransport


def prepare_supplied_dump(path: Path) -> Path:
    """Check a supplied dump exists and decompress it if gzipped.

    Raises:
        FileSystemError: If the file does not exist or cannot be decompressed
    """
    if not path.is_file():
        raise FileSystemError(
            f"File {path} not found.",
            hint="Pass the path of an existing .sql or .sql.gz dump",
        )
    if path.suffix == GZIP_SUFFIX:
        return decompress_file(path)
    return path


class SyncPipeline:
    """Run one sync from start to finish.

    Example:
        plan = SyncPlan.resolve(ctx.config, SyncOptions(delete_local_dump=True))
        SyncPipeline(ctx, plan).run()
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        plan: SyncPlan,
        *,
        executor: Optional[CommandExecutor] = None,
        transport_factory: Optional[TransportFactory] = None,
        progress: ProgressSink = null_sink,
        hooks: Optional[HookRunner] = None,
        version_probe: Optional[Callable[[str], str]] = None,
    ) -> None:
        self.ctx = ctx
        self.plan = plan
        self.executor = executor or CommandExecutor(ctx)
        self.transport_factory = transport_factory or SecureTransport
        self.progress = progress
        self.hooks = hooks or HookRunner(ctx.console)
        self.version_probe = version_probe
        self.artifact: Optional[DumpArtifact] = None
        self.audit = get_audit_logger()

    def select_driver(self) -> DatabaseDriver:
        return select_driver(
            self.plan.engine,
            self.plan.bins,
            version_probe=self.version_probe,
        )

    def obtain_dump(self, driver: DatabaseDriver) -> Path:
        """Local dump path: the supplied file, or a fresh remote dump."""
        if self.plan.dump_file is not None:
            return prepare_supplied_dump(self.plan.dump_file)

        stage = RemoteDumpStage(
            self.ctx,
            self.plan,
            driver,
            transport_factory=self.transport_factory,
            progress=self.progress,
            hooks=self.hooks,
        )
        dump = stage.run()
        self.artifact = stage.artifact
        self.audit.log_success(
            AuditEventType.SYNC_DUMP,
            target_type="database",
            target_name=self.plan.source.database,
            message=f"Downloaded from {self.plan.ssh.host} to {dump}",
        )
        return dump

    def run(self) -> Path:
        """Run the whole pipeline.

        Driver selection happens first so an unsupported engine fails
        before anything remote or local is touched.

        Returns:
            Path of the dump that was imported (it may no longer exist)
        """
        driver = self.select_driver()
        dump = self.obtain_dump(driver)

        LocalImportStage(
            self.ctx,
            self.executor,
            self.plan,
            driver,
            progress=self.progress,
            hooks=self.hooks,
        ).run(dump)
        if self.artifact is not None and self.plan.delete_local_dump:
            self.artifact.advance(ArtifactState.CONSUMED)

        self.audit.log_success(
            AuditEventType.SYNC_IMPORT,
            target_type="connection",
            target_name=self.plan.connection,
            message=f"Imported {dump}",
        )
        return dump


def run_sync(
    ctx: ExecutionContext,
    options: SyncOptions,
    *,
    transport_factory: Optional[TransportFactory] = None,
    progress: ProgressSink = null_sink,
    executor: Optional[CommandExecutor] = None,
    version_probe: Optional[Callable[[str], str]] = None,
) -> SyncPlan:
    """Resolve the plan and run the pipeline, recording it in the audit log.

    Raises:
        SyncError: Any failure, carrying the exit code for the process
    """
    audit = get_audit_logger()
    plan = SyncPlan.resolve(ctx.config, options)

    audit.log_operation(
        AuditEventType.SYNC_START,
        AuditResult.SUCCESS,
        target_type="connection",
        target_name=plan.connection,
        operation="sync",
        parameters={
            "engine": plan.engine,
            "dump_file": str(plan.dump_file) if plan.dump_file else None,
            "delete_local_dump": plan.delete_local_dump,
            "run_migrations": plan.run_migrations,
            "tables_no_data": list(plan.dump_options.tables_no_data),
        },
    )

    try:
        SyncPipeline(
            ctx,
            plan,
            executor=executor,
            transport_factory=transport_factory,
            progress=progress,
            version_probe=version_probe,
        ).run()
    except SyncError as e:
        audit.log_failure(
            AuditEventType.SYNC_END,
            target_type="connection",
            target_name=plan.connection,
            error=str(e),
        )
        raise

    audit.log_success(
        AuditEventType.SYNC_END,
        target_type="connection",
        target_name=plan.connection,
        message="Database synchronized",
    )
    ctx.console.success("Database synchronized.")
    return plan
