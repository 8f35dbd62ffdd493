"""Transport, dump/import stages and the pipeline that runs them."""

from dbsync.services.artifacts import ArtifactState, DumpArtifact
from dbsync.services.hooks import HookRunner, resolve_hook
from dbsync.services.local_import import LocalImportStage
from dbsync.services.migrations import MigrationRunner
from dbsync.services.pipeline import SyncPipeline, prepare_supplied_dump, run_sync
from dbsync.services.plan import SyncOptions, SyncPlan
from dbsync.services.progress import ProgressEvent, ProgressRenderer
from dbsync.services.remote_dump import RemoteDumpStage
from dbsync.services.transport import SecureTransport

__all__ = [
    "ArtifactState",
    "DumpArtifact",
    "HookRunner",
    "resolve_hook",
    "LocalImportStage",
    "MigrationRunner",
    "SyncPipeline",
    "prepare_supplied_dump",
    "run_sync",
    "SyncOptions",
    "SyncPlan",
    "ProgressEvent",
    "ProgressRenderer",
    "RemoteDumpStage",
    "SecureTransport",
]
