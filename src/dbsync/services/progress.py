"""Progress events emitted by the pipeline and their rendering.

Stages emit ProgressEvent values into a sink and never format text.
ProgressRenderer is the sink used by the CLI; it draws one rich progress
bar per stage.
"""

from dataclasses import dataclass
from enum import Enum
from types import TracebackType
from typing import Callable, Optional

from rich.progress import Progress, TaskID

from dbsync.core.output import Console, console


class ProgressUnit(Enum):
    BYTES = "bytes"
    PERCENT = "percent"


@dataclass(frozen=True)
class ProgressEvent:
    """One progress measurement for a stage."""
    stage: str
    completed: float
    total: Optional[float]
    unit: ProgressUnit = ProgressUnit.BYTES


ProgressSink = Callable[[ProgressEvent], None]


def null_sink(event: ProgressEvent) -> None:
    """Discard progress."""


class MonotonicProgress:
    """Forward measurements for one stage, never letting them go backwards.

    Guarantees at least one event at completion through ``finish``.
    """

    def __init__(
        self,
        sink: ProgressSink,
        stage: str,
        total: Optional[float] = None,
        unit: ProgressUnit = ProgressUnit.BYTES,
    ) -> None:
        self.sink = sink
        self.stage = stage
        self.total = total
        self.unit = unit
        self.completed: float = 0
        self._emitted = False

    def update(self, completed: float, total: Optional[float] = None) -> None:
        if total:
            self.total = total
        if completed < self.completed:
            return
        if completed == self.completed and self._emitted:
            return
        self.completed = completed
        self._emitted = True
        self.sink(ProgressEvent(self.stage, completed, self.total, self.unit))

    def finish(self) -> None:
        """Report completion, reaching the total when one is known."""
        final = self.total if self.total is not None else self.completed
        if final > self.completed or not self._emitted:
            self.completed = max(final, self.completed)
            self._emitted = True
            self.sink(ProgressEvent(self.stage, self.completed, self.total, self.unit))


class ProgressRenderer:
    """Render progress events as rich progress bars.

    Usage:
        with ProgressRenderer() as render:
            pipeline = SyncPipeline(ctx, plan, progress=render)
    """

    LABELS = {
        "download": "Downloading",
        "import": "Importing",
    }

    def __init__(self, output: Optional[Console] = None) -> None:
        self._console = output or console
        self._progress: Optional[Progress] = None
        self._tasks: dict[str, TaskID] = {}

    def __enter__(self) -> "ProgressRenderer":
        self._progress = self._console.progress()
        self._progress.start()
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        if self._progress is not None:
            self._progress.stop()
        self._progress = None
        self._tasks.clear()

    def __call__(self, event: ProgressEvent) -> None:
        if self._progress is None:
            return
        task = self._tasks.get(event.stage)
        if task is None:
            label = self.LABELS.get(event.stage, event.stage.title())
            task = self._progress.add_task(label, total=event.total)
            self._tasks[event.stage] = task
        self._progress.update(task, completed=event.completed, total=event.total)
