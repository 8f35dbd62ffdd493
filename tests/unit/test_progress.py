"""Unit tests for progress events."""

from unittest.mock import MagicMock

from dbsync.services.progress import (
    MonotonicProgress,
    ProgressEvent,
    ProgressRenderer,
    ProgressUnit,
)


class TestMonotonicProgress:
    """Tests for the non-decreasing progress filter."""

    def test_forwards_increasing_values(self):
        events = []
        tracker = MonotonicProgress(events.append, "download", total=100)

        tracker.update(10)
        tracker.update(60)

        assert events == [
            ProgressEvent("download", 10, 100, ProgressUnit.BYTES),
            ProgressEvent("download", 60, 100, ProgressUnit.BYTES),
        ]

    def test_drops_regressions_and_repeats(self):
        events = []
        tracker = MonotonicProgress(events.append, "import", total=100, unit=ProgressUnit.PERCENT)

        for value in (5, 20, 20, 10, 30):
            tracker.update(value)

        assert [e.completed for e in events] == [5, 20, 30]

    def test_first_zero_is_reported(self):
        events = []
        MonotonicProgress(events.append, "download", total=10).update(0)
        assert [e.completed for e in events] == [0]

    def test_finish_reaches_total(self):
        events = []
        tracker = MonotonicProgress(events.append, "import", total=100)
        tracker.update(97)
        tracker.finish()

        assert events[-1].completed == 100

    def test_finish_without_updates_reports_once(self):
        events = []
        tracker = MonotonicProgress(events.append, "import", total=100)
        tracker.finish()
        tracker.finish()

        assert [e.completed for e in events] == [100]

    def test_finish_after_total_reached_is_silent(self):
        events = []
        tracker = MonotonicProgress(events.append, "download", total=50)
        tracker.update(50)
        tracker.finish()

        assert len(events) == 1

    def test_total_learned_from_updates(self):
        events = []
        tracker = MonotonicProgress(events.append, "download")
        tracker.update(10, total=40)
        tracker.finish()

        assert events[-1] == ProgressEvent("download", 40, 40, ProgressUnit.BYTES)


class TestProgressRenderer:
    """Tests for the rich progress renderer."""

    def test_one_task_per_stage(self):
        output = MagicMock()
        progress = output.progress.return_value
        progress.add_task.side_effect = ["task-download", "task-import"]

        with ProgressRenderer(output) as render:
            render(ProgressEvent("download", 10, 100))
            render(ProgressEvent("download", 50, 100))
            render(ProgressEvent("import", 5, 100, ProgressUnit.PERCENT))

        assert progress.add_task.call_count == 2
        progress.add_task.assert_any_call("Downloading", total=100)
        progress.add_task.assert_any_call("Importing", total=100)
        progress.update.assert_any_call("task-download", completed=50, total=100)
        progress.start.assert_called_once()
        progress.stop.assert_called_once()

    def test_events_outside_context_are_ignored(self):
        output = MagicMock()
        ProgressRenderer(output)(ProgressEvent("download", 10, 100))
        output.progress.assert_not_called()
